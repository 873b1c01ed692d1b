"""League API routes.

Provides endpoints for:
- Current ranking for a league-week (with display tiers)
- Manual and forced refreshes
- Live-update control (start/stop)
- Elimination history
- The operator's own team
- Debounced week selection
- League discovery and playoff brackets
"""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from warroom.models.unified import EliminationEvent, LeagueSource, Ranking, TeamRanking
from warroom.services.identity_resolver import IdentityMatch
from warroom.services.refresh_coordinator import LiveRefreshCoordinator
from warroom.services.tier_calculator import PerformanceTier, TierCalculator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leagues", tags=["leagues"])


def get_coordinator(request: Request) -> LiveRefreshCoordinator:
    """Dependency to get the coordinator built in the app lifespan."""
    return request.app.state.coordinator


def get_tier_calculator(request: Request) -> TierCalculator:
    return request.app.state.tier_calculator


# ============================================================================
# Serialization
# ============================================================================

def serialize_entry(
    entry: TeamRanking,
    tier: Optional[PerformanceTier] = None,
    scale: Optional[float] = None,
) -> Dict:
    team = entry.team
    return {
        'team_id': team.id,
        'owner_name': team.owner_name,
        'avatar_url': team.avatar_url,
        'score': round(entry.score, 2),
        'projected_score': round(team.projected_score, 2),
        'rank': entry.rank,
        'status': entry.status.value,
        'is_eliminated': entry.is_eliminated,
        'points_from_safety': round(entry.points_from_safety, 2),
        'survival_probability': round(entry.survival_probability, 4),
        'weeks_alive': entry.weeks_alive,
        'tier': tier.value if tier else None,
        'display_scale': round(scale, 4) if scale is not None else None,
        'starters': [
            {'player_id': p.id, 'slot': p.lineup_slot, 'points': round(p.current_points, 2)}
            for p in team.starters
        ],
    }


def serialize_ranking(ranking: Ranking, tiers: TierCalculator) -> Dict:
    scores = [e.score for e in ranking.entries]
    tier_by_team = tiers.tiers_for_ranking(ranking)
    scales = tiers.display_scale(scores)

    return {
        'league_id': ranking.league_id,
        'week': ranking.week,
        'elimination_count': ranking.elimination_count,
        'active_count': ranking.active_count,
        'total_survivors': ranking.total_survivors,
        'cutoff_score': round(ranking.cutoff_score, 2),
        'average_score': round(ranking.average_score, 2),
        'highest_score': round(ranking.highest_score, 2),
        'lowest_score': round(ranking.lowest_score, 2),
        'adaptive_scaling': tiers.should_use_adaptive_scaling(scores),
        'eliminated_this_week': [e.team.id for e in ranking.eliminated_this_week],
        'generated_at': ranking.generated_at.isoformat(),
        'entries': [
            serialize_entry(entry, tier_by_team.get(entry.team.id), scale)
            for entry, scale in zip(ranking.entries, scales)
        ],
        'graveyard': [serialize_entry(entry) for entry in ranking.graveyard],
    }


def serialize_event(event: EliminationEvent) -> Dict:
    return {
        'id': event.id,
        'league_id': event.league_id,
        'team_id': event.team_id,
        'owner_name': event.owner_name,
        'week': event.week,
        'score': event.score,
        'rank': event.rank,
        'margin': event.margin,
        'drama_meter': event.drama_meter,
        'narrative': event.narrative,
        'cause': event.cause,
        'created_at': event.created_at.isoformat(),
    }


def _register_source(coordinator: LiveRefreshCoordinator, league_id: str, source: Optional[LeagueSource]) -> None:
    if source is not None:
        coordinator.register(league_id, source)


# ============================================================================
# Rankings
# ============================================================================

@router.get("/{league_id}/ranking")
async def get_ranking(
    league_id: str,
    week: Optional[int] = Query(None, ge=1, le=18, description="NFL week (defaults to the selected week)"),
    source: Optional[LeagueSource] = Query(None, description="Platform the league lives on"),
    coordinator: LiveRefreshCoordinator = Depends(get_coordinator),
    tiers: TierCalculator = Depends(get_tier_calculator),
) -> Dict:
    """
    Get the ranking for a league-week.

    Served from cache when fresh, otherwise loaded (concurrent requests share
    one load).
    """
    _register_source(coordinator, league_id, source)
    ranking = await coordinator.current_ranking(league_id, week)
    if ranking is None:
        error = coordinator.last_error(league_id)
        raise HTTPException(
            status_code=404,
            detail=f"No data for league {league_id}" + (f": {error}" if error else "")
        )
    return serialize_ranking(ranking, tiers)


@router.post("/{league_id}/refresh")
async def refresh_league(
    league_id: str,
    force: bool = Query(False, description="Bypass the cache and reset in-flight state"),
    week: Optional[int] = Query(None, ge=1, le=18),
    source: Optional[LeagueSource] = Query(None),
    coordinator: LiveRefreshCoordinator = Depends(get_coordinator),
    tiers: TierCalculator = Depends(get_tier_calculator),
) -> Dict:
    """Refresh a league now; 503 when the league produced no data this cycle."""
    _register_source(coordinator, league_id, source)
    ranking = await coordinator.refresh(league_id, force_refresh=force, week=week)
    if ranking is None:
        error = coordinator.last_error(league_id)
        raise HTTPException(
            status_code=503,
            detail=f"Refresh of league {league_id} failed" + (f": {error}" if error else "")
        )
    return serialize_ranking(ranking, tiers)


@router.post("/{league_id}/week/{week}", status_code=202)
async def select_week(
    league_id: str,
    week: int,
    coordinator: LiveRefreshCoordinator = Depends(get_coordinator),
) -> Dict:
    """Select a week; rapid changes are debounced and only the last one loads."""
    if week < 1 or week > 18:
        raise HTTPException(status_code=422, detail="week must be between 1 and 18")
    coordinator.select_week(league_id, week)
    return {'league_id': league_id, 'week': week, 'pending': True}


# ============================================================================
# Live updates
# ============================================================================

@router.post("/{league_id}/live/start")
async def start_live_updates(
    league_id: str,
    source: Optional[LeagueSource] = Query(None),
    coordinator: LiveRefreshCoordinator = Depends(get_coordinator),
) -> Dict:
    _register_source(coordinator, league_id, source)
    await coordinator.start_live_updates(league_id)
    return {'league_id': league_id, 'live': True}


@router.post("/{league_id}/live/stop")
async def stop_live_updates(
    league_id: str,
    coordinator: LiveRefreshCoordinator = Depends(get_coordinator),
) -> Dict:
    await coordinator.stop_live_updates(league_id)
    return {'league_id': league_id, 'live': False}


# ============================================================================
# History and identity
# ============================================================================

@router.get("/{league_id}/eliminations")
async def get_elimination_history(
    league_id: str,
    coordinator: LiveRefreshCoordinator = Depends(get_coordinator),
) -> List[Dict]:
    """Every recorded elimination for the league, oldest week first."""
    events = await coordinator.elimination_history(league_id)
    return [serialize_event(e) for e in events]


@router.get("/{league_id}/my-team")
async def get_my_team(
    league_id: str,
    week: Optional[int] = Query(None, ge=1, le=18),
    coordinator: LiveRefreshCoordinator = Depends(get_coordinator),
) -> Dict:
    """
    The operator's team in this league.

    Falls back to the top-ranked team with ``identified: false`` when the
    operator cannot be matched.
    """
    match: IdentityMatch = await coordinator.my_team(league_id, week)
    ranking = await coordinator.current_ranking(league_id, week)
    entry = ranking.entry_for(match.team_id) if ranking and match.team_id else None

    return {
        'league_id': league_id,
        'identified': match.identified,
        'method': match.method,
        'in_graveyard': match.in_graveyard,
        'team': serialize_entry(entry) if entry else None,
    }


# ============================================================================
# Discovery and brackets
# ============================================================================

@router.get("/discover/{user_id}")
async def discover_leagues(
    user_id: str,
    season: Optional[str] = Query(None, description="Season year (defaults to CURRENT_SEASON)"),
    coordinator: LiveRefreshCoordinator = Depends(get_coordinator),
) -> Dict:
    """A Sleeper user's leagues for a season, with elimination-mode flags."""
    leagues = await coordinator.discover_leagues(user_id, season)
    return {
        'count': len(leagues),
        'leagues': [
            {
                'league_id': league.league_id,
                'name': league.name,
                'season': league.season,
                'total_rosters': league.total_rosters,
                'elimination_mode': bool(league.settings and league.settings.chopped),
            }
            for league in leagues
        ],
    }


@router.get("/{league_id}/bracket")
async def get_winners_bracket(
    league_id: str,
    coordinator: LiveRefreshCoordinator = Depends(get_coordinator),
) -> List[Dict]:
    """Seeded winners bracket for a Sleeper league."""
    bracket = await coordinator.winners_bracket(league_id)
    return [match.model_dump() for match in bracket]
