"""
Main FastAPI application for the War Room fantasy aggregation API.
"""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load environment variables from .env file
from dotenv import load_dotenv
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

from warroom.api.routes import leagues
from warroom.core.circuit_breaker import get_breaker_state
from warroom.core.config import Settings, settings
from warroom.core.database import create_db_engine, create_session_factory, init_db
from warroom.core.errors import NetworkError, WarRoomError
from warroom.core.logging import configure_logging, get_logger
from warroom.core.middleware import RequestIdMiddleware
from warroom.core.scheduler import LiveUpdateScheduler
from warroom.services.adapters import EspnAdapter, SleeperAdapter, StatsFeed
from warroom.services.identity_resolver import IdentityResolver, OperatorIdentity
from warroom.services.league_pipeline import LeagueRefreshPipeline
from warroom.services.player_directory import PlayerDirectory
from warroom.services.refresh_coordinator import LiveRefreshCoordinator
from warroom.services.tier_calculator import TierCalculator

# Configure structured logging (JSON in production, colored in development)
configure_logging(
    level=settings.LOG_LEVEL,
    json_output=settings.LOG_JSON
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Build the service graph on startup and tear it down on shutdown."""
    cfg: Settings = app.state.settings
    logger.info(f"Starting {cfg.APP_NAME} v{cfg.APP_VERSION}")

    engine = create_db_engine(cfg.DATABASE_URL)
    init_db(engine)
    session_factory = create_session_factory(engine)

    sleeper = SleeperAdapter(cfg.SLEEPER_BASE_URL, timeout=cfg.HTTP_TIMEOUT)
    espn = EspnAdapter(
        cfg.ESPN_BASE_URL,
        season=cfg.CURRENT_SEASON,
        timeout=cfg.HTTP_TIMEOUT,
        cookies=cfg.espn_cookies(),
    )
    stats = StatsFeed(sleeper, ready_timeout=cfg.STATS_READY_TIMEOUT, ttl=cfg.LEAGUE_CACHE_TTL)
    players = PlayerDirectory(sleeper, ttl=cfg.PLAYER_DIRECTORY_TTL)
    pipeline = LeagueRefreshPipeline(sleeper, stats, espn=espn, players=players, season=cfg.CURRENT_SEASON)
    scheduler = LiveUpdateScheduler(interval_seconds=cfg.REFRESH_INTERVAL_SECONDS)

    app.state.scheduler = scheduler
    app.state.upstreams = {"sleeper": sleeper, "espn": espn}
    app.state.tier_calculator = TierCalculator()
    app.state.coordinator = LiveRefreshCoordinator(
        pipeline,
        session_factory,
        IdentityResolver(OperatorIdentity.from_settings(cfg), sleeper=sleeper),
        scheduler=scheduler,
        cache_ttl=cfg.LEAGUE_CACHE_TTL,
        discovery_ttl=cfg.DISCOVERY_CACHE_TTL,
        debounce_seconds=cfg.DEBOUNCE_SECONDS,
    )

    scheduler.start()
    logger.info("Application started")

    yield

    # Shutdown
    await app.state.coordinator.stop_all()
    scheduler.stop()
    await sleeper.close()
    await espn.close()
    engine.dispose()
    logger.info("Shutting down application")


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Create the FastAPI app; services are wired in the lifespan."""
    cfg = app_settings or settings

    app = FastAPI(
        title=cfg.APP_NAME,
        version=cfg.APP_VERSION,
        description="Unified Sleeper/ESPN fantasy rankings with elimination-league tracking",
        lifespan=lifespan
    )
    app.state.settings = cfg

    # Request ID middleware tags every log line of a request
    app.add_middleware(RequestIdMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # API v1 - all routes use /api/v1/ prefix for versioning
    app.include_router(leagues.router, prefix="/api/v1")

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        scheduler = getattr(request.app.state, "scheduler", None)
        upstreams = getattr(request.app.state, "upstreams", {})
        return {
            "status": "healthy",
            "version": cfg.APP_VERSION,
            "scheduler_running": bool(scheduler and scheduler.running),
            "live_jobs": scheduler.job_ids() if scheduler else [],
            "circuit_breakers": {name: get_breaker_state(a.breaker) for name, a in upstreams.items()},
        }

    # Exception handlers
    @app.exception_handler(WarRoomError)
    async def warroom_exception_handler(request: Request, exc: WarRoomError):
        """Upstream failures outside the refresh boundary (discovery, brackets)."""
        status_code = 502
        if isinstance(exc, NetworkError) and exc.status_code == 404:
            status_code = 404
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"error": type(exc).__name__, "detail": str(exc), "league_id": exc.league_id}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc)}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "warroom.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
