"""
Relative performance bands for display scaling.

Quartile boundaries are taken from the descending-sorted scores at indices
n//4, n//2 and 3n//4. Classification compares against the boundaries in
ascending order and a score equal to a boundary lands in the higher tier.

Scaled percentages size score bars relative to the top score. When the top
score is more than 3x the median, log compression keeps one outlier from
flattening every other bar.
"""
import math
import statistics
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from warroom.models.unified import Ranking

ADAPTIVE_SCALING_RATIO = 3.0


class PerformanceTier(str, Enum):
    ELITE = "elite"
    GOOD = "good"
    AVERAGE = "average"
    STRUGGLING = "struggling"


@dataclass(frozen=True)
class TierBoundaries:
    """Quartile cut points, ascending."""
    lower: float
    middle: float
    upper: float


class TierCalculator:
    """Quartile tiers and display scaling over a score distribution."""

    @staticmethod
    def boundaries(scores: Sequence[float]) -> Optional[TierBoundaries]:
        """Quartile boundaries, or None for an empty distribution."""
        if not scores:
            return None
        ordered = sorted(scores, reverse=True)
        last = len(ordered) - 1
        n = len(ordered)
        picks = sorted((
            ordered[min(n // 4, last)],
            ordered[min(n // 2, last)],
            ordered[min((3 * n) // 4, last)],
        ))
        return TierBoundaries(lower=picks[0], middle=picks[1], upper=picks[2])

    @staticmethod
    def classify(score: float, boundaries: TierBoundaries) -> PerformanceTier:
        if score >= boundaries.upper:
            return PerformanceTier.ELITE
        if score >= boundaries.middle:
            return PerformanceTier.GOOD
        if score >= boundaries.lower:
            return PerformanceTier.AVERAGE
        return PerformanceTier.STRUGGLING

    def classify_all(self, scores: Sequence[float]) -> List[PerformanceTier]:
        """Tier for each score, in input order."""
        bounds = self.boundaries(scores)
        if bounds is None:
            return []
        return [self.classify(s, bounds) for s in scores]

    def group(self, scores: Sequence[float]) -> Dict[PerformanceTier, List[float]]:
        """All four tiers (possibly empty) with the scores in each."""
        groups: Dict[PerformanceTier, List[float]] = {tier: [] for tier in PerformanceTier}
        for score, tier in zip(scores, self.classify_all(scores)):
            groups[tier].append(score)
        return groups

    @staticmethod
    def median(scores: Sequence[float]) -> float:
        if not scores:
            return 0.0
        return float(statistics.median(scores))

    def should_use_adaptive_scaling(self, scores: Sequence[float]) -> bool:
        if not scores:
            return False
        return max(scores) > ADAPTIVE_SCALING_RATIO * self.median(scores)

    @staticmethod
    def scaled_percentage(score: float, top: float, adaptive: bool = False) -> float:
        """Bar length for ``score`` as a fraction of ``top``."""
        if adaptive:
            if top <= 1:
                return 1.0
            return math.log(max(score, 1.0)) / math.log(max(top, 1.0))
        if top <= 0:
            return 0.0
        return score / top

    def tiers_for_ranking(self, ranking: Ranking) -> Dict[str, PerformanceTier]:
        """team_id -> tier over the ranking's active entries."""
        scores = [e.score for e in ranking.entries]
        tiers = self.classify_all(scores)
        return {entry.team.id: tier for entry, tier in zip(ranking.entries, tiers)}

    def display_scale(self, scores: Sequence[float]) -> List[float]:
        """Scaled percentage for every score against the distribution's top."""
        if not scores:
            return []
        top = max(scores)
        adaptive = self.should_use_adaptive_scaling(scores)
        return [self.scaled_percentage(s, top, adaptive) for s in scores]
