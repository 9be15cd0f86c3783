"""
Plan scoring.

Scores are "higher is better": every base strategy returns a negated cost of
the traveler duration list, then the destination-aware adjustment is added
when the request carries destinations.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from . import geodesy
from .config import ScoringConfig
from .models import Coordinate, Destination, EvaluatedPlan, Strategy, TravelPoint

logger = logging.getLogger(__name__)


# --- Module-level constants ---
BALANCED_MAX_WEIGHT = 0.4
BALANCED_SUM_WEIGHT = 0.3
BALANCED_VARIANCE_WEIGHT = 0.3
VARIANCE_SCALE = 10.0


def fair_score(times: Sequence[float]) -> float:
    """Only the slowest traveler counts"""
    return -float(np.max(times))


def efficient_score(times: Sequence[float]) -> float:
    return -float(np.sum(times))


def balanced_score(times: Sequence[float]) -> float:
    t = np.asarray(times, dtype=float)
    # np.var is the population variance (ddof=0)
    return -float(
        BALANCED_MAX_WEIGHT * t.max()
        + BALANCED_SUM_WEIGHT * t.sum()
        + BALANCED_VARIANCE_WEIGHT * t.var() * VARIANCE_SCALE
    )


STRATEGIES: Dict[Strategy, Callable[[Sequence[float]], float]] = {
    Strategy.FAIR: fair_score,
    Strategy.EFFICIENT: efficient_score,
    Strategy.BALANCED: balanced_score,
}


def detour_ratio(traveler: Coordinate, candidate: Coordinate, destination: Coordinate) -> Optional[float]:
    """(d(t, c) + d(c, dest)) / d(t, dest); None when the traveler sits on the destination"""
    direct = geodesy.distance_km(traveler, destination)
    if direct <= 0:
        return None
    via = geodesy.distance_km(traveler, candidate) + geodesy.distance_km(candidate, destination)
    return via / direct


def detour_adjustment(
    traveler: Coordinate,
    candidate: Coordinate,
    destination: Coordinate,
    config: ScoringConfig = ScoringConfig(),
) -> float:
    ratio = detour_ratio(traveler, candidate, destination)
    if ratio is None:
        return 0.0
    if ratio < config.detour_bonus_ratio:
        return config.detour_bonus_weight * (config.detour_bonus_ratio - ratio)
    if ratio > config.detour_penalty_ratio:
        return -config.detour_penalty_weight * (ratio - config.detour_penalty_ratio)
    return 0.0


def destination_distance_penalty(
    candidate: Coordinate,
    destination: Coordinate,
    config: ScoringConfig = ScoringConfig(),
) -> float:
    return config.distance_penalty_per_km * geodesy.distance_km(candidate, destination)


def destination_adjustment(
    candidate: Coordinate,
    travelers: Sequence[TravelPoint],
    destinations: Sequence[Destination],
    config: ScoringConfig = ScoringConfig(),
) -> float:
    """Detour bonus/penalty summed over travelers, minus the distance penalty.

    With several destinations the per-destination values are averaged so the
    adjustment stays on the same scale as the single destination case.
    """
    if not destinations:
        return 0.0
    per_destination = []
    for dest in destinations:
        detours = sum(detour_adjustment(t.coordinate, candidate, dest.coordinate, config) for t in travelers)
        per_destination.append(detours - destination_distance_penalty(candidate, dest.coordinate, config))
    return float(np.mean(per_destination))


class Scorer:
    def __init__(self, strategy: Strategy = Strategy.BALANCED, config: Optional[ScoringConfig] = None):
        self.strategy = strategy
        self.config = config or ScoringConfig()
        self._base = STRATEGIES[strategy]

    def score(
        self,
        plan: EvaluatedPlan,
        travelers: Sequence[TravelPoint],
        destinations: Sequence[Destination] = (),
    ) -> float:
        base = self._base(plan.durations)
        return base + destination_adjustment(plan.coordinate, travelers, destinations, self.config)

    def score_plans(
        self,
        plans: Sequence[EvaluatedPlan],
        travelers: Sequence[TravelPoint],
        destinations: Sequence[Destination] = (),
    ) -> List[EvaluatedPlan]:
        scored = [p.with_score(self.score(p, travelers, destinations)) for p in plans]
        if scored:
            logger.debug(
                f"Scored {len(scored)} plans with strategy={self.strategy.value}: "
                f"best={max(p.score for p in scored):.2f} worst={min(p.score for p in scored):.2f}"
            )
        return scored
