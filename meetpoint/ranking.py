import logging
from typing import List, Sequence

from . import geodesy
from .errors import NoCandidatesError
from .models import EvaluatedPlan, RankedResult

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 3
DEFAULT_MIN_SEPARATION_M = 500.0


def rank_plans(
    plans: Sequence[EvaluatedPlan],
    limit: int = DEFAULT_LIMIT,
    min_separation_m: float = DEFAULT_MIN_SEPARATION_M,
) -> RankedResult:
    """
    Best plan plus spatially distinct alternatives.

    Plans are taken in descending score order (ties keep their input order) and
    accepted only when farther than `min_separation_m` from every plan already
    accepted, so the result never holds near-duplicates of the same spot.
    """
    if not plans:
        raise NoCandidatesError("No suitable meeting point found")

    ordered = sorted(plans, key=lambda p: -p.score)
    selected: List[EvaluatedPlan] = []
    for plan in ordered:
        if len(selected) >= limit:
            break
        if geodesy.min_distance_m(plan.coordinate, [s.coordinate for s in selected]) > min_separation_m:
            selected.append(plan)

    logger.info(
        f"Ranked {len(plans)} plans, selected {len(selected)} "
        f"(best={selected[0].candidate.id} score={selected[0].score:.2f})"
    )
    return RankedResult(best=selected[0], alternatives=selected[1:])
