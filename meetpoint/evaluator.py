import asyncio
import logging
from typing import List, Optional, Sequence

from .models import (
    CandidatePoint,
    Destination,
    DestinationRoute,
    EvaluatedPlan,
    TravelerRoute,
    TravelMode,
    TravelPoint,
)
from .route_costs import RouteCostProvider

logger = logging.getLogger(__name__)


class PlanEvaluator:
    """Resolves every leg of a candidate and derives the travel time stats"""

    def __init__(
        self,
        provider: RouteCostProvider,
        city: Optional[str] = None,
        destination_mode: TravelMode = TravelMode.TRANSIT,
    ):
        self.provider = provider
        self.city = city
        self.destination_mode = destination_mode

    async def evaluate_async(
        self,
        candidate: CandidatePoint,
        travelers: Sequence[TravelPoint],
        destinations: Sequence[Destination] = (),
    ) -> EvaluatedPlan:
        lookups = [(str(i), t.coordinate, t.mode) for i, t in enumerate(travelers)]
        traveler_task = self.provider.batch_costs_async(lookups, candidate.coordinate, self.city)
        destination_tasks = [
            self.provider.cost_async(candidate.coordinate, d.coordinate, self.destination_mode, self.city)
            for d in destinations
        ]
        traveler_costs, *destination_costs = await asyncio.gather(traveler_task, *destination_tasks)

        routes = [TravelerRoute(t.id, t.name, traveler_costs[str(i)]) for i, t in enumerate(travelers)]
        destination_routes = [
            DestinationRoute(d.id, d.name, cost) for d, cost in zip(destinations, destination_costs)
        ]
        return build_plan(candidate, routes, destination_routes)

    async def evaluate_all_async(
        self,
        candidates: Sequence[CandidatePoint],
        travelers: Sequence[TravelPoint],
        destinations: Sequence[Destination] = (),
    ) -> List[EvaluatedPlan]:
        """Evaluate candidates concurrently; output order follows `candidates`"""
        tasks = [self.evaluate_async(c, travelers, destinations) for c in candidates]
        plans = await asyncio.gather(*tasks)
        logger.info(f"Evaluated {len(plans)} candidates for {len(travelers)} travelers and {len(destinations)} destinations")
        return list(plans)


def build_plan(
    candidate: CandidatePoint,
    routes: List[TravelerRoute],
    destination_routes: Optional[List[DestinationRoute]] = None,
) -> EvaluatedPlan:
    """Unscored plan with stats derived from resolved legs"""
    if not routes:
        raise ValueError("a plan needs at least one traveler route")
    destination_routes = destination_routes or []

    durations = [r.cost.duration for r in routes]
    total = sum(durations)
    longest = max(durations)
    shortest = min(durations)
    destination_durations = [r.cost.duration for r in destination_routes]

    return EvaluatedPlan(
        candidate=candidate,
        routes=routes,
        destination_routes=destination_routes,
        avg_duration=total / len(durations),
        min_duration=shortest,
        max_duration=longest,
        duration_spread=longest - shortest,
        total_duration=total,
        avg_destination_duration=sum(destination_durations) / len(destination_durations) if destination_durations else 0.0,
    )
