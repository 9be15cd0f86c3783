import asyncio
import logging
from time import perf_counter
from typing import Optional, Sequence

from .candidates import CandidateSource, GeometricCandidateSource
from .config import DEFAULT_CANDIDATE_LIMIT, DEFAULT_MIN_SEPARATION_M, DEFAULT_RESULT_LIMIT, ScoringConfig, Settings
from .errors import InvalidRequestError, NoCandidatesError
from .evaluator import PlanEvaluator
from .models import Destination, MeetingResult, Strategy, TravelMode, TravelPoint
from .ranking import rank_plans
from .route_cache import RouteCache
from .route_costs import RouteCostProvider
from .scoring import Scorer

logger = logging.getLogger(__name__)

MIN_TRAVELERS = 2


class MeetingPointFinder:
    """Main service for recommending meeting points to a group of travelers"""

    def __init__(
        self,
        provider: RouteCostProvider,
        candidate_source: Optional[CandidateSource] = None,
        scoring_config: Optional[ScoringConfig] = None,
        candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
        result_limit: int = DEFAULT_RESULT_LIMIT,
        min_separation_m: float = DEFAULT_MIN_SEPARATION_M,
        destination_mode: TravelMode = TravelMode.TRANSIT,
    ):
        self.provider = provider
        self.candidate_source = candidate_source or GeometricCandidateSource()
        self.scoring_config = scoring_config or ScoringConfig()
        self.candidate_limit = candidate_limit
        self.result_limit = result_limit
        self.min_separation_m = min_separation_m
        self.destination_mode = destination_mode

    @classmethod
    def from_settings(cls, settings: Settings, backend=None) -> 'MeetingPointFinder':
        provider = RouteCostProvider(
            backend=backend,
            cache=RouteCache(max_size=settings.route_cache_size, ttl_seconds=settings.route_cache_ttl_s),
            lookup_timeout=settings.route_lookup_timeout_s,
            default_city=settings.default_city,
        )
        return cls(
            provider,
            scoring_config=settings.scoring,
            candidate_limit=settings.candidate_limit,
            result_limit=settings.result_limit,
            min_separation_m=settings.min_separation_m,
            destination_mode=settings.destination_leg_mode,
        )

    def find_meeting_points(
        self,
        travelers: Sequence[TravelPoint],
        destinations: Sequence[Destination] = (),
        strategy: Strategy = Strategy.BALANCED,
        candidate_source: Optional[CandidateSource] = None,
        city: Optional[str] = None,
    ) -> MeetingResult:
        """
        Rank meeting points for the group.
        Uses async parallel execution for the route lookups
        """
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(
                self.find_meeting_points_async(travelers, destinations, strategy, candidate_source, city)
            )
        finally:
            loop.close()

    async def find_meeting_points_async(
        self,
        travelers: Sequence[TravelPoint],
        destinations: Sequence[Destination] = (),
        strategy: Strategy = Strategy.BALANCED,
        candidate_source: Optional[CandidateSource] = None,
        city: Optional[str] = None,
    ) -> MeetingResult:
        self._validate(travelers, destinations)
        source = candidate_source or self.candidate_source
        start = perf_counter()

        candidates = await source.candidates_async(travelers, destinations)
        if not candidates:
            raise NoCandidatesError("No suitable meeting point found near the group")
        candidates = candidates[:self.candidate_limit]
        logger.info(
            f"Evaluating {len(candidates)} {source.name} candidates for {len(travelers)} travelers "
            f"(strategy={strategy.value}, destinations={len(destinations)})"
        )

        evaluator = PlanEvaluator(self.provider, city=city, destination_mode=self.destination_mode)
        plans = await evaluator.evaluate_all_async(candidates, travelers, destinations)

        scorer = Scorer(strategy, self.scoring_config)
        scored = scorer.score_plans(plans, travelers, destinations)
        ranked = rank_plans(scored, limit=self.result_limit, min_separation_m=self.min_separation_m)

        logger.info(f"Meeting point search finished in {(perf_counter() - start) * 1000.0:.1f} ms")
        return MeetingResult(
            ranked=ranked,
            search_center=source.search_center(travelers, destinations),
            strategy=strategy,
            destinations=list(destinations),
            candidate_source=source.name,
            candidates_evaluated=len(candidates),
        )

    @staticmethod
    def _validate(travelers: Sequence[TravelPoint], destinations: Sequence[Destination]) -> None:
        if len(travelers) < MIN_TRAVELERS:
            raise InvalidRequestError(f"At least {MIN_TRAVELERS} travelers with a location are required")
        for point in [*travelers, *destinations]:
            try:
                point.coordinate.validate()
            except ValueError as e:
                raise InvalidRequestError(f"Invalid location for '{point.name}': {e}")
