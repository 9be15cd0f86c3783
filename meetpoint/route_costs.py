"""
Route cost resolution with caching, bounded concurrency and a closed-form
fallback.

`RouteCostProvider.cost` never raises: when the routing backend is missing,
fails, times out or answers with something unusable, the cost is estimated
from the great-circle distance and a per-mode speed. The failure reason stays
on the returned RouteCost and is logged and counted.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Dict, Hashable, Optional, Sequence, Tuple

from . import geodesy
from .errors import RouteLookupError
from .models import Coordinate, RouteCost, TravelMode
from .route_cache import RouteCache

logger = logging.getLogger(__name__)


# --- Module-level constants ---
# Average door-to-door speeds in km/h
MODE_SPEEDS_KMH = {
    TravelMode.DRIVING: 40.0,
    TravelMode.TRANSIT: 25.0,
    TravelMode.WALKING: 5.0,
    TravelMode.CYCLING: 15.0,
}
# Fixed minutes added per trip: parking, waiting/transfers
MODE_OVERHEAD_MIN = {
    TravelMode.DRIVING: 10.0,
    TravelMode.TRANSIT: 15.0,
    TravelMode.WALKING: 0.0,
    TravelMode.CYCLING: 0.0,
}
CACHE_KEY_PRECISION = 4
DEFAULT_LOOKUP_TIMEOUT_S = 8.0
SLOT_POLL_INTERVAL_S = 0.01


def estimate_duration(distance_km: float, mode: TravelMode) -> int:
    """Minutes to cover `distance_km` in `mode`, including the fixed overhead"""
    base = distance_km / MODE_SPEEDS_KMH[mode] * 60
    return int(round(base + MODE_OVERHEAD_MIN[mode]))


def estimate_route_cost(origin: Coordinate, destination: Coordinate, mode: TravelMode, reason: Optional[str] = None) -> RouteCost:
    distance_km = geodesy.distance_km(origin, destination)
    return RouteCost(
        duration=estimate_duration(distance_km, mode),
        distance=int(round(distance_km * 1000)),
        mode=mode,
        path=(origin, destination),
        source='estimate',
        fallback_reason=reason,
    )


def cache_key(origin: Coordinate, destination: Coordinate, mode: TravelMode, city: Optional[str] = None) -> Hashable:
    p = CACHE_KEY_PRECISION
    return (
        mode.value,
        round(origin.lng, p), round(origin.lat, p),
        round(destination.lng, p), round(destination.lat, p),
        city or '',
    )


class RouteCostProvider:
    """Resolves travel costs between two points for a travel mode.

    Upstream calls hold one of the backend's worker slots from submission
    until the worker finishes, so a lookup only starts its timeout once a
    worker is free to run it.
    """

    def __init__(
        self,
        backend=None,
        cache: Optional[RouteCache] = None,
        lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT_S,
        default_city: Optional[str] = None,
    ):
        self.backend = backend
        self.cache = cache if cache is not None else RouteCache()
        self.lookup_timeout = lookup_timeout
        self.default_city = default_city
        self._slots = threading.BoundedSemaphore(backend.max_workers if backend is not None else 1)
        self._stats_lock = threading.Lock()
        self._lookups = 0
        self._api_results = 0
        self._fallbacks = 0

    # --- Public API ---
    def cost(self, origin: Coordinate, destination: Coordinate, mode: TravelMode, city: Optional[str] = None) -> RouteCost:
        """Blocking lookup, usable outside an event loop"""
        city, key, cached = self._cached(origin, destination, mode, city)
        if cached is not None:
            return cached
        if self.backend is None:
            return self._store(key, self._unconfigured(origin, destination, mode))

        self._slots.acquire()
        try:
            future = self._submit(origin, destination, mode, city)
            result = self._accept(future.result(timeout=self.lookup_timeout))
        except concurrent.futures.TimeoutError:
            future.cancel()
            result = self._timed_out(origin, destination, mode)
        except Exception as e:
            result = self._fallback_for_error(origin, destination, mode, e)
        return self._store(key, result)

    async def cost_async(self, origin: Coordinate, destination: Coordinate, mode: TravelMode, city: Optional[str] = None) -> RouteCost:
        city, key, cached = self._cached(origin, destination, mode, city)
        if cached is not None:
            return cached
        if self.backend is None:
            return self._store(key, self._unconfigured(origin, destination, mode))

        await self._acquire_slot_async()
        try:
            future = asyncio.wrap_future(self._submit(origin, destination, mode, city))
            result = self._accept(await asyncio.wait_for(future, timeout=self.lookup_timeout))
        except asyncio.TimeoutError:
            result = self._timed_out(origin, destination, mode)
        except Exception as e:
            result = self._fallback_for_error(origin, destination, mode, e)
        return self._store(key, result)

    async def batch_costs_async(
        self,
        origins: Sequence[Tuple[str, Coordinate, TravelMode]],
        destination: Coordinate,
        city: Optional[str] = None,
    ) -> Dict[str, RouteCost]:
        """Resolve (key, origin, mode) lookups toward one destination concurrently.

        Returns only once every lookup has finished.
        """
        tasks = [self.cost_async(origin, destination, mode, city) for _, origin, mode in origins]
        results = await asyncio.gather(*tasks)
        return {key: result for (key, _, _), result in zip(origins, results)}

    def clear_cache(self) -> None:
        self.cache.clear()

    def stats(self) -> Dict:
        with self._stats_lock:
            out = {
                'lookups': self._lookups,
                'api_results': self._api_results,
                'fallbacks': self._fallbacks,
                'backend_configured': self.backend is not None,
                'lookup_timeout_s': self.lookup_timeout,
            }
        out['cache'] = self.cache.stats()
        return out

    def close(self) -> None:
        if self.backend is not None:
            self.backend.cleanup()

    # --- Helpers ---
    def _cached(self, origin: Coordinate, destination: Coordinate, mode: TravelMode, city: Optional[str]):
        city = city or self.default_city
        key = cache_key(origin, destination, mode, city)
        return city, key, self.cache.get(key)

    def _store(self, key: Hashable, result: RouteCost) -> RouteCost:
        self.cache.set(key, result)
        return result

    def _submit(self, origin: Coordinate, destination: Coordinate, mode: TravelMode, city: Optional[str]) -> concurrent.futures.Future:
        """Start the upstream call on a worker; the caller must hold a slot"""
        try:
            future = self.backend.executor.submit(self.backend.get_route, origin, destination, mode, city)
        except Exception:
            self._slots.release()
            raise
        future.add_done_callback(lambda _: self._slots.release())
        return future

    async def _acquire_slot_async(self) -> None:
        # The slots are shared by every request thread and its event loop
        while not self._slots.acquire(blocking=False):
            await asyncio.sleep(SLOT_POLL_INTERVAL_S)

    def _unconfigured(self, origin: Coordinate, destination: Coordinate, mode: TravelMode) -> RouteCost:
        return self._fallback(origin, destination, mode, "routing backend not configured", level=logging.DEBUG)

    def _timed_out(self, origin: Coordinate, destination: Coordinate, mode: TravelMode) -> RouteCost:
        return self._fallback(origin, destination, mode, f"timed out after {self.lookup_timeout:.1f}s")

    def _accept(self, upstream) -> RouteCost:
        if not isinstance(upstream, RouteCost) or upstream.duration < 0 or upstream.distance < 0:
            raise RouteLookupError(f"structurally invalid route response: {upstream!r}")
        with self._stats_lock:
            self._lookups += 1
            self._api_results += 1
        return upstream

    def _fallback_for_error(self, origin: Coordinate, destination: Coordinate, mode: TravelMode, error: Exception) -> RouteCost:
        if isinstance(error, RouteLookupError):
            reason = str(error)
        else:
            reason = f"unexpected routing error: {error!r}"
        return self._fallback(origin, destination, mode, reason)

    def _fallback(self, origin: Coordinate, destination: Coordinate, mode: TravelMode, reason: str, level: int = logging.WARNING) -> RouteCost:
        with self._stats_lock:
            self._lookups += 1
            self._fallbacks += 1
        logger.log(
            level,
            "route lookup fell back to estimate: mode=%s origin=%.6f,%.6f destination=%.6f,%.6f reason=%s",
            mode.value, origin.lng, origin.lat, destination.lng, destination.lat, reason,
        )
        return estimate_route_cost(origin, destination, mode, reason=reason)

