"""
Runtime configuration.

Values come from the environment (a local .env file is loaded first). Every
tunable number of the pipeline lives here so deployments can adjust it
without code changes.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .models import Coordinate, TravelMode

logger = logging.getLogger(__name__)

PLACEHOLDER_API_KEY = 'your_api_key_here'

# --- Defaults ---
DEFAULT_CENTER = Coordinate(lng=116.397428, lat=39.90923)
DEFAULT_CANDIDATE_LIMIT = 8
DEFAULT_RESULT_LIMIT = 3
DEFAULT_MIN_SEPARATION_M = 500.0
DEFAULT_PLACE_SEARCH_RADIUS_M = 2000


@dataclass(frozen=True)
class ScoringConfig:
    """Weights and thresholds of the destination-aware adjustment"""
    detour_bonus_ratio: float = 1.3
    detour_penalty_ratio: float = 1.5
    detour_bonus_weight: float = 10.0
    detour_penalty_weight: float = 5.0
    distance_penalty_per_km: float = 2.0


@dataclass(frozen=True)
class Settings:
    api_key: Optional[str] = None
    candidate_source: str = 'geometric'
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT
    result_limit: int = DEFAULT_RESULT_LIMIT
    min_separation_m: float = DEFAULT_MIN_SEPARATION_M
    place_search_radius_m: int = DEFAULT_PLACE_SEARCH_RADIUS_M
    route_max_workers: int = 10
    route_lookup_timeout_s: float = 8.0
    route_queries_per_second: int = 10
    route_cache_size: int = 2048
    route_cache_ttl_s: float = 900.0
    default_city: Optional[str] = None
    default_center: Coordinate = DEFAULT_CENTER
    destination_leg_mode: TravelMode = TravelMode.TRANSIT
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    log_level: str = 'INFO'
    log_file: Optional[str] = 'app.log'

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key) and self.api_key != PLACEHOLDER_API_KEY


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r} (using {default})")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r} (using {default})")
        return default


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip()


def load_settings() -> Settings:
    """Read settings from the environment (after loading .env)"""
    load_dotenv()

    leg_mode_raw = _env_str('DESTINATION_LEG_MODE', TravelMode.TRANSIT.value)
    try:
        leg_mode = TravelMode.parse(leg_mode_raw)
    except ValueError:
        logger.warning(f"Ignoring invalid DESTINATION_LEG_MODE {leg_mode_raw!r} (using transit)")
        leg_mode = TravelMode.TRANSIT

    center = Coordinate(
        lng=_env_float('DEFAULT_CENTER_LNG', DEFAULT_CENTER.lng),
        lat=_env_float('DEFAULT_CENTER_LAT', DEFAULT_CENTER.lat),
    )
    try:
        center.validate()
    except ValueError as e:
        logger.warning(f"Ignoring invalid default center: {e}")
        center = DEFAULT_CENTER

    scoring = ScoringConfig(
        detour_bonus_ratio=_env_float('DETOUR_BONUS_RATIO', 1.3),
        detour_penalty_ratio=_env_float('DETOUR_PENALTY_RATIO', 1.5),
        detour_bonus_weight=_env_float('DETOUR_BONUS_WEIGHT', 10.0),
        detour_penalty_weight=_env_float('DETOUR_PENALTY_WEIGHT', 5.0),
        distance_penalty_per_km=_env_float('DESTINATION_DISTANCE_PENALTY_PER_KM', 2.0),
    )

    return Settings(
        api_key=_env_str('GOOGLE_MAPS_API_KEY', None),
        candidate_source=(_env_str('MEETPOINT_CANDIDATE_SOURCE', 'geometric') or 'geometric').lower(),
        candidate_limit=max(1, _env_int('CANDIDATE_LIMIT', DEFAULT_CANDIDATE_LIMIT)),
        result_limit=max(1, _env_int('RESULT_LIMIT', DEFAULT_RESULT_LIMIT)),
        min_separation_m=_env_float('DIVERSITY_MIN_DISTANCE_M', DEFAULT_MIN_SEPARATION_M),
        place_search_radius_m=_env_int('PLACE_SEARCH_RADIUS_M', DEFAULT_PLACE_SEARCH_RADIUS_M),
        route_max_workers=max(1, _env_int('ROUTE_MAX_WORKERS', 10)),
        route_lookup_timeout_s=_env_float('ROUTE_LOOKUP_TIMEOUT_S', 8.0),
        route_queries_per_second=max(1, _env_int('ROUTE_QUERIES_PER_SECOND', 10)),
        route_cache_size=max(1, _env_int('ROUTE_CACHE_SIZE', 2048)),
        route_cache_ttl_s=_env_float('ROUTE_CACHE_TTL_S', 900.0),
        default_city=_env_str('DEFAULT_CITY', None),
        default_center=center,
        destination_leg_mode=leg_mode,
        scoring=scoring,
        log_level=(_env_str('LOG_LEVEL', 'INFO') or 'INFO').upper(),
        log_file=_env_str('LOG_FILE', 'app.log'),
    )
