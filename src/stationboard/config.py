"""Tunable constants and settings for the station board."""

from dataclasses import dataclass
from typing import Optional

# Station filtering
SECONDARY_STATION_THRESHOLD = 100  # meters beyond the closest station
MAX_SEARCH_RADIUS_METERS = 5000  # no station list when the closest stop is farther
REFILTER_DISTANCE_THRESHOLD = 50  # meters the user must move before re-filtering
POSITION_CACHE_PRECISION = 3  # decimal degrees, roughly a 100 m grid
POSITION_CACHE_MAX_ENTRIES = 32

# Station roles
STATIC_DATA_TTL_SECONDS = 24 * 60 * 60

# Arrival estimation
AVERAGE_SPEED_KMH = 25
MIN_PLAUSIBLE_SPEED_KMH = 5  # reported speeds outside this range fall back to the average
MAX_PLAUSIBLE_SPEED_KMH = 100
DWELL_TIME_SECONDS = 30  # per intermediate stop
PROXIMITY_THRESHOLD_METERS = 50
ARRIVING_SOON_MINUTES = 1
RECENT_DEPARTURE_MINUTES = 2
OFF_ROUTE_THRESHOLD_METERS = 200
LAST_STOP_RADIUS_METERS = 100
SEGMENT_DISTANCE_TOLERANCE = 0.5
OFF_ROUTE_MINUTES = 999

# Station display
VEHICLE_DISPLAY_THRESHOLD = 5


@dataclass(frozen=True)
class ArrivalSettings:
    average_speed_kmh: float = AVERAGE_SPEED_KMH
    dwell_time_seconds: float = DWELL_TIME_SECONDS
    proximity_threshold_m: float = PROXIMITY_THRESHOLD_METERS
    arriving_soon_minutes: float = ARRIVING_SOON_MINUTES
    recent_departure_minutes: float = RECENT_DEPARTURE_MINUTES
    off_route_threshold_m: float = OFF_ROUTE_THRESHOLD_METERS
    last_stop_radius_m: float = LAST_STOP_RADIUS_METERS
    segment_distance_tolerance: float = SEGMENT_DISTANCE_TOLERANCE
    min_plausible_speed_kmh: float = MIN_PLAUSIBLE_SPEED_KMH
    max_plausible_speed_kmh: float = MAX_PLAUSIBLE_SPEED_KMH

    def __post_init__(self) -> None:
        if self.average_speed_kmh <= 0:
            raise ValueError(f"average_speed_kmh must be positive, got {self.average_speed_kmh}")
        for name in (
            "dwell_time_seconds",
            "proximity_threshold_m",
            "arriving_soon_minutes",
            "recent_departure_minutes",
            "off_route_threshold_m",
            "last_stop_radius_m",
            "segment_distance_tolerance",
            "min_plausible_speed_kmh",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.max_plausible_speed_kmh < self.min_plausible_speed_kmh:
            raise ValueError("max_plausible_speed_kmh must not be below min_plausible_speed_kmh")


@dataclass(frozen=True)
class FilterSettings:
    secondary_threshold_m: float = SECONDARY_STATION_THRESHOLD
    max_search_radius_m: Optional[float] = MAX_SEARCH_RADIUS_METERS
    refilter_distance_m: float = REFILTER_DISTANCE_THRESHOLD
    cache_precision: int = POSITION_CACHE_PRECISION
    cache_max_entries: int = POSITION_CACHE_MAX_ENTRIES
    enable_proximity: bool = True

    def __post_init__(self) -> None:
        if self.secondary_threshold_m < 0:
            raise ValueError("secondary_threshold_m must not be negative")
        if self.max_search_radius_m is not None and self.max_search_radius_m <= 0:
            raise ValueError("max_search_radius_m must be positive")
        if self.refilter_distance_m < 0:
            raise ValueError("refilter_distance_m must not be negative")
        if self.cache_max_entries < 1:
            raise ValueError("cache_max_entries must be at least 1")


@dataclass(frozen=True)
class DisplaySettings:
    max_vehicles: int = VEHICLE_DISPLAY_THRESHOLD
    include_off_route: bool = False

    def __post_init__(self) -> None:
        if self.max_vehicles < 1:
            raise ValueError(f"max_vehicles must be at least 1, got {self.max_vehicles}")
