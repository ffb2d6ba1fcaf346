"""StationBoard - Nearby transit stations with live vehicle arrivals."""

__version__ = "0.1.0"

from .models import (
    ArrivalStatus,
    ArrivalTime,
    FilteredStation,
    GroupedVehicles,
    Position,
    Route,
    StationDisplay,
    StationRole,
    StationType,
    StationVehicle,
    Stop,
    StopTime,
    Trip,
    Vehicle,
)
from .station_board import StationBoard
from .station_filter import FilterState, StationFilter, StationFilterResult, filter_stations
from .station_roles import (
    StationRoleCache,
    aggregate_roles_to_route,
    calculate_roles_for_trip,
    is_station_end_for_trip,
    should_show_station_drop_off_indicator,
)
from .vehicle_grouping import group_vehicles_for_display
from .arrivals import ArrivalEstimator
from .gtfs_loader import GTFSLoader
from .vehicle_feed import parse_vehicle_positions
from .display import format_distance

__all__ = [
    "StationBoard",
    "StationFilter",
    "StationFilterResult",
    "FilterState",
    "StationRoleCache",
    "ArrivalEstimator",
    "GTFSLoader",
    "filter_stations",
    "group_vehicles_for_display",
    "calculate_roles_for_trip",
    "aggregate_roles_to_route",
    "is_station_end_for_trip",
    "should_show_station_drop_off_indicator",
    "parse_vehicle_positions",
    "format_distance",
    "ArrivalStatus",
    "ArrivalTime",
    "FilteredStation",
    "GroupedVehicles",
    "Position",
    "Route",
    "StationDisplay",
    "StationRole",
    "StationType",
    "StationVehicle",
    "Stop",
    "StopTime",
    "Trip",
    "Vehicle",
]
