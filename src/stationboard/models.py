"""Data models for the station board."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class LocationType(int, Enum):
    """GTFS stop location types."""
    PLATFORM = 0
    STATION = 1
    ENTRANCE = 2
    GENERIC_NODE = 3
    BOARDING_AREA = 4


class RouteType(int, Enum):
    """GTFS route types served by the board."""
    TRAM = 0
    SUBWAY = 1
    RAIL = 2
    BUS = 3
    TROLLEYBUS = 11


class StationRole(str, Enum):
    """Role of a station within a route."""
    START = "start"
    END = "end"
    TURNAROUND = "turnaround"
    STANDARD = "standard"


class ArrivalStatus(str, Enum):
    """Where a vehicle is relative to a station."""
    AT_STOP = "at_stop"
    ARRIVING_SOON = "arriving_soon"
    IN_MINUTES = "in_minutes"
    JUST_LEFT = "just_left"
    DEPARTED = "departed"
    OFF_ROUTE = "off_route"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CalculationMethod(str, Enum):
    ROUTE_SHAPE = "route_shape"
    STOP_SEGMENTS = "stop_segments"


class StationType(str, Enum):
    """Primary is the single closest station, all is anything else in the band."""
    PRIMARY = "primary"
    ALL = "all"


@dataclass(frozen=True)
class Position:
    """A WGS84 coordinate pair."""
    lat: float
    lon: float


@dataclass
class Stop:
    """Represents a stop or station from the reference data."""
    stop_id: int
    name: str
    latitude: float
    longitude: float
    location_type: int = LocationType.PLATFORM
    stop_code: Optional[str] = None

    @property
    def position(self) -> Position:
        return Position(self.latitude, self.longitude)


@dataclass
class Route:
    """Represents a transit route (bus line, tram line, ...)."""
    route_id: int
    short_name: str
    long_name: str = ""
    route_type: int = RouteType.BUS
    color: str = ""


@dataclass
class Trip:
    """A scheduled trip on a route."""
    trip_id: str
    route_id: int
    headsign: Optional[str] = None
    direction_id: Optional[int] = None
    shape_id: Optional[str] = None


@dataclass
class StopTime:
    """One visit of a trip to a stop. Sequence 0 is the trip origin."""
    trip_id: str
    stop_id: int
    stop_sequence: int


@dataclass
class Vehicle:
    """A live vehicle position report."""
    vehicle_id: int
    latitude: float
    longitude: float
    speed: Optional[float] = None  # km/h
    timestamp: Optional[datetime] = None
    trip_id: Optional[str] = None
    route_id: Optional[int] = None
    label: Optional[str] = None

    @property
    def position(self) -> Position:
        return Position(self.latitude, self.longitude)


@dataclass
class ShapeSegment:
    start: Position
    end: Position
    distance: float  # meters


@dataclass
class RouteShape:
    """Polyline geometry of a trip's path."""
    shape_id: str
    points: List[Position]
    segments: List[ShapeSegment] = field(default_factory=list)


@dataclass
class ProjectionResult:
    """Nearest point on a shape to some position."""
    closest_point: Position
    distance_to_shape: float  # meters
    segment_index: int
    position_along_segment: float  # 0-1


@dataclass
class DistanceResult:
    total_distance: float  # meters
    method: CalculationMethod
    confidence: Confidence


@dataclass
class TripStationRoles:
    """Start and end stations of a single trip (0 when unknown)."""
    trip_id: str
    route_id: int
    start_station: int
    end_station: int


@dataclass
class RouteStationRoles:
    """Station roles aggregated over every trip of a route."""
    route_id: int
    stations: Dict[int, StationRole]


@dataclass
class ArrivalTime:
    """Arrival estimate of one vehicle at one station."""
    status: ArrivalStatus
    status_message: str
    confidence: Confidence
    estimated_minutes: int  # negative once past, OFF_ROUTE_MINUTES when off route
    calculation_method: CalculationMethod
    raw_distance: Optional[float] = None


@dataclass
class StationVehicle:
    """A live vehicle associated with a station."""
    vehicle: Vehicle
    route: Optional[Route]
    trip: Optional[Trip]
    arrival_time: Optional[ArrivalTime] = None

    @property
    def route_id(self) -> Optional[int]:
        if self.route is not None:
            return self.route.route_id
        return self.vehicle.route_id

    @property
    def status(self) -> ArrivalStatus:
        if self.arrival_time is None:
            return ArrivalStatus.OFF_ROUTE
        return self.arrival_time.status


@dataclass
class FilteredStation:
    """A station near the user with its serving routes and vehicles."""
    station: Stop
    distance: float  # meters from the user
    has_active_trips: bool
    station_type: StationType
    vehicles: List[StationVehicle] = field(default_factory=list)
    route_ids: List[int] = field(default_factory=list)


@dataclass
class GroupedVehicles:
    """Vehicles split into what a station shows and what it hides."""
    displayed: List[StationVehicle]
    hidden: List[StationVehicle]
    grouping_applied: bool


@dataclass
class StationDisplay:
    """Everything a presentation layer needs to render one station."""
    station: FilteredStation
    vehicles: GroupedVehicles
    drop_off_only: bool
    roles: Dict[int, StationRole]  # route_id -> role of this station
    last_updated: datetime
