"""Location-based station filtering with live vehicle association."""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .arrivals import ArrivalEstimator, sort_station_vehicles_by_arrival
from .config import SECONDARY_STATION_THRESHOLD, FilterSettings
from .geometry import haversine_m
from .models import (
    FilteredStation,
    Position,
    Route,
    RouteShape,
    StationType,
    StationVehicle,
    Stop,
    StopTime,
    Trip,
    Vehicle,
)

logger = logging.getLogger(__name__)

PositionKey = Tuple[int, int]


class ScheduleIndex:
    """Lookup tables over one snapshot of reference data."""

    def __init__(
        self,
        stops: Sequence[Stop],
        routes: Sequence[Route],
        trips: Sequence[Trip],
        stop_times: Sequence[StopTime],
        shapes: Optional[Dict[str, RouteShape]] = None,
    ):
        self.stops_by_id: Dict[int, Stop] = {stop.stop_id: stop for stop in stops}
        self.routes_by_id: Dict[int, Route] = {route.route_id: route for route in routes}
        self.trips_by_id: Dict[str, Trip] = {trip.trip_id: trip for trip in trips}
        self.shapes: Dict[str, RouteShape] = shapes or {}

        self.stop_times_by_trip: Dict[str, List[StopTime]] = {}
        self.trips_by_stop: Dict[int, Set[str]] = {}
        for st in stop_times:
            self.stop_times_by_trip.setdefault(st.trip_id, []).append(st)
            self.trips_by_stop.setdefault(st.stop_id, set()).add(st.trip_id)
        for trip_stop_times in self.stop_times_by_trip.values():
            trip_stop_times.sort(key=lambda st: st.stop_sequence)

        self._trip_stops: Dict[str, List[Stop]] = {}

    def trips_for_station(self, stop_id: int) -> Set[str]:
        return self.trips_by_stop.get(stop_id, set())

    def routes_for_station(self, stop_id: int) -> List[int]:
        route_ids = set()
        for trip_id in self.trips_for_station(stop_id):
            trip = self.trips_by_id.get(trip_id)
            if trip is not None:
                route_ids.add(trip.route_id)
        return sorted(route_ids)

    def trip_stops(self, trip_id: str) -> List[Stop]:
        """Stops of a trip in sequence order, skipping stops missing from the stop set."""
        if trip_id not in self._trip_stops:
            self._trip_stops[trip_id] = [
                self.stops_by_id[st.stop_id]
                for st in self.stop_times_by_trip.get(trip_id, [])
                if st.stop_id in self.stops_by_id
            ]
        return self._trip_stops[trip_id]

    def shape_for_trip(self, trip_id: str) -> Optional[RouteShape]:
        trip = self.trips_by_id.get(trip_id)
        if trip is None or not trip.shape_id:
            return None
        return self.shapes.get(trip.shape_id)

    def route_id_for_vehicle(self, vehicle: Vehicle) -> Optional[int]:
        if vehicle.route_id is not None:
            return vehicle.route_id
        trip = self.trips_by_id.get(vehicle.trip_id) if vehicle.trip_id else None
        return trip.route_id if trip is not None else None


def _station_vehicles(
    station: Stop,
    route_ids: Iterable[int],
    vehicles: Sequence[Vehicle],
    index: ScheduleIndex,
    estimator: ArrivalEstimator,
) -> List[StationVehicle]:
    serving_routes = set(route_ids)
    station_trips = index.trips_for_station(station.stop_id)
    result = []
    for vehicle in vehicles:
        route_id = index.route_id_for_vehicle(vehicle)
        if route_id not in serving_routes:
            continue

        trip = index.trips_by_id.get(vehicle.trip_id) if vehicle.trip_id else None
        if trip is not None and trip.trip_id in station_trips:
            arrival = estimator.estimate(
                vehicle, station, index.trip_stops(trip.trip_id), index.shape_for_trip(trip.trip_id)
            )
        else:
            if vehicle.trip_id and vehicle.trip_id not in index.stop_times_by_trip:
                logger.warning(f"Vehicle {vehicle.vehicle_id} runs trip {vehicle.trip_id} with no stop_times")
            arrival = estimator.off_route()

        result.append(
            StationVehicle(
                vehicle=vehicle,
                route=index.routes_by_id.get(route_id),
                trip=trip,
                arrival_time=arrival,
            )
        )
    return sort_station_vehicles_by_arrival(result)


def filter_stations(
    stops: Sequence[Stop],
    user_position: Optional[Position],
    stop_times: Sequence[StopTime],
    vehicles: Sequence[Vehicle],
    routes: Sequence[Route],
    enable_proximity: bool = True,
    secondary_threshold: float = SECONDARY_STATION_THRESHOLD,
    trips: Optional[Sequence[Trip]] = None,
    shapes: Optional[Dict[str, RouteShape]] = None,
    estimator: Optional[ArrivalEstimator] = None,
    max_search_radius: Optional[float] = None,
) -> List[FilteredStation]:
    """
    Select the stations around the user and attach their routes and vehicles.

    The closest stop is the primary station. With proximity enabled, every stop
    within ``secondary_threshold`` meters of the closest stop's distance is also
    returned; with it disabled only the primary station is. Results are ordered
    by distance from the user. Nothing is returned when the closest stop is
    farther than ``max_search_radius``.

    Args:
        stops: All stops.
        user_position: Current user position, or None when unavailable.
        stop_times: All stop times.
        vehicles: Current live vehicles.
        routes: All routes.
        enable_proximity: Include the proximity band around the closest stop.
        secondary_threshold: Width of the proximity band in meters.
        trips: All trips. Nothing is returned until trips are loaded.
        shapes: Route shapes by shape id, for path-based arrival estimates.
        estimator: ArrivalEstimator to reuse between calls.
        max_search_radius: Distance in meters beyond which no stop counts as
            nearby. None searches without a limit.

    Returns:
        List of FilteredStation; empty when position, trips or stops are missing.
    """
    if user_position is None or not trips or not stops:
        return []

    distances = [(stop, haversine_m(user_position, stop.position)) for stop in stops]
    primary_stop, closest = min(distances, key=lambda pair: pair[1])
    if max_search_radius is not None and closest > max_search_radius:
        logger.debug(f"Closest stop {primary_stop.stop_id} is {closest:.0f}m away, beyond {max_search_radius:.0f}m")
        return []

    if enable_proximity:
        limit = closest + secondary_threshold
        selected = sorted((pair for pair in distances if pair[1] <= limit), key=lambda pair: pair[1])
    else:
        limit = closest
        selected = [(primary_stop, closest)]

    index = ScheduleIndex(stops, routes, trips, stop_times, shapes)
    estimator = estimator or ArrivalEstimator()

    result = []
    for stop, distance in selected:
        route_ids = index.routes_for_station(stop.stop_id)
        station_vehicles = _station_vehicles(stop, route_ids, vehicles, index, estimator)
        station_trips = index.trips_for_station(stop.stop_id)
        result.append(
            FilteredStation(
                station=stop,
                distance=distance,
                has_active_trips=any(sv.vehicle.trip_id in station_trips for sv in station_vehicles),
                station_type=StationType.PRIMARY if stop is primary_stop else StationType.ALL,
                vehicles=station_vehicles,
                route_ids=route_ids,
            )
        )

    logger.debug(f"Filtered {len(result)} of {len(stops)} stations within {limit:.0f}m")
    return result


def position_cache_key(position: Position, precision: int = 3) -> PositionKey:
    """Quantize a position onto a grid of ``precision`` decimal degrees."""
    scale = 10 ** precision
    return int(round(position.lat * scale)), int(round(position.lon * scale))


def should_refilter(new_position: Optional[Position], last_position: Optional[Position], threshold: float) -> bool:
    if new_position is None:
        return False
    if last_position is None:
        return True
    return haversine_m(last_position, new_position) > threshold


@dataclass
class DataSnapshot:
    """Reference and live data as of one refresh. Replaced, never mutated."""
    stops: List[Stop] = field(default_factory=list)
    routes: List[Route] = field(default_factory=list)
    trips: List[Trip] = field(default_factory=list)
    stop_times: List[StopTime] = field(default_factory=list)
    vehicles: List[Vehicle] = field(default_factory=list)
    shapes: Dict[str, RouteShape] = field(default_factory=dict)
    version: int = 0


class FilterState(str, Enum):
    NOT_READY = "not_ready"  # no position, or reference data not loaded
    EMPTY = "empty"  # no stop within the search radius
    READY = "ready"


@dataclass
class StationFilterResult:
    state: FilterState
    stations: List[FilteredStation] = field(default_factory=list)
    stale: bool = False  # served from the position cache for an older snapshot
    version: int = 0


class StationFilter:
    """
    Keeps the nearby-station list current as the user moves and data refreshes.

    Results are cached per ~100 m grid cell. A cache hit for an older snapshot
    is returned straight away marked stale and queued; refresh_pending()
    replaces it. Results computed from a snapshot older than the newest one
    already accepted are discarded.
    """

    def __init__(self, settings: Optional[FilterSettings] = None, estimator: Optional[ArrivalEstimator] = None):
        self.settings = settings or FilterSettings()
        self.estimator = estimator or ArrivalEstimator()
        self._cache: "OrderedDict[PositionKey, Tuple[int, List[FilteredStation]]]" = OrderedDict()
        self._current: Optional[StationFilterResult] = None
        self._last_position: Optional[Position] = None
        self._accepted_version = -1
        self._pending: Optional[Tuple[DataSnapshot, Position]] = None

    @property
    def current(self) -> Optional[StationFilterResult]:
        return self._current

    @property
    def has_pending_refresh(self) -> bool:
        return self._pending is not None

    def update(self, snapshot: DataSnapshot, position: Optional[Position]) -> StationFilterResult:
        """Return the station list for ``position``, recomputing only when needed."""
        if position is None or not snapshot.trips or not snapshot.stops:
            return StationFilterResult(FilterState.NOT_READY, version=snapshot.version)

        moved = should_refilter(position, self._last_position, self.settings.refilter_distance_m)
        if (
            not moved
            and self._current is not None
            and self._current.version == snapshot.version
            and not self._current.stale
        ):
            return self._current

        key = position_cache_key(position, self.settings.cache_precision)
        cached = self._cache.get(key)
        if cached is not None:
            cached_version, stations = cached
            self._cache.move_to_end(key)
            stale = cached_version != snapshot.version
            logger.debug(f"Station cache hit for {key} (stale={stale})")
            self._current = StationFilterResult(FilterState.READY, stations, stale, cached_version)
            self._last_position = position
            if stale:
                self._pending = (snapshot, position)
                return self._current
            self._accepted_version = max(self._accepted_version, cached_version)
            return self._current

        return self.refresh(snapshot, position)

    def refresh(self, snapshot: DataSnapshot, position: Optional[Position]) -> StationFilterResult:
        """Recompute the station list and store it, unless a newer snapshot already won."""
        if position is None or not snapshot.trips or not snapshot.stops:
            return StationFilterResult(FilterState.NOT_READY, version=snapshot.version)

        if snapshot.version < self._accepted_version:
            logger.debug(f"Discarding filter result for snapshot {snapshot.version}")
            return self._current or StationFilterResult(FilterState.NOT_READY, version=snapshot.version)

        stations = filter_stations(
            snapshot.stops,
            position,
            snapshot.stop_times,
            snapshot.vehicles,
            snapshot.routes,
            enable_proximity=self.settings.enable_proximity,
            secondary_threshold=self.settings.secondary_threshold_m,
            trips=snapshot.trips,
            shapes=snapshot.shapes,
            estimator=self.estimator,
            max_search_radius=self.settings.max_search_radius_m,
        )

        self._accepted_version = snapshot.version
        self._last_position = position
        if stations:
            self._store(position_cache_key(position, self.settings.cache_precision), snapshot.version, stations)
            self._current = StationFilterResult(FilterState.READY, stations, False, snapshot.version)
        else:
            self._current = StationFilterResult(FilterState.EMPTY, [], False, snapshot.version)
        return self._current

    def refresh_pending(self) -> Optional[StationFilterResult]:
        """Run the refresh queued by a stale cache hit, if any."""
        if self._pending is None:
            return None
        snapshot, position = self._pending
        self._pending = None
        return self.refresh(snapshot, position)

    def retry(self) -> None:
        """Force the next update to recompute."""
        self._last_position = None
        self._current = None

    def clear_cache(self) -> None:
        self._cache.clear()

    def _store(self, key: PositionKey, version: int, stations: List[FilteredStation]) -> None:
        self._cache[key] = (version, stations)
        self._cache.move_to_end(key)
        while len(self._cache) > self.settings.cache_max_entries:
            self._cache.popitem(last=False)
