"""Station role classification (start, end, turnaround, standard) per route."""

import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .config import STATIC_DATA_TTL_SECONDS
from .models import (
    RouteStationRoles,
    StationRole,
    StationVehicle,
    StopTime,
    Trip,
    TripStationRoles,
)

logger = logging.getLogger(__name__)

UNKNOWN_STATION = 0


def calculate_roles_for_trip(trip: Trip, stop_times: Iterable[StopTime]) -> TripStationRoles:
    """
    Identify the start and end station of a single trip.

    Args:
        trip: The trip to classify.
        stop_times: Stop times of any trips; filtered to this trip internally.

    Returns:
        TripStationRoles with the lowest-sequence stop as start and the
        highest-sequence stop as end. Both are 0 if the trip has no stop times.
    """
    trip_stop_times = sorted(
        (st for st in stop_times if st.trip_id == trip.trip_id),
        key=lambda st: st.stop_sequence,
    )
    if not trip_stop_times:
        return TripStationRoles(trip.trip_id, trip.route_id, UNKNOWN_STATION, UNKNOWN_STATION)

    return TripStationRoles(
        trip_id=trip.trip_id,
        route_id=trip.route_id,
        start_station=trip_stop_times[0].stop_id,
        end_station=trip_stop_times[-1].stop_id,
    )


def aggregate_roles_to_route(
    trip_roles: Sequence[TripStationRoles],
    stop_times: Optional[Iterable[StopTime]] = None,
) -> RouteStationRoles:
    """
    Aggregate per-trip roles into a role per station for the whole route.

    A station that starts some trip and ends some (possibly other) trip is a
    turnaround. When ``stop_times`` is given, every other station visited by the
    route's trips is emitted as standard; stations the route never visits are
    left out.

    Args:
        trip_roles: Output of calculate_roles_for_trip for each trip of one route.
        stop_times: Optional stop times used to emit standard stations.

    Returns:
        RouteStationRoles mapping station id to StationRole.
    """
    if not trip_roles:
        return RouteStationRoles(route_id=0, stations={})

    route_id = trip_roles[0].route_id
    start_stations = set()
    end_stations = set()
    for roles in trip_roles:
        if roles.start_station != UNKNOWN_STATION:
            start_stations.add(roles.start_station)
        if roles.end_station != UNKNOWN_STATION:
            end_stations.add(roles.end_station)

    stations: Dict[int, StationRole] = {}
    if stop_times is not None:
        trip_ids = {roles.trip_id for roles in trip_roles}
        for st in stop_times:
            if st.trip_id in trip_ids:
                stations.setdefault(st.stop_id, StationRole.STANDARD)

    for station_id in start_stations | end_stations:
        if station_id in start_stations and station_id in end_stations:
            stations[station_id] = StationRole.TURNAROUND
        elif station_id in start_stations:
            stations[station_id] = StationRole.START
        else:
            stations[station_id] = StationRole.END

    return RouteStationRoles(route_id=route_id, stations=stations)


def is_station_end_for_trip(station_id: int, trip_id: str, stop_times: Iterable[StopTime]) -> bool:
    """True if the station is the highest-sequence stop of the trip."""
    last_stop: Optional[StopTime] = None
    for st in stop_times:
        if st.trip_id != trip_id:
            continue
        if last_stop is None or st.stop_sequence > last_stop.stop_sequence:
            last_stop = st

    if last_stop is None:
        return False
    return last_stop.stop_id == station_id


def should_show_station_drop_off_indicator(
    vehicles: Sequence[StationVehicle], station_id: int, stop_times: Sequence[StopTime]
) -> bool:
    """
    Decide whether a station only lets passengers alight.

    Every vehicle must have a trip and that trip must terminate at the station.
    A single vehicle without a trip, or one that continues past the station,
    makes the whole station boardable. No vehicles means no claim.
    """
    if not vehicles:
        return False

    for station_vehicle in vehicles:
        trip_id = station_vehicle.vehicle.trip_id
        if not trip_id:
            return False
        if not is_station_end_for_trip(station_id, trip_id, stop_times):
            return False
    return True


class StationRoleCache:
    """
    Holds station roles for every route, recomputed from trips and stop times.

    A failed recompute (no trip or stop_times data) records ``error`` and keeps
    whatever roles were there before. invalidate_cache clears first, so a failed
    recompute after it leaves the cache empty.
    """

    def __init__(self, ttl_seconds: float = STATIC_DATA_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.station_roles: Dict[int, Dict[int, StationRole]] = {}
        self.last_calculated: Optional[float] = None
        self.error: Optional[str] = None
        self._ttl = ttl_seconds
        self._clock = clock

    def calculate_station_roles(self, trips: Sequence[Trip], stop_times: Sequence[StopTime]) -> None:
        """Recompute roles for all routes found in ``trips``."""
        self.last_calculated = self._clock()

        if not trips or not stop_times:
            self.error = "No trip or stop_times data available for station role calculation"
            logger.warning(self.error)
            return

        stop_times_by_trip: Dict[str, List[StopTime]] = {}
        for st in stop_times:
            stop_times_by_trip.setdefault(st.trip_id, []).append(st)

        trips_by_route: Dict[int, List[Trip]] = {}
        for trip in trips:
            trips_by_route.setdefault(trip.route_id, []).append(trip)

        roles: Dict[int, Dict[int, StationRole]] = {}
        for route_id, route_trips in trips_by_route.items():
            trip_roles = []
            route_stop_times: List[StopTime] = []
            for trip in route_trips:
                trip_stop_times = stop_times_by_trip.get(trip.trip_id, [])
                trip_roles.append(calculate_roles_for_trip(trip, trip_stop_times))
                route_stop_times.extend(trip_stop_times)
            roles[route_id] = aggregate_roles_to_route(trip_roles, route_stop_times).stations

        self.station_roles = roles
        self.error = None
        logger.info(f"Calculated station roles for {len(roles)} routes")

    def invalidate_cache(self, trips: Sequence[Trip], stop_times: Sequence[StopTime]) -> None:
        """Drop all cached roles and recompute immediately."""
        self.station_roles = {}
        self.last_calculated = None
        self.error = None
        self.calculate_station_roles(trips, stop_times)

    def ensure_fresh(self, trips: Sequence[Trip], stop_times: Sequence[StopTime]) -> None:
        if not self.is_data_fresh():
            self.calculate_station_roles(trips, stop_times)

    def is_data_fresh(self) -> bool:
        if self.last_calculated is None or self.error is not None:
            return False
        return self._clock() - self.last_calculated < self._ttl

    def get_station_role(self, route_id: int, station_id: int) -> StationRole:
        return self.station_roles.get(route_id, {}).get(station_id, StationRole.STANDARD)

    def get_roles_for_station(self, station_id: int, route_ids: Iterable[int]) -> Dict[int, StationRole]:
        return {route_id: self.get_station_role(route_id, station_id) for route_id in route_ids}
