"""Selection of a bounded, diverse subset of vehicles for a station."""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .arrivals import arrival_sort_key
from .config import OFF_ROUTE_MINUTES
from .models import ArrivalStatus, GroupedVehicles, StationVehicle

logger = logging.getLogger(__name__)


def _estimated_minutes(station_vehicle: StationVehicle) -> int:
    if station_vehicle.arrival_time is None:
        return OFF_ROUTE_MINUTES
    return station_vehicle.arrival_time.estimated_minutes


def select_best_vehicle_per_status(
    vehicles: Sequence[StationVehicle], status: ArrivalStatus
) -> Optional[StationVehicle]:
    """
    Pick the vehicle with the earliest estimate among those with ``status``.

    Ties go to the vehicle that comes first in ``vehicles``. Vehicles without
    an arrival estimate count as off_route.

    Returns:
        The chosen vehicle, or None if none has the status.
    """
    candidates = [vehicle for vehicle in vehicles if vehicle.status == status]
    if not candidates:
        return None
    return min(candidates, key=_estimated_minutes)


def group_vehicles_for_display(
    vehicles: Sequence[StationVehicle],
    max_vehicles: int,
    include_off_route: bool,
    route_count: int,
) -> GroupedVehicles:
    """
    Reduce a station's vehicles to what fits on screen.

    Args:
        vehicles: Vehicles associated with the station.
        max_vehicles: Most vehicles to display once grouping kicks in.
        include_off_route: Keep off_route vehicles in the result at all.
        route_count: Number of routes serving the station.

    Returns:
        GroupedVehicles. Single-route stations display everything in input
        order. Multi-route stations at or under the limit display everything
        ordered by arrival priority. Otherwise one vehicle per (route, status) is
        kept, ordered by arrival priority and cut to ``max_vehicles``; every
        vehicle left out lands in ``hidden``.
    """
    if include_off_route:
        remaining = list(vehicles)
    else:
        remaining = [vehicle for vehicle in vehicles if vehicle.status != ArrivalStatus.OFF_ROUTE]

    if route_count <= 1:
        return GroupedVehicles(displayed=remaining, hidden=[], grouping_applied=False)
    if len(remaining) <= max_vehicles:
        return GroupedVehicles(displayed=sorted(remaining, key=arrival_sort_key), hidden=[], grouping_applied=False)

    groups: Dict[Tuple[Optional[int], ArrivalStatus], List[StationVehicle]] = {}
    for vehicle in remaining:
        groups.setdefault((vehicle.route_id, vehicle.status), []).append(vehicle)

    representatives: List[StationVehicle] = []
    hidden: List[StationVehicle] = []
    for (_, status), members in groups.items():
        best = select_best_vehicle_per_status(members, status)
        representatives.append(best)
        hidden.extend(member for member in members if member is not best)

    representatives.sort(key=arrival_sort_key)
    displayed = representatives[:max_vehicles]
    hidden.extend(representatives[max_vehicles:])

    logger.debug(
        f"Grouped {len(remaining)} vehicles into {len(groups)} route/status groups, "
        f"displaying {len(displayed)}"
    )
    return GroupedVehicles(displayed=displayed, hidden=hidden, grouping_applied=True)
