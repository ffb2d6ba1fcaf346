"""Arrival status and time estimation for a vehicle approaching a station."""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from .config import OFF_ROUTE_MINUTES, ArrivalSettings
from .geometry import (
    distance_point_to_segment,
    distance_via_stops,
    haversine_m,
    project_point_to_segment,
    project_point_to_shape,
    route_position,
)
from .models import (
    ArrivalStatus,
    ArrivalTime,
    CalculationMethod,
    Confidence,
    Position,
    RouteShape,
    StationVehicle,
    Stop,
    Vehicle,
)

logger = logging.getLogger(__name__)

# Lower number sorts first.
STATUS_PRIORITY: Dict[ArrivalStatus, int] = {
    ArrivalStatus.AT_STOP: 0,
    ArrivalStatus.ARRIVING_SOON: 1,
    ArrivalStatus.IN_MINUTES: 2,
    ArrivalStatus.JUST_LEFT: 3,
    ArrivalStatus.DEPARTED: 4,
    ArrivalStatus.OFF_ROUTE: 5,
}

_TIME_RANGE_VARIABILITY = {
    Confidence.HIGH: 0.1,
    Confidence.MEDIUM: 0.2,
    Confidence.LOW: 0.3,
}


class TimeRange(NamedTuple):
    minimum: float
    maximum: float
    estimate: float


def generate_status_message(status: ArrivalStatus, estimated_minutes: float) -> str:
    """Human-friendly text for an arrival status."""
    if status == ArrivalStatus.AT_STOP:
        return "At stop"
    if status == ArrivalStatus.ARRIVING_SOON:
        return "Arriving soon"
    if status == ArrivalStatus.IN_MINUTES:
        minutes = int(round(estimated_minutes))
        return f"In {minutes} minute{'' if minutes == 1 else 's'}"
    if status == ArrivalStatus.JUST_LEFT:
        return "Just left"
    if status == ArrivalStatus.DEPARTED:
        return "Departed"
    return "Off route"


def generate_status_with_confidence(
    status: ArrivalStatus, estimated_minutes: float, confidence: Confidence
) -> str:
    message = generate_status_message(status, estimated_minutes)
    return f"{message} (estimated)" if confidence == Confidence.LOW else message


def calculate_dwell_time(intermediate_stops: int, settings: Optional[ArrivalSettings] = None) -> float:
    """Minutes spent dwelling at the stops between vehicle and target."""
    settings = settings or ArrivalSettings()
    return intermediate_stops * settings.dwell_time_seconds / 60


def calculate_arrival_time(
    distance: float,
    intermediate_stops: int,
    predicted_speed: Optional[float] = None,
    settings: Optional[ArrivalSettings] = None,
) -> float:
    """
    Convert a path distance into minutes of travel.

    Args:
        distance: Remaining path distance in meters.
        intermediate_stops: Stops the vehicle will serve before the target.
        predicted_speed: Speed in km/h to use instead of the configured average.
        settings: Arrival tuning values.

    Returns:
        Minutes, rounded to a tenth.
    """
    settings = settings or ArrivalSettings()
    speed = predicted_speed if predicted_speed and predicted_speed > 0 else settings.average_speed_kmh
    travel_minutes = (distance / 1000) / speed * 60
    total = travel_minutes + calculate_dwell_time(intermediate_stops, settings)
    return round(total * 10) / 10


def calculate_time_range(estimated_minutes: float, confidence: Confidence) -> TimeRange:
    """Spread an estimate by ±10/20/30 % for high/medium/low confidence."""
    variation = estimated_minutes * _TIME_RANGE_VARIABILITY[confidence]
    return TimeRange(
        minimum=max(0.0, estimated_minutes - variation),
        maximum=estimated_minutes + variation,
        estimate=estimated_minutes,
    )


@dataclass
class VehicleProgress:
    """Where a vehicle is along its trip's ordered stop list."""
    next_index: Optional[int]  # None once the vehicle is past every stop
    off_route: bool
    confidence: Confidence
    method: CalculationMethod


class ProgressStrategy(ABC):
    """Locates a vehicle along a trip and measures path distances to its stops."""

    method = CalculationMethod.STOP_SEGMENTS

    def __init__(self, settings: ArrivalSettings):
        self.settings = settings

    @abstractmethod
    def locate(self, position: Position, trip_stops: Sequence[Stop]) -> VehicleProgress:
        raise NotImplementedError

    @abstractmethod
    def distance_to(
        self, position: Position, trip_stops: Sequence[Stop], progress: VehicleProgress, target_index: int
    ) -> float:
        """Path distance between the vehicle and a stop, ahead of it or behind it."""
        raise NotImplementedError


class StopSegmentStrategy(ProgressStrategy):
    """Fallback that works from straight lines between consecutive stops."""

    method = CalculationMethod.STOP_SEGMENTS

    def locate(self, position: Position, trip_stops: Sequence[Stop]) -> VehicleProgress:
        if len(trip_stops) < 2:
            return VehicleProgress(0, False, Confidence.LOW, self.method)

        best_index = 0
        best_total = math.inf
        for index in range(len(trip_stops) - 1):
            total = haversine_m(position, trip_stops[index].position) + haversine_m(
                position, trip_stops[index + 1].position
            )
            if total < best_total:
                best_index, best_total = index, total

        start, end = trip_stops[best_index].position, trip_stops[best_index + 1].position
        segment_length = haversine_m(start, end)
        close_enough = best_total <= segment_length * (1 + self.settings.segment_distance_tolerance)
        off_route = (
            not close_enough
            and distance_point_to_segment(position, start, end) > self.settings.off_route_threshold_m
        )
        confidence = Confidence.MEDIUM if close_enough else Confidence.LOW

        t, _ = project_point_to_segment(position, start, end)
        next_index: Optional[int] = best_index + 1
        if best_index == 0 and t == 0.0:
            # Not yet past the origin.
            next_index = 0
        elif best_index == len(trip_stops) - 2 and t == 1.0:
            if haversine_m(position, end) > self.settings.last_stop_radius_m:
                next_index = None
        return VehicleProgress(next_index, off_route, confidence, self.method)

    def distance_to(
        self, position: Position, trip_stops: Sequence[Stop], progress: VehicleProgress, target_index: int
    ) -> float:
        next_index = progress.next_index if progress.next_index is not None else len(trip_stops)
        if target_index >= next_index:
            intermediate = [stop.position for stop in trip_stops[next_index:target_index]]
            return distance_via_stops(position, trip_stops[target_index].position, intermediate).total_distance
        behind = [stop.position for stop in reversed(trip_stops[target_index + 1:next_index])]
        return distance_via_stops(position, trip_stops[target_index].position, behind).total_distance


class RouteShapeStrategy(ProgressStrategy):
    """Projects vehicle and stops onto the trip's path geometry."""

    method = CalculationMethod.ROUTE_SHAPE

    def __init__(self, settings: ArrivalSettings, shape: RouteShape):
        super().__init__(settings)
        self.shape = shape
        self._stop_positions: Dict[Tuple[int, ...], List[float]] = {}

    def _positions_along_shape(self, trip_stops: Sequence[Stop]) -> List[float]:
        key = tuple(stop.stop_id for stop in trip_stops)
        if key not in self._stop_positions:
            positions = []
            segment = 0
            for stop in trip_stops:
                projection = project_point_to_shape(stop.position, self.shape, start_segment=segment)
                segment = projection.segment_index
                positions.append(route_position(projection, self.shape))
            self._stop_positions[key] = positions
        return self._stop_positions[key]

    def _vehicle_position_along_shape(self, position: Position) -> Tuple[float, float]:
        projection = project_point_to_shape(position, self.shape)
        return route_position(projection, self.shape), projection.distance_to_shape

    def locate(self, position: Position, trip_stops: Sequence[Stop]) -> VehicleProgress:
        along, offset = self._vehicle_position_along_shape(position)
        off_route = offset > self.settings.off_route_threshold_m
        stop_positions = self._positions_along_shape(trip_stops)

        next_index: Optional[int] = None
        for index, stop_along in enumerate(stop_positions):
            if stop_along > along:
                next_index = index
                break

        if next_index is None and trip_stops:
            if haversine_m(position, trip_stops[-1].position) < self.settings.last_stop_radius_m:
                next_index = len(trip_stops) - 1

        return VehicleProgress(next_index, off_route, Confidence.HIGH, self.method)

    def distance_to(
        self, position: Position, trip_stops: Sequence[Stop], progress: VehicleProgress, target_index: int
    ) -> float:
        along, _ = self._vehicle_position_along_shape(position)
        return abs(self._positions_along_shape(trip_stops)[target_index] - along)


class ArrivalEstimator:
    """
    Computes an ArrivalTime for one vehicle and one station.

    The route-shape strategy is used when the trip has geometry, the
    stop-segment strategy otherwise. Both feed the same status rules.
    """

    def __init__(self, settings: Optional[ArrivalSettings] = None):
        self.settings = settings or ArrivalSettings()
        self._shape_strategies: Dict[str, RouteShapeStrategy] = {}
        self._stop_strategy = StopSegmentStrategy(self.settings)

    def strategy_for(self, shape: Optional[RouteShape]) -> ProgressStrategy:
        if shape is None or not shape.segments:
            return self._stop_strategy
        if shape.shape_id not in self._shape_strategies:
            self._shape_strategies[shape.shape_id] = RouteShapeStrategy(self.settings, shape)
        return self._shape_strategies[shape.shape_id]

    def clear(self) -> None:
        """Forget per-shape projections, e.g. after reference data reloads."""
        self._shape_strategies.clear()

    def off_route(self, method: CalculationMethod = CalculationMethod.STOP_SEGMENTS) -> ArrivalTime:
        return ArrivalTime(
            status=ArrivalStatus.OFF_ROUTE,
            status_message=generate_status_message(ArrivalStatus.OFF_ROUTE, OFF_ROUTE_MINUTES),
            confidence=Confidence.LOW,
            estimated_minutes=OFF_ROUTE_MINUTES,
            calculation_method=method,
        )

    def estimate(
        self,
        vehicle: Vehicle,
        target_stop: Stop,
        trip_stops: Sequence[Stop],
        shape: Optional[RouteShape] = None,
    ) -> ArrivalTime:
        """
        Estimate when ``vehicle`` reaches ``target_stop``.

        Args:
            vehicle: Live vehicle, expected to be running the trip.
            target_stop: Station the estimate is for.
            trip_stops: The trip's stops ordered by stop sequence.
            shape: The trip's path geometry, if known.

        Returns:
            ArrivalTime. off_route when the trip does not visit the station or
            the vehicle is too far from the trip's path.
        """
        target_indices = [i for i, stop in enumerate(trip_stops) if stop.stop_id == target_stop.stop_id]
        if not target_indices:
            return self.off_route()

        strategy = self.strategy_for(shape)
        position = vehicle.position
        progress = strategy.locate(position, trip_stops)
        target_index = self._pick_target_index(target_indices, progress.next_index)
        distance_to_target = haversine_m(position, target_stop.position)

        if distance_to_target <= self.settings.proximity_threshold_m:
            status, minutes = self._proximity_status(vehicle, progress, target_index)
            return self._result(status, minutes, progress, distance_to_target)

        if progress.off_route:
            logger.debug(f"Vehicle {vehicle.vehicle_id} is off route for station {target_stop.stop_id}")
            return self.off_route(progress.method)

        if progress.next_index is None or target_index < progress.next_index:
            distance = strategy.distance_to(position, trip_stops, progress, target_index)
            minutes_since = calculate_arrival_time(distance, 0, self._predicted_speed(vehicle), self.settings)
            just_passed = progress.next_index is not None and target_index == progress.next_index - 1
            if just_passed and minutes_since <= self.settings.recent_departure_minutes:
                status = ArrivalStatus.JUST_LEFT
            else:
                status = ArrivalStatus.DEPARTED
            return self._result(status, -max(1, math.ceil(minutes_since)), progress, distance)

        distance = strategy.distance_to(position, trip_stops, progress, target_index)
        minutes = calculate_arrival_time(
            distance, target_index - progress.next_index, self._predicted_speed(vehicle), self.settings
        )
        if minutes <= self.settings.arriving_soon_minutes:
            return self._result(ArrivalStatus.ARRIVING_SOON, max(0, int(round(minutes))), progress, distance)
        return self._result(ArrivalStatus.IN_MINUTES, max(1, int(round(minutes))), progress, distance)

    def _predicted_speed(self, vehicle: Vehicle) -> Optional[float]:
        # Implausible feed speeds (parked, GPS jumps) fall back to the average.
        speed = vehicle.speed
        if speed is None:
            return None
        if not self.settings.min_plausible_speed_kmh <= speed <= self.settings.max_plausible_speed_kmh:
            return None
        return speed

    @staticmethod
    def _pick_target_index(target_indices: List[int], next_index: Optional[int]) -> int:
        # A looping trip can visit the station twice: prefer the visit still ahead.
        if next_index is not None:
            for index in target_indices:
                if index >= next_index:
                    return index
        return target_indices[-1]

    @staticmethod
    def _proximity_status(
        vehicle: Vehicle, progress: VehicleProgress, target_index: int
    ) -> Tuple[ArrivalStatus, int]:
        if not vehicle.speed:
            return ArrivalStatus.AT_STOP, 0
        if progress.next_index == target_index:
            return ArrivalStatus.ARRIVING_SOON, 0
        return ArrivalStatus.JUST_LEFT, -1

    @staticmethod
    def _result(
        status: ArrivalStatus, minutes: int, progress: VehicleProgress, distance: float
    ) -> ArrivalTime:
        return ArrivalTime(
            status=status,
            status_message=generate_status_message(status, minutes),
            confidence=progress.confidence,
            estimated_minutes=minutes,
            calculation_method=progress.method,
            raw_distance=distance,
        )


def arrival_sort_key(station_vehicle: StationVehicle) -> Tuple[int, int]:
    """Status priority first, then estimated minutes."""
    arrival = station_vehicle.arrival_time
    if arrival is None:
        return STATUS_PRIORITY[ArrivalStatus.OFF_ROUTE], OFF_ROUTE_MINUTES
    return STATUS_PRIORITY[arrival.status], arrival.estimated_minutes


def sort_station_vehicles_by_arrival(vehicles: Sequence[StationVehicle]) -> List[StationVehicle]:
    """Order by status priority then minutes. Ties keep their input order."""
    return sorted(vehicles, key=arrival_sort_key)
