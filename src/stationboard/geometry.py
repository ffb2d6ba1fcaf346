"""Geographic distance and path projection helpers."""

import math
from typing import List, Sequence, Tuple

from .models import (
    CalculationMethod,
    Confidence,
    DistanceResult,
    Position,
    ProjectionResult,
    RouteShape,
    ShapeSegment,
)

EARTH_RADIUS_M = 6371000.0


def haversine_m(a: Position, b: Position) -> float:
    """Great-circle distance between two positions in meters."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlon = math.radians(b.lon - a.lon)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, h)))


def build_route_shape(shape_id: str, points: Sequence[Position]) -> RouteShape:
    """Create a RouteShape with precomputed segment lengths."""
    segments = [
        ShapeSegment(start=start, end=end, distance=haversine_m(start, end))
        for start, end in zip(points, points[1:])
    ]
    return RouteShape(shape_id=shape_id, points=list(points), segments=segments)


def project_point_to_segment(
    point: Position, start: Position, end: Position
) -> Tuple[float, Position]:
    """
    Project a point onto a segment.

    Works on an equirectangular approximation around the segment start, which is
    accurate enough at street scale.

    Returns:
        (t, closest_point) where t is clamped to [0, 1].
    """
    scale = math.cos(math.radians(start.lat))
    seg_x = (end.lon - start.lon) * scale
    seg_y = end.lat - start.lat
    pt_x = (point.lon - start.lon) * scale
    pt_y = point.lat - start.lat

    length_sq = seg_x * seg_x + seg_y * seg_y
    if length_sq == 0:
        return 0.0, start

    t = max(0.0, min(1.0, (pt_x * seg_x + pt_y * seg_y) / length_sq))
    closest = Position(start.lat + t * (end.lat - start.lat), start.lon + t * (end.lon - start.lon))
    return t, closest


def distance_point_to_segment(point: Position, start: Position, end: Position) -> float:
    _, closest = project_point_to_segment(point, start, end)
    return haversine_m(point, closest)


def project_point_to_shape(point: Position, shape: RouteShape, start_segment: int = 0) -> ProjectionResult:
    """
    Find the closest point on a route shape to the given position.

    Segments before ``start_segment`` are ignored, so stops of a looping trip can
    be projected in order without snapping back to the start of the loop.
    """
    if not shape.segments:
        anchor = shape.points[0] if shape.points else point
        return ProjectionResult(
            closest_point=anchor,
            distance_to_shape=haversine_m(point, anchor),
            segment_index=0,
            position_along_segment=0.0,
        )

    best = None
    for index in range(min(start_segment, len(shape.segments) - 1), len(shape.segments)):
        segment = shape.segments[index]
        t, closest = project_point_to_segment(point, segment.start, segment.end)
        distance = haversine_m(point, closest)
        if best is None or distance < best.distance_to_shape:
            best = ProjectionResult(
                closest_point=closest,
                distance_to_shape=distance,
                segment_index=index,
                position_along_segment=t,
            )
    return best


def route_position(projection: ProjectionResult, shape: RouteShape) -> float:
    """Distance in meters from the start of the shape to a projected point."""
    position = sum(segment.distance for segment in shape.segments[: projection.segment_index])
    if projection.segment_index < len(shape.segments):
        position += projection.position_along_segment * shape.segments[projection.segment_index].distance
    return position


def distance_via_stops(
    origin: Position, target: Position, intermediate: List[Position]
) -> DistanceResult:
    """Sum of straight hops from origin through each intermediate stop to the target."""
    hops = [origin] + list(intermediate) + [target]
    total = sum(haversine_m(a, b) for a, b in zip(hops, hops[1:]))
    return DistanceResult(
        total_distance=total, method=CalculationMethod.STOP_SEGMENTS, confidence=Confidence.MEDIUM
    )
