"""GTFS-Realtime vehicle position parser."""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2

from .models import Vehicle

logger = logging.getLogger(__name__)

MS_TO_KMH = 3.6


def _as_int(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _vehicle_from_entity(entity) -> Optional[Vehicle]:
    position = entity.vehicle
    if not position.HasField("position"):
        logger.warning(f"Skipping vehicle entity {entity.id}: no position")
        return None

    descriptor_id = position.vehicle.id if position.HasField("vehicle") else ""
    vehicle_id = _as_int(descriptor_id or entity.id)
    if vehicle_id is None:
        logger.warning(f"Skipping vehicle entity {entity.id}: non-numeric id {descriptor_id or entity.id!r}")
        return None

    speed = position.position.speed * MS_TO_KMH if position.position.HasField("speed") else None
    timestamp = (
        datetime.fromtimestamp(position.timestamp, tz=timezone.utc) if position.HasField("timestamp") else None
    )

    trip_id = None
    route_id = None
    if position.HasField("trip"):
        trip_id = position.trip.trip_id or None
        route_id = _as_int(position.trip.route_id) if position.trip.route_id else None

    label = position.vehicle.label if position.HasField("vehicle") and position.vehicle.label else None

    return Vehicle(
        vehicle_id=vehicle_id,
        latitude=position.position.latitude,
        longitude=position.position.longitude,
        speed=speed,
        timestamp=timestamp,
        trip_id=trip_id,
        route_id=route_id,
        label=label,
    )


def parse_vehicle_positions(feed_data: bytes) -> List[Vehicle]:
    """
    Parse vehicle positions from a GTFS-Realtime feed.

    Args:
        feed_data: Raw protobuf bytes.

    Returns:
        List of Vehicle objects, empty if the feed cannot be decoded.
    """
    feed = gtfs_realtime_pb2.FeedMessage()
    try:
        feed.ParseFromString(feed_data)
    except DecodeError as e:
        logger.error(f"Failed to parse vehicle positions: {e}")
        return []

    vehicles: List[Vehicle] = []
    for entity in feed.entity:
        if not entity.HasField("vehicle"):
            continue
        vehicle = _vehicle_from_entity(entity)
        if vehicle is not None:
            vehicles.append(vehicle)

    logger.debug(f"Parsed {len(vehicles)} vehicles from {len(feed.entity)} feed entities")
    return vehicles
