"""Formatting helpers for presenting stations."""

from .models import LocationType, RouteType, StationType

_LOCATION_TYPE_DESCRIPTIONS = {
    LocationType.PLATFORM: "Stop/Platform",
    LocationType.STATION: "Station",
    LocationType.ENTRANCE: "Station Entrance/Exit",
    LocationType.GENERIC_NODE: "Generic Node",
    LocationType.BOARDING_AREA: "Boarding Area",
}

_ROUTE_TYPE_LABELS = {
    RouteType.TRAM: "Tram",
    RouteType.SUBWAY: "Subway",
    RouteType.RAIL: "Rail",
    RouteType.BUS: "Bus",
    RouteType.TROLLEYBUS: "Trolleybus",
}


def format_distance(distance: float) -> str:
    """Meters under a kilometer, otherwise kilometers with one decimal."""
    if distance < 1000:
        return f"{int(round(distance))}m"
    return f"{distance / 1000:.1f}km"


def get_station_type_label(station_type: StationType) -> str:
    return "Closest" if station_type == StationType.PRIMARY else ""


def get_station_type_color(station_type: StationType) -> str:
    return "primary" if station_type == StationType.PRIMARY else "default"


def get_location_type_description(location_type: int) -> str:
    return _LOCATION_TYPE_DESCRIPTIONS.get(location_type, "Transit Location")


def get_route_type_label(route_type: int) -> str:
    return _ROUTE_TYPE_LABELS.get(route_type, "Unknown")
