"""Main StationBoard class."""

import logging
from datetime import datetime
from typing import Dict, Optional, Sequence

from .arrivals import ArrivalEstimator
from .config import ArrivalSettings, DisplaySettings, FilterSettings
from .gtfs_loader import GTFSLoader
from .models import (
    FilteredStation,
    Position,
    Route,
    RouteShape,
    StationDisplay,
    Stop,
    StopTime,
    Trip,
    Vehicle,
)
from .station_filter import DataSnapshot, StationFilter, StationFilterResult
from .station_roles import StationRoleCache, should_show_station_drop_off_indicator
from .vehicle_grouping import group_vehicles_for_display

logger = logging.getLogger(__name__)


class StationBoard:
    """
    Shows the stations around a user with the vehicles heading to them.

    This class provides methods to:
    - Load reference data (stops, routes, trips, stop times, shapes)
    - Replace the live vehicle set as new positions arrive
    - Find nearby stations for a user position
    - Build the display of one station (grouped vehicles, drop-off flag, roles)
    """

    def __init__(
        self,
        filter_settings: Optional[FilterSettings] = None,
        arrival_settings: Optional[ArrivalSettings] = None,
        display_settings: Optional[DisplaySettings] = None,
        role_cache: Optional[StationRoleCache] = None,
    ):
        """
        Initialize the board with no data loaded.

        Args:
            filter_settings: Station filtering and cache tuning.
            arrival_settings: Arrival estimation tuning.
            display_settings: Defaults for get_station_display.
            role_cache: Station role cache to use instead of a fresh one.
        """
        self.display_settings = display_settings or DisplaySettings()
        self.estimator = ArrivalEstimator(arrival_settings)
        self.station_filter = StationFilter(filter_settings, self.estimator)
        self.role_cache = role_cache or StationRoleCache()
        self._snapshot = DataSnapshot()
        self._stops_by_id: Dict[int, Stop] = {}

    @property
    def snapshot(self) -> DataSnapshot:
        return self._snapshot

    def load_reference_data(
        self,
        stops: Sequence[Stop],
        routes: Sequence[Route],
        trips: Sequence[Trip],
        stop_times: Sequence[StopTime],
        shapes: Optional[Dict[str, RouteShape]] = None,
    ) -> None:
        """
        Replace the reference data and recompute station roles.

        Live vehicles are kept; cached station lists are dropped.
        """
        self._snapshot = DataSnapshot(
            stops=list(stops),
            routes=list(routes),
            trips=list(trips),
            stop_times=list(stop_times),
            vehicles=self._snapshot.vehicles,
            shapes=dict(shapes or {}),
            version=self._snapshot.version + 1,
        )
        self._stops_by_id = {stop.stop_id: stop for stop in self._snapshot.stops}

        self.estimator.clear()
        self.station_filter.clear_cache()
        self.role_cache.invalidate_cache(self._snapshot.trips, self._snapshot.stop_times)
        logger.info(
            f"Loaded reference data version {self._snapshot.version}: "
            f"{len(self._snapshot.stops)} stops, {len(self._snapshot.trips)} trips"
        )

    def load_from_loader(self, loader: GTFSLoader) -> None:
        """Load reference data from a populated GTFSLoader."""
        self.load_reference_data(
            loader.stops,
            list(loader.routes.values()),
            list(loader.trips.values()),
            loader.stop_times,
            loader.shapes,
        )

    def update_vehicles(self, vehicles: Sequence[Vehicle]) -> None:
        """Replace the live vehicle set."""
        previous = self._snapshot
        self._snapshot = DataSnapshot(
            stops=previous.stops,
            routes=previous.routes,
            trips=previous.trips,
            stop_times=previous.stop_times,
            vehicles=list(vehicles),
            shapes=previous.shapes,
            version=previous.version + 1,
        )
        logger.debug(f"Updated {len(self._snapshot.vehicles)} vehicles (version {self._snapshot.version})")

    def get_nearby_stations(self, position: Optional[Position]) -> StationFilterResult:
        """
        Get the stations around a position.

        Args:
            position: User position, or None while it is unknown.

        Returns:
            StationFilterResult; NOT_READY until a position and reference data
            are both available.
        """
        if self._snapshot.trips:
            self.role_cache.ensure_fresh(self._snapshot.trips, self._snapshot.stop_times)
        return self.station_filter.update(self._snapshot, position)

    def refresh_pending(self) -> Optional[StationFilterResult]:
        """Recompute a station list that get_nearby_stations served stale."""
        return self.station_filter.refresh_pending()

    def get_station_display(
        self,
        filtered_station: FilteredStation,
        max_vehicles: Optional[int] = None,
        include_off_route: Optional[bool] = None,
    ) -> StationDisplay:
        """
        Build what a station card shows.

        Args:
            filtered_station: A station returned by get_nearby_stations.
            max_vehicles: Overrides the configured display limit.
            include_off_route: Overrides the configured off-route toggle.

        Returns:
            StationDisplay with grouped vehicles, the drop-off flag and the
            station's role on each route serving it.
        """
        if max_vehicles is None:
            max_vehicles = self.display_settings.max_vehicles
        if include_off_route is None:
            include_off_route = self.display_settings.include_off_route

        station_id = filtered_station.station.stop_id
        grouped = group_vehicles_for_display(
            filtered_station.vehicles,
            max_vehicles,
            include_off_route,
            route_count=len(filtered_station.route_ids),
        )
        drop_off_only = should_show_station_drop_off_indicator(
            filtered_station.vehicles, station_id, self._snapshot.stop_times
        )

        return StationDisplay(
            station=filtered_station,
            vehicles=grouped,
            drop_off_only=drop_off_only,
            roles=self.role_cache.get_roles_for_station(station_id, filtered_station.route_ids),
            last_updated=datetime.now(),
        )

    def get_station(self, stop_id: int) -> Stop:
        """
        Get a station by stop_id.

        Raises:
            ValueError: If station not found.
        """
        if stop_id not in self._stops_by_id:
            raise ValueError(f"Station {stop_id} not found")
        return self._stops_by_id[stop_id]
