"""GTFS static data loader."""

import logging
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Union

import pandas as pd

from .geometry import build_route_shape
from .models import Position, Route, RouteShape, Stop, StopTime, Trip

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("stops", "routes", "trips", "stop_times")

TableReader = Callable[[str], Optional[pd.DataFrame]]


def _read_table(source) -> pd.DataFrame:
    return pd.read_csv(source, dtype=str, keep_default_na=False, encoding="utf-8-sig")


def _column(df: pd.DataFrame, name: str, default: str = "") -> pd.Series:
    if name in df.columns:
        return df[name].str.strip()
    return pd.Series([default] * len(df), index=df.index, dtype=str)


def _integer_ids(df: pd.DataFrame, name: str, table: str) -> pd.DataFrame:
    """Drop rows whose id column is not an integer and convert the rest."""
    ids = pd.to_numeric(_column(df, name), errors="coerce")
    invalid = ids.isna()
    if invalid.any():
        logger.warning(f"Skipping {int(invalid.sum())} rows in {table}.txt with non-integer {name}")
    df = df.loc[~invalid].copy()
    df[name] = ids[~invalid].astype(int)
    return df


class GTFSLoader:
    """Loads and indexes GTFS static data from local files."""

    def __init__(self):
        self.stations: Dict[int, Stop] = {}
        self.stations_by_name: Dict[str, List[int]] = {}  # name -> [stop_ids]
        self.routes: Dict[int, Route] = {}
        self.trips: Dict[str, Trip] = {}
        self.stop_times: List[StopTime] = []
        self.shapes: Dict[str, RouteShape] = {}
        self.routes_by_stop: Dict[int, Set[int]] = {}  # stop_id -> {route_ids}

    def load_from_directory(self, directory: Union[str, Path]) -> None:
        """Load GTFS text files from an extracted feed directory."""
        directory = Path(directory)
        logger.info(f"Loading GTFS data from {directory}")

        def read(table: str) -> Optional[pd.DataFrame]:
            path = directory / f"{table}.txt"
            if not path.exists():
                return None
            return _read_table(path)

        self._load_tables(read, str(directory))

    def load_from_zip(self, zip_path: Union[str, Path]) -> None:
        """Load GTFS data from a feed archive."""
        logger.info(f"Loading GTFS data from {zip_path}")
        try:
            with zipfile.ZipFile(zip_path) as zip_file:
                names = set(zip_file.namelist())

                def read(table: str) -> Optional[pd.DataFrame]:
                    name = f"{table}.txt"
                    if name not in names:
                        return None
                    with zip_file.open(name) as fh:
                        return _read_table(fh)

                self._load_tables(read, str(zip_path))
        except zipfile.BadZipFile as e:
            logger.error(f"Failed to load GTFS data: {e}")
            raise

    def _load_tables(self, read: TableReader, source: str) -> None:
        frames = {}
        for table in REQUIRED_TABLES:
            frame = read(table)
            if frame is None:
                logger.error(f"Failed to load GTFS data: {table}.txt missing from {source}")
                raise FileNotFoundError(f"{table}.txt not found in {source}")
            frames[table] = frame

        self.clear()
        self._load_stops(frames["stops"])
        self._load_routes(frames["routes"])
        self._load_trips(frames["trips"])
        self._load_stop_times(frames["stop_times"])

        shapes = read("shapes")
        if shapes is not None:
            self._load_shapes(shapes)

        logger.info(
            f"Loaded {len(self.stations)} stations, {len(self.routes)} routes, "
            f"{len(self.trips)} trips and {len(self.shapes)} shapes"
        )

    def _load_stops(self, df: pd.DataFrame) -> None:
        """Parse stops.txt and create Stop objects."""
        df = _integer_ids(df, "stop_id", "stops")
        lats = pd.to_numeric(_column(df, "stop_lat"), errors="coerce")
        lons = pd.to_numeric(_column(df, "stop_lon"), errors="coerce")
        location_types = pd.to_numeric(_column(df, "location_type", "0"), errors="coerce").fillna(0).astype(int)
        valid = lats.notna() & lons.notna()

        for stop_id, name, lat, lon, location_type, stop_code in zip(
            df["stop_id"][valid],
            _column(df, "stop_name")[valid],
            lats[valid],
            lons[valid],
            location_types[valid],
            _column(df, "stop_code")[valid],
        ):
            stop = Stop(
                stop_id=int(stop_id),
                name=name,
                latitude=float(lat),
                longitude=float(lon),
                location_type=int(location_type),
                stop_code=stop_code or None,
            )
            self.stations[stop.stop_id] = stop
            self.stations_by_name.setdefault(stop.name, []).append(stop.stop_id)

    def _load_routes(self, df: pd.DataFrame) -> None:
        """Parse routes.txt."""
        df = _integer_ids(df, "route_id", "routes")
        route_types = pd.to_numeric(_column(df, "route_type", "3"), errors="coerce").fillna(3).astype(int)
        short_names = _column(df, "route_short_name")
        long_names = _column(df, "route_long_name")
        colors = _column(df, "route_color")

        for route_id, short_name, long_name, route_type, color in zip(
            df["route_id"], short_names, long_names, route_types, colors
        ):
            self.routes[int(route_id)] = Route(
                route_id=int(route_id),
                short_name=short_name or long_name or str(route_id),
                long_name=long_name,
                route_type=int(route_type),
                color=color,
            )

    def _load_trips(self, df: pd.DataFrame) -> None:
        """Parse trips.txt."""
        df = _integer_ids(df, "route_id", "trips")
        directions = pd.to_numeric(_column(df, "direction_id"), errors="coerce")

        for trip_id, route_id, headsign, direction_id, shape_id in zip(
            _column(df, "trip_id"), df["route_id"], _column(df, "trip_headsign"), directions, _column(df, "shape_id")
        ):
            if not trip_id:
                continue
            self.trips[trip_id] = Trip(
                trip_id=trip_id,
                route_id=int(route_id),
                headsign=headsign or None,
                direction_id=None if pd.isna(direction_id) else int(direction_id),
                shape_id=shape_id or None,
            )

    def _load_stop_times(self, df: pd.DataFrame) -> None:
        """Parse stop_times.txt and map stops to the routes serving them."""
        df = _integer_ids(df, "stop_id", "stop_times")
        sequences = pd.to_numeric(_column(df, "stop_sequence"), errors="coerce")
        df = df.loc[sequences.notna()]

        for trip_id, stop_id, sequence in zip(_column(df, "trip_id"), df["stop_id"], sequences[df.index]):
            if not trip_id:
                continue
            self.stop_times.append(StopTime(trip_id=trip_id, stop_id=int(stop_id), stop_sequence=int(sequence)))

            trip = self.trips.get(trip_id)
            if trip is not None:
                self.routes_by_stop.setdefault(int(stop_id), set()).add(trip.route_id)

        logger.debug(f"Populated routes for {len(self.routes_by_stop)} stations")

    def _load_shapes(self, df: pd.DataFrame) -> None:
        """Parse shapes.txt into one RouteShape per shape_id."""
        df = df.assign(
            shape_id=_column(df, "shape_id"),
            shape_pt_sequence=pd.to_numeric(_column(df, "shape_pt_sequence"), errors="coerce"),
            shape_pt_lat=pd.to_numeric(_column(df, "shape_pt_lat"), errors="coerce"),
            shape_pt_lon=pd.to_numeric(_column(df, "shape_pt_lon"), errors="coerce"),
        ).dropna(subset=["shape_pt_sequence", "shape_pt_lat", "shape_pt_lon"])
        df = df[df["shape_id"] != ""]

        for shape_id, points in df.sort_values("shape_pt_sequence").groupby("shape_id", sort=False):
            self.shapes[shape_id] = build_route_shape(
                shape_id,
                [Position(float(lat), float(lon)) for lat, lon in zip(points["shape_pt_lat"], points["shape_pt_lon"])],
            )

    @property
    def stops(self) -> List[Stop]:
        return list(self.stations.values())

    def get_station(self, stop_id: int) -> Stop:
        """Get station by stop_id."""
        if stop_id not in self.stations:
            raise ValueError(f"Station {stop_id} not found")
        return self.stations[stop_id]

    def find_stations_by_name(self, name: str) -> List[Stop]:
        """Find stations by name (partial match)."""
        results = []
        name_lower = name.lower()

        for station_name, stop_ids in self.stations_by_name.items():
            if name_lower in station_name.lower():
                for stop_id in stop_ids:
                    results.append(self.stations[stop_id])

        return results

    def get_routes_for_station(self, stop_id: int) -> List[int]:
        return sorted(self.routes_by_stop.get(stop_id, set()))

    def get_shape_for_trip(self, trip_id: str) -> Optional[RouteShape]:
        trip = self.trips.get(trip_id)
        if trip is None or not trip.shape_id:
            return None
        return self.shapes.get(trip.shape_id)

    def clear(self) -> None:
        """Clear all loaded data to free memory."""
        self.stations.clear()
        self.stations_by_name.clear()
        self.routes.clear()
        self.trips.clear()
        self.stop_times.clear()
        self.shapes.clear()
        self.routes_by_stop.clear()
        logger.info("Cleared GTFS data from memory")
