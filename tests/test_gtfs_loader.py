"""Tests for GTFS static data loading."""

import tempfile
import unittest
import zipfile
import sys
from pathlib import Path

# Add src to path so we can import stationboard
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stationboard.gtfs_loader import GTFSLoader
from stationboard.models import RouteType

STOPS_TXT = """stop_id,stop_code,stop_name,stop_lat,stop_lon,location_type
100,A1,Main Square,50.0,14.4,0
101,,Main Square North,50.0005,14.4,
102,C3,Library,50.005,14.4,1
N1,,Entrance without numeric id,50.1,14.5,2
"""

ROUTES_TXT = """route_id,route_short_name,route_long_name,route_type,route_color
10,10,Square - Library,0,FF0000
20,,Night Line,3,
"""

TRIPS_TXT = """route_id,service_id,trip_id,trip_headsign,direction_id,shape_id
10,WD,T1,Library,0,SH1
10,WD,T2,Main Square,1,
20,WD,T3,,,
"""

STOP_TIMES_TXT = """trip_id,arrival_time,departure_time,stop_id,stop_sequence
T1,08:00:00,08:00:00,100,0
T1,08:01:00,08:01:00,101,1
T1,08:03:00,08:03:00,102,2
T2,09:00:00,09:00:00,102,0
T2,09:03:00,09:03:00,100,1
T3,23:00:00,23:00:00,101,0
"""

SHAPES_TXT = """shape_id,shape_pt_lat,shape_pt_lon,shape_pt_sequence
SH1,50.005,14.4,3
SH1,50.0,14.4,1
SH1,50.0025,14.4001,2
"""

TABLES = {
    "stops.txt": STOPS_TXT,
    "routes.txt": ROUTES_TXT,
    "trips.txt": TRIPS_TXT,
    "stop_times.txt": STOP_TIMES_TXT,
    "shapes.txt": SHAPES_TXT,
}


class TestGTFSLoader(unittest.TestCase):
    """Test loading from a feed directory and a feed archive."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self._tmp.name)
        for name, content in TABLES.items():
            (self.directory / name).write_text(content, encoding="utf-8")

    def tearDown(self):
        self._tmp.cleanup()

    def _loaded(self) -> GTFSLoader:
        loader = GTFSLoader()
        loader.load_from_directory(self.directory)
        return loader

    def test_load_stops(self):
        loader = self._loaded()

        self.assertEqual(set(loader.stations), {100, 101, 102})
        station = loader.get_station(100)
        self.assertEqual(station.name, "Main Square")
        self.assertEqual(station.stop_code, "A1")
        self.assertAlmostEqual(station.latitude, 50.0)
        self.assertEqual(loader.stations[101].stop_code, None)
        self.assertEqual(loader.stations[101].location_type, 0)
        self.assertEqual(loader.stations[102].location_type, 1)

    def test_non_numeric_stop_id_is_skipped(self):
        with self.assertLogs("stationboard.gtfs_loader", level="WARNING"):
            loader = self._loaded()
        self.assertEqual(len(loader.stops), 3)

    def test_load_routes(self):
        loader = self._loaded()

        self.assertEqual(loader.routes[10].short_name, "10")
        self.assertEqual(loader.routes[10].route_type, RouteType.TRAM)
        self.assertEqual(loader.routes[10].color, "FF0000")
        self.assertEqual(loader.routes[20].short_name, "Night Line")

    def test_load_trips(self):
        loader = self._loaded()

        self.assertEqual(loader.trips["T1"].route_id, 10)
        self.assertEqual(loader.trips["T1"].headsign, "Library")
        self.assertEqual(loader.trips["T1"].direction_id, 0)
        self.assertEqual(loader.trips["T1"].shape_id, "SH1")
        self.assertIsNone(loader.trips["T3"].direction_id)
        self.assertIsNone(loader.trips["T3"].shape_id)

    def test_stop_times_and_routes_by_stop(self):
        loader = self._loaded()

        self.assertEqual(len(loader.stop_times), 6)
        self.assertEqual(loader.get_routes_for_station(101), [10, 20])
        self.assertEqual(loader.get_routes_for_station(102), [10])
        self.assertEqual(loader.get_routes_for_station(999), [])

    def test_shapes_are_ordered_by_sequence(self):
        loader = self._loaded()

        shape = loader.get_shape_for_trip("T1")
        self.assertEqual(shape.shape_id, "SH1")
        self.assertEqual([round(p.lat, 4) for p in shape.points], [50.0, 50.0025, 50.005])
        self.assertEqual(len(shape.segments), 2)
        self.assertIsNone(loader.get_shape_for_trip("T2"))
        self.assertIsNone(loader.get_shape_for_trip("UNKNOWN"))

    def test_shapes_are_optional(self):
        (self.directory / "shapes.txt").unlink()
        loader = self._loaded()
        self.assertEqual(loader.shapes, {})
        self.assertEqual(len(loader.trips), 3)

    def test_shape_ids_are_stripped(self):
        (self.directory / "shapes.txt").write_text(
            "shape_id,shape_pt_lat,shape_pt_lon,shape_pt_sequence\n"
            " SH1 ,50.0,14.4,1\n"
            " SH1 ,50.005,14.4,2\n"
            ",50.01,14.4,3\n",
            encoding="utf-8",
        )
        loader = self._loaded()

        self.assertEqual(list(loader.shapes), ["SH1"])
        self.assertEqual(len(loader.get_shape_for_trip("T1").points), 2)

    def test_shapes_without_shape_id_column(self):
        (self.directory / "shapes.txt").write_text(
            "shape_pt_lat,shape_pt_lon,shape_pt_sequence\n50.0,14.4,1\n", encoding="utf-8"
        )
        loader = self._loaded()
        self.assertEqual(loader.shapes, {})

    def test_missing_required_table(self):
        (self.directory / "stop_times.txt").unlink()
        loader = GTFSLoader()
        with self.assertRaises(FileNotFoundError):
            loader.load_from_directory(self.directory)

    def test_load_from_zip(self):
        zip_path = self.directory / "feed.zip"
        with zipfile.ZipFile(zip_path, "w") as zip_file:
            for name, content in TABLES.items():
                zip_file.writestr(name, content)

        loader = GTFSLoader()
        loader.load_from_zip(zip_path)

        self.assertEqual(len(loader.stops), 3)
        self.assertEqual(len(loader.trips), 3)
        self.assertIn("SH1", loader.shapes)

    def test_bad_zip(self):
        bad = self.directory / "broken.zip"
        bad.write_bytes(b"not a zip archive")
        with self.assertRaises(zipfile.BadZipFile):
            GTFSLoader().load_from_zip(bad)

    def test_find_stations_by_name(self):
        loader = self._loaded()

        results = loader.find_stations_by_name("main square")
        self.assertEqual({stop.stop_id for stop in results}, {100, 101})
        self.assertEqual(loader.find_stations_by_name("Nowhere"), [])

    def test_get_station_not_found(self):
        loader = self._loaded()
        with self.assertRaises(ValueError):
            loader.get_station(999)

    def test_reload_replaces_data(self):
        loader = self._loaded()
        (self.directory / "stops.txt").write_text(
            "stop_id,stop_name,stop_lat,stop_lon\n500,Depot,50.2,14.6\n", encoding="utf-8"
        )
        loader.load_from_directory(self.directory)
        self.assertEqual(set(loader.stations), {500})

    def test_clear(self):
        loader = self._loaded()
        loader.clear()

        self.assertEqual(loader.stations, {})
        self.assertEqual(loader.stop_times, [])
        self.assertEqual(loader.routes_by_stop, {})


if __name__ == "__main__":
    unittest.main()
