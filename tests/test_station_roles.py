"""Tests for station role classification and the drop-off indicator."""

import unittest
import sys
from pathlib import Path

# Add src to path so we can import stationboard
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stationboard.models import StationRole, StationVehicle, StopTime, Trip, Vehicle
from stationboard.station_roles import (
    StationRoleCache,
    aggregate_roles_to_route,
    calculate_roles_for_trip,
    is_station_end_for_trip,
    should_show_station_drop_off_indicator,
)


def _stop_times(trip_id, stop_ids):
    return [StopTime(trip_id=trip_id, stop_id=stop_id, stop_sequence=seq) for seq, stop_id in enumerate(stop_ids)]


def _station_vehicle(vehicle_id, trip_id):
    return StationVehicle(
        vehicle=Vehicle(vehicle_id=vehicle_id, latitude=50.0, longitude=14.4, trip_id=trip_id),
        route=None,
        trip=None,
    )


class TestTripRoles(unittest.TestCase):
    """Test per-trip start and end detection."""

    def setUp(self):
        self.stop_times = _stop_times("T1", [100, 101, 102]) + _stop_times("T2", [102, 101, 100])

    def test_start_and_end_of_trip(self):
        roles = calculate_roles_for_trip(Trip("T1", 7), self.stop_times)
        self.assertEqual(roles.trip_id, "T1")
        self.assertEqual(roles.route_id, 7)
        self.assertEqual(roles.start_station, 100)
        self.assertEqual(roles.end_station, 102)

    def test_unordered_stop_times(self):
        """Stop times are ordered by sequence, not by input position."""
        stop_times = [
            StopTime("T3", 5, 2),
            StopTime("T3", 3, 0),
            StopTime("T3", 4, 1),
        ]
        roles = calculate_roles_for_trip(Trip("T3", 1), stop_times)
        self.assertEqual(roles.start_station, 3)
        self.assertEqual(roles.end_station, 5)

    def test_trip_without_stop_times_is_unknown(self):
        roles = calculate_roles_for_trip(Trip("MISSING", 7), self.stop_times)
        self.assertEqual(roles.start_station, 0)
        self.assertEqual(roles.end_station, 0)


class TestRouteAggregation(unittest.TestCase):
    """Test aggregation of trip roles into route roles."""

    def setUp(self):
        self.stop_times = _stop_times("T1", [100, 101, 102]) + _stop_times("T2", [102, 101, 100])
        self.trip_roles = [
            calculate_roles_for_trip(Trip("T1", 7), self.stop_times),
            calculate_roles_for_trip(Trip("T2", 7), self.stop_times),
        ]

    def test_turnaround_and_standard(self):
        """Both terminals of an out-and-back route are turnarounds."""
        result = aggregate_roles_to_route(self.trip_roles, self.stop_times)
        self.assertEqual(result.route_id, 7)
        self.assertEqual(result.stations[100], StationRole.TURNAROUND)
        self.assertEqual(result.stations[102], StationRole.TURNAROUND)
        self.assertEqual(result.stations[101], StationRole.STANDARD)

    def test_start_only_and_end_only(self):
        stop_times = _stop_times("T1", [1, 2, 3])
        result = aggregate_roles_to_route([calculate_roles_for_trip(Trip("T1", 9), stop_times)], stop_times)
        self.assertEqual(result.stations, {1: StationRole.START, 2: StationRole.STANDARD, 3: StationRole.END})

    def test_without_stop_times_only_terminals_are_emitted(self):
        result = aggregate_roles_to_route(self.trip_roles)
        self.assertEqual(set(result.stations), {100, 102})

    def test_unknown_sentinel_is_not_emitted(self):
        roles = self.trip_roles + [calculate_roles_for_trip(Trip("EMPTY", 7), [])]
        result = aggregate_roles_to_route(roles, self.stop_times)
        self.assertNotIn(0, result.stations)

    def test_stations_not_on_route_are_absent(self):
        result = aggregate_roles_to_route(self.trip_roles, self.stop_times + _stop_times("OTHER", [500, 501]))
        self.assertNotIn(500, result.stations)
        self.assertNotIn(501, result.stations)

    def test_empty_input(self):
        result = aggregate_roles_to_route([])
        self.assertEqual(result.stations, {})


class TestStationEnd(unittest.TestCase):
    """Test the end-of-trip point query."""

    def setUp(self):
        self.stop_times = _stop_times("T1", [100, 101, 102])

    def test_last_stop_is_end(self):
        self.assertTrue(is_station_end_for_trip(102, "T1", self.stop_times))

    def test_other_stops_are_not_end(self):
        self.assertFalse(is_station_end_for_trip(100, "T1", self.stop_times))
        self.assertFalse(is_station_end_for_trip(101, "T1", self.stop_times))

    def test_unknown_trip(self):
        self.assertFalse(is_station_end_for_trip(102, "NOPE", self.stop_times))


class TestDropOffIndicator(unittest.TestCase):
    """Test the drop-off-only station flag."""

    def setUp(self):
        self.stop_times = _stop_times("T1", [100, 101, 102]) + _stop_times("T2", [200, 101, 102])

    def test_no_vehicles(self):
        self.assertFalse(should_show_station_drop_off_indicator([], 102, self.stop_times))
        self.assertFalse(should_show_station_drop_off_indicator([], 102, self.stop_times))

    def test_all_vehicles_terminate_here(self):
        vehicles = [_station_vehicle(1, "T1"), _station_vehicle(2, "T2")]
        self.assertTrue(should_show_station_drop_off_indicator(vehicles, 102, self.stop_times))

    def test_vehicle_without_trip(self):
        vehicles = [_station_vehicle(1, "T1"), _station_vehicle(2, None)]
        self.assertFalse(should_show_station_drop_off_indicator(vehicles, 102, self.stop_times))

    def test_one_continuing_vehicle(self):
        vehicles = [_station_vehicle(1, "T1"), _station_vehicle(2, "T2")]
        self.assertFalse(should_show_station_drop_off_indicator(vehicles, 101, self.stop_times))


class TestStationRoleCache(unittest.TestCase):
    """Test role caching, freshness and invalidation."""

    def setUp(self):
        self.now = [1000.0]
        self.cache = StationRoleCache(ttl_seconds=60, clock=lambda: self.now[0])
        self.trips = [Trip("T1", 7), Trip("T2", 7), Trip("T3", 8)]
        self.stop_times = (
            _stop_times("T1", [100, 101, 102]) + _stop_times("T2", [102, 101, 100]) + _stop_times("T3", [101, 300])
        )

    def test_calculate_station_roles(self):
        self.cache.calculate_station_roles(self.trips, self.stop_times)

        self.assertIsNone(self.cache.error)
        self.assertEqual(self.cache.get_station_role(7, 100), StationRole.TURNAROUND)
        self.assertEqual(self.cache.get_station_role(8, 101), StationRole.START)
        self.assertEqual(self.cache.get_station_role(8, 300), StationRole.END)
        self.assertEqual(
            self.cache.get_roles_for_station(101, [7, 8]), {7: StationRole.STANDARD, 8: StationRole.START}
        )

    def test_unknown_pair_is_standard(self):
        self.cache.calculate_station_roles(self.trips, self.stop_times)
        self.assertEqual(self.cache.get_station_role(99, 100), StationRole.STANDARD)

    def test_freshness_expires(self):
        self.assertFalse(self.cache.is_data_fresh())
        self.cache.calculate_station_roles(self.trips, self.stop_times)
        self.assertTrue(self.cache.is_data_fresh())

        self.now[0] += 61
        self.assertFalse(self.cache.is_data_fresh())

    def test_failed_recompute_keeps_previous_roles(self):
        self.cache.calculate_station_roles(self.trips, self.stop_times)
        self.cache.calculate_station_roles([], [])

        self.assertIsNotNone(self.cache.error)
        self.assertFalse(self.cache.is_data_fresh())
        self.assertEqual(self.cache.get_station_role(7, 100), StationRole.TURNAROUND)

    def test_invalidate_with_empty_data_clears(self):
        self.cache.calculate_station_roles(self.trips, self.stop_times)
        self.cache.invalidate_cache([], [])

        self.assertEqual(self.cache.station_roles, {})
        self.assertIsNotNone(self.cache.error)

    def test_invalidate_recomputes(self):
        self.cache.calculate_station_roles(self.trips, self.stop_times)
        self.cache.invalidate_cache(self.trips[2:], self.stop_times)

        self.assertEqual(set(self.cache.station_roles), {8})
        self.assertIsNone(self.cache.error)

    def test_ensure_fresh_only_recomputes_when_stale(self):
        self.cache.ensure_fresh(self.trips, self.stop_times)
        first = self.cache.last_calculated

        self.now[0] += 30
        self.cache.ensure_fresh(self.trips, self.stop_times)
        self.assertEqual(self.cache.last_calculated, first)

        self.now[0] += 31
        self.cache.ensure_fresh(self.trips, self.stop_times)
        self.assertEqual(self.cache.last_calculated, self.now[0])


if __name__ == "__main__":
    unittest.main()
