"""Tests for nearest-candidate selection on a spherical earth."""

import math

import pytest
from delivery.errors import NoEligibleCandidate
from delivery.worker.geo import EARTH_RADIUS_KM, coordinates_of, haversine_km, nearest

ORIGIN = {"latitude": 0.0, "longitude": 0.0}


def _candidate(candidate_id, latitude, longitude):
    return {"id": candidate_id, "latitude": latitude, "longitude": longitude}


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(12.97, 77.59, 12.97, 77.59) == 0.0

    def test_one_degree_of_latitude(self):
        expected = EARTH_RADIUS_KM * math.pi / 180
        assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected)

    def test_antipodal_points(self):
        assert haversine_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * EARTH_RADIUS_KM)

    def test_symmetric(self):
        a = haversine_km(51.5074, -0.1278, 48.8566, 2.3522)
        b = haversine_km(48.8566, 2.3522, 51.5074, -0.1278)
        assert a == pytest.approx(b)
        assert a == pytest.approx(343.5, abs=1.0)


class TestCoordinatesOf:
    def test_mapping_with_full_keys(self):
        assert coordinates_of({"latitude": 1, "longitude": 2}) == (1.0, 2.0)

    def test_mapping_with_short_keys(self):
        assert coordinates_of({"lat": 1.5, "lon": -2.5}) == (1.5, -2.5)

    def test_object_attributes(self):
        class Point:
            latitude = 10.0
            longitude = 20.0

        assert coordinates_of(Point()) == (10.0, 20.0)

    @pytest.mark.parametrize(
        "source",
        [
            None,
            {},
            {"latitude": 1.0},
            {"latitude": None, "longitude": 1.0},
            {"latitude": "12.9", "longitude": "77.5"},
            {"latitude": True, "longitude": 1.0},
            {"latitude": float("nan"), "longitude": 1.0},
            {"latitude": 1.0, "longitude": float("inf")},
            {"latitude": 91.0, "longitude": 0.0},
            {"latitude": 0.0, "longitude": -180.5},
        ],
    )
    def test_unusable_coordinates(self, source):
        assert coordinates_of(source) is None


class TestNearest:
    def test_picks_closest_candidate(self):
        far = _candidate("far", 0.045, 0.0)
        close = _candidate("close", 0.018, 0.0)

        result = nearest(ORIGIN, [far, close])

        assert result.candidate is close
        assert result.distance_km == pytest.approx(2.0, abs=0.01)

    def test_singleton_is_returned_regardless_of_distance(self):
        only = _candidate("only", -33.86, 151.21)

        result = nearest(ORIGIN, [only])

        assert result.candidate is only
        assert result.distance_km > 10_000

    def test_ties_go_to_first_encountered(self):
        first = _candidate("first", 0.01, 0.0)
        second = _candidate("second", -0.01, 0.0)

        assert nearest(ORIGIN, [first, second]).candidate is first
        assert nearest(ORIGIN, [second, first]).candidate is second

    def test_invalid_entries_are_skipped(self):
        valid = _candidate("valid", 0.5, 0.5)
        candidates = [
            {"id": "missing"},
            _candidate("text", "north", "east"),
            _candidate("out-of-range", 120.0, 0.0),
            valid,
        ]

        assert nearest(ORIGIN, candidates).candidate is valid

    def test_accepts_any_iterable(self):
        candidates = (c for c in [_candidate("a", 1.0, 1.0), _candidate("b", 0.1, 0.1)])
        assert nearest(ORIGIN, candidates).candidate["id"] == "b"

    def test_empty_candidates(self):
        with pytest.raises(NoEligibleCandidate):
            nearest(ORIGIN, [])

    def test_all_candidates_invalid(self):
        with pytest.raises(NoEligibleCandidate):
            nearest(ORIGIN, [{"id": "x"}, _candidate("y", None, None)])

    def test_invalid_origin(self):
        with pytest.raises(ValueError):
            nearest({"latitude": 200.0, "longitude": 0.0}, [_candidate("a", 0.0, 0.0)])
