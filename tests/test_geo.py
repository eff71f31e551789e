"""Tests for distance helpers."""
import random

import pytest

from vastis.geo import haversine_km, simulated_distance_km


class TestHaversine:

    def test_same_point_is_zero(self):
        assert haversine_km(45.0, 9.0, 45.0, 9.0) == 0

    def test_one_degree_of_latitude(self):
        # 2 * pi * 6371 / 360
        assert haversine_km(0, 0, 1, 0) == pytest.approx(111.19, abs=0.01)

    def test_london_paris(self):
        assert haversine_km(51.5074, -0.1278, 48.8566, 2.3522) == pytest.approx(343.5, abs=1.0)

    def test_symmetric(self):
        a = haversine_km(40.7128, -74.0060, 34.0522, -118.2437)
        b = haversine_km(34.0522, -118.2437, 40.7128, -74.0060)
        assert a == pytest.approx(b)


class TestSimulatedDistance:

    def test_range(self):
        rng = random.Random(7)
        values = {simulated_distance_km(rng) for _ in range(500)}
        assert values == set(range(1, 11))
