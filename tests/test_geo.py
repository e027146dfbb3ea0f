"""
Great-circle distance, ETA and coordinate validation.
"""
import math

import pytest

from tindo.core.geo import EARTH_RADIUS_M, estimate_eta_minutes, haversine_m, is_valid_coordinate


def test_same_point_is_zero():
    assert haversine_m(12.9716, 77.5946, 12.9716, 77.5946) == 0.0


def test_one_degree_of_latitude():
    expected = EARTH_RADIUS_M * math.pi / 180
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected, rel=1e-9)


def test_small_jitter_is_under_five_meters():
    # ~1.5 m apart: below the publisher's movement threshold
    d = haversine_m(12.9716, 77.5946, 12.97161, 77.59461)
    assert 1.0 < d < 5.0, f"got {d}"


def test_distance_is_symmetric():
    a = haversine_m(12.9716, 77.5946, 13.0827, 80.2707)
    b = haversine_m(13.0827, 80.2707, 12.9716, 77.5946)
    assert a == pytest.approx(b)
    assert 280_000 < a < 300_000  # Bengaluru to Chennai


def test_eta_rounds_up_whole_minutes():
    assert estimate_eta_minutes(5_000, 30.0) == 10
    assert estimate_eta_minutes(5_001, 30.0) == 11
    assert estimate_eta_minutes(0, 30.0) == 0


def test_eta_rejects_non_positive_speed():
    with pytest.raises(ValueError):
        estimate_eta_minutes(1_000, 0)


@pytest.mark.parametrize(
    "lat,lng,valid",
    [
        (12.9716, 77.5946, True),
        (0.0, 0.0, True),
        (-90.0, 180.0, True),
        (None, 77.5, False),
        (12.9, None, False),
        (91.0, 0.0, False),
        (0.0, -180.5, False),
        (float("nan"), 0.0, False),
    ],
)
def test_is_valid_coordinate(lat, lng, valid):
    assert is_valid_coordinate(lat, lng) is valid
