import math

import pytest

from routing.geo import EARTH_RADIUS_KM, distance_between, distance_km


def test_distance_to_self_is_zero():
    assert distance_km(6.4541, 3.3947, 6.4541, 3.3947) == 0


def test_distance_is_symmetric():
    lagos = (6.5244, 3.3792)
    abuja = (9.0765, 7.3986)
    assert distance_between(lagos, abuja) == pytest.approx(distance_between(abuja, lagos))


def test_one_degree_of_latitude():
    # one degree along a meridian is R * pi / 180
    assert distance_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(EARTH_RADIUS_KM * math.pi / 180)


def test_antipodal_points_are_half_the_circumference():
    assert distance_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(20015.0, abs=1.0)
    assert distance_km(90.0, 0.0, -90.0, 0.0) == pytest.approx(math.pi * EARTH_RADIUS_KM)


def test_lagos_to_abuja_is_roughly_525km():
    assert distance_km(6.5244, 3.3792, 9.0765, 7.3986) == pytest.approx(525, abs=15)
