from collections import namedtuple

import pytest

from hrms_engine.services.geofence import GeofenceService

Zone = namedtuple("Zone", "name latitude longitude radius_m")

HQ = Zone("HQ", 18.5204, 73.8567, 200)


def test_haversine_known_distance():
    # one degree of latitude is ~111.2 km
    d = GeofenceService.calculate_distance(0, 0, 1, 0)
    assert d == pytest.approx(111195, rel=1e-3)


def test_inside_any_zone_is_valid():
    far = Zone("Far", 19.0760, 72.8777, 500)
    res = GeofenceService.check_zones(18.5205, 73.8568, [far, HQ])
    assert res.inside is True
    assert res.zone_name == "HQ"
    assert res.distance_m < 200


def test_five_km_from_a_200m_zone_is_rejected():
    res = GeofenceService.check_zones(18.5204 + 0.045, 73.8567, [HQ])
    assert res.inside is False
    assert res.zone_name is None
    assert res.distance_m == pytest.approx(5004, rel=1e-2)


def test_no_zones_fails_closed():
    res = GeofenceService.check_zones(18.5204, 73.8567, [])
    assert res.inside is False
    assert res.distance_m is None


def test_non_positive_radius_never_matches():
    res = GeofenceService.check_zones(18.5204, 73.8567, [Zone("Zero", 18.5204, 73.8567, 0)])
    assert res.inside is False


@pytest.mark.parametrize("lat,lng", [(None, 73.8567), (18.5204, None), (float("nan"), 73.8567), ("abc", 1)])
def test_missing_or_bad_coordinates_are_rejected(lat, lng):
    assert GeofenceService.check_zones(lat, lng, [HQ]).inside is False
