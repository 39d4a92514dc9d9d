import math

import pytest

from tourlink.services.geo import Coordinate, coordinate_from_location, distance_km, make_coordinate


def test_distance_between_same_point_is_zero() -> None:
    p = Coordinate(longitude=31.1342, latitude=29.9792)
    assert distance_km(p, p) == 0.0


def test_distance_matches_known_city_pair() -> None:
    london = Coordinate(longitude=-0.1278, latitude=51.5074)
    paris = Coordinate(longitude=2.3522, latitude=48.8566)
    assert distance_km(london, paris) == pytest.approx(343.5, abs=1.0)
    assert distance_km(paris, london) == pytest.approx(distance_km(london, paris))


def test_one_degree_of_latitude() -> None:
    a = Coordinate(longitude=0.0, latitude=0.0)
    b = Coordinate(longitude=0.0, latitude=1.0)
    assert distance_km(a, b) == pytest.approx(6371 * math.pi / 180, rel=1e-9)


def test_nan_propagates() -> None:
    a = Coordinate(longitude=float("nan"), latitude=0.0)
    b = Coordinate(longitude=0.0, latitude=0.0)
    assert math.isnan(distance_km(a, b))


@pytest.mark.parametrize(
    "location",
    [
        None,
        {},
        {"coordinates": None},
        {"coordinates": [12.5]},
        {"coordinates": ["east", 41.9]},
        {"coordinates": [12.5, float("nan")]},
        {"coordinates": [200.0, 41.9]},
        {"coordinates": [12.5, -91.0]},
        "POINT(12.5 41.9)",
    ],
)
def test_invalid_locations_have_no_coordinate(location) -> None:
    assert coordinate_from_location(location) is None


def test_geojson_order_is_longitude_then_latitude() -> None:
    coord = coordinate_from_location({"type": "Point", "coordinates": [12.4922, 41.8902]})
    assert coord == Coordinate(longitude=12.4922, latitude=41.8902)


def test_zero_is_a_valid_coordinate() -> None:
    assert make_coordinate(0, 0) == Coordinate(longitude=0.0, latitude=0.0)
    assert make_coordinate("12.5", "41.9") == Coordinate(longitude=12.5, latitude=41.9)
    assert make_coordinate(True, 1.0) is None
