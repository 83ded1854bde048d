import pytest

from aqtransform.coordinates import (
    Coordinates,
    count_decimals,
    union_bounds,
    update_bounds,
    validate_coordinates,
)
from aqtransform.errors import (
    InvalidPrecisionError,
    InvalidProjectionError,
    LatitudeBoundsError,
    LongitudeBoundsError,
    MissingAttributeError,
)


def test_wgs84_coordinates_pass_through():
    coords = Coordinates(-122.4194, 37.7749)
    assert coords.longitude == -122.4194
    assert coords.latitude == 37.7749
    assert coords.json() == {"latitude": 37.7749, "longitude": -122.4194, "proj": "EPSG:4326"}


def test_numeric_strings_are_accepted():
    coords = Coordinates("100.5", "13.75")
    assert coords.longitude == 100.5
    assert coords.latitude == 13.75


def test_web_mercator_is_reprojected():
    origin = Coordinates(0, 0, "EPSG:3857")
    assert origin.longitude == pytest.approx(0, abs=1e-9)
    assert origin.latitude == pytest.approx(0, abs=1e-9)

    edge = Coordinates(20037508.342789244, 0, "EPSG:3857")
    assert edge.longitude == pytest.approx(180, abs=1e-6)


def test_unknown_projection_raises():
    with pytest.raises(InvalidProjectionError):
        Coordinates(1, 1, "EPSG:999999")


def test_non_numeric_coordinates_raise():
    with pytest.raises(MissingAttributeError):
        Coordinates("abc", 1)
    with pytest.raises(MissingAttributeError):
        Coordinates(1, None)


def test_out_of_bounds_coordinates_raise():
    with pytest.raises(LatitudeBoundsError):
        Coordinates(0, 91)
    with pytest.raises(LongitudeBoundsError):
        Coordinates(-181, 0)


@pytest.mark.parametrize("value, expected", [(1.0, 0), (1.5, 1), (1.123, 3), (-45.12345, 5), (1e-05, 5)])
def test_count_decimals(value, expected):
    assert count_decimals(value) == expected


def test_validate_coordinates_checks_precision():
    validate_coordinates(10.123, 20.456)
    with pytest.raises(InvalidPrecisionError):
        validate_coordinates(10.12, 20.456)
    with pytest.raises(InvalidPrecisionError):
        validate_coordinates(10.123, 20.4)
    validate_coordinates(10.1, 20.4, precision=1)
    validate_coordinates(10, 20, precision=None)


def test_bounds_grow_to_cover_points():
    bounds = update_bounds(Coordinates(10, 20), None)
    assert bounds == [10, 20, 10, 20]
    bounds = update_bounds(Coordinates(-5, 30), bounds)
    assert bounds == [-5, 20, 10, 30]


def test_union_bounds():
    assert union_bounds(None, None) is None
    assert union_bounds([0, 0, 1, 1], None) == [0, 0, 1, 1]
    assert union_bounds(None, [0, 0, 1, 1]) == [0, 0, 1, 1]
    assert union_bounds([0, 0, 1, 1], [-1, 0.5, 0.5, 2]) == [-1, 0, 1, 2]
