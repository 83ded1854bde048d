from functools import lru_cache
from typing import Any, List
import logging

from pyproj import Transformer
from pyproj.exceptions import CRSError, ProjError

from .errors import (
    InvalidPrecisionError,
    InvalidProjectionError,
    LatitudeBoundsError,
    LongitudeBoundsError,
    MissingAttributeError,
)
from .utils import is_missing, to_number

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"
WGS84_ALIASES = (WGS84, "WGS84", "wgs84", "epsg:4326")

# [min_longitude, min_latitude, max_longitude, max_latitude]
BBox = List[float]


@lru_cache(maxsize=32)
def get_transformer(projection: str) -> Transformer:
    return Transformer.from_crs(projection, WGS84, always_xy=True)


class Coordinates:
    """Point coordinates in any projection, exposed as WGS84 latitude/longitude."""

    def __init__(self, x: Any, y: Any, projection: str | None = None):
        x_value, y_value = to_number(x), to_number(y)
        if x_value is None:
            raise MissingAttributeError("x", x)
        if y_value is None:
            raise MissingAttributeError("y", y)

        self.x = x_value
        self.y = y_value
        self.projection = WGS84 if is_missing(projection) else str(projection)

        if self.projection in WGS84_ALIASES:
            self.longitude, self.latitude = self.x, self.y
        else:
            try:
                self.longitude, self.latitude = get_transformer(self.projection).transform(self.x, self.y)
            except (CRSError, ProjError) as e:
                raise InvalidProjectionError(self.projection, e)
            logger.debug(f"Reprojected ({self.x}, {self.y}) from {self.projection} to {WGS84}")

        validate_coordinates(self.latitude, self.longitude, precision=None)

    def json(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "proj": WGS84,
        }

    def __repr__(self):
        return f"Coordinates(latitude={self.latitude}, longitude={self.longitude})"


def count_decimals(value: float) -> int:
    if float(value).is_integer():
        return 0
    text = repr(float(value))
    if "e-" in text:
        mantissa, exponent = text.split("e-")
        decimals = len(mantissa.split(".")[1]) if "." in mantissa else 0
        return decimals + int(exponent)
    return len(text.split(".")[1])


def validate_coordinates(latitude: float, longitude: float, precision: int | None = 3) -> None:
    """Raise a LocationError when coordinates are out of bounds or too coarse."""
    if latitude < -90 or latitude > 90:
        raise LatitudeBoundsError(latitude)
    if longitude < -180 or longitude > 180:
        raise LongitudeBoundsError(longitude)
    if precision is None:
        return
    if count_decimals(latitude) < precision:
        raise InvalidPrecisionError(latitude, precision)
    if count_decimals(longitude) < precision:
        raise InvalidPrecisionError(longitude, precision)


def update_bounds(coordinates: Coordinates, bounds: BBox | None) -> BBox:
    """Return a new bounding box that also covers ``coordinates``."""
    x, y = coordinates.longitude, coordinates.latitude
    if not bounds:
        return [x, y, x, y]
    return [
        min(bounds[0], x),
        min(bounds[1], y),
        max(bounds[2], x),
        max(bounds[3], y),
    ]


def union_bounds(first: BBox | None, second: BBox | None) -> BBox | None:
    if not first:
        return list(second) if second else None
    if not second:
        return list(first)
    return [
        min(first[0], second[0]),
        min(first[1], second[1]),
        max(first[2], second[2]),
        max(first[3], second[3]),
    ]
