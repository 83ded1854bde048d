from typing import Any, Dict, Iterator, Tuple
import logging

from .coordinates import BBox, Coordinates, update_bounds
from .datetimes import Datetime
from .errors import Disposition, MissingAttributeError
from .sensor import Sensor

logger = logging.getLogger(__name__)


class Measurement:
    """
    A single converted observation.

    The raw value is evaluated against the sensor metric on construction.
    Values that fail evaluation become None, with a flag attached when the
    failure carries one (sentinels and out of range values).
    """

    def __init__(self, sensor: Sensor, timestamp: Datetime, value: Any, coordinates: Coordinates | None = None):
        if sensor is None:
            raise MissingAttributeError("sensor", value)
        if timestamp is None:
            raise MissingAttributeError("timestamp", value)

        reading = sensor.metric.evaluate(value)
        self.sensor = sensor
        self.timestamp = timestamp
        self.raw = value
        self.value = reading.value
        self.flags: Tuple[str, ...] = reading.flags
        self.disposition: Disposition | None = reading.disposition
        self.coordinates = coordinates

    @property
    def key(self) -> str:
        # keyed on the UTC instant so offsets of the same moment collide
        return f"{self.sensor.key}-{self.timestamp.to_utc()}"

    def json(self) -> dict:
        data = {
            "key": self.sensor.key,
            "timestamp": str(self.timestamp),
            "value": self.value,
        }
        if self.flags:
            data["flags"] = list(self.flags)
        if self.coordinates is not None:
            data["coordinates"] = self.coordinates.json()
        return data


class Measurements:
    """
    All measurements of a run keyed by sensor and timestamp.

    A second measurement for the same sensor and instant replaces the first.
    The collection keeps the running time range and bounding box.
    """

    def __init__(self):
        self._measurements: Dict[str, Measurement] = {}
        self.datetime_from: Datetime | None = None
        self.datetime_to: Datetime | None = None
        self.bounds: BBox | None = None
        self.replaced = 0

    def add(self, measurement: Measurement) -> Measurement:
        if measurement.coordinates is not None:
            self.bounds = update_bounds(measurement.coordinates, self.bounds)

        timestamp = measurement.timestamp
        self.datetime_to = timestamp if self.datetime_to is None else timestamp.greater_of(self.datetime_to)
        self.datetime_from = timestamp if self.datetime_from is None else timestamp.lesser_of(self.datetime_from)

        key = measurement.key
        if key in self._measurements:
            self.replaced += 1
            logger.debug(f"Replacing measurement {key}")
        self._measurements[key] = measurement
        return measurement

    def get(self, key: str) -> Measurement | None:
        return self._measurements.get(key)

    def __len__(self) -> int:
        return len(self._measurements)

    def __iter__(self) -> Iterator[Measurement]:
        return iter(self._measurements.values())

    def json(self) -> list[dict]:
        return [m.json() for m in self]
