from typing import Dict
import logging

from .sensor import Sensor
from .utils import strip_nulls

logger = logging.getLogger(__name__)

DEFAULT_NAME = "default"


class System:
    """An instrument (manufacturer + model) installed at a location."""

    def __init__(self, location_key: str, manufacturer_name: str | None = None, model_name: str | None = None):
        self.location_key = location_key
        self.manufacturer_name = manufacturer_name or DEFAULT_NAME
        self.model_name = model_name or DEFAULT_NAME
        self.sensors: Dict[str, Sensor] = {}

    @staticmethod
    def create_key(location_key: str, manufacturer_name: str | None = None, model_name: str | None = None) -> str:
        """
        The location key alone for the default system, otherwise both names
        with the missing one filled in as "default".
        """
        manufacturer_name = manufacturer_name or DEFAULT_NAME
        model_name = model_name or DEFAULT_NAME
        if manufacturer_name == DEFAULT_NAME and model_name == DEFAULT_NAME:
            return location_key
        return f"{location_key}-{manufacturer_name}-{model_name}"

    @property
    def key(self) -> str:
        return System.create_key(self.location_key, self.manufacturer_name, self.model_name)

    def add(self, sensor: Sensor) -> Sensor:
        if sensor.system_key != self.key:
            raise ValueError(f"Sensor {sensor.key} does not belong to system {self.key}")
        logger.debug(f"Adding sensor ({sensor.key}) to system ({self.key})")
        self.sensors[sensor.key] = sensor
        return sensor

    def json(self) -> dict:
        return strip_nulls({
            "key": self.key,
            "manufacturer_name": self.manufacturer_name,
            "model_name": self.model_name,
            "sensors": [s.json() for s in self.sensors.values()],
        })
