from typing import Any, Dict, Iterator
import logging

from .coordinates import BBox, Coordinates, update_bounds
from .errors import MissingAttributeError
from .system import System
from .utils import is_missing, strip_nulls

logger = logging.getLogger(__name__)


class Location:
    """
    A monitoring site, keyed by provider and site id.

    Systems are created lazily the first time a manufacturer/model
    combination is referenced. The averaging/logging interval and status
    are defaults inherited by sensors that do not declare their own.
    """

    def __init__(
        self,
        provider: str,
        site_id: Any,
        site_name: str | None = None,
        label: str | None = None,
        owner: str | None = None,
        license: str | None = None,
        ismobile: bool = False,
        coordinates: Coordinates | None = None,
        averaging_interval_secs: int | None = None,
        logging_interval_secs: int | None = None,
        sensor_status: str | None = None,
    ):
        self._provider = provider
        self._site_id = str(site_id) if not is_missing(site_id) else None
        self._key = Location.create_key(provider, self._site_id)
        self.site_name = site_name
        self.label = label
        self.owner = owner
        self.license = license
        self.ismobile = ismobile
        self.coordinates = coordinates
        self.averaging_interval_secs = averaging_interval_secs
        self.logging_interval_secs = (
            logging_interval_secs if logging_interval_secs is not None else averaging_interval_secs
        )
        self.sensor_status = sensor_status
        self.systems: Dict[str, System] = {}
        logger.debug(f"Adding new location: {self._key}")

    @staticmethod
    def create_key(provider: str, site_id: Any) -> str:
        if is_missing(provider) or is_missing(site_id):
            raise MissingAttributeError(
                "site_id", f"Both a provider and site id are required to build a location key: {provider} & {site_id}"
            )
        return f"{provider}-{site_id}"

    @property
    def key(self) -> str:
        return self._key

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def site_id(self) -> str:
        return self._site_id

    def get_system(self, manufacturer_name: str | None = None, model_name: str | None = None) -> System:
        key = System.create_key(self.key, manufacturer_name, model_name)
        system = self.systems.get(key)
        if system is None:
            system = System(self.key, manufacturer_name, model_name)
            self.systems[key] = system
        return system

    @property
    def sensors_count(self) -> int:
        return sum(len(s.sensors) for s in self.systems.values())

    def json(self) -> dict:
        return strip_nulls({
            "key": self.key,
            "site_id": self.site_id,
            "site_name": self.site_name,
            "coordinates": self.coordinates.json() if self.coordinates else None,
            "ismobile": self.ismobile,
            "systems": [s.json() for s in self.systems.values()],
        })


class Locations:
    """Insertion ordered collection of locations that tracks their bounding box."""

    def __init__(self):
        self._locations: Dict[str, Location] = {}
        self.bounds: BBox | None = None

    def add(self, location: Location) -> Location:
        if location.coordinates is not None:
            self.bounds = update_bounds(location.coordinates, self.bounds)
        self._locations[location.key] = location
        return location

    def get(self, key: str) -> Location | None:
        return self._locations.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._locations

    def __len__(self) -> int:
        return len(self._locations)

    def __iter__(self) -> Iterator[Location]:
        return iter(self._locations.values())

    @property
    def systems_count(self) -> int:
        return sum(len(l.systems) for l in self)

    @property
    def sensors_count(self) -> int:
        return sum(l.sensors_count for l in self)

    def json(self) -> list[dict]:
        return [l.json() for l in self]
