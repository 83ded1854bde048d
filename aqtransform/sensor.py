from typing import Any, Dict, Mapping
import logging

from .flag import Flag
from .metric import Metric
from .utils import strip_nulls

logger = logging.getLogger(__name__)


class Sensor:
    """
    One metric measured by a system.

    The key is derived from the system key, the metric key and the optional
    instance and version date. Those fields cannot be changed after
    construction.
    """

    def __init__(
        self,
        system_key: str,
        metric: Metric,
        averaging_interval_secs: int | None = None,
        logging_interval_secs: int | None = None,
        status: str | None = None,
        version_date: str | None = None,
        instance: str | None = None,
    ):
        if not isinstance(metric, Metric):
            raise TypeError(f"Sensor requires a Metric. Got {type(metric).__name__}")
        self._system_key = system_key
        self._metric = metric
        self._version_date = version_date
        self._instance = instance
        self.averaging_interval_secs = averaging_interval_secs
        self.logging_interval_secs = (
            logging_interval_secs if logging_interval_secs is not None else averaging_interval_secs
        )
        self.status = status
        self.flags: Dict[str, Flag] = {}
        logger.debug(f"Adding new sensor: {self.key}")

    @staticmethod
    def create_key(
        system_key: str,
        metric: Metric,
        instance: str | None = None,
        version_date: str | None = None,
    ) -> str:
        parts = [metric.key]
        if instance:
            parts.append(str(instance))
        if version_date:
            parts.append(str(version_date))
        return f"{system_key}-{':'.join(parts)}"

    @property
    def system_key(self) -> str:
        return self._system_key

    @property
    def metric(self) -> Metric:
        return self._metric

    @property
    def version_date(self) -> str | None:
        return self._version_date

    @property
    def instance(self) -> str | None:
        return self._instance

    @property
    def key(self) -> str:
        return Sensor.create_key(self._system_key, self._metric, self._instance, self._version_date)

    def add_flag(self, data: Flag | Mapping[str, Any]) -> Flag:
        flag = data if isinstance(data, Flag) else Flag.from_row(self.key, data)
        logger.debug(f"Adding flag ({flag.key}) to sensor ({self.key})")
        self.flags[flag.key] = flag
        return flag

    def json(self) -> dict:
        return strip_nulls({
            "key": self.key,
            "version_date": self.version_date,
            "status": self.status,
            "instance": self.instance,
            "parameter": self.metric.key,
            "units": self.metric.parameter.units,
            "averaging_interval_secs": self.averaging_interval_secs,
            "logging_interval_secs": self.logging_interval_secs,
            "flags": [f.json() for f in self.flags.values()],
        })
