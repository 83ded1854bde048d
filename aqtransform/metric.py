from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Tuple
import logging

from .errors import (
    Disposition,
    HighValueError,
    LowValueError,
    MissingValueError,
    ProviderValueError,
    TransformError,
    UnsupportedParameterError,
    UnsupportedUnitsError,
)
from .utils import is_missing, to_number

logger = logging.getLogger(__name__)

Converter = Callable[[float], float]

PROVIDER_VALUE_FLAGS = (-99, -999, "-99", "-999")


def _same(d: float) -> float:
    return d


def _times(factor: float) -> Converter:
    return lambda d: d * factor


def _per(divisor: float) -> Converter:
    return lambda d: d / divisor


@dataclass(frozen=True)
class Parameter:
    name: str
    units: str
    converters: Dict[str, Converter]
    numeric: bool = True
    range: Tuple[float, float] | None = None
    precision: int | None = None

    @property
    def supported_units(self) -> list[str]:
        return list(self.converters.keys())


MASS_CONVERTERS = {
    "ug/m3": _same,
    "ugm3": _same,
    "µg/m³": _same,
    "mg/m3": _times(1000),
}

PARTS_CONVERTERS = {
    "ppm": _same,
    "ppb": _per(1000),
}

# canonical key -> definition. Several keys may share a name, the unit decides which one applies.
PARAMETERS: Dict[str, Parameter] = {
    "pm1:mass": Parameter("pm1", "ug/m3", MASS_CONVERTERS),
    "pm25:mass": Parameter("pm25", "ug/m3", MASS_CONVERTERS),
    "pm10:mass": Parameter("pm10", "ug/m3", MASS_CONVERTERS),
    "o3:parts": Parameter("o3", "ppm", PARTS_CONVERTERS),
    "o3:mass": Parameter("o3", "ug/m3", MASS_CONVERTERS),
    "no2:parts": Parameter("no2", "ppm", PARTS_CONVERTERS),
    "no2:mass": Parameter("no2", "ug/m3", MASS_CONVERTERS),
    "so2:parts": Parameter("so2", "ppm", PARTS_CONVERTERS),
    "so2:mass": Parameter("so2", "ug/m3", MASS_CONVERTERS),
    "co:parts": Parameter("co", "ppm", PARTS_CONVERTERS),
    "co:mass": Parameter("co", "ug/m3", MASS_CONVERTERS),
    "temperature": Parameter(
        "temperature",
        "c",
        {
            "c": _same,
            "f": lambda d: (d - 32) * 5 / 9,
            "k": lambda d: d - 273.15,
        },
        range=(-50, 50),
        precision=1,
    ),
    "relativehumidity": Parameter("relativehumidity", "%", {"%": _same, "percent": _same}, range=(0, 100)),
    "pressure": Parameter(
        "pressure",
        "hpa",
        {"hpa": _same, "mb": _same, "kpa": _times(10)},
    ),
}


def supported_parameters() -> list[str]:
    return sorted({p.name for p in PARAMETERS.values()})


def round_half_up(value: float, precision: int) -> float:
    quantum = Decimal(1).scaleb(-precision)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class Reading:
    """Outcome of evaluating one raw value against a metric."""
    value: float | None
    flags: Tuple[str, ...] = ()
    disposition: Disposition | None = None
    error: TransformError | None = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.error is None


class Metric:
    """
    A parameter measured in a declared unit.

    Construction fails with UnsupportedParameterError when no definition has
    the requested name and with UnsupportedUnitsError when none of the
    definitions with that name accepts the unit.
    """

    __slots__ = ("key", "unit", "parameter", "_converter")

    def __init__(self, parameter: str, unit: str):
        candidates = {k: p for k, p in PARAMETERS.items() if p.name == parameter}
        if not candidates:
            raise UnsupportedParameterError(parameter, supported_parameters())

        lookup = str(unit).strip().lower() if unit is not None else None
        for key, definition in candidates.items():
            converters = {u.lower(): fn for u, fn in definition.converters.items()}
            if lookup in converters:
                object.__setattr__(self, "key", key)
                object.__setattr__(self, "unit", unit)
                object.__setattr__(self, "parameter", definition)
                object.__setattr__(self, "_converter", converters[lookup])
                return

        units = [u for p in candidates.values() for u in p.supported_units]
        raise UnsupportedUnitsError(parameter, unit, units)

    def __setattr__(self, name, value):
        raise AttributeError(f"Metric is immutable, cannot set '{name}'")

    def __eq__(self, other):
        if not isinstance(other, Metric):
            return NotImplemented
        return (self.key, self.unit) == (other.key, other.unit)

    def __hash__(self):
        return hash((self.key, self.unit))

    def __repr__(self):
        return f"Metric(key={self.key!r}, unit={self.unit!r})"

    @property
    def numeric(self) -> bool:
        return self.parameter.numeric

    @property
    def precision(self) -> int | None:
        return self.parameter.precision

    @property
    def range(self) -> Tuple[float, float] | None:
        return self.parameter.range

    def process(self, value: Any) -> Any:
        """Convert a raw value to the standard unit or raise a TransformError."""
        if is_missing(value):
            raise MissingValueError(value)

        number = to_number(value)
        if self.numeric and number is None:
            raise ProviderValueError(value)

        # sentinels win over conversion even though they are numeric
        if value in PROVIDER_VALUE_FLAGS:
            raise ProviderValueError(value)

        if not self.numeric:
            return self._converter(value)

        converted = self._converter(number)
        if self.precision is not None:
            converted = round_half_up(converted, self.precision)

        if self.range is not None:
            low, high = self.range
            if converted < low:
                raise LowValueError(converted, low)
            if converted > high:
                raise HighValueError(converted, high)

        return converted

    def evaluate(self, value: Any) -> Reading:
        """Same as process but returns a Reading instead of raising for bad values."""
        try:
            return Reading(self.process(value))
        except TransformError as e:
            flags = (e.flag,) if e.flag else ()
            logger.debug(f"{self.key}: {type(e).__name__} for value {value!r}")
            return Reading(None, flags, e.disposition, e)
