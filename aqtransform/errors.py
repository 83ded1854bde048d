import enum
from typing import Any, Iterable


class Disposition(enum.Enum):
    """What the pipeline does with a row or value that raised."""
    NULL_VALUE = "null_value"
    FLAGGED = "flagged"
    SKIP = "skip"
    FATAL = "fatal"


def _join(values: Iterable[Any]) -> str:
    return ", ".join(str(v) for v in values)


def flag_text(value: Any) -> str:
    """Render a provider value as flag text, e.g. -99.0 -> '-99'."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class AQTransformError(Exception):
    disposition = Disposition.FATAL


## Per-row transform errors

class TransformError(AQTransformError, ValueError):
    disposition = Disposition.SKIP
    flag: str | None = None

    def __init__(self, message: str, value: Any = None):
        super().__init__(f"{message}. Client provided '{value}'.")
        self.value = value
        self.raw = value


class MissingAttributeError(TransformError):
    def __init__(self, attribute: str, value: Any = None):
        super().__init__(f"Missing '{attribute}' attribute", value)
        self.attribute = attribute


class MissingValueError(TransformError):
    disposition = Disposition.NULL_VALUE

    def __init__(self, value: Any = None):
        super().__init__("Value is required", value)
        self.value = None


class ProviderValueError(TransformError):
    disposition = Disposition.FLAGGED

    def __init__(self, value: Any):
        super().__init__("Provider flagged value", value)
        self.flag = flag_text(value)
        self.value = None


class HighValueError(TransformError):
    disposition = Disposition.FLAGGED
    flag = "HighValue"

    def __init__(self, value: float, max_value: float):
        super().__init__(f"Value must be lower than {max_value}", value)
        self.max_value = max_value


class LowValueError(TransformError):
    disposition = Disposition.FLAGGED
    flag = "LowValue"

    def __init__(self, value: float, min_value: float):
        super().__init__(f"Value must be greater than {min_value}", value)
        self.min_value = min_value


class InvalidDatetimeError(TransformError):
    pass


class FutureDatetimeError(InvalidDatetimeError):
    pass


class LocationError(TransformError):
    pass


class LatitudeBoundsError(LocationError):
    def __init__(self, value: float):
        super().__init__("Latitude must be between -90 and 90 degrees", value)


class LongitudeBoundsError(LocationError):
    def __init__(self, value: float):
        super().__init__("Longitude must be between -180 and 180 degrees", value)


class InvalidPrecisionError(LocationError):
    def __init__(self, value: float, precision: int):
        super().__init__(f"Latitude and longitude must be precise to {precision} decimal places", value)
        self.precision = precision


class InvalidProjectionError(LocationError):
    def __init__(self, value: Any, reason: Any = None):
        message = "Could not reproject coordinates"
        if reason is not None:
            message = f"{message} ({reason})"
        super().__init__(message, value)


## Configuration errors

class ConfigurationError(AQTransformError):
    disposition = Disposition.FATAL

    def __init__(self, message: str, value: Any = None):
        super().__init__(message)
        self.value = value


class UnsupportedParameterError(ConfigurationError):
    """
    Raised for parameter names with no definition.

    Fatal by default. Measurement and flag rows naming a parameter the
    provider does not map are raised with ``Disposition.SKIP``.
    """

    def __init__(self, parameter: Any, supported: Iterable[str] = (), disposition: Disposition = Disposition.FATAL):
        super().__init__(
            f"Parameter currently unsupported. Currently supporting {_join(supported)}. Client provided '{parameter}'.",
            parameter,
        )
        self.parameter = parameter
        self.disposition = disposition


class UnsupportedUnitsError(ConfigurationError):
    def __init__(self, parameter: str, unit: Any, supported: Iterable[str] = ()):
        super().__init__(
            f"Unsupported units for '{parameter}'. Currently supporting {_join(supported)}. Client provided '{unit}'.",
            unit,
        )
        self.parameter = parameter
        self.unit = unit


class ResourceConfigError(ConfigurationError):
    pass


## Resource errors

class ResourceError(AQTransformError):
    disposition = Disposition.SKIP
    kind = "fetch"

    def __init__(self, url: str, error: Any, status_code: int | None = None):
        super().__init__(f"Could not {self.kind} {url}: {error}")
        self.url = url
        self.error = error
        self.status_code = status_code


class FetchError(ResourceError):
    kind = "fetch"


class ParseError(ResourceError):
    kind = "parse"


## Terminal errors

class TerminalError(AQTransformError):
    disposition = Disposition.FATAL


class NoResourceError(TerminalError):
    def __init__(self, message: str = "No resource was configured for this client"):
        super().__init__(message)


class ParserOutputError(TerminalError):
    def __init__(self, output: Any):
        super().__init__(f"Parser did not return an object or a list. Got {type(output).__name__}")
        self.output = output


class DocumentFormatError(TerminalError):
    pass
