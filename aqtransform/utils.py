import math
import re
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Callable, Mapping

import jmespath
import pandas as pd


class _Undefined:
    """Marker for a field that is absent from a row (as opposed to present and null)."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNDEFINED"

    def __bool__(self):
        return False


UNDEFINED = _Undefined()

TRUTHY_VALUES = (1, True, "TRUE", "T", "True", "t", "true")
NULL_STRINGS = ("", "undefined")


@dataclass(frozen=True)
class PathExpression:
    """A jmespath query evaluated against a row or a fetched document."""
    expression: str
    type: str = "jmespath"

    def __post_init__(self):
        if self.type != "jmespath":
            raise ValueError(f"Unsupported path expression type '{self.type}'. Only 'jmespath' is supported")

    @cached_property
    def compiled(self):
        return jmespath.compile(self.expression)

    def search(self, data: Any) -> Any:
        return self.compiled.search(data)


@dataclass(frozen=True)
class Constant:
    """A field key that ignores the row and always yields the same value."""
    value: Any


FieldKey = str | PathExpression | Constant | Callable[[Any], Any]


def is_missing(value: Any) -> bool:
    if value is None or value is UNDEFINED:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if pd.api.types.is_scalar(value):
        return bool(pd.isna(value))
    return False


def is_null(value: Any) -> bool:
    if value is None or value is UNDEFINED:
        return True
    if isinstance(value, str):
        return value in NULL_STRINGS
    if isinstance(value, float):
        return math.isnan(value)
    return False


def strip_nulls(data: Mapping[str, Any]) -> dict:
    """Drop None, NaN, '' and 'undefined' values. False, 0 and [] are kept."""
    return {k: v for k, v in data.items() if not is_null(v)}


def truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip() in TRUTHY_VALUES
    try:
        return value in TRUTHY_VALUES
    except (TypeError, ValueError):
        return False


def clean_key(value: Any) -> str | None:
    """Normalize a free-text value so it can be used as part of a derived key."""
    if is_missing(value):
        return None
    value = str(value).strip()
    value = re.sub(r"\s+", "_", value)
    value = re.sub(r"[^\w]", "", value)
    return value.lower() or None


def to_number(value: Any) -> float | None:
    """Coerce a value to a finite float, or return None if that is not possible."""
    if isinstance(value, bool) or is_missing(value):
        return None
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def get_value_from_key(data: Any, key: FieldKey | None, as_number: bool = False) -> Any:
    """
    Extract a value from a row using a field key.

    Parameters
    ----------
    data : Any
        The row, usually a mapping.
    key : str, PathExpression, Constant or callable
        A field name, a jmespath query, a constant or a custom extractor.
    as_number : bool, optional
        Coerce present values to numbers. Integral values are returned as int.

    Returns
    -------
    Any
        The value, or UNDEFINED when the field is absent.
    """
    if key is None:
        return UNDEFINED

    if isinstance(key, Constant):
        value = key.value
    elif isinstance(key, PathExpression):
        value = key.search(data) if data is not None else None
    elif isinstance(key, str):
        value = data.get(key, UNDEFINED) if isinstance(data, Mapping) else UNDEFINED
    elif callable(key):
        value = key(data)
    else:
        raise TypeError(f"Invalid field key {key!r}. Expected a field name, PathExpression, Constant or callable")

    if as_number and not is_missing(value):
        number = to_number(value)
        if number is not None and number.is_integer():
            return int(number)
        return number

    return value


def describe_key(key: FieldKey | None) -> str:
    if isinstance(key, PathExpression):
        return f"{key.type}:{key.expression}"
    if isinstance(key, Constant):
        return f"constant:{key.value}"
    if isinstance(key, str):
        return key
    return getattr(key, "__name__", repr(key))
