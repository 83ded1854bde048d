from typing import Any, Mapping

from .errors import MissingAttributeError
from .utils import is_missing, strip_nulls


def _text(value: Any) -> str | None:
    if is_missing(value):
        return None
    return str(value)


class Flag:
    """A named condition on a sensor over the interval [starts, ends)."""

    def __init__(
        self,
        sensor_key: str,
        flag: str,
        starts: Any = None,
        ends: Any = None,
        note: str | None = None,
        key: str | None = None,
    ):
        if is_missing(flag):
            raise MissingAttributeError("flag", sensor_key)
        self.sensor_key = sensor_key
        self.flag = str(flag)
        self.starts = _text(starts)
        self.ends = _text(ends)
        self.note = _text(note)
        self.key = key or Flag.create_key(sensor_key, self.flag, self.starts)

    @staticmethod
    def create_key(sensor_key: str, flag: str, starts: str | None = None) -> str:
        return f"{sensor_key}-{flag}::{starts or 'infinity'}"

    @classmethod
    def from_row(cls, sensor_key: str, row: Mapping[str, Any]) -> "Flag":
        return cls(
            sensor_key=sensor_key,
            flag=row.get("flag"),
            starts=row.get("starts", row.get("datetime_from")),
            ends=row.get("ends", row.get("datetime_to")),
            note=row.get("note"),
            key=row.get("flag_key") or None,
        )

    def json(self) -> dict:
        return strip_nulls({
            "flag_id": self.key,
            "datetime_from": self.starts,
            "datetime_to": self.ends,
            "flag_name": self.flag,
            "note": self.note,
        })
