import datetime as dt
import logging
from typing import Any

import pytz

from .errors import FutureDatetimeError, InvalidDatetimeError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"
UTC_ZONES = ("UTC", "Etc/UTC")


def utcnow() -> dt.datetime:
    return dt.datetime.now(pytz.utc)


def get_timezone(name: str | dt.tzinfo) -> dt.tzinfo:
    if isinstance(name, dt.tzinfo):
        return name
    try:
        return pytz.timezone(name)
    except pytz.exceptions.UnknownTimeZoneError:
        raise InvalidDatetimeError("Unknown timezone", name)


def _localize(value: dt.datetime, tz: dt.tzinfo) -> dt.datetime:
    if hasattr(tz, "localize"):
        return tz.localize(value)
    return value.replace(tzinfo=tz)


def _is_utc(tz: dt.tzinfo) -> bool:
    if tz is pytz.utc or tz is dt.timezone.utc:
        return True
    return getattr(tz, "zone", None) in UTC_ZONES


class Datetime:
    """
    A timezone aware instant plus the timezone it should be rendered in.

    Parameters
    ----------
    value : str, int, float, datetime.datetime or Datetime
        Strings are parsed as ISO-8601 unless ``format`` is given. Numbers are
        epoch seconds. Plain datetimes need ``timezone``.
    format : str, optional
        strptime pattern used to parse string input.
    timezone : str, optional
        Zone the input is expressed in. Conflicts with an offset already
        carried by the input.
    location_timezone : str, optional
        Zone used by ``to_local``. Defaults to the input zone.
    allow_future : bool, optional
        Accept instants after now. Off by default.
    """

    __slots__ = ("input", "format", "timezone", "location_timezone", "date")

    def __init__(
        self,
        value: Any,
        format: str | None = None,
        timezone: str | None = None,
        location_timezone: str | None = None,
        allow_future: bool = False,
    ):
        if format and "%z" in format and timezone:
            raise InvalidDatetimeError(
                f"You cannot include both the %z directive in your format ({format}) and a timezone", timezone
            )

        self.input = value
        self.format = format
        self.timezone = timezone
        self.location_timezone = location_timezone or timezone

        if isinstance(value, Datetime):
            date, zone = value.date, value.location_zone
        else:
            date, zone = self._parse(value)

        if self.location_timezone is None:
            self.location_timezone = zone

        self.date = date

        if not allow_future and date > utcnow():
            raise FutureDatetimeError("Datetime cannot be in the future", value)

    def _parse(self, value: Any) -> tuple[dt.datetime, dt.tzinfo]:
        if value is None or isinstance(value, bool) or (isinstance(value, str) and not value.strip()):
            raise InvalidDatetimeError("Input required", value)

        if isinstance(value, (int, float)):
            try:
                date = dt.datetime.fromtimestamp(value, pytz.utc)
            except (OverflowError, OSError, ValueError) as e:
                raise InvalidDatetimeError(f"Invalid epoch seconds ({e})", value)
            return date, pytz.utc

        if isinstance(value, dt.datetime):
            if not self.timezone:
                raise InvalidDatetimeError("Input of type datetime must include a timezone", value)
            tz = get_timezone(self.timezone)
            date = _localize(value, tz) if value.tzinfo is None else value.astimezone(tz)
            return date, tz

        if not isinstance(value, str):
            raise InvalidDatetimeError(f"Unsupported input type {type(value).__name__}", value)

        text = value.strip()
        try:
            if self.format:
                parsed = dt.datetime.strptime(text, self.format)
            else:
                parsed = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidDatetimeError(f"Failed to parse date string with format '{self.format}' ({e})", value)

        if parsed.tzinfo is not None:
            if self.timezone:
                tz = get_timezone(self.timezone)
                if parsed.utcoffset() != parsed.astimezone(tz).utcoffset():
                    raise InvalidDatetimeError(
                        f"Input carries an offset that conflicts with the timezone {self.timezone}", value
                    )
                return parsed.astimezone(tz), tz
            return parsed, parsed.tzinfo

        if self.timezone:
            tz = get_timezone(self.timezone)
        else:
            logger.debug(f"No timezone given for naive datetime '{value}', assuming {DEFAULT_TIMEZONE}")
            tz = get_timezone(DEFAULT_TIMEZONE)
        return _localize(parsed, tz), tz

    @classmethod
    def now(cls, offset: int | float | dt.timedelta | None = None) -> "Datetime":
        """Current time in UTC, optionally shifted back by ``offset`` seconds."""
        date = utcnow()
        if isinstance(offset, dt.timedelta):
            date = date - offset
        elif offset:
            date = date - dt.timedelta(seconds=offset)
        return cls(date, timezone=DEFAULT_TIMEZONE)

    @property
    def location_zone(self) -> dt.tzinfo:
        return get_timezone(self.location_timezone)

    def to_datetime(self) -> dt.datetime:
        return self.date

    def is_greater_than(self, other: "Datetime") -> bool:
        return self.date > other.date

    def is_less_than(self, other: "Datetime") -> bool:
        return self.date < other.date

    def greater_of(self, other: "Datetime") -> "Datetime":
        return self if self.date >= other.date else other

    def lesser_of(self, other: "Datetime") -> "Datetime":
        return self if self.date <= other.date else other

    @staticmethod
    def _render(date: dt.datetime, fmt: str | None) -> str:
        if fmt:
            return date.strftime(fmt)
        text = date.isoformat(timespec="seconds")
        if _is_utc(date.tzinfo):
            text = text.replace("+00:00", "Z")
        return text

    def to_utc(self, fmt: str | None = None) -> str:
        return self._render(self.date.astimezone(pytz.utc), fmt)

    def to_local(self, fmt: str | None = None) -> str:
        zone = self.location_zone
        return self._render(self.date.astimezone(zone), fmt)

    def __str__(self):
        return self.to_local()

    def __repr__(self):
        return f"Datetime({self.to_local()!r})"

    def __eq__(self, other):
        if not isinstance(other, Datetime):
            return NotImplemented
        return self.date == other.date

    def __lt__(self, other):
        if not isinstance(other, Datetime):
            return NotImplemented
        return self.date < other.date

    def __gt__(self, other):
        if not isinstance(other, Datetime):
            return NotImplemented
        return self.date > other.date

    def __le__(self, other):
        return self == other or self < other

    def __ge__(self, other):
        return self == other or self > other

    def __hash__(self):
        return hash(self.date)
