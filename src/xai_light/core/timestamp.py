"""
Nanosecond-precision time for headers, votes and trusting periods.

``Time`` is an absolute UTC instant. ``Timestamp`` is the two-field
``{seconds, nanos}`` wire message. For negative seconds the nanos field is a
magnitude that is subtracted, so ``Timestamp(-1, 5)`` is 1.000000005s before
the epoch.
"""

from __future__ import annotations

import re
import time as _time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping

from xai_light.core.lite_exceptions import InvalidTimestampError
from xai_light.core.serializers import parse_i64, require_field

NANOS_PER_SECOND = 1_000_000_000
I32_MIN = -(2**31)
I32_MAX = 2**31 - 1

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d{1,9}))?(Z|z|[+-]\d{2}:\d{2})$"
)


def timedelta_to_nanos(value: timedelta) -> int:
    return (value.days * 86400 + value.seconds) * NANOS_PER_SECOND + value.microseconds * 1000


@dataclass(frozen=True, order=True)
class Time:
    """Absolute UTC instant stored as nanoseconds since the Unix epoch."""

    unix_nanos: int

    @classmethod
    def now(cls) -> "Time":
        return cls(_time.time_ns())

    @classmethod
    def unix_epoch(cls) -> "Time":
        return cls(0)

    @classmethod
    def from_seconds(cls, seconds: int) -> "Time":
        return cls(seconds * NANOS_PER_SECOND)

    @classmethod
    def from_datetime(cls, value: datetime) -> "Time":
        if value.tzinfo is None:
            raise InvalidTimestampError("Naive datetimes are ambiguous; attach a timezone")
        return cls(timedelta_to_nanos(value - _EPOCH))

    def to_datetime(self) -> datetime:
        """Convert to an aware datetime, truncating below microsecond precision."""
        return _EPOCH + timedelta(microseconds=self.unix_nanos // 1000)

    @classmethod
    def parse_rfc3339(cls, value: str) -> "Time":
        if not isinstance(value, str):
            raise InvalidTimestampError(f"Timestamp must be an RFC 3339 string, got {value!r}")
        match = _RFC3339.match(value)
        if not match:
            raise InvalidTimestampError(f"Invalid RFC 3339 timestamp: {value!r}")
        date_part, clock_part, fraction, offset = match.groups()
        try:
            base = datetime.strptime(f"{date_part}T{clock_part}", "%Y-%m-%dT%H:%M:%S")
        except ValueError as exc:
            raise InvalidTimestampError(f"Invalid RFC 3339 timestamp: {value!r}") from exc

        if offset in ("Z", "z"):
            tz = timezone.utc
        else:
            sign = 1 if offset[0] == "+" else -1
            hours, minutes = int(offset[1:3]), int(offset[4:6])
            tz = timezone(sign * timedelta(hours=hours, minutes=minutes))

        whole = cls.from_datetime(base.replace(tzinfo=tz))
        nanos = int(fraction.ljust(9, "0")) if fraction else 0
        return cls(whole.unix_nanos + nanos)

    def to_rfc3339(self) -> str:
        """Format with trailing zeros of the fraction trimmed, like RFC3339Nano."""
        seconds, nanos = divmod(self.unix_nanos, NANOS_PER_SECOND)
        base = (_EPOCH + timedelta(seconds=seconds)).strftime("%Y-%m-%dT%H:%M:%S")
        if nanos:
            base += "." + f"{nanos:09d}".rstrip("0")
        return base + "Z"

    def duration_since(self, earlier: "Time") -> int:
        """Nanoseconds elapsed since ``earlier`` (negative if ``earlier`` is later)."""
        return self.unix_nanos - earlier.unix_nanos

    def __add__(self, other: timedelta) -> "Time":
        if not isinstance(other, timedelta):
            return NotImplemented
        return Time(self.unix_nanos + timedelta_to_nanos(other))

    def __sub__(self, other: timedelta) -> "Time":
        if not isinstance(other, timedelta):
            return NotImplemented
        return Time(self.unix_nanos - timedelta_to_nanos(other))

    def __str__(self) -> str:
        return self.to_rfc3339()


@dataclass(frozen=True)
class Timestamp:
    """``{seconds: int64, nanos: int32}`` wire form of an instant."""

    seconds: int
    nanos: int

    def __post_init__(self) -> None:
        if not I32_MIN <= self.nanos <= I32_MAX or abs(self.nanos) >= NANOS_PER_SECOND:
            raise InvalidTimestampError(f"Nanos out of range: {self.nanos}")
        if self.nanos < 0 and self.seconds != 0:
            raise InvalidTimestampError("Negative nanos are only valid with zero seconds")
        parse_i64(self.seconds, "seconds")

    def to_time(self) -> Time:
        if self.seconds >= 0:
            return Time(self.seconds * NANOS_PER_SECOND + self.nanos)
        return Time(self.seconds * NANOS_PER_SECOND - self.nanos)

    @classmethod
    def from_time(cls, value: Time) -> "Timestamp":
        total = value.unix_nanos
        if total >= 0:
            seconds, nanos = divmod(total, NANOS_PER_SECOND)
            return cls(seconds, nanos)
        seconds, nanos = divmod(-total, NANOS_PER_SECOND)
        if seconds == 0:
            # Less than one second before the epoch has no negative seconds to carry the sign.
            return cls(0, -nanos)
        return cls(-seconds, nanos)

    def to_dict(self) -> Dict[str, int]:
        return {"seconds": self.seconds, "nanos": self.nanos}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Timestamp":
        seconds = parse_i64(require_field(payload, "seconds"), "seconds")
        nanos = parse_i64(payload.get("nanos", 0), "nanos")
        return cls(seconds, nanos)
