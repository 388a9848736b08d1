"""InfluxDB line protocol encoding."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Union

from stack_acceptance.core.exceptions import LineProtocolError

FieldValue = Union[bool, int, float, str]


def _reject_newline(kind: str, value: str) -> None:
    # A raw newline ends the record, there is no escape for it
    if "\n" in value or "\r" in value:
        raise LineProtocolError(
            f"Newline not allowed in {kind}", details={kind: value}
        )


def _escape_measurement(value: str) -> str:
    _reject_newline("measurement", value)
    return value.replace(",", r"\,").replace(" ", r"\ ")


def _escape_key(value: str, kind: str = "key") -> str:
    # Tag keys, tag values and field keys share the same rules
    _reject_newline(kind, value)
    return value.replace(",", r"\,").replace("=", r"\=").replace(" ", r"\ ")


def _format_field_value(value: FieldValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and not math.isfinite(value):
        raise LineProtocolError(
            f"Field value must be finite, got {value!r}", details={"value": repr(value)}
        )
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    raise LineProtocolError(
        f"Unsupported field value type: {type(value).__name__}",
        details={"value": repr(value)},
    )


@dataclass
class Point:
    """A single measurement in line protocol form."""

    measurement: str
    fields: dict[str, FieldValue]
    tags: dict[str, str] = field(default_factory=dict)
    timestamp: int | None = None

    def to_line(self) -> str:
        """Encode as `measurement,tag=value field=value timestamp`."""
        if not self.measurement:
            raise LineProtocolError("Point has no measurement")
        if not self.fields:
            raise LineProtocolError(
                "Point has no fields", details={"measurement": self.measurement}
            )

        key = _escape_measurement(self.measurement)
        for tag_key, tag_value in self.tags.items():
            # Influx rejects empty tag values, so they are dropped
            if tag_value == "" or tag_value is None:
                continue
            key += f",{_escape_key(tag_key, 'tag key')}={_escape_key(str(tag_value), 'tag value')}"

        field_set = ",".join(
            f"{_escape_key(name, 'field key')}={_format_field_value(value)}"
            for name, value in self.fields.items()
        )

        line = f"{key} {field_set}"
        if self.timestamp is not None:
            line += f" {int(self.timestamp)}"
        return line

    @classmethod
    def now(
        cls,
        measurement: str,
        fields: dict[str, FieldValue],
        tags: dict[str, str] | None = None,
    ) -> "Point":
        """Point stamped with the current unix time in seconds."""
        return cls(measurement, fields, dict(tags or {}), int(time.time()))


def encode(points: list[Point]) -> str:
    """Encode several points, one per line."""
    return "\n".join(point.to_line() for point in points)
