"""
Raw cell text to typed attribute values.

Coercion is lenient: malformed dates become ``None``, malformed numbers become
zero. The one exception is structured JSON, which raises
``StructuredValueError`` because a corrupt payload cannot be defaulted.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..contracts import AttributeDescriptor, AttributeType
from ..exceptions import StructuredValueError
from .params import DEFAULT_DATE_FORMAT, DEFAULT_TIME_FORMAT, ImportParams

logger = logging.getLogger(__name__)

DATE_FORMATS: Mapping[str, str] = {
    "YYYY-MM-DD": "%Y-%m-%d",
    "DD-MM-YYYY": "%d-%m-%Y",
    "MM-DD-YYYY": "%m-%d-%Y",
    "MM/DD/YYYY": "%m/%d/%Y",
    "DD/MM/YYYY": "%d/%m/%Y",
    "DD.MM.YYYY": "%d.%m.%Y",
    "MM.DD.YYYY": "%m.%d.%Y",
    "YYYY.MM.DD": "%Y.%m.%d",
}

# strptime matches %p case-insensitively, so "a" and "A" share a pattern
TIME_FORMATS: Mapping[str, str] = {
    "HH:mm": "%H:%M",
    "HH:mm:ss": "%H:%M:%S",
    "hh:mm a": "%I:%M %p",
    "hh:mma": "%I:%M%p",
    "hh:mm A": "%I:%M %p",
    "hh:mmA": "%I:%M%p",
}

DATE_OUTPUT = "%Y-%m-%d"
DATETIME_OUTPUT = "%Y-%m-%d %H:%M:%S"

_FLOAT_PREFIX = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?")
_INT_PREFIX = re.compile(r"^\s*[-+]?\d+")
_NON_NUMERIC = re.compile(r"[^A-Za-z0-9\-]")


def leading_float(text: str) -> float:
    match = _FLOAT_PREFIX.match(text)
    return float(match.group(0)) if match else 0.0


def leading_int(text: str) -> int:
    match = _INT_PREFIX.match(text)
    return int(match.group(0)) if match else 0


def truncate(value: Any, max_length: int | None) -> Any:
    """Cut text to ``max_length`` characters."""
    if not isinstance(value, str) or not max_length:
        return value
    return value[:max_length]


class ValueCoercer:
    """Converts raw cell strings per attribute type using one run's params."""

    def __init__(self, params: ImportParams) -> None:
        self.params = params
        self.date_pattern = DATE_FORMATS.get(params.date_format, DATE_FORMATS[DEFAULT_DATE_FORMAT])
        self.time_pattern = TIME_FORMATS.get(params.time_format, TIME_FORMATS[DEFAULT_TIME_FORMAT])
        self.source_zone = self._resolve_zone(params.timezone)
        self._handlers: dict[AttributeType, Callable[[AttributeDescriptor, str], Any]] = {
            AttributeType.DATE: self._date,
            AttributeType.DATETIME: self._datetime,
            AttributeType.FLOAT: self._float,
            AttributeType.INT: self._int,
            AttributeType.BOOL: self._bool,
            AttributeType.JSON_OBJECT: self._json_object,
            AttributeType.JSON_ARRAY: self._json_array,
        }

    @staticmethod
    def _resolve_zone(name: str | None):
        if not name or name.upper() == "UTC":
            return timezone.utc
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown import timezone %r; falling back to UTC", name)
            return timezone.utc

    def coerce(self, descriptor: AttributeDescriptor, raw: str) -> Any:
        handler = self._handlers.get(descriptor.type)
        if handler is None:
            return self.prepare(descriptor, raw)
        return handler(descriptor, raw)

    def prepare(self, descriptor: AttributeDescriptor | None, value: Any) -> Any:
        """Apply text constraints; only bounded varchar attributes are touched."""
        if descriptor is None or descriptor.type is not AttributeType.VARCHAR:
            return value
        return truncate(value, descriptor.max_length)

    def _date(self, descriptor: AttributeDescriptor, raw: str) -> str | None:
        try:
            parsed = datetime.strptime(raw.strip(), self.date_pattern)
        except ValueError:
            return None
        return parsed.strftime(DATE_OUTPUT)

    def _datetime(self, descriptor: AttributeDescriptor, raw: str) -> str | None:
        try:
            parsed = datetime.strptime(raw.strip(), f"{self.date_pattern} {self.time_pattern}")
        except ValueError:
            return None
        localized = parsed.replace(tzinfo=self.source_zone)
        return localized.astimezone(timezone.utc).strftime(DATETIME_OUTPUT)

    def _float(self, descriptor: AttributeDescriptor, raw: str) -> float:
        parts = raw.split(self.params.decimal_mark)
        whole = _NON_NUMERIC.sub("", parts[0])
        if len(parts) > 1:
            return leading_float(f"{whole}.{parts[1]}")
        return leading_float(whole)

    def _int(self, descriptor: AttributeDescriptor, raw: str) -> int:
        return leading_int(raw)

    def _bool(self, descriptor: AttributeDescriptor, raw: str) -> bool:
        return bool(raw) and raw.lower() != "false" and raw != "0"

    def _json_object(self, descriptor: AttributeDescriptor, raw: str) -> Any:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StructuredValueError(descriptor.name, raw, exc.msg) from exc

    def _json_array(self, descriptor: AttributeDescriptor, raw: str) -> list[Any] | None:
        if not raw:
            return None
        if raw.startswith("["):
            try:
                return json.loads(raw)
            except json.JSONDecodeError as exc:
                raise StructuredValueError(descriptor.name, raw, exc.msg) from exc
        return raw.split(",")
