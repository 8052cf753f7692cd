"""
Run configuration for CSV imports.

Callers hand in the camelCase option mapping stored on ``ImportRun.params_json``;
``ImportParams.coerce`` turns it into an immutable, validated object that the
pipeline components read from.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping


class ImportAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    CREATE_AND_UPDATE = "createAndUpdate"


DEFAULT_DELIMITER = ","
DEFAULT_TEXT_QUALIFIER = '"'
DEFAULT_DATE_FORMAT = "YYYY-MM-DD"
DEFAULT_TIME_FORMAT = "HH:mm"
DEFAULT_DECIMAL_MARK = "."
DEFAULT_TIMEZONE = "UTC"

PERSON_NAME_FORMATS = ("f l", "l f", "l, f", "f m l", "l f m")


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _coerce_update_by(value: Any) -> tuple[int, ...]:
    if value in (None, ""):
        return ()
    if isinstance(value, (str, int)):
        value = str(value).split(",")
    indexes: list[int] = []
    for item in value:
        try:
            index = int(str(item).strip())
        except ValueError:
            continue
        if index >= 0 and index not in indexes:
            indexes.append(index)
    return tuple(indexes)


@dataclass(frozen=True)
class ImportParams:
    """Immutable configuration applied to every row of a run."""

    delimiter: str = DEFAULT_DELIMITER
    text_qualifier: str = DEFAULT_TEXT_QUALIFIER
    header_row: bool = False
    action: ImportAction = ImportAction.CREATE
    update_by: tuple[int, ...] = ()
    default_values: Mapping[str, Any] = field(default_factory=dict)
    date_format: str = DEFAULT_DATE_FORMAT
    time_format: str = DEFAULT_TIME_FORMAT
    decimal_mark: str = DEFAULT_DECIMAL_MARK
    timezone: str = DEFAULT_TIMEZONE
    currency: str | None = None
    person_name_format: str | None = None
    skip_duplicate_checking: bool = False
    silent_mode: bool = False
    idle_mode: bool = False
    manual_mode: bool = False
    start_from_last_index: bool = False

    @classmethod
    def coerce(cls, options: Mapping[str, Any] | None = None) -> "ImportParams":
        """
        Build parameters from a camelCase option mapping.

        Empty strings fall back to defaults; an unknown ``action`` raises
        ``ValueError``.
        """

        options = dict(options or {})

        raw_action = options.get("action") or ImportAction.CREATE.value
        try:
            action = ImportAction(raw_action)
        except ValueError as exc:
            raise ValueError(
                f"Unsupported action '{raw_action}'. Expected one of: "
                + ", ".join(item.value for item in ImportAction)
            ) from exc

        default_values = options.get("defaultValues") or {}
        if not isinstance(default_values, Mapping):
            raise ValueError("defaultValues must be an object.")

        return cls(
            delimiter=options.get("delimiter") or DEFAULT_DELIMITER,
            text_qualifier=options.get("textQualifier") or DEFAULT_TEXT_QUALIFIER,
            header_row=_coerce_bool(options.get("headerRow")),
            action=action,
            update_by=_coerce_update_by(options.get("updateBy")),
            default_values=dict(default_values),
            date_format=options.get("dateFormat") or DEFAULT_DATE_FORMAT,
            time_format=options.get("timeFormat") or DEFAULT_TIME_FORMAT,
            decimal_mark=options.get("decimalMark") or DEFAULT_DECIMAL_MARK,
            timezone=options.get("timezone") or DEFAULT_TIMEZONE,
            currency=options.get("currency") or None,
            person_name_format=options.get("personNameFormat") or None,
            skip_duplicate_checking=_coerce_bool(options.get("skipDuplicateChecking")),
            silent_mode=_coerce_bool(options.get("silentMode")),
            idle_mode=_coerce_bool(options.get("idleMode")),
            manual_mode=_coerce_bool(options.get("manualMode")),
            start_from_last_index=_coerce_bool(options.get("startFromLastIndex")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the camelCase mapping persisted on the run."""

        return {
            "delimiter": self.delimiter,
            "textQualifier": self.text_qualifier,
            "headerRow": self.header_row,
            "action": self.action.value,
            "updateBy": list(self.update_by),
            "defaultValues": dict(self.default_values),
            "dateFormat": self.date_format,
            "timeFormat": self.time_format,
            "decimalMark": self.decimal_mark,
            "timezone": self.timezone,
            "currency": self.currency,
            "personNameFormat": self.person_name_format,
            "skipDuplicateChecking": self.skip_duplicate_checking,
            "silentMode": self.silent_mode,
            "idleMode": self.idle_mode,
            "manualMode": self.manual_mode,
            "startFromLastIndex": self.start_from_last_index,
        }

    def with_options(self, **changes: Any) -> "ImportParams":
        return replace(self, **changes)

    @property
    def matches_existing(self) -> bool:
        return self.action in (ImportAction.UPDATE, ImportAction.CREATE_AND_UPDATE)


def mapped_attribute_count(attribute_list: Iterable[str | None]) -> int:
    return sum(1 for attribute in attribute_list if attribute)
