"""Split a combined person name into first / middle / last components."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PersonName:
    first_name: str | None
    last_name: str | None
    middle_name: str | None = None

    def as_attributes(self, suffix: str = "Name") -> dict[str, str | None]:
        """``{"firstName": ..., "lastName": ...}`` plus middle when parsed."""
        values = {f"first{suffix}": self.first_name, f"last{suffix}": self.last_name}
        if self.middle_name is not None:
            values[f"middle{suffix}"] = self.middle_name
        return values


def _split(value: str, separator: str) -> tuple[str, str] | None:
    # a separator in the first position does not count as a split point
    position = value.find(separator)
    if position <= 0:
        return None
    return value[:position].strip(), value[position + 1 :].strip()


def parse_person_name(value: str, name_format: str | None) -> PersonName:
    """
    Parse ``value`` according to ``name_format`` (``"f l"``, ``"l f"``,
    ``"l, f"``, ``"f m l"`` or ``"l f m"``).

    Anything that cannot be split, including an unknown format, lands in
    the last name.
    """

    fallback = PersonName(first_name=None, last_name=value)

    if name_format in ("f l", "l f", "l, f"):
        parts = _split(value, "," if name_format == "l, f" else " ")
        if parts is None:
            return fallback
        if name_format == "f l":
            return PersonName(first_name=parts[0], last_name=parts[1])
        return PersonName(first_name=parts[1], last_name=parts[0])

    if name_format == "f m l":
        parts = _split(value, " ")
        if parts is None:
            return fallback
        first, rest = parts
        inner = _split(rest, " ")
        if inner is None:
            return PersonName(first_name=first, last_name=rest)
        return PersonName(first_name=first, middle_name=inner[0], last_name=inner[1])

    if name_format == "l f m":
        parts = _split(value, " ")
        if parts is None:
            return fallback
        last, rest = parts
        inner = _split(rest, " ")
        if inner is None:
            return PersonName(first_name=rest, last_name=last)
        return PersonName(first_name=inner[0], middle_name=inner[1], last_name=last)

    return fallback


class PersonNameParser:
    """Parser bound to one run's configured name format."""

    def __init__(self, name_format: str | None) -> None:
        self.name_format = name_format

    def parse(self, value: str) -> PersonName:
        return parse_person_name(value, self.name_format)
