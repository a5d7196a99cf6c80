"""
Field Value Validator — pure checks over a task type's assigned fields.

Stored values are always text. At this boundary each raw string is parsed
into a typed value (``NumberValue``, ``DateValue``, ``BoolValue``,
``TextValue``, ``OptionValue``), checked, then re-serialised to the
canonical text form that goes back to storage.

Checks run in three classes and stop at the first class with violations;
every offender within that class is reported:

  1. assignment — each submitted field must be assigned to the task type
  2. required   — each required assigned field needs a non-blank value,
                  either submitted or already stored (partial updates)
  3. type       — each submitted value must parse for its input type

Usage:
    from tracker.services.field_values import validate_field_values

    rows = validate_field_values(
        assigned_fields=fields,
        candidates=[{"field_id": 3, "value": "high"}],
        existing_values={4: "2025-01-31"},
    )
    # -> [{"field_id": 3, "value": "high"}]

No database access happens here; fields are any objects exposing
``id``, ``name``, ``input_type``, ``is_required`` and ``options``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, Mapping, Union

from tracker.core.exceptions import ValidationError

CANONICAL_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

# Canonical text is written out in full, so both bounds cap the stored length.
NUMBER_MAX_LENGTH = 40
NUMBER_MAX_EXPONENT = 30

CHECKBOX_TRUE = "true"
CHECKBOX_FALSE = "false"

MSG_NOT_ASSIGNED = "field not assigned to task type"
MSG_REQUIRED = "required field missing"
MSG_INVALID = "invalid value for field"


# ═════════════════════════════════════════════════════════════════════════════
# Typed values
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NumberValue:
    value: Decimal

    def to_storage(self) -> str:
        return format(self.value, "f")


@dataclass(frozen=True)
class DateValue:
    value: date

    def to_storage(self) -> str:
        return self.value.isoformat()


@dataclass(frozen=True)
class BoolValue:
    value: bool

    def to_storage(self) -> str:
        return CHECKBOX_TRUE if self.value else CHECKBOX_FALSE


@dataclass(frozen=True)
class TextValue:
    value: str

    def to_storage(self) -> str:
        return self.value


@dataclass(frozen=True)
class OptionValue:
    value: str

    def to_storage(self) -> str:
        return self.value


TypedValue = Union[NumberValue, DateValue, BoolValue, TextValue, OptionValue]


class InvalidFieldValue(ValueError):
    """A raw value does not parse for the field's input type."""


def is_blank(raw: str | None) -> bool:
    return raw is None or str(raw).strip() == ""


def parse_field_value(field, raw: str | None) -> TypedValue | None:
    """Parse a raw stored/submitted string into its typed form.

    Returns None for blank input. Raises ``InvalidFieldValue`` when the
    text does not conform to ``field.input_type``.
    """
    if is_blank(raw):
        return None
    raw = str(raw)
    input_type = field.input_type

    if input_type == "number":
        text = raw.strip()
        if len(text) > NUMBER_MAX_LENGTH:
            raise InvalidFieldValue(f"value must be at most {NUMBER_MAX_LENGTH} characters")
        if not _NUMBER_PATTERN.match(text):
            raise InvalidFieldValue("value must be a finite decimal number")
        try:
            number = Decimal(text)
        except InvalidOperation as exc:
            raise InvalidFieldValue("value must be a finite decimal number") from exc
        if not number.is_finite():
            raise InvalidFieldValue("value must be a finite decimal number")
        exponents = (number.as_tuple().exponent, number.adjusted() if number else 0)
        if any(abs(e) > NUMBER_MAX_EXPONENT for e in exponents):
            raise InvalidFieldValue(f"value magnitude must be within 1e±{NUMBER_MAX_EXPONENT}")
        return NumberValue(number)

    if input_type == "date":
        text = raw.strip()
        if not CANONICAL_DATE_PATTERN.match(text):
            raise InvalidFieldValue("value must be a date in YYYY-MM-DD format")
        try:
            return DateValue(date.fromisoformat(text))
        except ValueError as exc:
            raise InvalidFieldValue("value must be a valid calendar date") from exc

    if input_type == "checkbox":
        if raw == CHECKBOX_TRUE:
            return BoolValue(True)
        if raw == CHECKBOX_FALSE:
            return BoolValue(False)
        raise InvalidFieldValue("value must be 'true' or 'false'")

    if input_type in ("select", "radio"):
        options = list(field.options or [])
        if raw not in options:
            raise InvalidFieldValue(f"value must be one of: {', '.join(options)}")
        return OptionValue(raw)

    if input_type in ("text", "textarea"):
        return TextValue(raw)

    raise InvalidFieldValue(f"unknown input type '{input_type}'")


def check_field_value(field, raw: str | None) -> str | None:
    """Return an error description for ``raw`` or None when it parses."""
    try:
        parse_field_value(field, raw)
    except InvalidFieldValue as exc:
        return str(exc)
    return None


def normalize_field_value(field, raw: str | None) -> str | None:
    """Canonical storage text for ``raw``; None for blank input."""
    typed = parse_field_value(field, raw)
    return typed.to_storage() if typed is not None else None


def format_field_value(field, value: str | None) -> str:
    """Human-readable rendering of a stored value."""
    if value is None or value == "":
        return ""
    if field.input_type == "checkbox":
        return "Yes" if value == CHECKBOX_TRUE else "No"
    return value


# ═════════════════════════════════════════════════════════════════════════════
# Validation
# ═════════════════════════════════════════════════════════════════════════════

def _coerce_id(raw):
    try:
        return int(raw)
    except (TypeError, ValueError):
        return raw


def _error(field_id, field_name, message):
    return {"field_id": field_id, "field_name": field_name, "error": message}


def validate_field_values(
    assigned_fields: Iterable,
    candidates: Iterable[Mapping],
    existing_values: Mapping | None = None,
) -> list[dict]:
    """Validate candidate values against the fields assigned to a task type.

    Args:
        assigned_fields: Fields assigned to the task's type.
        candidates: ``{"field_id", "value"}`` mappings submitted by the caller.
            A later entry for the same field replaces an earlier one.
        existing_values: Stored ``field_id -> value`` for the task when
            validating a partial update; satisfies required fields that are
            not resubmitted.

    Returns:
        ``[{"field_id", "value"}]`` in submission order with canonical text
        values (None for blank).

    Raises:
        ValidationError: With ``details["fields"]`` naming every offending
            field of the first violation class found.
    """
    assigned = {f.id: f for f in assigned_fields}

    submitted: dict = {}
    for candidate in candidates:
        field_id = _coerce_id(candidate.get("field_id"))
        value = candidate.get("value")
        submitted[field_id] = None if value is None else str(value)

    # 1. assignment
    errors = [
        _error(fid, None, MSG_NOT_ASSIGNED)
        for fid in submitted
        if fid not in assigned
    ]
    if errors:
        raise ValidationError(MSG_NOT_ASSIGNED, details={"fields": errors})

    # 2. required
    merged = dict(existing_values or {})
    merged.update(submitted)
    errors = [
        _error(field.id, field.name, MSG_REQUIRED)
        for field in sorted(assigned.values(), key=lambda f: (f.name.lower(), f.id))
        if field.is_required and is_blank(merged.get(field.id))
    ]
    if errors:
        raise ValidationError(MSG_REQUIRED, details={"fields": errors})

    # 3. type
    normalized = []
    errors = []
    for field_id, raw in submitted.items():
        field = assigned[field_id]
        try:
            normalized.append({"field_id": field_id, "value": normalize_field_value(field, raw)})
        except InvalidFieldValue as exc:
            errors.append(_error(field_id, field.name, f"{MSG_INVALID} '{field.name}': {exc}"))
    if errors:
        raise ValidationError(MSG_INVALID, details={"fields": errors})

    return normalized
