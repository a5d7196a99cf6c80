"""
Field Value Validator — pure tests over in-memory field definitions.
No database access: fields are plain namespaces.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from tracker.core.exceptions import ValidationError
from tracker.services.field_values import (
    MSG_INVALID,
    MSG_NOT_ASSIGNED,
    MSG_REQUIRED,
    BoolValue,
    DateValue,
    NumberValue,
    format_field_value,
    normalize_field_value,
    parse_field_value,
    validate_field_values,
)


def _field(fid, name, input_type="text", is_required=False, options=None):
    return SimpleNamespace(
        id=fid, name=name, input_type=input_type, is_required=is_required, options=options or []
    )


PRIORITY = _field(1, "Priority", "select", is_required=True, options=["low", "medium", "high"])
ESTIMATE = _field(2, "Estimate", "number")
DUE = _field(3, "Due", "date")
BLOCKER = _field(4, "Blocker", "checkbox")
NOTES = _field(5, "Notes", "textarea")


class TestPriorityScenario:
    def test_unknown_option_rejected(self):
        with pytest.raises(ValidationError) as exc:
            validate_field_values([PRIORITY], [{"field_id": 1, "value": "urgent"}])
        assert exc.value.message == MSG_INVALID
        assert exc.value.field_ids == [1]

    def test_declared_option_accepted(self):
        rows = validate_field_values([PRIORITY], [{"field_id": 1, "value": "high"}])
        assert rows == [{"field_id": 1, "value": "high"}]

    def test_option_match_is_case_sensitive(self):
        with pytest.raises(ValidationError):
            validate_field_values([PRIORITY], [{"field_id": 1, "value": "High"}])


class TestCheckOrder:
    def test_assignment_checked_before_required(self):
        with pytest.raises(ValidationError) as exc:
            validate_field_values([PRIORITY], [{"field_id": 99, "value": "x"}])
        assert exc.value.message == MSG_NOT_ASSIGNED
        assert exc.value.field_ids == [99]

    def test_required_checked_before_type(self):
        fields = [PRIORITY, ESTIMATE]
        with pytest.raises(ValidationError) as exc:
            validate_field_values(fields, [{"field_id": 2, "value": "not-a-number"}])
        assert exc.value.message == MSG_REQUIRED
        assert exc.value.field_ids == [1]

    def test_all_offenders_in_class_reported(self):
        fields = [PRIORITY, ESTIMATE, DUE, BLOCKER]
        with pytest.raises(ValidationError) as exc:
            validate_field_values(fields, [
                {"field_id": 1, "value": "low"},
                {"field_id": 2, "value": "ten"},
                {"field_id": 3, "value": "31/01/2025"},
                {"field_id": 4, "value": "yes"},
            ])
        assert exc.value.message == MSG_INVALID
        assert sorted(exc.value.field_ids) == [2, 3, 4]
        names = {entry["field_name"] for entry in exc.value.details["fields"]}
        assert names == {"Estimate", "Due", "Blocker"}


class TestRequired:
    def test_missing_required_names_field(self):
        with pytest.raises(ValidationError) as exc:
            validate_field_values([PRIORITY, NOTES], [{"field_id": 5, "value": "hi"}])
        assert exc.value.details["fields"][0]["field_name"] == "Priority"

    @pytest.mark.parametrize("blank", [None, "", "   "])
    def test_blank_does_not_satisfy_required(self, blank):
        with pytest.raises(ValidationError) as exc:
            validate_field_values([PRIORITY], [{"field_id": 1, "value": blank}])
        assert exc.value.message == MSG_REQUIRED

    def test_existing_value_satisfies_required_on_partial_update(self):
        rows = validate_field_values(
            [PRIORITY, ESTIMATE],
            [{"field_id": 2, "value": "3"}],
            existing_values={1: "medium"},
        )
        assert rows == [{"field_id": 2, "value": "3"}]

    def test_submitted_blank_overrides_existing(self):
        with pytest.raises(ValidationError):
            validate_field_values([PRIORITY], [{"field_id": 1, "value": ""}], existing_values={1: "low"})

    def test_optional_blank_normalizes_to_none(self):
        rows = validate_field_values([ESTIMATE], [{"field_id": 2, "value": "  "}])
        assert rows == [{"field_id": 2, "value": None}]


class TestTypes:
    @pytest.mark.parametrize("raw,stored", [
        ("12.50", "12.50"),
        ("-3", "-3"),
        ("1e3", "1000"),
        (" 7 ", "7"),
        (".5", "0.5"),
    ])
    def test_number_accepted(self, raw, stored):
        assert normalize_field_value(ESTIMATE, raw) == stored

    @pytest.mark.parametrize("raw", ["abc", "NaN", "inf", "-Infinity", "1,5", "0x10"])
    def test_number_rejected(self, raw):
        with pytest.raises(ValidationError):
            validate_field_values([ESTIMATE], [{"field_id": 2, "value": raw}])

    @pytest.mark.parametrize("raw", ["1e999999999", "1e5000", "-2.5E31", "1e-31", "0e999999999", "1" * 41])
    def test_number_magnitude_and_length_bounded(self, raw):
        with pytest.raises(ValidationError) as exc:
            validate_field_values([ESTIMATE], [{"field_id": 2, "value": raw}])
        assert exc.value.message == MSG_INVALID

    def test_number_at_bounds_stays_short(self):
        assert normalize_field_value(ESTIMATE, "1e30") == "1" + "0" * 30
        assert normalize_field_value(ESTIMATE, "0.00") == "0.00"

    def test_date_canonical_only(self):
        assert isinstance(parse_field_value(DUE, "2025-01-31"), DateValue)
        for raw in ("2025/01/31", "31-01-2025", "2025-1-31", "2025-02-30"):
            with pytest.raises(ValidationError):
                validate_field_values([DUE], [{"field_id": 3, "value": raw}])

    def test_checkbox_literals(self):
        assert parse_field_value(BLOCKER, "true") == BoolValue(True)
        assert parse_field_value(BLOCKER, "false") == BoolValue(False)
        for raw in ("True", "1", "yes"):
            with pytest.raises(ValidationError):
                validate_field_values([BLOCKER], [{"field_id": 4, "value": raw}])

    def test_text_has_no_format(self):
        rows = validate_field_values([NOTES], [{"field_id": 5, "value": "anything at all: 42"}])
        assert rows[0]["value"] == "anything at all: 42"

    def test_numeric_value_submitted_as_number(self):
        rows = validate_field_values([ESTIMATE], [{"field_id": "2", "value": 4}])
        assert rows == [{"field_id": 2, "value": "4"}]


class TestFormatting:
    def test_checkbox_rendered_yes_no(self):
        assert format_field_value(BLOCKER, "true") == "Yes"
        assert format_field_value(BLOCKER, "false") == "No"

    def test_other_types_rendered_as_stored(self):
        assert format_field_value(PRIORITY, "high") == "high"
        assert format_field_value(ESTIMATE, None) == ""


def test_parse_returns_typed_variants():
    assert parse_field_value(ESTIMATE, "12.5") == NumberValue(Decimal("12.5"))
    assert parse_field_value(ESTIMATE, "") is None
