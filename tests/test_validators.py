import pytest

from habit_tracker.errors import ValidationError, parse_id
from habit_tracker.validators import is_valid_date, validate_habit, validate_progress


@pytest.mark.parametrize("value", ["2026-10-18", "2024-02-29"])
def test_is_valid_date_accepts_calendar_days(value):
    assert is_valid_date(value)


@pytest.mark.parametrize("value", ["2026-13-01", "2023-02-29", "2026-1-5", "20261018", None, 20261018])
def test_is_valid_date_rejects_malformed(value):
    assert not is_valid_date(value)


def test_progress_value_accepts_numeric_strings_and_rejects_others():
    errors, cleaned = validate_progress({"habitId": "7", "date": "2026-10-18", "value": "2.5"})
    assert errors == []
    assert cleaned == {"habitId": 7, "date": "2026-10-18", "value": 2.5, "notes": ""}

    for bad in (True, "many", float("nan"), [1]):
        errors, _ = validate_progress({"habitId": 7, "date": "2026-10-18", "value": bad})
        assert [error["field"] for error in errors] == ["value"]


def test_habit_reminder_fields_are_nested():
    errors, cleaned = validate_habit(
        {"name": "Walk", "reminder": {"enabled": True, "startTime": "7:30", "message": "  go  "}}
    )
    assert errors == []
    assert cleaned["reminder"] == {"enabled": True, "startTime": "7:30", "message": "go"}


def test_habit_target_value_must_be_positive_integer():
    for bad in (0, -3, 1.5, "two", True, 2**31, "\u00b9\u00b2"):
        errors, _ = validate_habit({"name": "Walk", "targetValue": bad})
        assert [error["field"] for error in errors] == ["targetValue"]
    errors, cleaned = validate_habit({"name": "Walk", "targetValue": "3"})
    assert errors == [] and cleaned["targetValue"] == 3


def test_parse_id():
    assert parse_id("12", "habit") == 12
    assert parse_id(5, "habit") == 5
    assert parse_id(str(2**31 - 1), "habit") == 2**31 - 1
    for bad in ("abc", "0", "-1", "", None, True, "1.5", "\u00b2", str(2**31), 2**31, "9" * 25):
        with pytest.raises(ValidationError):
            parse_id(bad, "habit")
