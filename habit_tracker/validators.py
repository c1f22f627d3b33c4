import math
import re
from datetime import date

from .models import CATEGORIES, FREQUENCIES, MAX_INT, REMINDER_FREQUENCIES

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
PASSWORD_RE = re.compile(r"^(?=.*[a-zA-Z])(?=.*\d)")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
HEX_COLOR_RE = re.compile(r"^#[0-9A-F]{6}$", re.IGNORECASE)
TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def field_error(field, message):
    return {"field": field, "message": message}


def is_valid_date(value):
    if not isinstance(value, str) or not DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def normalize_email(email):
    return (email or "").strip().lower()


def validate_registration(data):
    errors = []
    username = (data.get("username") or "").strip() if isinstance(data.get("username"), str) else ""
    email = normalize_email(data.get("email")) if isinstance(data.get("email"), str) else ""
    password = data.get("password") if isinstance(data.get("password"), str) else ""

    if not 3 <= len(username) <= 30:
        errors.append(field_error("username", "Username must be between 3 and 30 characters"))
    elif not USERNAME_RE.match(username):
        errors.append(field_error("username", "Username can only contain letters, numbers, and underscores"))
    if not EMAIL_RE.match(email):
        errors.append(field_error("email", "Please provide a valid email address"))
    if len(password) < 6:
        errors.append(field_error("password", "Password must be at least 6 characters long"))
    elif not PASSWORD_RE.match(password):
        errors.append(field_error("password", "Password must contain at least one letter and one number"))
    return errors, {"username": username, "email": email, "password": password}


def _to_int(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isascii() and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def to_number(value):
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _check_text(errors, cleaned, data, field, limit, message, required=False):
    value = data.get(field)
    if value is None:
        if required:
            errors.append(field_error(field, "Habit name is required"))
        return
    if not isinstance(value, str):
        errors.append(field_error(field, f"{field} must be a string"))
        return
    value = value.strip()
    if required and not value:
        errors.append(field_error(field, "Habit name is required"))
    elif len(value) > limit:
        errors.append(field_error(field, message))
    else:
        cleaned[field] = value


def validate_habit(data, partial=False):
    """Check habit fields and return (errors, cleaned).

    Absent or null fields are skipped on partial updates; cleaned keys keep
    the JSON (camelCase) names, reminder values land in a nested dict.
    """
    errors = []
    cleaned = {}

    _check_text(errors, cleaned, data, "name", 100, "Habit name cannot exceed 100 characters", required=not partial)
    if partial and "name" in cleaned and not cleaned["name"]:
        errors.append(field_error("name", "Habit name cannot be empty"))
        cleaned.pop("name")
    _check_text(errors, cleaned, data, "description", 500, "Description cannot exceed 500 characters")
    _check_text(errors, cleaned, data, "unit", 20, "Unit cannot exceed 20 characters")

    category = data.get("category")
    if category is not None:
        if category not in CATEGORIES:
            errors.append(field_error("category", "Invalid category"))
        else:
            cleaned["category"] = category

    frequency = data.get("frequency")
    if frequency is not None:
        if frequency not in FREQUENCIES:
            errors.append(field_error("frequency", "Invalid frequency"))
        else:
            cleaned["frequency"] = frequency

    if data.get("targetValue") is not None:
        target = _to_int(data.get("targetValue"))
        if target is None or not 1 <= target <= MAX_INT:
            errors.append(field_error("targetValue", "Target value must be a positive integer"))
        else:
            cleaned["targetValue"] = target

    color = data.get("color")
    if color is not None:
        if not isinstance(color, str) or not HEX_COLOR_RE.match(color):
            errors.append(field_error("color", "Color must be a valid hex color"))
        else:
            cleaned["color"] = color

    reminder = data.get("reminder")
    if reminder is not None:
        if not isinstance(reminder, dict):
            errors.append(field_error("reminder", "Reminder must be an object"))
        else:
            cleaned["reminder"] = _validate_reminder(reminder, errors)

    return errors, cleaned


def _validate_reminder(reminder, errors):
    cleaned = {}
    enabled = reminder.get("enabled")
    if enabled is not None:
        if not isinstance(enabled, bool):
            errors.append(field_error("reminder.enabled", "Reminder enabled must be a boolean"))
        else:
            cleaned["enabled"] = enabled
    for key, label in (("startTime", "Start time"), ("endTime", "End time")):
        value = reminder.get(key)
        if value is None:
            continue
        if not isinstance(value, str) or not TIME_RE.match(value):
            errors.append(field_error(f"reminder.{key}", f"{label} must be in HH:MM format"))
        else:
            cleaned[key] = value
    frequency = reminder.get("frequency")
    if frequency is not None:
        if frequency not in REMINDER_FREQUENCIES:
            errors.append(field_error("reminder.frequency", "Invalid reminder frequency"))
        else:
            cleaned["frequency"] = frequency
    message = reminder.get("message")
    if message is not None:
        if not isinstance(message, str) or len(message.strip()) > 200:
            errors.append(field_error("reminder.message", "Reminder message cannot exceed 200 characters"))
        else:
            cleaned["message"] = message.strip()
    return cleaned


def validate_progress(data):
    """Check an upsert/update body; every violated field is reported."""
    errors = []
    cleaned = {}

    habit_id = _to_int(data.get("habitId"))
    if data.get("habitId") in (None, ""):
        errors.append(field_error("habitId", "Habit ID is required"))
    elif habit_id is None or not 1 <= habit_id <= MAX_INT:
        errors.append(field_error("habitId", "Invalid habit ID"))
    else:
        cleaned["habitId"] = habit_id

    day = data.get("date")
    if day in (None, ""):
        errors.append(field_error("date", "Date is required"))
    elif not is_valid_date(day):
        errors.append(field_error("date", "Date must be in YYYY-MM-DD format"))
    else:
        cleaned["date"] = day

    value = to_number(data.get("value"))
    if data.get("value") in (None, ""):
        errors.append(field_error("value", "Value is required"))
    elif value is None or not math.isfinite(value) or value < 0:
        errors.append(field_error("value", "Value must be a non-negative number"))
    else:
        cleaned["value"] = value

    notes = data.get("notes")
    if notes is None:
        cleaned["notes"] = ""
    elif not isinstance(notes, str) or len(notes.strip()) > 500:
        errors.append(field_error("notes", "Notes cannot exceed 500 characters"))
    else:
        cleaned["notes"] = notes.strip()

    return errors, cleaned
