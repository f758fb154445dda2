"""
Input validation functions for production records.

Validators return ``(is_valid, error_message)`` tuples so callers can
decide whether to raise, collect, or report the failure.
"""

import re
from datetime import date, datetime, timedelta

_WEEK_CODE_PATTERN = re.compile(r"^\d{8}$")


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Week")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_required_text(field_name: str, value: str) -> tuple[bool, str]:
    """Reject empty or whitespace-only values."""
    if not value or not value.strip():
        return (
            False,
            format_validation_error(field_name, "cannot be empty"),
        )
    return (True, "")


def validate_week_code(week_code: str) -> tuple[bool, str]:
    """
    Validate a week code.

    Args:
        week_code: The code to validate

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Exactly eight digits (YYYYMMDD)
        - Must be a real calendar date
        - Must fall on a Monday
    """
    if not week_code or not _WEEK_CODE_PATTERN.match(week_code):
        return (
            False,
            format_validation_error(
                "Week", f"'{week_code}' must be 8 digits (YYYYMMDD)"
            ),
        )

    try:
        day = datetime.strptime(week_code, "%Y%m%d").date()
    except ValueError:
        return (
            False,
            format_validation_error(
                "Week", f"'{week_code}' is not a valid date"
            ),
        )

    if day.weekday() != 0:
        return (
            False,
            format_validation_error(
                "Week", f"'{week_code}' is not a Monday"
            ),
        )

    return (True, "")


# ---------------------------------------------------------------------------
# Week helpers
# ---------------------------------------------------------------------------


def week_code_for(day: date) -> str:
    """Return the week code of the Monday on or before *day*."""
    monday = day - timedelta(days=day.weekday())
    return monday.strftime("%Y%m%d")


def recent_monday_codes(count: int = 10, today: date | None = None) -> list[str]:
    """Return the last *count* Monday week codes, newest first.

    The current week's Monday is always the first entry.
    """
    start = today or date.today()
    monday = start - timedelta(days=start.weekday())
    return [
        (monday - timedelta(weeks=i)).strftime("%Y%m%d")
        for i in range(count)
    ]
