"""Validation for generation requests and stored instances."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Iterable

from .errors import (
    InstanceValidationError,
    InvalidDateError,
    InvalidRangeError,
    InvalidTimeFormatError,
    InvalidTimeOrderError,
    InvalidWeekdaySelectorError,
    NotFoundError,
)
from .models import GenerationRequest, SessionInstance

TIME_PATTERN = re.compile(r"([0-1]?[0-9]|2[0-3]):[0-5][0-9]")
MAX_NAME_LENGTH = 100
MAX_NOTES_LENGTH = 500


def parse_moment(value: Any) -> datetime:
    """Parse a date, datetime or ISO 8601 string.

    An offset on the input is kept so the wall-clock date stays the caller's.
    """

    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidDateError(f"Invalid date format: {value!r}") from exc
    else:
        raise InvalidDateError(f"Invalid date format: {value!r}")

    return moment


def instant(moment: datetime) -> datetime:
    """Naive UTC form of ``moment`` for ordering mixed naive and aware values."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def minutes_of(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def check_time(value: Any) -> str:
    if not isinstance(value, str) or not TIME_PATTERN.fullmatch(value):
        raise InvalidTimeFormatError(
            f"Invalid time format {value!r}. Use HH:MM format"
        )
    return value


def check_weekdays(weekdays: Any) -> frozenset[int]:
    if isinstance(weekdays, (str, bytes)) or not isinstance(weekdays, Iterable):
        raise InvalidWeekdaySelectorError(
            "Invalid days of week. Must be 0-6 (Sunday-Saturday)"
        )
    days = list(weekdays)
    valid = all(
        isinstance(d, int) and not isinstance(d, bool) and 0 <= d <= 6 for d in days
    )
    if not days or not valid:
        raise InvalidWeekdaySelectorError(
            "Invalid days of week. Must be 0-6 (Sunday-Saturday)"
        )
    return frozenset(days)


def validate_request(
    period_id: Any,
    start_date: Any,
    end_date: Any,
    weekdays: Any,
    start_time: Any,
    end_time: Any,
) -> GenerationRequest:
    """Check every input of a generation call, stopping at the first problem."""

    if not isinstance(period_id, str) or not period_id.strip():
        raise NotFoundError(f"Schedule period not found: {period_id!r}")

    start = parse_moment(start_date)
    end = parse_moment(end_date)
    if instant(start) >= instant(end):
        raise InvalidRangeError("Start date must be before end date")

    check_time(start_time)
    check_time(end_time)
    if minutes_of(end_time) <= minutes_of(start_time):
        raise InvalidTimeOrderError("End time must be after start time")

    days = check_weekdays(weekdays)

    return GenerationRequest(
        period_id=period_id.strip(),
        start=start,
        end=end,
        weekdays=days,
        start_time=start_time,
        end_time=end_time,
    )


def validate_instance(instance: SessionInstance) -> None:
    """Apply the rules a stored session instance document must satisfy."""

    if not instance.name or not instance.name.strip():
        raise InstanceValidationError("Session name is required")
    if len(instance.name.strip()) > MAX_NAME_LENGTH:
        raise InstanceValidationError(
            f"Session name cannot exceed {MAX_NAME_LENGTH} characters"
        )
    if instance.capacity < 1:
        raise InstanceValidationError("Capacity must be at least 1")
    if instance.booked_count < 0:
        raise InstanceValidationError("Booked count cannot be negative")
    try:
        start = minutes_of(check_time(instance.start_time))
        end = minutes_of(check_time(instance.end_time))
    except InvalidTimeFormatError as exc:
        raise InstanceValidationError(str(exc)) from exc
    if end <= start:
        raise InstanceValidationError("End time must be after start time")
    if instance.notes and len(instance.notes.strip()) > MAX_NOTES_LENGTH:
        raise InstanceValidationError(
            f"Notes cannot exceed {MAX_NOTES_LENGTH} characters"
        )
