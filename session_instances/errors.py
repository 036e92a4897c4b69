"""Errors raised while generating and persisting session instances."""

from __future__ import annotations

from typing import List, Optional


class SchedulingError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(SchedulingError):
    """A request or instance failed validation before anything was written."""


class InvalidDateError(ValidationError):
    pass


class InvalidRangeError(ValidationError):
    pass


class InvalidTimeFormatError(ValidationError):
    pass


class InvalidTimeOrderError(ValidationError):
    pass


class InvalidWeekdaySelectorError(ValidationError):
    pass


class InstanceValidationError(ValidationError):
    """A session instance breaks one of the stored-document rules."""


class NotFoundError(SchedulingError):
    pass


class PersistenceError(SchedulingError):
    """The batch insert failed.

    ``inserted`` holds the instances written before the failure; they are
    not rolled back.
    """

    def __init__(self, message: str, inserted: Optional[List] = None) -> None:
        super().__init__(message)
        self.inserted = list(inserted or [])


class APIError(SchedulingError):
    """The booking API could not be reached or answered with errors."""
