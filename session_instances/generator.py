"""Expand a schedule period into dated session instances."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Iterable, List

from . import validation
from .errors import NotFoundError
from .models import GenerationRequest, SchedulePeriod, SessionInstance, SessionTemplate
from .store import InstanceStore
from .validation import instant


def weekday(day: date) -> int:
    """Day of week with Sunday=0 .. Saturday=6."""
    return day.isoweekday() % 7


def display_date(day: date) -> str:
    return f"{day.month}/{day.day}/{day.year}"


def window_days(start: datetime, end: datetime) -> List[date]:
    """Days visited by a cursor stepping one day at a time from ``start``.

    The cursor keeps its wall-clock time and offset; it stops once it passes
    the ``end`` instant.
    """

    days: List[date] = []
    cur = start
    while instant(cur) <= instant(end):
        days.append(cur.date())
        cur += timedelta(days=1)
    return days


def matching_dates(
    start: datetime, end: datetime, weekdays: Iterable[int]
) -> List[date]:
    selected = set(weekdays)
    return [day for day in window_days(start, end) if weekday(day) in selected]


def build_instances(
    request: GenerationRequest,
    period: SchedulePeriod,
    template: SessionTemplate,
) -> List[SessionInstance]:
    return [
        SessionInstance(
            period_id=period.id,
            template_id=template.id,
            name=f"{template.name} - {display_date(day)}",
            date=day,
            start_time=request.start_time,
            end_time=request.end_time,
            capacity=period.capacity,
            coaches=list(period.coaches),
            is_active=True,
        )
        for day in matching_dates(request.start, request.end, request.weekdays)
    ]


class InstanceGenerator:
    """Creates bookable session instances for a schedule period.

    Nothing is deduplicated: generating twice over the same window stores
    every instance twice. Callers that need idempotency must delete the
    existing instances first.
    """

    def __init__(self, store: InstanceStore) -> None:
        self.store = store

    def _resolve(self, period_id: str) -> tuple[SchedulePeriod, SessionTemplate]:
        period = self.store.find_period(period_id)
        if period is None:
            raise NotFoundError(f"Schedule period not found: {period_id}")
        template = self.store.find_template(period.template_id)
        if template is None:
            raise NotFoundError(
                f"Template not found for period {period_id}: {period.template_id}"
            )
        return period, template

    def generate(
        self,
        period_id: str,
        start_date: Any,
        end_date: Any,
        weekdays: Iterable[int],
        start_time: str,
        end_time: str,
    ) -> List[SessionInstance]:
        request = validation.validate_request(
            period_id, start_date, end_date, weekdays, start_time, end_time
        )
        period, template = self._resolve(request.period_id)

        first, last = request.start.date(), request.end.date()
        if not (period.contains(first) and period.contains(last)):
            logging.warning(
                "Window %s..%s falls outside period %s (%s..%s)",
                first,
                last,
                period.id,
                period.start_date,
                period.end_date,
            )

        instances = build_instances(request, period, template)
        logging.debug("Built %d instance(s) for period %s", len(instances), period.id)
        saved = self.store.insert_instances(instances)
        logging.info(
            "Generated %d session instance(s) from period %s (%s)",
            len(saved),
            period.name,
            period.id,
        )
        return saved
