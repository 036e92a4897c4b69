"""Persistence collaborators for the instance generator."""

from __future__ import annotations

import dataclasses
import logging
import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .errors import InstanceValidationError, PersistenceError
from .models import SchedulePeriod, SessionInstance, SessionTemplate
from .validation import validate_instance


def new_id() -> str:
    """24 hex characters, the shape of the booking API's document ids."""
    return secrets.token_hex(12)


class InstanceStore(ABC):
    """Lookups and the batch insert the generator depends on."""

    @abstractmethod
    def find_period(self, period_id: str) -> Optional[SchedulePeriod]:
        ...

    @abstractmethod
    def find_template(self, template_id: str) -> Optional[SessionTemplate]:
        ...

    @abstractmethod
    def insert_instances(
        self, instances: Iterable[SessionInstance]
    ) -> List[SessionInstance]:
        """Insert in order; earlier inserts survive a later failure."""

    @abstractmethod
    def list_instances(self, period_id: Optional[str] = None) -> List[SessionInstance]:
        ...


class MemoryStore(InstanceStore):
    def __init__(
        self,
        periods: Iterable[SchedulePeriod] = (),
        templates: Iterable[SessionTemplate] = (),
    ) -> None:
        self.periods: Dict[str, SchedulePeriod] = {p.id: p for p in periods}
        self.templates: Dict[str, SessionTemplate] = {t.id: t for t in templates}
        self.instances: Dict[str, SessionInstance] = {}

    def add_template(self, template: SessionTemplate) -> None:
        self.templates[template.id] = template

    def find_period(self, period_id: str) -> Optional[SchedulePeriod]:
        return self.periods.get(period_id)

    def find_template(self, template_id: str) -> Optional[SessionTemplate]:
        return self.templates.get(template_id)

    def insert_instances(
        self, instances: Iterable[SessionInstance]
    ) -> List[SessionInstance]:
        inserted: List[SessionInstance] = []
        for instance in instances:
            try:
                validate_instance(instance)
            except InstanceValidationError as exc:
                logging.error(
                    "Insert stopped after %d instance(s): %s", len(inserted), exc
                )
                raise PersistenceError(str(exc), inserted) from exc
            saved = dataclasses.replace(
                instance,
                id=instance.id or new_id(),
                created_at=datetime.now(timezone.utc),
                coaches=list(instance.coaches),
            )
            self.instances[saved.id] = saved
            inserted.append(saved)
        return inserted

    def list_instances(self, period_id: Optional[str] = None) -> List[SessionInstance]:
        found = [
            i
            for i in self.instances.values()
            if period_id is None or i.period_id == period_id
        ]
        return sorted(found, key=lambda i: (i.date, i.start_time))
