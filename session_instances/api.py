"""GraphQL client for the booking API and a store backed by it."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import requests

from .errors import APIError, InstanceValidationError, PersistenceError
from .models import SchedulePeriod, SessionInstance, SessionTemplate
from .store import InstanceStore, new_id
from .validation import as_utc, parse_moment, validate_instance

BASE_URL = "http://localhost:4000"
URL_ENV = "SESSION_INSTANCES_API_URL"
TOKEN_ENV = "SESSION_INSTANCES_ACCESS_TOKEN"
PAGE_SIZE = 100

PERIOD_QUERY = """
query SchedulePeriod($id: ID!) {
  schedulePeriod(id: $id) {
    id name startDate endDate capacity isActive
    coaches { id }
    template { id name sport demo description rosterLimit price isActive }
  }
}
"""

CREATE_INSTANCE_MUTATION = """
mutation CreateSessionInstance($input: CreateSessionInstanceInput!) {
  createSessionInstance(input: $input) { id createdAt }
}
"""

INSTANCE_FIELDS = """
nodes {
  id name date startTime endTime capacity bookedCount isActive isCancelled
  notes createdAt
  period { id }
  template { id }
  coaches { id }
}
hasNextPage
"""

INSTANCES_BY_PERIOD_QUERY = (
    "query SessionInstancesByPeriod($periodId: ID!, $limit: Int, $offset: Int) {\n"
    "  sessionInstancesByPeriod(periodId: $periodId, limit: $limit, offset: $offset) {"
    + INSTANCE_FIELDS
    + "}\n}\n"
)

ALL_INSTANCES_QUERY = (
    "query AdminSessionInstances($limit: Int, $offset: Int) {\n"
    "  adminSessionInstances(limit: $limit, offset: $offset) {"
    + INSTANCE_FIELDS
    + "}\n}\n"
)


class APIClient:
    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str | None = None,
        dump_json: bool = False,
        offline: bool = False,
    ) -> None:
        self.token = token or os.getenv(TOKEN_ENV)
        self.base_url = (base_url or os.getenv(URL_ENV) or BASE_URL).rstrip("/")
        self.dump_json = dump_json
        self.offline = offline
        self.session = requests.Session()
        self.json_dir = Path("out/json")
        self.json_dir.mkdir(parents=True, exist_ok=True)

    def json_path(self, operation: str) -> Path:
        return self.json_dir / f"{operation}.json"

    def execute(
        self, operation: str, query: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if self.offline:
            with self.json_path(operation).open("r", encoding="utf-8") as f:
                return json.load(f)
        url = self.base_url + "/graphql"
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        payload = {
            "operationName": operation,
            "query": query,
            "variables": variables or {},
        }
        for attempt in range(4):
            try:
                resp = self.session.post(url, json=payload, headers=headers, timeout=30)
                if resp.status_code == 401:
                    raise APIError(
                        f"Not authorized for {operation} (set {TOKEN_ENV})"
                    )
                if resp.status_code >= 500:
                    logging.warning(
                        "%s returned %s, retrying", operation, resp.status_code
                    )
                    time.sleep(2**attempt)
                    continue
                resp.raise_for_status()
                body = resp.json()
            except requests.RequestException as exc:
                logging.warning("Request error: %s", exc)
                time.sleep(2**attempt)
                continue
            if body.get("errors"):
                messages = [e.get("message", "unknown error") for e in body["errors"]]
                raise APIError(f"{operation} failed: " + "; ".join(messages))
            data = body.get("data") or {}
            if self.dump_json:
                with self.json_path(operation).open("w", encoding="utf-8") as f:
                    json.dump(data, f)
            return data
        raise APIError(f"Failed to execute {operation}")


def _ids(values: Iterable[Any]) -> List[str]:
    return [v["id"] if isinstance(v, dict) else str(v) for v in values or []]


def _ref(value: Any) -> str:
    return value["id"] if isinstance(value, dict) else str(value)


def template_from_api(data: Dict[str, Any]) -> SessionTemplate:
    return SessionTemplate(
        id=data["id"],
        name=data["name"],
        sport=data.get("sport") or "",
        demo=data.get("demo") or "",
        description=data.get("description") or "",
        roster_limit=data.get("rosterLimit") or 0,
        price=data.get("price") or 0.0,
        is_active=data.get("isActive", True),
    )


def period_from_api(data: Dict[str, Any]) -> SchedulePeriod:
    return SchedulePeriod(
        id=data["id"],
        template_id=_ref(data["template"]),
        name=data.get("name", ""),
        start_date=parse_moment(data["startDate"]).date(),
        end_date=parse_moment(data["endDate"]).date(),
        capacity=data["capacity"],
        coaches=_ids(data.get("coaches")),
        is_active=data.get("isActive", True),
    )


def instance_from_api(data: Dict[str, Any]) -> SessionInstance:
    created = data.get("createdAt")
    return SessionInstance(
        id=data["id"],
        period_id=_ref(data["period"]),
        template_id=_ref(data["template"]),
        name=data["name"],
        date=parse_moment(data["date"]).date(),
        start_time=data["startTime"],
        end_time=data["endTime"],
        capacity=data["capacity"],
        coaches=_ids(data.get("coaches")),
        booked_count=data.get("bookedCount", 0),
        is_active=data.get("isActive", True),
        is_cancelled=data.get("isCancelled", False),
        notes=data.get("notes"),
        created_at=(
            as_utc(parse_moment(created)) if created else None
        ),
    )


def instance_to_input(instance: SessionInstance) -> Dict[str, Any]:
    """Shape an instance as ``CreateSessionInstanceInput``."""
    payload = {
        "periodId": instance.period_id,
        "templateId": instance.template_id,
        "name": instance.name,
        "date": instance.date.isoformat(),
        "startTime": instance.start_time,
        "endTime": instance.end_time,
        "coachIds": list(instance.coaches),
        "capacity": instance.capacity,
        "isActive": instance.is_active,
    }
    if instance.notes:
        payload["notes"] = instance.notes
    return payload


class APIStore(InstanceStore):
    """Instance store that reads and writes through the booking API.

    Offline, periods come from the saved ``SchedulePeriod`` response and new
    instances are appended to ``sessionInstances.json``.
    """

    def __init__(self, client: APIClient) -> None:
        self.client = client
        self._templates: Dict[str, SessionTemplate] = {}

    @property
    def saved_instances_path(self) -> Path:
        return self.client.json_path("sessionInstances")

    def find_period(self, period_id: str) -> Optional[SchedulePeriod]:
        data = self.client.execute("SchedulePeriod", PERIOD_QUERY, {"id": period_id})
        raw = data.get("schedulePeriod")
        if not raw or raw.get("id") != period_id:
            return None
        if isinstance(raw.get("template"), dict) and raw["template"].get("name"):
            template = template_from_api(raw["template"])
            self._templates[template.id] = template
        return period_from_api(raw)

    def find_template(self, template_id: str) -> Optional[SessionTemplate]:
        return self._templates.get(template_id)

    def _load_saved(self) -> List[Dict[str, Any]]:
        path = self.saved_instances_path
        if not path.exists():
            return []
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _insert_offline(self, instance: SessionInstance) -> SessionInstance:
        saved = dataclasses.replace(instance, id=new_id(), coaches=list(instance.coaches))
        records = self._load_saved()
        record = instance_to_input(saved)
        record["id"] = saved.id
        records.append(record)
        with self.saved_instances_path.open("w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)
        return saved

    def _insert_one(self, instance: SessionInstance) -> SessionInstance:
        if self.client.offline:
            return self._insert_offline(instance)
        data = self.client.execute(
            "CreateSessionInstance",
            CREATE_INSTANCE_MUTATION,
            {"input": instance_to_input(instance)},
        )
        created = data.get("createSessionInstance")
        if not created or not created.get("id"):
            raise APIError("createSessionInstance returned no id")
        stamp = created.get("createdAt")
        return dataclasses.replace(
            instance,
            id=created["id"],
            coaches=list(instance.coaches),
            created_at=as_utc(parse_moment(stamp)) if stamp else None,
        )

    def insert_instances(
        self, instances: Iterable[SessionInstance]
    ) -> List[SessionInstance]:
        inserted: List[SessionInstance] = []
        for instance in instances:
            try:
                validate_instance(instance)
                inserted.append(self._insert_one(instance))
            except (APIError, InstanceValidationError) as exc:
                logging.error(
                    "Insert stopped after %d instance(s): %s", len(inserted), exc
                )
                raise PersistenceError(str(exc), inserted) from exc
        return inserted

    def list_instances(self, period_id: Optional[str] = None) -> List[SessionInstance]:
        if self.client.offline:
            found = []
            for r in self._load_saved():
                if period_id is not None and r["periodId"] != period_id:
                    continue
                found.append(
                    SessionInstance(
                        id=r["id"],
                        period_id=r["periodId"],
                        template_id=r["templateId"],
                        name=r["name"],
                        date=parse_moment(r["date"]).date(),
                        start_time=r["startTime"],
                        end_time=r["endTime"],
                        capacity=r["capacity"],
                        coaches=list(r.get("coachIds") or []),
                        is_active=r.get("isActive", True),
                        notes=r.get("notes"),
                    )
                )
            return sorted(found, key=lambda i: (i.date, i.start_time))

        if period_id is None:
            operation, query, field_name = (
                "AdminSessionInstances",
                ALL_INSTANCES_QUERY,
                "adminSessionInstances",
            )
            variables: Dict[str, Any] = {}
        else:
            operation, query, field_name = (
                "SessionInstancesByPeriod",
                INSTANCES_BY_PERIOD_QUERY,
                "sessionInstancesByPeriod",
            )
            variables = {"periodId": period_id}

        found = []
        offset = 0
        while True:
            page = self.client.execute(
                operation, query, {**variables, "limit": PAGE_SIZE, "offset": offset}
            )[field_name]
            found.extend(instance_from_api(n) for n in page["nodes"])
            if not page.get("hasNextPage"):
                break
            offset += PAGE_SIZE
        return sorted(found, key=lambda i: (i.date, i.start_time))
