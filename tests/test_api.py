import json
from datetime import date

import pytest
import requests

from session_instances import api, errors
from session_instances.generator import InstanceGenerator

PERIOD = {
    "id": "65a1f0c2e4b0a1b2c3d4e5f6",
    "name": "Spring Volleyball",
    "startDate": "2024-03-01T00:00:00.000Z",
    "endDate": "2024-05-31T00:00:00.000Z",
    "capacity": 14,
    "isActive": True,
    "coaches": [{"id": "c1"}, {"id": "c2"}],
    "template": {"id": "t1", "name": "Volleyball Skills", "sport": "Volleyball"},
}


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.body = body or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.body


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(api.time, "sleep", lambda _: None)
    monkeypatch.delenv(api.TOKEN_ENV, raising=False)
    monkeypatch.delenv(api.URL_ENV, raising=False)
    return api.APIClient(token="secret", base_url="https://booking.example.com/")


def created(n):
    return FakeResponse(
        body={
            "data": {
                "createSessionInstance": {
                    "id": f"i{n}",
                    "createdAt": "2024-02-20T10:00:00.000Z",
                }
            }
        }
    )


def test_execute_posts_graphql_with_token(client):
    client.session = FakeSession([FakeResponse(body={"data": {"ok": True}})])
    assert client.execute("Ping", "query Ping { ok }") == {"ok": True}
    call = client.session.calls[0]
    assert call["url"] == "https://booking.example.com/graphql"
    assert call["headers"] == {"Authorization": "Bearer secret"}
    assert call["json"]["operationName"] == "Ping"


def test_execute_retries_server_and_network_errors(client):
    client.session = FakeSession(
        [
            FakeResponse(status_code=502),
            requests.ConnectionError("reset"),
            FakeResponse(body={"data": {"ok": True}}),
        ]
    )
    assert client.execute("Ping", "query Ping { ok }") == {"ok": True}
    assert len(client.session.calls) == 3


def test_execute_gives_up_after_four_attempts(client):
    client.session = FakeSession([FakeResponse(status_code=503)] * 4)
    with pytest.raises(errors.APIError, match="Failed to execute"):
        client.execute("Ping", "query Ping { ok }")


def test_execute_raises_graphql_errors(client):
    client.session = FakeSession(
        [FakeResponse(body={"errors": [{"message": "Admin access required"}]})]
    )
    with pytest.raises(errors.APIError, match="Admin access required"):
        client.execute("Ping", "query Ping { ok }")


def test_unauthorized_is_not_retried(client):
    client.session = FakeSession([FakeResponse(status_code=401)])
    with pytest.raises(errors.APIError, match="Not authorized"):
        client.execute("Ping", "query Ping { ok }")
    assert len(client.session.calls) == 1


def test_dump_json_writes_response(client):
    client.dump_json = True
    client.session = FakeSession([FakeResponse(body={"data": {"schedulePeriod": PERIOD}})])
    client.execute("SchedulePeriod", api.PERIOD_QUERY, {"id": PERIOD["id"]})
    saved = json.loads(client.json_path("SchedulePeriod").read_text())
    assert saved["schedulePeriod"]["name"] == "Spring Volleyball"


def test_find_period_maps_fields_and_caches_template(client):
    client.session = FakeSession([FakeResponse(body={"data": {"schedulePeriod": PERIOD}})])
    store = api.APIStore(client)
    period = store.find_period(PERIOD["id"])
    assert period.start_date == date(2024, 3, 1)
    assert period.coaches == ["c1", "c2"]
    assert period.template_id == "t1"
    assert store.find_template("t1").name == "Volleyball Skills"


def test_find_period_missing(client):
    client.session = FakeSession([FakeResponse(body={"data": {"schedulePeriod": None}})])
    assert api.APIStore(client).find_period("nope") is None


def test_generate_through_api(client):
    client.session = FakeSession(
        [FakeResponse(body={"data": {"schedulePeriod": PERIOD}}), created(1), created(2)]
    )
    instances = InstanceGenerator(api.APIStore(client)).generate(
        PERIOD["id"], "2024-03-04", "2024-03-10", [2, 4], "17:00", "18:30"
    )
    assert [i.id for i in instances] == ["i1", "i2"]
    sent = client.session.calls[1]["json"]["variables"]["input"]
    assert sent["date"] == "2024-03-05"
    assert sent["coachIds"] == ["c1", "c2"]
    assert sent["name"] == "Volleyball Skills - 3/5/2024"
    assert sent["capacity"] == 14


def test_failed_insert_reports_partial_batch(client):
    client.session = FakeSession(
        [
            FakeResponse(body={"data": {"schedulePeriod": PERIOD}}),
            created(1),
            FakeResponse(body={"errors": [{"message": "write conflict"}]}),
        ]
    )
    with pytest.raises(errors.PersistenceError, match="write conflict") as info:
        InstanceGenerator(api.APIStore(client)).generate(
            PERIOD["id"], "2024-03-04", "2024-03-10", [2, 4], "17:00", "18:30"
        )
    assert [i.id for i in info.value.inserted] == ["i1"]


def test_list_instances_pages(client):
    node = {
        "id": "i1",
        "name": "Volleyball Skills - 3/5/2024",
        "date": "2024-03-05T00:00:00.000Z",
        "startTime": "17:00",
        "endTime": "18:30",
        "capacity": 14,
        "bookedCount": 3,
        "isActive": True,
        "isCancelled": False,
        "period": {"id": PERIOD["id"]},
        "template": {"id": "t1"},
        "coaches": [],
    }
    page = lambda nodes, more: FakeResponse(  # noqa: E731
        body={"data": {"sessionInstancesByPeriod": {"nodes": nodes, "hasNextPage": more}}}
    )
    client.session = FakeSession(
        [page([node], True), page([dict(node, id="i0", date="2024-03-03")], False)]
    )
    found = api.APIStore(client).list_instances(PERIOD["id"])
    assert [i.id for i in found] == ["i0", "i1"]
    assert found[1].available_spots == 11
    assert client.session.calls[1]["json"]["variables"]["offset"] == api.PAGE_SIZE


def test_offline_store_appends_instances(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    client = api.APIClient(offline=True)
    client.json_path("SchedulePeriod").write_text(json.dumps({"schedulePeriod": PERIOD}))
    store = api.APIStore(client)
    generator = InstanceGenerator(store)
    generator.generate(PERIOD["id"], "2024-03-04", "2024-03-10", [1], "17:00", "18:00")
    generator.generate(PERIOD["id"], "2024-03-11", "2024-03-17", [1], "17:00", "18:00")
    saved = store.list_instances(PERIOD["id"])
    assert [i.date for i in saved] == [date(2024, 3, 4), date(2024, 3, 11)]
    assert all(len(i.id) == 24 for i in saved)
