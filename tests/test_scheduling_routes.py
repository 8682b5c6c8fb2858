from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from availability.api.routes.scheduling import get_busy_time_source
from availability.core.exceptions import ProviderUnavailable
from availability.main import app

from conftest import FakeBusyTimeSource, busy, dt, event

PREFIX = "/api/v1/scheduling"
TOKENS = {"access_token": "token"}


@pytest.fixture
def client_for():
    def build(source: FakeBusyTimeSource) -> TestClient:
        app.dependency_overrides[get_busy_time_source] = lambda: source
        return TestClient(app)

    yield build
    app.dependency_overrides.clear()


def test_health_check(client_for):
    response = client_for(FakeBusyTimeSource()).get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_find_available_slots(client_for):
    source = FakeBusyTimeSource([busy("2024-05-06T09:00:00Z", "2024-05-06T10:00:00Z")])
    response = client_for(source).post(f"{PREFIX}/slots", json={
        "user_id": "user",
        "tokens": TOKENS,
        "start": "2024-05-06T08:00:00Z",
        "end": "2024-05-06T12:00:00Z",
        "constraints": {"duration_minutes": 60},
    })

    assert response.status_code == 200
    slots = response.json()["slots"]
    assert [dt(slot["start"]) for slot in slots] == [
        dt("2024-05-06T08:00"), dt("2024-05-06T10:00"), dt("2024-05-06T11:00")
    ]
    assert all(slot["duration_minutes"] == 60 for slot in slots)


def test_invalid_constraints_return_400(client_for):
    source = FakeBusyTimeSource()
    response = client_for(source).post(f"{PREFIX}/slots", json={
        "user_id": "user",
        "tokens": TOKENS,
        "start": "2024-05-06T08:00:00Z",
        "end": "2024-05-06T12:00:00Z",
        "constraints": {"duration_minutes": 60, "days_of_week": [8]},
    })
    assert response.status_code == 400
    assert source.calls == []


def test_availability_reports_free_slot(client_for):
    source = FakeBusyTimeSource([busy("2024-05-06T09:00:00Z", "2024-05-06T10:00:00Z")])
    response = client_for(source).post(f"{PREFIX}/availability", json={
        "user_id": "user",
        "tokens": TOKENS,
        "start": "2024-05-06T10:00:00Z",
        "end": "2024-05-06T11:00:00Z",
    })
    assert response.status_code == 200
    assert response.json() == {"available": True}


def test_availability_reports_busy_slot(client_for):
    source = FakeBusyTimeSource([busy("2024-05-06T09:00:00Z", "2024-05-06T10:00:00Z")])
    response = client_for(source).post(f"{PREFIX}/availability", json={
        "user_id": "user",
        "tokens": TOKENS,
        "start": "2024-05-06T09:30:00Z",
        "end": "2024-05-06T10:30:00Z",
    })
    assert response.status_code == 200
    assert response.json() == {"available": False}


def test_provider_failure_returns_502(client_for):
    source = FakeBusyTimeSource(fail_with=ProviderUnavailable("boom"))
    response = client_for(source).post(f"{PREFIX}/availability", json={
        "user_id": "user",
        "tokens": TOKENS,
        "start": "2024-05-06T08:00:00Z",
        "end": "2024-05-06T09:00:00Z",
    })
    assert response.status_code == 502


def test_next_slot_not_found(client_for):
    source = FakeBusyTimeSource([busy("2024-05-01T00:00:00Z", "2024-06-01T00:00:00Z")])
    response = client_for(source).post(f"{PREFIX}/slots/next", json={
        "user_id": "user",
        "tokens": TOKENS,
        "start_search_from": "2024-05-06T00:00:00Z",
        "duration_minutes": 30,
        "max_search_days": 2,
    })
    assert response.status_code == 200
    assert response.json() == {"status": "not_found", "slot": None}


def test_next_slot_found(client_for):
    source = FakeBusyTimeSource([busy("2024-05-06T00:00:00Z", "2024-05-06T09:00:00Z")])
    response = client_for(source).post(f"{PREFIX}/slots/next", json={
        "user_id": "user",
        "tokens": TOKENS,
        "start_search_from": "2024-05-06T00:00:00Z",
        "duration_minutes": 30,
    })
    body = response.json()
    assert body["status"] == "found"
    assert dt(body["slot"]["start"]) == dt("2024-05-06T09:00")


def test_conflict_check(client_for):
    source = FakeBusyTimeSource(
        busy_times=[busy("2024-05-06T10:00:00Z", "2024-05-06T11:00:00Z")],
        events=[event("Seminar", "2024-05-06T10:00:00Z", "2024-05-06T11:00:00Z")],
    )
    response = client_for(source).post(f"{PREFIX}/conflicts/check", json={
        "user_id": "user",
        "tokens": TOKENS,
        "start": "2024-05-06T10:30:00Z",
        "end": "2024-05-06T11:30:00Z",
        "suggest_alternatives": True,
    })

    body = response.json()
    assert body["has_conflict"] is True
    assert body["conflicting_events"] == [{
        "title": "Seminar",
        "start": "2024-05-06T10:00:00Z",
        "end": "2024-05-06T11:00:00Z",
        "calendar_name": "primary",
    }]
    assert len(body["suggested_alternatives"]) == 3


def test_alternatives(client_for):
    source = FakeBusyTimeSource()
    response = client_for(source).post(f"{PREFIX}/slots/alternatives", json={
        "user_id": "user",
        "tokens": TOKENS,
        "preferred_start": "2024-05-06T10:00:00Z",
        "duration_minutes": 30,
        "max_suggestions": 2,
    })
    assert [dt(slot["start"]) for slot in response.json()] == [
        dt("2024-05-06T10:00"), dt("2024-05-06T10:30")
    ]


def test_busy_times_are_merged(client_for):
    source = FakeBusyTimeSource([
        busy("2024-05-06T09:00:00Z", "2024-05-06T10:00:00Z"),
        busy("2024-05-06T09:30:00Z", "2024-05-06T11:00:00Z", "work"),
    ])
    response = client_for(source).post(f"{PREFIX}/busy", json={
        "user_id": "user",
        "tokens": TOKENS,
        "start": "2024-05-06T00:00:00Z",
        "end": "2024-05-07T00:00:00Z",
    })
    body = response.json()
    assert len(body) == 1
    assert dt(body[0]["end"]) == dt("2024-05-06T11:00")


def test_study_plan_past_deadline_reports_shortfall(client_for):
    source = FakeBusyTimeSource()
    response = client_for(source).post(f"{PREFIX}/study-plan", json={
        "user_id": "user",
        "tokens": TOKENS,
        "deadline": "2000-01-01T00:00:00Z",
        "total_minutes": 180,
    })
    assert response.status_code == 200
    assert response.json() == {
        "sessions": [],
        "requested_sessions": 2,
        "session_duration_minutes": 90,
        "shortfall": True,
    }
