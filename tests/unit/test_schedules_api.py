"""
Tests for the schedule HTTP API: owner routes, operator routes and the
cron trigger.
"""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from assurance.adapters.dev_scan import DevScanPipeline
from assurance.adapters.memory_store import InMemoryScheduleStore
from assurance.adapters.time_zone import FrozenTimeAdapter
from assurance.api.deps import Settings, get_schedule_service, get_settings, get_tick_runner
from assurance.api.routes import admin_schedules, cron, schedules
from assurance.components.scheduler import ScheduleService, SchedulerConfig, TickRunner
from assurance.core.ports.db import StoreUnavailableError

CRON_TOKEN = "test-cron-token"
OWNER = {"X-Owner-Ref": "owner-1"}
OTHER_OWNER = {"X-Owner-Ref": "owner-2"}


def parse_dt(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# --- Test Client Setup ---


@pytest.fixture
def settings() -> Settings:
    s = Settings()
    s.cron_token = CRON_TOKEN
    return s


@pytest.fixture
def app(service: ScheduleService, runner: TickRunner, settings: Settings) -> FastAPI:
    app = FastAPI()
    app.include_router(schedules.router, prefix="/api/schedules")
    app.include_router(admin_schedules.router, prefix="/api/admin/schedules")
    app.include_router(cron.router, prefix="/api/cron")

    app.dependency_overrides[get_schedule_service] = lambda: service
    app.dependency_overrides[get_tick_runner] = lambda: runner
    app.dependency_overrides[get_settings] = lambda: settings
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def create_schedule(client: TestClient, headers: dict[str, str] = OWNER, **body) -> dict:
    payload = {"resource_ref": "https://example.com", "frequency": "DAILY"}
    payload.update(body)
    response = client.post("/api/schedules", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


# --- Owner routes ---


class TestCreateScheduleApi:
    def test_create(self, client: TestClient) -> None:
        response = client.post(
            "/api/schedules",
            json={
                "resource_ref": "https://example.com",
                "frequency": "WEEKLY",
                "days_of_week": [1, 4],
                "time_of_day": "07:30",
                "timezone": "America/New_York",
                "recipients": ["owner@example.com"],
            },
            headers=OWNER,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["owner_ref"] == "owner-1"
        assert data["days_of_week"] == [1, 4]
        assert data["is_enabled"] is True
        # Thursday 2026-03-05 07:30 EST
        assert parse_dt(data["next_run_at"]) == datetime(2026, 3, 5, 12, 30, tzinfo=UTC)
        assert data["last_run_at"] is None

    def test_missing_owner_header(self, client: TestClient) -> None:
        response = client.post("/api/schedules", json={"resource_ref": "https://example.com"})

        assert response.status_code == 401

    def test_validation_errors(self, client: TestClient) -> None:
        response = client.post(
            "/api/schedules",
            json={"resource_ref": "https://example.com", "time_of_day": "9am"},
            headers=OWNER,
        )

        assert response.status_code == 400
        errors = response.json()["detail"]["errors"]
        assert errors[0]["code"] == "invalid_time_of_day"
        assert errors[0]["field"] == "time_of_day"

    def test_body_schema_errors(self, client: TestClient) -> None:
        response = client.post("/api/schedules", json={}, headers=OWNER)

        assert response.status_code == 422

    def test_quota(self, app: FastAPI, client: TestClient, store: InMemoryScheduleStore, clock) -> None:
        limited = ScheduleService(store, clock, SchedulerConfig(max_schedules_per_owner=1))
        app.dependency_overrides[get_schedule_service] = lambda: limited
        create_schedule(client)

        response = client.post(
            "/api/schedules", json={"resource_ref": "https://other.example"}, headers=OWNER
        )

        assert response.status_code == 429
        assert response.json()["detail"]["errors"][0]["code"] == "quota_exceeded"


class TestReadScheduleApi:
    def test_list_only_own(self, client: TestClient) -> None:
        create_schedule(client)
        create_schedule(client, headers=OTHER_OWNER)

        response = client.get("/api/schedules", headers=OWNER)

        assert response.status_code == 200
        assert [s["owner_ref"] for s in response.json()] == ["owner-1"]

    def test_get(self, client: TestClient) -> None:
        created = create_schedule(client)

        response = client.get(f"/api/schedules/{created['id']}", headers=OWNER)

        assert response.status_code == 200
        assert response.json()["id"] == created["id"]

    def test_other_owner_gets_404(self, client: TestClient) -> None:
        created = create_schedule(client)

        response = client.get(f"/api/schedules/{created['id']}", headers=OTHER_OWNER)

        assert response.status_code == 404

    def test_unknown_id(self, client: TestClient) -> None:
        response = client.get(f"/api/schedules/{uuid4()}", headers=OWNER)

        assert response.status_code == 404
        assert response.json()["detail"]["errors"][0]["code"] == "not_found"


class TestUpdateScheduleApi:
    def test_patch_time_recomputes(self, client: TestClient) -> None:
        created = create_schedule(client)

        response = client.patch(
            f"/api/schedules/{created['id']}", json={"time_of_day": "18:00"}, headers=OWNER
        )

        assert response.status_code == 200
        assert parse_dt(response.json()["next_run_at"]) == datetime(2026, 3, 4, 17, 0, tzinfo=UTC)

    def test_null_means_unchanged(self, client: TestClient) -> None:
        created = create_schedule(
            client, frequency="WEEKLY", days_of_week=[3], ends_at="2026-12-31T00:00:00Z"
        )

        response = client.patch(
            f"/api/schedules/{created['id']}",
            json={"days_of_week": None, "ends_at": None},
            headers=OWNER,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["days_of_week"] == [3]
        assert data["ends_at"] is None

    def test_patch_invalid_days(self, client: TestClient) -> None:
        created = create_schedule(client, frequency="WEEKLY", days_of_week=[1])

        response = client.patch(
            f"/api/schedules/{created['id']}", json={"days_of_week": [9]}, headers=OWNER
        )

        assert response.status_code == 400
        assert response.json()["detail"]["errors"][0]["code"] == "invalid_day_of_week"

    def test_patch_other_owner(self, client: TestClient) -> None:
        created = create_schedule(client)

        response = client.patch(
            f"/api/schedules/{created['id']}", json={"is_enabled": False}, headers=OTHER_OWNER
        )

        assert response.status_code == 404

    def test_reenable_after_end_date(self, client: TestClient, clock: FrozenTimeAdapter) -> None:
        created = create_schedule(client, ends_at="2026-03-10T00:00:00Z")
        url = f"/api/schedules/{created['id']}"
        client.patch(url, json={"is_enabled": False}, headers=OWNER)

        clock.set(datetime(2026, 3, 13, tzinfo=UTC))
        response = client.patch(url, json={"is_enabled": True}, headers=OWNER)

        assert response.status_code == 400
        assert response.json()["detail"]["errors"][0]["code"] == "schedule_ended"
        assert client.get(url, headers=OWNER).json()["is_enabled"] is False


class TestDeleteScheduleApi:
    def test_delete(self, client: TestClient) -> None:
        created = create_schedule(client)

        response = client.delete(f"/api/schedules/{created['id']}", headers=OWNER)

        assert response.status_code == 204
        assert client.get(f"/api/schedules/{created['id']}", headers=OWNER).status_code == 404

    def test_delete_other_owner(self, client: TestClient) -> None:
        created = create_schedule(client)

        response = client.delete(f"/api/schedules/{created['id']}", headers=OTHER_OWNER)

        assert response.status_code == 404


class TestRunHistoryApi:
    def test_runs_after_tick(
        self, client: TestClient, clock: FrozenTimeAdapter
    ) -> None:
        created = create_schedule(client)
        clock.set(datetime(2026, 3, 5, 8, 0, tzinfo=UTC))
        client.post("/api/cron/tick", headers={"X-Cron-Token": CRON_TOKEN})

        response = client.get(f"/api/schedules/{created['id']}/runs", headers=OWNER)

        assert response.status_code == 200
        runs = response.json()
        assert len(runs) == 1
        assert runs[0]["status"] == "success"
        assert runs[0]["window_key"] == "2026-03-05T09:00"
        assert runs[0]["result_summary"] == 92.0


# --- Operator routes ---


class TestAdminSchedulesApi:
    def test_list_all_owners(self, client: TestClient) -> None:
        create_schedule(client)
        create_schedule(client, headers=OTHER_OWNER)

        response = client.get("/api/admin/schedules")

        assert response.status_code == 200
        assert len(response.json()) == 2

    def test_filter_enabled(self, client: TestClient) -> None:
        create_schedule(client)
        create_schedule(client, is_enabled=False)

        response = client.get("/api/admin/schedules", params={"enabled": "false"})

        assert [s["is_enabled"] for s in response.json()] == [False]

    def test_reset_failures(self, client: TestClient, store: InMemoryScheduleStore) -> None:
        created = create_schedule(client)
        stored = next(iter(store.schedules.values()))
        stored.consecutive_failures = 5
        stored.is_enabled = False

        response = client.post(f"/api/admin/schedules/{created['id']}/reset")

        assert response.status_code == 200
        data = response.json()
        assert data["consecutive_failures"] == 0
        assert data["is_enabled"] is True

    def test_toggle(self, client: TestClient) -> None:
        created = create_schedule(client)

        response = client.patch(
            f"/api/admin/schedules/{created['id']}", json={"is_enabled": False}
        )

        assert response.status_code == 200
        assert response.json()["is_enabled"] is False

    def test_toggle_unknown(self, client: TestClient) -> None:
        response = client.patch(f"/api/admin/schedules/{uuid4()}", json={"is_enabled": True})

        assert response.status_code == 404


# --- Cron trigger ---


class _UnavailableRunner:
    def run_tick(self, max_schedules: int | None = None):
        raise StoreUnavailableError("database is locked")


class TestCronTickApi:
    def test_requires_token(self, client: TestClient) -> None:
        assert client.post("/api/cron/tick").status_code == 401
        assert (
            client.post("/api/cron/tick", headers={"X-Cron-Token": "wrong"}).status_code == 401
        )

    def test_unconfigured_token(self, client: TestClient, settings: Settings) -> None:
        settings.cron_token = None

        response = client.post("/api/cron/tick", headers={"X-Cron-Token": CRON_TOKEN})

        assert response.status_code == 503

    def test_tick_summary(
        self, client: TestClient, clock: FrozenTimeAdapter, scanner: DevScanPipeline
    ) -> None:
        create_schedule(client)
        create_schedule(client, resource_ref="https://broken.example")
        scanner.failing.add("https://broken.example")
        clock.set(datetime(2026, 3, 5, 8, 0, tzinfo=UTC))

        response = client.post("/api/cron/tick", headers={"X-Cron-Token": CRON_TOKEN})

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 2
        assert data["succeeded"] == 1
        assert data["failed"] == 1
        statuses = {r["resource_ref"]: r["status"] for r in data["results"]}
        assert statuses == {"https://example.com": "success", "https://broken.example": "failure"}

    def test_repeated_tick_is_idempotent(
        self, client: TestClient, clock: FrozenTimeAdapter, scanner: DevScanPipeline
    ) -> None:
        create_schedule(client)
        clock.set(datetime(2026, 3, 5, 8, 0, tzinfo=UTC))

        first = client.post("/api/cron/tick", headers={"X-Cron-Token": CRON_TOKEN})
        second = client.post("/api/cron/tick", headers={"X-Cron-Token": CRON_TOKEN})

        assert first.json()["processed"] == 1
        assert second.json()["processed"] == 0
        assert scanner.call_count == 1

    def test_store_unavailable(self, app: FastAPI, client: TestClient) -> None:
        app.dependency_overrides[get_tick_runner] = lambda: _UnavailableRunner()

        response = client.post("/api/cron/tick", headers={"X-Cron-Token": CRON_TOKEN})

        assert response.status_code == 503
