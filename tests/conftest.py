from datetime import UTC, datetime
from pathlib import Path

import pytest

from assurance.adapters.dev_email import DevEmailAdapter
from assurance.adapters.dev_scan import DevScanPipeline
from assurance.adapters.memory_store import InMemoryScheduleStore
from assurance.adapters.report_delivery import EmailReportDelivery
from assurance.adapters.sqlite.migrator import SQLiteMigrator
from assurance.adapters.sqlite.repos import SQLiteScheduleStore
from assurance.adapters.time_zone import FrozenTimeAdapter
from assurance.components.scheduler import ScheduleService, SchedulerConfig, TickRunner
from assurance.rules.loader import load_rules
from assurance.rules.models import Rules

ROOT = Path(__file__).resolve().parent.parent

# Wednesday, 2026-03-04 12:00 UTC (13:00 in Amsterdam)
NOW = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)


@pytest.fixture
def clock() -> FrozenTimeAdapter:
    return FrozenTimeAdapter(NOW)


@pytest.fixture
def store() -> InMemoryScheduleStore:
    return InMemoryScheduleStore()


@pytest.fixture
def scanner() -> DevScanPipeline:
    return DevScanPipeline(scores={"https://example.com": 92.0})


@pytest.fixture
def email() -> DevEmailAdapter:
    return DevEmailAdapter()


@pytest.fixture
def delivery(email: DevEmailAdapter, clock: FrozenTimeAdapter) -> EmailReportDelivery:
    return EmailReportDelivery(
        email=email,
        manage_url="https://app.example.com/schedules",
        sender="reports@example.com",
        time_port=clock,
    )


@pytest.fixture
def config() -> SchedulerConfig:
    return SchedulerConfig()


@pytest.fixture
def service(
    store: InMemoryScheduleStore, clock: FrozenTimeAdapter, config: SchedulerConfig
) -> ScheduleService:
    return ScheduleService(store=store, time_port=clock, config=config)


@pytest.fixture
def runner(
    store: InMemoryScheduleStore,
    scanner: DevScanPipeline,
    delivery: EmailReportDelivery,
    clock: FrozenTimeAdapter,
    config: SchedulerConfig,
) -> TickRunner:
    return TickRunner(
        store=store,
        scanner=scanner,
        delivery=delivery,
        time_port=clock,
        config=config,
    )


@pytest.fixture
def rules() -> Rules:
    return load_rules(ROOT / "rules.yaml")


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    path = str(tmp_path / "assurance.db")
    SQLiteMigrator(path, str(ROOT / "migrations")).run_migrations()
    return path


@pytest.fixture
def sqlite_store(db_path: str) -> SQLiteScheduleStore:
    return SQLiteScheduleStore(db_path)
