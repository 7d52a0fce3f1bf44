import os
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from assurance.adapters.dev_email import DevEmailAdapter
from assurance.adapters.dev_scan import DevScanPipeline
from assurance.adapters.report_delivery import EmailReportDelivery
from assurance.adapters.sqlite.repos import SQLiteScheduleStore
from assurance.adapters.time_zone import ZoneTimeAdapter, create_time_adapter
from assurance.components.scheduler import ScheduleService, TickRunner, build_config
from assurance.rules.adapter import SchedulerRulesAdapter
from assurance.rules.loader import load_rules
from assurance.rules.models import Rules


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("ASSURANCE_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "assurance.db")
        self.rules_path = self.base_dir / "rules.yaml"
        self.migrations_dir = str(self.base_dir / "migrations")
        self.cron_token = os.environ.get("ASSURANCE_CRON_TOKEN")


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return load_rules(settings.rules_path)


def get_scheduler_rules(rules: Rules = Depends(get_rules)) -> SchedulerRulesAdapter:
    return SchedulerRulesAdapter(rules)


# --- Adapters ---
def get_store(settings: Settings = Depends(get_settings)) -> SQLiteScheduleStore:
    return SQLiteScheduleStore(settings.db_path)


@lru_cache
def get_time_port() -> ZoneTimeAdapter:
    return create_time_adapter()


# Dev pipelines are process-wide so their recorded calls survive requests
_scan_pipeline = DevScanPipeline()
_email_adapter = DevEmailAdapter()


def get_scan_pipeline() -> DevScanPipeline:
    return _scan_pipeline


def get_email_adapter() -> DevEmailAdapter:
    return _email_adapter


def get_delivery_pipeline(
    rules: Rules = Depends(get_rules),
    email: DevEmailAdapter = Depends(get_email_adapter),
    time_port: ZoneTimeAdapter = Depends(get_time_port),
) -> EmailReportDelivery:
    return EmailReportDelivery(
        email=email,
        manage_url=rules.delivery.manage_url,
        sender=rules.delivery.sender,
        time_port=time_port,
    )


# --- Services ---
def get_schedule_service(
    store: SQLiteScheduleStore = Depends(get_store),
    time_port: ZoneTimeAdapter = Depends(get_time_port),
    rules: SchedulerRulesAdapter = Depends(get_scheduler_rules),
) -> ScheduleService:
    return ScheduleService(store=store, time_port=time_port, config=build_config(rules))


def get_tick_runner(
    store: SQLiteScheduleStore = Depends(get_store),
    scanner: DevScanPipeline = Depends(get_scan_pipeline),
    delivery: EmailReportDelivery = Depends(get_delivery_pipeline),
    time_port: ZoneTimeAdapter = Depends(get_time_port),
    rules: SchedulerRulesAdapter = Depends(get_scheduler_rules),
) -> TickRunner:
    return TickRunner(
        store=store,
        scanner=scanner,
        delivery=delivery,
        time_port=time_port,
        config=build_config(rules),
    )


# --- Callers ---
def get_owner_ref(x_owner_ref: Annotated[str | None, Header()] = None) -> str:
    """Owner identity supplied by the fronting auth layer."""
    if not x_owner_ref:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Owner-Ref header",
        )
    return x_owner_ref


def verify_cron_token(
    x_cron_token: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.cron_token:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cron trigger is not configured",
        )
    if not x_cron_token or not secrets.compare_digest(x_cron_token, settings.cron_token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
