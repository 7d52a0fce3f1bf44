import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from assurance.adapters.sqlite.migrator import SQLiteMigrator
from assurance.adapters.sqlite.repos import SQLiteScheduleStore
from assurance.adapters.time_zone import create_time_adapter
from assurance.api.deps import get_settings
from assurance.app_shell.config import ConfigurationError, validate_ops_rules
from assurance.rules.loader import load_rules
from assurance.shell.http.health import (
    create_health_router,
    mark_startup_complete,
    setup_default_health_checks,
)

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Load rules and validate on startup (fail-fast)
    try:
        rules = load_rules(settings.rules_path)
        validate_ops_rules(rules, settings.data_dir)
        SQLiteMigrator(settings.db_path, settings.migrations_dir).run_migrations()
    except (ConfigurationError, FileNotFoundError, RuntimeError, ValueError) as e:
        logger.critical("Startup failed: %s", e)
        sys.exit(1)
    logger.info("Rules loaded from %s", settings.rules_path)

    setup_default_health_checks(
        store=SQLiteScheduleStore(settings.db_path), time_port=create_time_adapter()
    )
    mark_startup_complete()

    yield


app = FastAPI(
    title="Assurance Scheduler API",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from assurance.api.routes import admin_schedules, cron, schedules  # noqa: E402

app.include_router(schedules.router, prefix="/api/schedules", tags=["Schedules"])
app.include_router(admin_schedules.router, prefix="/api/admin/schedules", tags=["Admin Schedules"])
app.include_router(cron.router, prefix="/api/cron", tags=["Cron"])
app.include_router(create_health_router(version=VERSION))
