import argparse
import logging
import os
import sys
from pathlib import Path

from assurance.adapters.dev_email import create_dev_email_adapter
from assurance.adapters.dev_jobs import create_dev_scheduler
from assurance.adapters.dev_scan import DevScanPipeline
from assurance.adapters.report_delivery import EmailReportDelivery
from assurance.adapters.sqlite.migrator import SQLiteMigrator
from assurance.adapters.sqlite.repos import SQLiteScheduleStore
from assurance.adapters.time_zone import create_time_adapter
from assurance.app_shell.config import ConfigurationError, validate_ops_rules
from assurance.components.scheduler import TickRunner, build_config
from assurance.core.ports.db import StoreUnavailableError
from assurance.rules.adapter import SchedulerRulesAdapter
from assurance.rules.loader import load_rules
from assurance.rules.models import Rules

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cli")

RULES_PATH = "rules.yaml"
MIGRATIONS_DIR = "migrations"


def data_dir() -> Path:
    return Path(os.environ.get("ASSURANCE_DATA_DIR", "./data"))


def db_path() -> str:
    return str(data_dir() / "assurance.db")


def get_rules() -> Rules:
    if not Path(RULES_PATH).exists():
        logger.error("Rules file %s not found.", RULES_PATH)
        sys.exit(1)
    try:
        rules = load_rules(Path(RULES_PATH))
        validate_ops_rules(rules, data_dir())
    except (ConfigurationError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)
    return rules


def build_runner(rules: Rules) -> TickRunner:
    time_port = create_time_adapter()
    delivery = EmailReportDelivery(
        email=create_dev_email_adapter(),
        manage_url=rules.delivery.manage_url,
        sender=rules.delivery.sender,
        time_port=time_port,
    )
    return TickRunner(
        store=SQLiteScheduleStore(db_path()),
        scanner=DevScanPipeline(),
        delivery=delivery,
        time_port=time_port,
        config=build_config(SchedulerRulesAdapter(rules)),
    )


def handle_migrate(args: argparse.Namespace) -> None:
    applied = SQLiteMigrator(db_path(), args.migrations_dir).run_migrations()
    print(f"Applied {len(applied)} migrations.")


def handle_tick(rules: Rules, args: argparse.Namespace) -> None:
    runner = build_runner(rules)
    try:
        result = runner.run_tick(max_schedules=args.max)
    except StoreUnavailableError as e:
        logger.error("Tick aborted: %s", e)
        sys.exit(2)
    print(
        f"Processed {result.processed}: {result.succeeded} succeeded, "
        f"{result.failed} failed, {result.skipped} skipped, {len(result.expired)} expired."
    )


def handle_run_scheduler(rules: Rules, args: argparse.Namespace) -> None:
    interval = args.interval or rules.scheduling.poll_interval_seconds
    scheduler = create_dev_scheduler(build_runner(rules), interval)
    scheduler.start()
    try:
        scheduler.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping scheduler")
    finally:
        scheduler.stop()


def handle_serve(args: argparse.Namespace) -> None:
    import uvicorn

    logger.info("Starting API server on %s:%d", args.host, args.port)
    uvicorn.run("assurance.api.main:app", host=args.host, port=args.port, reload=args.reload)


def main() -> None:
    parser = argparse.ArgumentParser(description="Assurance scheduler CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Apply pending database migrations")
    migrate_parser.add_argument("--migrations-dir", default=MIGRATIONS_DIR)

    # tick
    tick_parser = subparsers.add_parser("tick", help="Run due schedules once")
    tick_parser.add_argument("--max", type=int, default=None, help="Batch cap for this tick")

    # run-scheduler
    run_parser = subparsers.add_parser("run-scheduler", help="Tick in the background until stopped")
    run_parser.add_argument("--interval", type=float, default=None, help="Seconds between ticks")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true", help="Auto-reload for development")

    args = parser.parse_args()

    if args.command == "migrate":
        data_dir().mkdir(parents=True, exist_ok=True)
        handle_migrate(args)
        return
    if args.command == "serve":
        handle_serve(args)
        return

    rules = get_rules()
    if args.command == "tick":
        handle_tick(rules, args)
    elif args.command == "run-scheduler":
        handle_run_scheduler(rules, args)


if __name__ == "__main__":
    main()
