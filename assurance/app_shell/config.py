import logging
import os
from pathlib import Path

from assurance.components.recurrence import load_timezone, parse_time_of_day
from assurance.rules.models import Rules

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Startup configuration is unusable."""


def validate_ops_rules(rules: Rules, data_dir: Path) -> None:
    """
    Validate operational requirements before startup.

    Raises:
        ConfigurationError: listing every problem found
    """
    problems: list[str] = []

    # 1. Data dir must be creatable
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        problems.append(f"Data dir {data_dir} is not writable: {e}")

    # 2. Required env
    missing = [name for name in rules.ops.required_env if name not in os.environ]
    if missing:
        problems.append(f"Missing required environment variables: {', '.join(missing)}")

    # 3. Scheduling defaults must be usable by the recurrence calculator
    try:
        load_timezone(rules.scheduling.default_timezone)
    except ValueError as e:
        problems.append(str(e))
    try:
        parse_time_of_day(rules.scheduling.default_time_of_day)
    except ValueError as e:
        problems.append(str(e))

    if problems:
        for problem in problems:
            logger.critical(problem)
        raise ConfigurationError("; ".join(problems))

    logger.info("Configuration validated")
