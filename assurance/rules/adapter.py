from assurance.rules.models import Rules


class SchedulerRulesAdapter:
    """Adapts rules to the scheduler component's RulesPort."""

    def __init__(self, rules: Rules):
        self._scheduling = rules.scheduling
        self._schedules = rules.schedules

    def get_max_per_tick(self) -> int:
        return self._scheduling.max_per_tick

    def get_max_consecutive_failures(self) -> int:
        return self._scheduling.max_consecutive_failures

    def get_max_schedules_per_owner(self) -> int:
        return self._schedules.max_per_owner

    def get_max_recipients(self) -> int:
        return self._schedules.max_recipients

    def get_default_timezone(self) -> str:
        return self._scheduling.default_timezone

    def get_default_time_of_day(self) -> str:
        return self._scheduling.default_time_of_day

    def get_allowed_formats(self) -> tuple[str, ...]:
        return tuple(self._schedules.formats)

    def get_run_history_limit(self) -> int:
        return self._schedules.run_history_limit
