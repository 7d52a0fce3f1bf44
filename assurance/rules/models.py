from pydantic import BaseModel, Field


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class SchedulingRules(BaseModel):
    max_per_tick: int = Field(default=10, ge=1)
    max_consecutive_failures: int = Field(default=5, ge=1)
    default_timezone: str = "Europe/Amsterdam"
    default_time_of_day: str = "09:00"
    poll_interval_seconds: float = Field(default=60.0, gt=0)


class ScheduleLimitRules(BaseModel):
    max_per_owner: int = Field(default=20, ge=1)
    max_recipients: int = Field(default=20, ge=0)
    formats: list[str] = ["PDF", "PDF_AND_DOCX", "PDF_AND_HTML"]
    run_history_limit: int = Field(default=10, ge=1)


class DeliveryRules(BaseModel):
    manage_url: str
    sender: str | None = None


class OpsRules(BaseModel):
    required_env: list[str] = []


class Rules(BaseModel):
    project: ProjectRules
    scheduling: SchedulingRules
    schedules: ScheduleLimitRules
    delivery: DeliveryRules
    ops: OpsRules
