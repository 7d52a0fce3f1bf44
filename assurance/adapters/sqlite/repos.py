import json
import sqlite3
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from assurance.core.entities import (
    DeliveryConfig,
    DeliveryFormat,
    Frequency,
    RunRecord,
    Schedule,
)
from assurance.core.ports.db import (
    STATE_FIELDS,
    ClaimOutcome,
    RunCompletion,
    ScheduleAdvance,
    StoreUnavailableError,
)


# Helper to convert sqlite rows to dicts
def dict_factory(cursor: sqlite3.Cursor, row: Any) -> dict[str, Any]:
    d = {}
    for idx, col in enumerate(cursor.description):
        d[col[0]] = row[idx]
    return d


def _ts(dt: datetime | None) -> str | None:
    """Fixed-width UTC ISO text so string order matches time order."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


class SQLiteScheduleStore:
    """
    Schedule store backed by SQLite.

    Control-loop writes run inside BEGIN IMMEDIATE so concurrent ticks
    serialize on the database write lock; the UNIQUE(schedule_id,
    window_key) constraint decides which tick owns an occurrence.
    """

    def __init__(self, db_path: str, timeout: float = 5.0):
        self.db_path = db_path
        self.timeout = timeout

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _to_schedule(self, row: dict[str, Any]) -> Schedule:
        return Schedule(
            id=UUID(row["id"]),
            owner_ref=row["owner_ref"],
            resource_ref=row["resource_ref"],
            is_enabled=bool(row["is_enabled"]),
            frequency=Frequency(row["frequency"]),
            days_of_week=frozenset(json.loads(row["days_of_week"])),
            day_of_month=row["day_of_month"],
            time_of_day=row["time_of_day"],
            timezone=row["timezone"],
            starts_at=_parse_ts(row["starts_at"]),  # type: ignore[arg-type]
            ends_at=_parse_ts(row["ends_at"]),
            next_run_at=_parse_ts(row["next_run_at"]),  # type: ignore[arg-type]
            last_run_at=_parse_ts(row["last_run_at"]),
            consecutive_failures=row["consecutive_failures"],
            delivery=DeliveryConfig(
                recipients=tuple(json.loads(row["recipients"])),
                format=DeliveryFormat(row["deliver_format"]),
                executive_summary_only=bool(row["executive_summary_only"]),
            ),
            created_at=_parse_ts(row["created_at"]),  # type: ignore[arg-type]
            updated_at=_parse_ts(row["updated_at"]),  # type: ignore[arg-type]
        )

    def _to_run(self, row: dict[str, Any]) -> RunRecord:
        return RunRecord(
            id=UUID(row["id"]),
            schedule_id=UUID(row["schedule_id"]),
            window_key=row["window_key"],
            status=row["status"],
            started_at=_parse_ts(row["started_at"]),  # type: ignore[arg-type]
            completed_at=_parse_ts(row["completed_at"]),
            result_summary=row["result_summary"],
            error=row["error"],
            email_sent_at=_parse_ts(row["email_sent_at"]),
            delivery_ref=row["delivery_ref"],
        )

    def _read(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailableError(str(e)) from e
        finally:
            conn.close()

    # --- Owner-facing CRUD ---

    def get(self, schedule_id: UUID) -> Schedule | None:
        rows = self._read("SELECT * FROM schedules WHERE id = ?", (str(schedule_id),))
        return self._to_schedule(rows[0]) if rows else None

    def save(self, schedule: Schedule) -> Schedule:
        conn = self._get_conn()
        try:
            conn.execute("BEGIN")
            conn.execute(
                """
                INSERT INTO schedules (
                    id, owner_ref, resource_ref, is_enabled, frequency,
                    days_of_week, day_of_month, time_of_day, timezone,
                    starts_at, ends_at, next_run_at, last_run_at,
                    consecutive_failures, recipients, deliver_format,
                    executive_summary_only, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    resource_ref=excluded.resource_ref,
                    is_enabled=excluded.is_enabled,
                    frequency=excluded.frequency,
                    days_of_week=excluded.days_of_week,
                    day_of_month=excluded.day_of_month,
                    time_of_day=excluded.time_of_day,
                    timezone=excluded.timezone,
                    starts_at=excluded.starts_at,
                    ends_at=excluded.ends_at,
                    next_run_at=excluded.next_run_at,
                    consecutive_failures=excluded.consecutive_failures,
                    recipients=excluded.recipients,
                    deliver_format=excluded.deliver_format,
                    executive_summary_only=excluded.executive_summary_only,
                    updated_at=excluded.updated_at
            """,
                (
                    str(schedule.id),
                    schedule.owner_ref,
                    schedule.resource_ref,
                    int(schedule.is_enabled),
                    schedule.frequency.value,
                    json.dumps(sorted(schedule.days_of_week)),
                    schedule.day_of_month,
                    schedule.time_of_day,
                    schedule.timezone,
                    _ts(schedule.starts_at),
                    _ts(schedule.ends_at),
                    _ts(schedule.next_run_at),
                    _ts(schedule.last_run_at),
                    schedule.consecutive_failures,
                    json.dumps(list(schedule.delivery.recipients)),
                    schedule.delivery.format.value,
                    int(schedule.delivery.executive_summary_only),
                    _ts(schedule.created_at),
                    _ts(schedule.updated_at),
                ),
            )
            conn.execute("COMMIT")
            return schedule
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailableError(str(e)) from e
        finally:
            conn.close()

    def update_settings(
        self,
        schedule: Schedule,
        state: frozenset[str] = frozenset(),
    ) -> Schedule | None:
        unknown = state - STATE_FIELDS
        if unknown:
            raise ValueError(f"Not control-loop state: {', '.join(sorted(unknown))}")

        columns: dict[str, Any] = {
            "frequency": schedule.frequency.value,
            "days_of_week": json.dumps(sorted(schedule.days_of_week)),
            "day_of_month": schedule.day_of_month,
            "time_of_day": schedule.time_of_day,
            "timezone": schedule.timezone,
            "starts_at": _ts(schedule.starts_at),
            "ends_at": _ts(schedule.ends_at),
            "recipients": json.dumps(list(schedule.delivery.recipients)),
            "deliver_format": schedule.delivery.format.value,
            "executive_summary_only": int(schedule.delivery.executive_summary_only),
            "updated_at": _ts(schedule.updated_at),
        }
        if "is_enabled" in state:
            columns["is_enabled"] = int(schedule.is_enabled)
        if "next_run_at" in state:
            columns["next_run_at"] = _ts(schedule.next_run_at)
        if "consecutive_failures" in state:
            columns["consecutive_failures"] = schedule.consecutive_failures
        assignments = ", ".join(f"{name} = ?" for name in columns)

        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute(
                f"UPDATE schedules SET {assignments} WHERE id = ?",
                (*columns.values(), str(schedule.id)),
            )
            row = conn.execute(
                "SELECT * FROM schedules WHERE id = ?", (str(schedule.id),)
            ).fetchone()
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailableError(str(e)) from e
        finally:
            conn.close()
        return self._to_schedule(row) if row else None

    def delete(self, schedule_id: UUID) -> None:
        conn = self._get_conn()
        try:
            conn.execute("BEGIN")
            conn.execute("DELETE FROM schedule_runs WHERE schedule_id = ?", (str(schedule_id),))
            conn.execute("DELETE FROM schedules WHERE id = ?", (str(schedule_id),))
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailableError(str(e)) from e
        finally:
            conn.close()

    def list_for_owner(self, owner_ref: str) -> list[Schedule]:
        rows = self._read(
            "SELECT * FROM schedules WHERE owner_ref = ? ORDER BY created_at DESC",
            (owner_ref,),
        )
        return [self._to_schedule(r) for r in rows]

    def count_for_owner(self, owner_ref: str) -> int:
        rows = self._read(
            "SELECT COUNT(*) AS n FROM schedules WHERE owner_ref = ?",
            (owner_ref,),
        )
        return int(rows[0]["n"])

    def list_all(self, enabled: bool | None = None, limit: int = 100) -> list[Schedule]:
        if enabled is None:
            rows = self._read(
                "SELECT * FROM schedules ORDER BY created_at DESC LIMIT ?",
                (limit,),
            )
        else:
            rows = self._read(
                "SELECT * FROM schedules WHERE is_enabled = ? ORDER BY created_at DESC LIMIT ?",
                (int(enabled), limit),
            )
        return [self._to_schedule(r) for r in rows]

    def list_runs(self, schedule_id: UUID, limit: int = 10) -> list[RunRecord]:
        rows = self._read(
            "SELECT * FROM schedule_runs WHERE schedule_id = ? "
            "ORDER BY started_at DESC LIMIT ?",
            (str(schedule_id), limit),
        )
        return [self._to_run(r) for r in rows]

    # --- Control loop ---

    def list_due(self, now_utc: datetime, limit: int) -> list[Schedule]:
        now = _ts(now_utc)
        rows = self._read(
            """
            SELECT * FROM schedules
            WHERE is_enabled = 1
              AND next_run_at <= ?
              AND (ends_at IS NULL OR ends_at > ?)
            ORDER BY next_run_at ASC, id ASC
            LIMIT ?
            """,
            (now, now, limit),
        )
        return [self._to_schedule(r) for r in rows]

    def disable_expired(self, now_utc: datetime) -> list[UUID]:
        now = _ts(now_utc)
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            rows = conn.execute(
                "SELECT id FROM schedules "
                "WHERE is_enabled = 1 AND ends_at IS NOT NULL AND ends_at <= ?",
                (now,),
            ).fetchall()
            ids = [r["id"] for r in rows]
            for schedule_id in ids:
                conn.execute(
                    "UPDATE schedules SET is_enabled = 0, updated_at = ? WHERE id = ?",
                    (now, schedule_id),
                )
            conn.execute("COMMIT")
            return [UUID(i) for i in ids]
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailableError(str(e)) from e
        finally:
            conn.close()

    def claim(self, run: RunRecord, advance: ScheduleAdvance) -> ClaimOutcome:
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO schedule_runs (
                    id, schedule_id, window_key, status, started_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (
                    str(run.id),
                    str(run.schedule_id),
                    run.window_key,
                    run.status,
                    _ts(run.started_at),
                ),
            )
            outcome = ClaimOutcome.CLAIMED if cursor.rowcount == 1 else ClaimOutcome.ALREADY_CLAIMED

            # Only advance a schedule that is still due
            last_run = _ts(advance.last_run_at)
            conn.execute(
                """
                UPDATE schedules SET
                    last_run_at = ?,
                    next_run_at = ?,
                    is_enabled = CASE WHEN ? THEN 0 ELSE is_enabled END,
                    updated_at = ?
                WHERE id = ? AND next_run_at <= ?
                """,
                (
                    last_run,
                    _ts(advance.next_run_at),
                    int(advance.disable),
                    last_run,
                    str(advance.schedule_id),
                    last_run,
                ),
            )
            conn.execute("COMMIT")
            return outcome
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailableError(str(e)) from e
        finally:
            conn.close()

    def complete(self, completion: RunCompletion) -> None:
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute(
                """
                UPDATE schedule_runs SET
                    status = ?,
                    completed_at = ?,
                    result_summary = ?,
                    error = ?,
                    email_sent_at = ?,
                    delivery_ref = ?
                WHERE id = ?
                """,
                (
                    completion.status,
                    _ts(completion.completed_at),
                    completion.result_summary,
                    completion.error,
                    _ts(completion.email_sent_at),
                    completion.delivery_ref,
                    str(completion.run_id),
                ),
            )
            conn.execute(
                """
                UPDATE schedules SET
                    consecutive_failures = ?,
                    is_enabled = CASE WHEN ? THEN 0 ELSE is_enabled END,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    completion.consecutive_failures,
                    int(completion.disable),
                    _ts(completion.completed_at),
                    str(completion.schedule_id),
                ),
            )
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailableError(str(e)) from e
        finally:
            conn.close()

    def previous_success_score(self, schedule_id: UUID, exclude_run_id: UUID) -> float | None:
        rows = self._read(
            """
            SELECT result_summary FROM schedule_runs
            WHERE schedule_id = ? AND id != ? AND status = 'success'
              AND result_summary IS NOT NULL
            ORDER BY started_at DESC
            LIMIT 1
            """,
            (str(schedule_id), str(exclude_run_id)),
        )
        return rows[0]["result_summary"] if rows else None

    def get_run(self, schedule_id: UUID, window_key: str) -> RunRecord | None:
        """Look up the run for one occurrence."""
        rows = self._read(
            "SELECT * FROM schedule_runs WHERE schedule_id = ? AND window_key = ?",
            (str(schedule_id), window_key),
        )
        return self._to_run(rows[0]) if rows else None

    def ping(self) -> bool:
        """Health probe: a trivial query against the database."""
        self._read("SELECT 1 AS ok")
        return True
