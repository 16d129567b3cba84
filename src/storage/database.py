import json
import logging
import sqlite3
from pathlib import Path

import aiosqlite
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.errors import SubtaskNotFoundError, TaskNotFoundError
from src.models.enums import ReportType, SubtaskStatus, TaskStatus
from src.models.task import (
    ImplementationPlan,
    Report,
    Subtask,
    Task,
    TaskDescription,
    WorkflowTransition,
)

logger = logging.getLogger(__name__)


def _is_locked_error(exc: BaseException) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc).lower()


def _log_retry_attempt(retry_state: RetryCallState) -> None:
    """Tenacity ``before_sleep`` callback that logs each retry."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("Database busy, retry %d: %s", retry_state.attempt_number, exc)


retry_when_locked = retry(
    retry=retry_if_exception(_is_locked_error),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
    before_sleep=_log_retry_attempt,
    reraise=True,
)
"""Tenacity decorator retrying writes that hit ``database is locked``."""


class DatabaseManager:
    """Async SQLite database manager with typed repository methods.

    All SQL in the application lives in this class. Other layers
    call typed methods that accept and return Pydantic models.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = str(db_path)
        self.connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL mode and foreign keys, execute schema."""
        self.connection = await aiosqlite.connect(self.db_path)
        self.connection.row_factory = aiosqlite.Row
        schema_path = Path(__file__).parent / "schema.sql"
        await self.connection.executescript(schema_path.read_text())
        await self.connection.execute("PRAGMA journal_mode=WAL")
        await self.connection.execute("PRAGMA foreign_keys=ON")
        await self.connection.commit()
        logger.info("Database initialized at %s", self.db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self.connection:
            await self.connection.close()
            self.connection = None

    async def __aenter__(self) -> "DatabaseManager":
        await self.initialize()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        await self.close()

    @retry_when_locked
    async def execute(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        """Execute a single SQL statement and commit.

        A failed statement or commit is rolled back before the error
        propagates, so a retry starts from a clean transaction.
        """
        assert self.connection is not None
        try:
            cursor = await self.connection.execute(sql, params)
            await self.connection.commit()
        except sqlite3.Error:
            await self.connection.rollback()
            raise
        return cursor

    async def fetch_one(self, sql: str, params: tuple = ()) -> dict | None:
        """Execute a query and return a single row as a dict, or None."""
        assert self.connection is not None
        cursor = await self.connection.execute(sql, params)
        row = await cursor.fetchone()
        if row is None:
            return None
        return dict(row)

    async def fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a query and return all rows as list of dicts."""
        assert self.connection is not None
        cursor = await self.connection.execute(sql, params)
        rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    # ── Tasks ─────────────────────────────────────────────────────────────

    async def create_task(self, task: Task) -> Task:
        cursor = await self.execute(
            """INSERT INTO tasks (name, status, owner, priority, git_branch)
               VALUES (?, ?, ?, ?, ?)""",
            (
                task.name,
                task.status.value,
                task.owner.value if task.owner else None,
                task.priority,
                task.git_branch,
            ),
        )
        assert cursor.lastrowid is not None
        return await self.get_task(cursor.lastrowid)

    async def get_task(self, task_id: int) -> Task:
        row = await self.fetch_one("SELECT * FROM tasks WHERE id = ?", (task_id,))
        if not row:
            raise TaskNotFoundError(task_id)
        return Task(**row)

    async def list_tasks(
        self, status: TaskStatus | None = None, limit: int = 50
    ) -> list[Task]:
        if status is not None:
            rows = await self.fetch_all(
                "SELECT * FROM tasks WHERE status = ? ORDER BY id DESC LIMIT ?",
                (status.value, limit),
            )
        else:
            rows = await self.fetch_all(
                "SELECT * FROM tasks ORDER BY id DESC LIMIT ?", (limit,)
            )
        return [Task(**r) for r in rows]

    async def update_task_status(self, task_id: int, status: TaskStatus) -> Task:
        cursor = await self.execute(
            """UPDATE tasks SET status = ?, updated_at = CURRENT_TIMESTAMP
               WHERE id = ?""",
            (status.value, task_id),
        )
        if cursor.rowcount == 0:
            raise TaskNotFoundError(task_id)
        return await self.get_task(task_id)

    # ── Descriptions ──────────────────────────────────────────────────────

    async def save_description(self, description: TaskDescription) -> None:
        await self.execute(
            """INSERT INTO task_descriptions
               (task_id, description, business_requirements,
                technical_requirements, acceptance_criteria)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(task_id) DO UPDATE SET
                   description = excluded.description,
                   business_requirements = excluded.business_requirements,
                   technical_requirements = excluded.technical_requirements,
                   acceptance_criteria = excluded.acceptance_criteria""",
            (
                description.task_id,
                description.description,
                description.business_requirements,
                description.technical_requirements,
                json.dumps(description.acceptance_criteria),
            ),
        )

    async def get_description(self, task_id: int) -> TaskDescription | None:
        row = await self.fetch_one(
            "SELECT * FROM task_descriptions WHERE task_id = ?", (task_id,)
        )
        if not row:
            return None
        row["acceptance_criteria"] = json.loads(row["acceptance_criteria"] or "[]")
        return TaskDescription(**row)

    # ── Implementation Plans ──────────────────────────────────────────────

    async def create_plan(self, plan: ImplementationPlan) -> ImplementationPlan:
        cursor = await self.execute(
            """INSERT INTO implementation_plans
               (task_id, overview, approach, technical_decisions, created_by)
               VALUES (?, ?, ?, ?, ?)""",
            (
                plan.task_id,
                plan.overview,
                plan.approach,
                plan.technical_decisions,
                plan.created_by.value,
            ),
        )
        row = await self.fetch_one(
            "SELECT * FROM implementation_plans WHERE id = ?", (cursor.lastrowid,)
        )
        assert row is not None
        return ImplementationPlan(**row)

    async def get_plans(self, task_id: int) -> list[ImplementationPlan]:
        rows = await self.fetch_all(
            "SELECT * FROM implementation_plans WHERE task_id = ? ORDER BY id",
            (task_id,),
        )
        return [ImplementationPlan(**r) for r in rows]

    # ── Subtasks ──────────────────────────────────────────────────────────

    async def add_subtask(self, subtask: Subtask) -> Subtask:
        cursor = await self.execute(
            """INSERT INTO subtasks
               (task_id, plan_id, batch_id, sequence_number, name, description, status)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                subtask.task_id,
                subtask.plan_id,
                subtask.batch_id,
                subtask.sequence_number,
                subtask.name,
                subtask.description,
                subtask.status.value,
            ),
        )
        assert cursor.lastrowid is not None
        return await self.get_subtask(cursor.lastrowid)

    async def get_subtask(self, subtask_id: int) -> Subtask:
        row = await self.fetch_one("SELECT * FROM subtasks WHERE id = ?", (subtask_id,))
        if not row:
            raise SubtaskNotFoundError(subtask_id)
        return Subtask(**row)

    async def get_subtasks(
        self,
        task_id: int,
        status: SubtaskStatus | None = None,
        batch_id: str | None = None,
    ) -> list[Subtask]:
        sql = "SELECT * FROM subtasks WHERE task_id = ?"
        params: list = [task_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        if batch_id is not None:
            sql += " AND batch_id = ?"
            params.append(batch_id)
        sql += " ORDER BY batch_id, sequence_number"
        rows = await self.fetch_all(sql, tuple(params))
        return [Subtask(**r) for r in rows]

    async def update_subtask_status(
        self, subtask_id: int, status: SubtaskStatus
    ) -> Subtask:
        completed_at = "CURRENT_TIMESTAMP" if status == SubtaskStatus.COMPLETED else "NULL"
        cursor = await self.execute(
            f"UPDATE subtasks SET status = ?, completed_at = {completed_at} WHERE id = ?",
            (status.value, subtask_id),
        )
        if cursor.rowcount == 0:
            raise SubtaskNotFoundError(subtask_id)
        return await self.get_subtask(subtask_id)

    # ── Workflow Transitions ──────────────────────────────────────────────

    async def record_transition(self, transition: WorkflowTransition) -> None:
        await self.execute(
            """INSERT INTO workflow_transitions
               (task_id, from_status, to_status, role, reason)
               VALUES (?, ?, ?, ?, ?)""",
            (
                transition.task_id,
                transition.from_status.value if transition.from_status else None,
                transition.to_status.value,
                transition.role.value if transition.role else None,
                transition.reason,
            ),
        )

    async def get_transitions(
        self, task_id: int, limit: int = 10
    ) -> list[WorkflowTransition]:
        rows = await self.fetch_all(
            """SELECT * FROM workflow_transitions WHERE task_id = ?
               ORDER BY id DESC LIMIT ?""",
            (task_id, limit),
        )
        return [WorkflowTransition(**r) for r in rows]

    # ── Reports ───────────────────────────────────────────────────────────

    async def add_report(self, report: Report) -> Report:
        cursor = await self.execute(
            """INSERT INTO reports (task_id, report_type, summary, findings)
               VALUES (?, ?, ?, ?)""",
            (
                report.task_id,
                report.report_type.value,
                report.summary,
                json.dumps(report.findings),
            ),
        )
        row = await self.fetch_one("SELECT * FROM reports WHERE id = ?", (cursor.lastrowid,))
        assert row is not None
        row["findings"] = json.loads(row["findings"])
        return Report(**row)

    async def get_reports(self, task_id: int) -> dict[str, list[Report]]:
        """Return the task's reports grouped by report type."""
        rows = await self.fetch_all(
            "SELECT * FROM reports WHERE task_id = ? ORDER BY id", (task_id,)
        )
        grouped: dict[str, list[Report]] = {t.value: [] for t in ReportType}
        for row in rows:
            row["findings"] = json.loads(row["findings"] or "[]")
            report = Report(**row)
            grouped[report.report_type.value].append(report)
        return grouped
