"""
MySQL-backed progress store and audit sink

Schema: alembic/versions/001_learning_core_schema.py
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, List, Optional

import mysql.connector

from ..audit import AuditEntry, AuditSink
from ..db import db_connection
from ..errors import ProgressStoreError
from ..utils import utcnow
from .models import CompletionCriteria, Course, CourseAssignment, LearningStep, StepProgress
from .store import ProgressStore

logger = logging.getLogger(__name__)

STEP_COLUMNS = (
    "id AS step_id, course_id, step_order, step_type, mandatory, title, learning_unit_id, completion_criteria"
)
PROGRESS_COLUMNS = (
    "student_id, step_id, course_id, completion_percent, time_spent_seconds, last_accessed_at, created_at, updated_at"
)
ASSIGNMENT_COLUMNS = "id AS assignment_id, student_id, course_id, status, assigned_at, started_at, completed_at"


def _step_from_row(row: dict) -> LearningStep:
    criteria = row.get("completion_criteria") or {}
    if isinstance(criteria, (str, bytes)):
        criteria = json.loads(criteria)
    return LearningStep(
        step_id=row["step_id"],
        course_id=row["course_id"],
        step_order=row["step_order"],
        step_type=row["step_type"],
        mandatory=bool(row["mandatory"]),
        title=row.get("title"),
        learning_unit_id=row.get("learning_unit_id"),
        completion_criteria=CompletionCriteria(**criteria),
    )


class MySQLProgressStore(ProgressStore):
    """ProgressStore over the learning tables; every call uses its own connection"""

    def __init__(self, connection_factory: Callable = db_connection):
        self._connection_factory = connection_factory

    def _fetch(self, query: str, params: tuple, many: bool = False) -> Any:
        try:
            with self._connection_factory() as conn:
                cursor = conn.cursor(dictionary=True)
                try:
                    cursor.execute(query, params)
                    return cursor.fetchall() if many else cursor.fetchone()
                finally:
                    cursor.close()
        except mysql.connector.Error as e:
            logger.error(f"Progress store read failed: {e}")
            raise ProgressStoreError(f"Progress store read failed: {e}") from e

    # ---- reads ---------------------------------------------------------

    def get_student_id(self, user_id: str) -> Optional[str]:
        row = self._fetch("SELECT id FROM students WHERE user_id = %s LIMIT 1", (user_id,))
        return row["id"] if row else None

    def get_course(self, course_id: str) -> Optional[Course]:
        row = self._fetch("SELECT id AS course_id, title, status FROM courses WHERE id = %s", (course_id,))
        return Course(**row) if row else None

    def get_step(self, step_id: str) -> Optional[LearningStep]:
        row = self._fetch(f"SELECT {STEP_COLUMNS} FROM learning_flow_steps WHERE id = %s", (step_id,))
        return _step_from_row(row) if row else None

    def list_steps(self, course_id: str) -> List[LearningStep]:
        rows = self._fetch(
            f"SELECT {STEP_COLUMNS} FROM learning_flow_steps WHERE course_id = %s ORDER BY step_order ASC",
            (course_id,),
            many=True,
        )
        return [_step_from_row(r) for r in rows]

    def list_previous_mandatory_steps(self, step: LearningStep) -> List[LearningStep]:
        rows = self._fetch(
            f"""
            SELECT {STEP_COLUMNS} FROM learning_flow_steps
            WHERE course_id = %s AND step_order < %s AND mandatory = TRUE
            ORDER BY step_order ASC
            """,
            (step.course_id, step.step_order),
            many=True,
        )
        return [_step_from_row(r) for r in rows]

    def get_assignment(self, student_id: str, course_id: str) -> Optional[CourseAssignment]:
        row = self._fetch(
            f"SELECT {ASSIGNMENT_COLUMNS} FROM course_assignments WHERE student_id = %s AND course_id = %s LIMIT 1",
            (student_id, course_id),
        )
        return CourseAssignment(**row) if row else None

    def get_progress(self, student_id: str, step_id: str) -> Optional[StepProgress]:
        row = self._fetch(
            f"SELECT {PROGRESS_COLUMNS} FROM step_progress WHERE student_id = %s AND step_id = %s",
            (student_id, step_id),
        )
        return StepProgress(**row) if row else None

    def list_progress(self, student_id: str, course_id: str) -> List[StepProgress]:
        rows = self._fetch(
            f"SELECT {PROGRESS_COLUMNS} FROM step_progress WHERE student_id = %s AND course_id = %s",
            (student_id, course_id),
            many=True,
        )
        return [StepProgress(**r) for r in rows]

    def count_completed_steps(self, student_id: str, course_id: str) -> int:
        row = self._fetch(
            """
            SELECT COUNT(*) AS completed FROM step_progress sp
            JOIN learning_flow_steps s ON s.id = sp.step_id
            WHERE sp.student_id = %s AND sp.course_id = %s AND sp.completion_percent >= 100
            """,
            (student_id, course_id),
        )
        return int(row["completed"]) if row else 0

    # ---- writes --------------------------------------------------------

    def save_assignment(self, assignment: CourseAssignment) -> CourseAssignment:
        try:
            with self._connection_factory() as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute(
                        """
                        UPDATE course_assignments
                        SET status = %s, started_at = %s, completed_at = %s
                        WHERE id = %s
                        """,
                        (
                            assignment.status.value,
                            assignment.started_at,
                            assignment.completed_at,
                            assignment.assignment_id,
                        ),
                    )
                    conn.commit()
                finally:
                    cursor.close()
        except mysql.connector.Error as e:
            logger.error(f"Saving assignment {assignment.assignment_id} failed: {e}")
            raise ProgressStoreError(f"Saving assignment failed: {e}") from e
        return assignment

    def upsert_progress(
        self,
        student_id: str,
        step: LearningStep,
        completion_percent: int,
        time_spent_seconds: int,
        now: Optional[datetime] = None,
    ) -> StepProgress:
        now = now or utcnow()
        try:
            with self._connection_factory() as conn:
                cursor = conn.cursor(dictionary=True)
                try:
                    # Single statement: percent replaced, time spent added in place
                    cursor.execute(
                        """
                        INSERT INTO step_progress
                            (id, student_id, course_id, step_id, completion_percent, time_spent_seconds,
                             last_accessed_at, created_at, updated_at)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                        ON DUPLICATE KEY UPDATE
                            completion_percent = VALUES(completion_percent),
                            time_spent_seconds = time_spent_seconds + VALUES(time_spent_seconds),
                            last_accessed_at = VALUES(last_accessed_at),
                            updated_at = VALUES(updated_at)
                        """,
                        (
                            str(uuid.uuid4()),
                            student_id,
                            step.course_id,
                            step.step_id,
                            completion_percent,
                            time_spent_seconds,
                            now,
                            now,
                            now,
                        ),
                    )
                    cursor.execute(
                        f"SELECT {PROGRESS_COLUMNS} FROM step_progress WHERE student_id = %s AND step_id = %s",
                        (student_id, step.step_id),
                    )
                    row = cursor.fetchone()
                    conn.commit()
                finally:
                    cursor.close()
        except mysql.connector.Error as e:
            logger.error(f"Upserting progress for {student_id}/{step.step_id} failed: {e}")
            raise ProgressStoreError(f"Upserting progress failed: {e}") from e

        if row is None:
            raise ProgressStoreError(f"Progress row for {student_id}/{step.step_id} missing after upsert")
        return StepProgress(**row)


class MySQLAuditSink(AuditSink):
    """Appends audit entries to the audit_logs table"""

    def __init__(self, connection_factory: Callable = db_connection):
        self._connection_factory = connection_factory

    def append(self, entry: AuditEntry) -> None:
        with self._connection_factory() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(
                    """
                    INSERT INTO audit_logs
                        (id, user_id, event_type, entity_type, entity_id, ip_address, user_agent,
                         description, metadata, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        str(uuid.uuid4()),
                        entry.user_id,
                        entry.event_type,
                        entry.entity_type,
                        entry.entity_id,
                        entry.ip_address,
                        entry.user_agent,
                        entry.description,
                        json.dumps(entry.metadata, default=str),
                        entry.timestamp,
                    ),
                )
                conn.commit()
            finally:
                cursor.close()
