"""Housekeeping repository - staff workloads and cleaning tasks.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staydesk.domain.housekeeping import OPEN_TASK_STATUSES, TaskAssignment
from staydesk.infra.db import fetchall, for_update


def housekeeping_workloads(cur: PgCursor, *, property_id: str) -> list[tuple[str, str, int]]:
    """Active housekeeping staff with their open task counts.

    Returns:
        (staff_id, display_name, open_task_count) rows in staff creation order.
    """
    rows = fetchall(
        cur,
        """
        SELECT s.id, s.full_name, COUNT(t.id)
        FROM staff_members s
        LEFT JOIN housekeeping_tasks t
               ON t.assigned_to = s.id
              AND t.property_id = s.property_id
              AND t.status = ANY(%s)
        WHERE s.property_id = %s AND s.role = 'housekeeping' AND s.is_active = true
        GROUP BY s.id, s.full_name, s.created_at
        ORDER BY s.created_at, s.id
        """,
        (list(OPEN_TASK_STATUSES), property_id),
    )
    return [(str(r[0]), r[1] or "Staff", r[2]) for r in rows]


def insert_tasks(
    cur: PgCursor,
    *,
    property_id: str,
    assignments: list[TaskAssignment],
    task_type: str,
    priority: int,
) -> list[str]:
    """Insert one pending task per assignment. Returns task ids."""
    task_ids: list[str] = []
    for assignment in assignments:
        cur.execute(
            """
            INSERT INTO housekeeping_tasks (
                property_id, room_id, task_type, priority, status,
                assigned_to, notes
            )
            VALUES (%s, %s, %s, %s, 'pending', %s, %s)
            RETURNING id
            """,
            (
                property_id,
                assignment.room_id,
                task_type,
                priority,
                assignment.assigned_to,
                assignment.notes,
            ),
        )
        task_ids.append(str(cur.fetchone()[0]))
    return task_ids


def lock_task(cur: PgCursor, *, property_id: str, task_id: str) -> dict[str, Any] | None:
    row = for_update(
        cur,
        """
        SELECT id, room_id, status, assigned_to
        FROM housekeeping_tasks
        WHERE property_id = %s AND id = %s
        """,
        (property_id, task_id),
    )
    if row is None:
        return None
    return {
        "id": str(row[0]),
        "room_id": str(row[1]) if row[1] else None,
        "status": row[2],
        "assigned_to": str(row[3]) if row[3] else None,
    }


def set_task_status(cur: PgCursor, *, task_id: str, status: str) -> None:
    stamp = {"in_progress": "started_at = now()", "completed": "completed_at = now()"}.get(status)
    assignments = ["status = %s", "updated_at = now()"]
    if stamp:
        assignments.append(stamp)
    cur.execute(
        f"UPDATE housekeeping_tasks SET {', '.join(assignments)} WHERE id = %s",
        (status, task_id),
    )
