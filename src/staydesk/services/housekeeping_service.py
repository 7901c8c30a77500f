"""Housekeeping service - cleaning tasks created by checkouts."""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staydesk.domain.housekeeping import (
    CHECKOUT_TASK_PRIORITY,
    CHECKOUT_TASK_TYPE,
    assign_least_loaded,
)
from staydesk.domain.reservations import RoomStatus
from staydesk.infra.repositories import housekeeping_repository, rooms_repository
from staydesk.observability.logging import get_logger
from staydesk.observability.redaction import safe_log_context

logger = get_logger(__name__)


class TaskNotFoundError(Exception):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Housekeeping task {task_id} not found")


class InvalidTaskStatusError(Exception):
    def __init__(self, task_id: str, status: str, target: str):
        self.task_id = task_id
        self.status = status
        self.target = target
        super().__init__(f"Task {task_id} cannot move from '{status}' to '{target}'")


_ALLOWED_FROM = {
    "in_progress": frozenset({"pending"}),
    "completed": frozenset({"pending", "in_progress"}),
}


def create_checkout_tasks(
    cur: PgCursor, *, property_id: str, room_ids: list[str]
) -> dict[str, Any]:
    """Create one pending cleaning task per room, least-loaded staff first.

    Returns:
        Dict with "task_ids" and "assigned_staff" (distinct display names
        of the staff who received a task).
    """
    if not room_ids:
        return {"task_ids": [], "assigned_staff": []}

    staff = housekeeping_repository.housekeeping_workloads(cur, property_id=property_id)
    names = {staff_id: name for staff_id, name, _ in staff}
    workloads = {staff_id: count for staff_id, _, count in staff}

    assignments = assign_least_loaded(room_ids, workloads)
    task_ids = housekeeping_repository.insert_tasks(
        cur,
        property_id=property_id,
        assignments=assignments,
        task_type=CHECKOUT_TASK_TYPE,
        priority=CHECKOUT_TASK_PRIORITY,
    )

    assigned_staff = list(
        dict.fromkeys(names[a.assigned_to] for a in assignments if a.assigned_to)
    )
    logger.info(
        "checkout tasks created",
        extra={
            "extra_fields": safe_log_context(
                property_id=property_id,
                task_count=len(task_ids),
                assigned_count=len(assigned_staff),
            )
        },
    )
    return {"task_ids": task_ids, "assigned_staff": assigned_staff}


def _transition(cur: PgCursor, *, property_id: str, task_id: str, target: str) -> dict[str, Any]:
    task = housekeeping_repository.lock_task(cur, property_id=property_id, task_id=task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    if task["status"] not in _ALLOWED_FROM[target]:
        raise InvalidTaskStatusError(task_id, task["status"], target)
    housekeeping_repository.set_task_status(cur, task_id=task_id, status=target)
    return {**task, "status": target}


def start_task(cur: PgCursor, *, property_id: str, task_id: str) -> dict[str, Any]:
    return _transition(cur, property_id=property_id, task_id=task_id, target="in_progress")


def complete_task(
    cur: PgCursor,
    *,
    property_id: str,
    task_id: str,
    update_room_status: bool = True,
) -> dict[str, Any]:
    """Complete a task and release its room to vacant.

    Args:
        update_room_status: Leave the room status alone when False.
    """
    task = _transition(cur, property_id=property_id, task_id=task_id, target="completed")
    if update_room_status and task["room_id"]:
        rooms_repository.set_rooms_status(
            cur,
            property_id=property_id,
            room_ids=[task["room_id"]],
            status=RoomStatus.VACANT.value,
        )
    logger.info(
        "housekeeping task completed",
        extra={
            "extra_fields": safe_log_context(
                property_id=property_id, task_id=task_id, room_id=task["room_id"]
            )
        },
    )
    return task
