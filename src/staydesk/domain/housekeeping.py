"""Housekeeping task assignment: least-loaded-first.

Each room released by a checkout gets one cleaning task. Tasks go to the
housekeeper with the fewest open (pending/in_progress) tasks at that
moment; the chosen housekeeper's count is bumped before the next room is
placed. Ties go to whoever comes first in the workload mapping.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

CHECKOUT_TASK_TYPE = "cleaning"
CHECKOUT_TASK_PRIORITY = 2
OPEN_TASK_STATUSES = ("pending", "in_progress")


@dataclass(frozen=True)
class TaskAssignment:
    room_id: str
    assigned_to: str | None

    @property
    def notes(self) -> str:
        if self.assigned_to:
            return "Post-checkout cleaning (auto-assigned)"
        return "Post-checkout cleaning"


def assign_least_loaded(
    room_ids: list[str],
    workloads: Mapping[str, int],
) -> list[TaskAssignment]:
    """Assign one task per room to the least-loaded staff member.

    Args:
        room_ids: Rooms needing a cleaning task, in order.
        workloads: staff_id -> current open task count. Iteration order
            breaks ties.

    Returns:
        One TaskAssignment per room (assigned_to is None with no staff).
    """
    counts = dict(workloads)
    assignments: list[TaskAssignment] = []

    for room_id in room_ids:
        if not counts:
            assignments.append(TaskAssignment(room_id=room_id, assigned_to=None))
            continue
        # min() returns the first minimal key in iteration order.
        staff_id = min(counts, key=counts.__getitem__)
        counts[staff_id] += 1
        assignments.append(TaskAssignment(room_id=room_id, assigned_to=staff_id))

    return assignments
