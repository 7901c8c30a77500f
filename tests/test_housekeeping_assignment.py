"""Tests for least-loaded housekeeping assignment."""

from staydesk.domain.housekeeping import TaskAssignment, assign_least_loaded


def test_one_task_per_room():
    result = assign_least_loaded(["r1", "r2", "r3"], {"s1": 0})
    assert [a.room_id for a in result] == ["r1", "r2", "r3"]
    assert all(a.assigned_to == "s1" for a in result)


def test_picks_least_loaded():
    result = assign_least_loaded(["r1"], {"s1": 3, "s2": 1, "s3": 2})
    assert result == [TaskAssignment(room_id="r1", assigned_to="s2")]


def test_count_bumped_between_rooms():
    # s2 takes r1 (1 -> 2), then s1 and s2 tie at 2; first in order wins.
    result = assign_least_loaded(["r1", "r2", "r3"], {"s1": 2, "s2": 1})
    assert [a.assigned_to for a in result] == ["s2", "s1", "s2"]


def test_tie_goes_to_first_in_order():
    result = assign_least_loaded(["r1"], {"s2": 0, "s1": 0})
    assert result[0].assigned_to == "s2"


def test_no_staff_leaves_tasks_unassigned():
    result = assign_least_loaded(["r1", "r2"], {})
    assert [a.assigned_to for a in result] == [None, None]


def test_input_workloads_not_mutated():
    workloads = {"s1": 0}
    assign_least_loaded(["r1", "r2"], workloads)
    assert workloads == {"s1": 0}


def test_notes():
    assert "auto-assigned" in TaskAssignment("r1", "s1").notes
    assert TaskAssignment("r1", None).notes == "Post-checkout cleaning"
