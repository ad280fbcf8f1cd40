"""Unit tests for the task lifecycle and time tracking core."""
from datetime import timedelta

import pytest

from taskmanager.services import lifecycle
from taskmanager.services.lifecycle import (
    Completed, Idle, Running, TimeTracking,
    apply_status_change, start_timer, stop_timer,
)
from taskmanager.utils.errors import ValidationError

from conftest import T0


def running(since=T0, time_spent=0):
    return TimeTracking(status="in-progress", state=Running(since), time_spent=time_spent)


def assert_consistent(tracking):
    fields = tracking.to_fields()
    if fields["is_active"]:
        assert fields["started_at"] is not None
        assert fields["status"] != "completed"
    assert (fields["status"] == "completed") == (fields["completed_at"] is not None)


class TestElapsedMinutes:
    def test_floors_partial_minutes(self):
        assert lifecycle.elapsed_minutes(T0, T0 + timedelta(milliseconds=125000)) == 2

    def test_clock_skew_never_negative(self):
        assert lifecycle.elapsed_minutes(T0, T0 - timedelta(minutes=5)) == 0

    def test_naive_datetimes_are_utc(self):
        assert lifecycle.elapsed_minutes(T0.replace(tzinfo=None), T0 + timedelta(minutes=3)) == 3


class TestTimeTrackingFields:
    def test_new_task_defaults(self):
        fields = TimeTracking().to_fields()
        assert fields == {
            "status": "todo",
            "time_spent": 0,
            "is_active": False,
            "started_at": None,
            "completed_at": None,
        }

    def test_running_state_sets_started_at(self):
        fields = running().to_fields()
        assert fields["is_active"] is True
        assert fields["started_at"] == T0

    def test_from_document_round_trip(self):
        doc = {"status": "in-progress", "is_active": True, "started_at": T0, "time_spent": 7}
        tracking = TimeTracking.from_document(doc)
        assert tracking.state == Running(T0)
        assert tracking.time_spent == 7

    def test_active_without_start_is_idle(self):
        tracking = TimeTracking.from_document({"status": "in-progress", "is_active": True})
        assert tracking.state == Idle()
        assert tracking.to_fields()["is_active"] is False

    def test_completed_document(self):
        tracking = TimeTracking.from_document({"status": "completed", "completed_at": T0, "time_spent": 3})
        assert tracking.state == Completed(T0)


class TestApplyStatusChange:
    def test_complete_flushes_running_session(self):
        # active since t0 with 10 minutes logged, completed three minutes later
        tracking = running(time_spent=10)
        now = T0 + timedelta(milliseconds=180000)

        result = apply_status_change(tracking, "completed", now)

        assert result.time_spent == 13
        assert result.state == Completed(now)
        assert result.to_fields()["is_active"] is False
        assert result.to_fields()["completed_at"] == now
        assert_consistent(result)

    def test_in_progress_starts_session(self):
        result = apply_status_change(TimeTracking(), "in-progress", T0)
        assert result.state == Running(T0)
        assert result.status == "in-progress"
        assert_consistent(result)

    def test_in_progress_keeps_existing_session(self):
        tracking = TimeTracking(status="todo", state=Running(T0), time_spent=4)
        result = apply_status_change(tracking, "in-progress", T0 + timedelta(minutes=30))
        assert result.state == Running(T0)
        assert result.time_spent == 4

    def test_reopen_completed_task_clears_completion(self):
        tracking = TimeTracking(status="completed", state=Completed(T0), time_spent=20)
        result = apply_status_change(tracking, "in-progress", T0 + timedelta(hours=1))
        assert result.to_fields()["completed_at"] is None
        assert result.time_spent == 20
        assert_consistent(result)

    def test_back_to_todo_flushes_and_idles(self):
        result = apply_status_change(running(time_spent=1), "todo", T0 + timedelta(minutes=9, seconds=59))
        assert result.time_spent == 10
        assert result.state == Idle()
        assert_consistent(result)

    @pytest.mark.parametrize("tracking", [
        TimeTracking(),
        running(time_spent=5),
        TimeTracking(status="completed", state=Completed(T0), time_spent=8),
    ])
    def test_same_status_is_noop(self, tracking):
        result = apply_status_change(tracking, tracking.status, T0 + timedelta(hours=2))
        assert result == tracking

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            apply_status_change(TimeTracking(), "archived", T0)


class TestTimers:
    def test_start_then_stop_logs_whole_minutes(self):
        started = start_timer(TimeTracking(), T0)
        assert started.status == "in-progress"
        assert started.state == Running(T0)

        stopped = stop_timer(started, T0 + timedelta(milliseconds=125000))

        fields = stopped.to_fields()
        assert fields["time_spent"] == 2
        assert fields["is_active"] is False
        assert fields["started_at"] is None

    def test_stop_inactive_task_is_noop(self):
        tracking = TimeTracking(time_spent=6)
        assert stop_timer(tracking, T0) == tracking

    def test_stop_completed_task_keeps_completion(self):
        tracking = TimeTracking(status="completed", state=Completed(T0), time_spent=3)
        assert stop_timer(tracking, T0 + timedelta(minutes=5)) == tracking

    def test_restart_running_task_flushes_first(self):
        result = start_timer(running(time_spent=2), T0 + timedelta(minutes=4))
        assert result.time_spent == 6
        assert result.state == Running(T0 + timedelta(minutes=4))

    def test_start_on_completed_task_reopens_it(self):
        tracking = TimeTracking(status="completed", state=Completed(T0), time_spent=3)
        result = start_timer(tracking, T0 + timedelta(minutes=1))
        assert result.status == "in-progress"
        assert result.to_fields()["completed_at"] is None
        assert_consistent(result)

    def test_time_spent_never_decreases(self):
        now = T0
        tracking = TimeTracking()
        seen = [tracking.time_spent]
        steps = [
            lambda t, n: start_timer(t, n),
            lambda t, n: apply_status_change(t, "todo", n),
            lambda t, n: apply_status_change(t, "in-progress", n),
            lambda t, n: apply_status_change(t, "completed", n),
            lambda t, n: start_timer(t, n),
            lambda t, n: stop_timer(t, n),
            lambda t, n: stop_timer(t, n),
        ]
        for step in steps:
            now += timedelta(minutes=7, seconds=30)
            tracking = step(tracking, now)
            assert_consistent(tracking)
            seen.append(tracking.time_spent)

        assert seen == sorted(seen)
        assert seen[-1] > 0


class TestDerivedValues:
    def test_overdue_unless_completed(self):
        yesterday = T0 - timedelta(days=1)
        assert lifecycle.is_overdue(yesterday, "in-progress", T0) is True
        assert lifecycle.is_overdue(yesterday, "completed", T0) is False
        assert lifecycle.is_overdue(None, "todo", T0) is False
        assert lifecycle.is_overdue(T0 + timedelta(days=1), "todo", T0) is False

    @pytest.mark.parametrize("delta,status,expected", [
        (None, "todo", None),
        (timedelta(days=3), "completed", None),
        (timedelta(minutes=-1), "todo", "overdue"),
        (timedelta(days=1, hours=5), "todo", "1 day"),
        (timedelta(days=3), "in-progress", "3 days"),
        (timedelta(hours=1, minutes=10), "todo", "1 hour"),
        (timedelta(hours=5), "todo", "5 hours"),
        (timedelta(minutes=59), "todo", "less than 1 hour"),
    ])
    def test_time_remaining(self, delta, status, expected):
        due = T0 + delta if delta is not None else None
        assert lifecycle.time_remaining(due, status, T0) == expected

    def test_current_session_minutes(self):
        assert lifecycle.current_session_minutes(running(), T0 + timedelta(minutes=12, seconds=40)) == 12
        assert lifecycle.current_session_minutes(TimeTracking(time_spent=50), T0) == 0

    @pytest.mark.parametrize("tracking,now,expected", [
        (TimeTracking(), T0, "No time logged"),
        (TimeTracking(time_spent=45), T0, "45m"),
        (TimeTracking(time_spent=125), T0, "2h 5m"),
        (running(time_spent=50), T0 + timedelta(minutes=10), "1h 0m"),
    ])
    def test_total_time_formatted(self, tracking, now, expected):
        assert lifecycle.total_time_formatted(tracking, now) == expected

    def test_derived_fields(self):
        doc = {
            "status": "in-progress",
            "is_active": True,
            "started_at": T0,
            "time_spent": 5,
            "due_date": T0 - timedelta(days=1),
        }
        assert lifecycle.derived_fields(doc, T0 + timedelta(minutes=3)) == {
            "is_overdue": True,
            "time_remaining": "overdue",
            "current_session_minutes": 3,
            "total_time_formatted": "8m",
        }
