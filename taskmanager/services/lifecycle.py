"""
Task lifecycle and time tracking.

The timer of a task is always in exactly one of three states:

    Idle               not running, not completed
    Running(since)     a session started at ``since`` is in progress
    Completed(at)      the task was completed at ``at``

The flat document fields (``is_active``, ``started_at``, ``completed_at``)
are derived from the state in ``TimeTracking.to_fields`` and never set
directly. Nothing here touches the database and every function takes
``now`` from the caller.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

from ..utils.errors import ValidationError
from ..utils.validators import Helpers, TASK_STATUSES

STATUS_TODO = 'todo'
STATUS_IN_PROGRESS = 'in-progress'
STATUS_COMPLETED = 'completed'

NO_TIME_LOGGED = 'No time logged'


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Running:
    since: datetime


@dataclass(frozen=True)
class Completed:
    at: datetime


TimerState = Union[Idle, Running, Completed]


@dataclass(frozen=True)
class TimeTracking:
    """Lifecycle-relevant slice of a task"""

    status: str = STATUS_TODO
    state: TimerState = field(default_factory=Idle)
    time_spent: int = 0

    @property
    def is_running(self) -> bool:
        return isinstance(self.state, Running)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> 'TimeTracking':
        """Rebuild the state from stored task fields"""
        status = document.get('status') or STATUS_TODO
        time_spent = int(document.get('time_spent') or 0)
        started_at = Helpers.ensure_utc(document.get('started_at'))
        completed_at = Helpers.ensure_utc(document.get('completed_at'))

        if status == STATUS_COMPLETED and completed_at is not None:
            state = Completed(completed_at)
        elif status != STATUS_COMPLETED and document.get('is_active') and started_at is not None:
            state = Running(started_at)
        else:
            state = Idle()
        return cls(status=status, state=state, time_spent=time_spent)

    def to_fields(self) -> Dict[str, Any]:
        """Complete lifecycle field set, written in one update"""
        state = self.state
        return {
            'status': self.status,
            'time_spent': self.time_spent,
            'is_active': isinstance(state, Running),
            'started_at': state.since if isinstance(state, Running) else None,
            'completed_at': state.at if isinstance(state, Completed) else None,
        }


def elapsed_minutes(since: datetime, now: datetime) -> int:
    """Whole minutes between since and now, never negative"""
    seconds = (Helpers.ensure_utc(now) - Helpers.ensure_utc(since)).total_seconds()
    return max(int(seconds // 60), 0)


def flush(tracking: TimeTracking, now: datetime) -> TimeTracking:
    """Close a running session into time_spent; other states are returned as-is"""
    if not isinstance(tracking.state, Running):
        return tracking
    return replace(
        tracking,
        state=Idle(),
        time_spent=tracking.time_spent + elapsed_minutes(tracking.state.since, now),
    )


def apply_status_change(tracking: TimeTracking, new_status: str, now: datetime) -> TimeTracking:
    """React to a status change. Setting the current status again is a no-op."""
    if new_status not in TASK_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(TASK_STATUSES)}")

    if new_status == tracking.status:
        return tracking

    if new_status == STATUS_COMPLETED:
        return replace(flush(tracking, now), status=STATUS_COMPLETED, state=Completed(now))

    if new_status == STATUS_IN_PROGRESS:
        # an already running session keeps its start time
        state = tracking.state if tracking.is_running else Running(now)
        return replace(tracking, status=STATUS_IN_PROGRESS, state=state)

    return replace(flush(tracking, now), status=STATUS_TODO, state=Idle())


def start_timer(tracking: TimeTracking, now: datetime) -> TimeTracking:
    """Start a fresh session; a session already running on this task is flushed first"""
    return replace(flush(tracking, now), status=STATUS_IN_PROGRESS, state=Running(now))


def stop_timer(tracking: TimeTracking, now: datetime) -> TimeTracking:
    """Stop the running session, if any. Completed tasks stay completed."""
    return flush(tracking, now)


def is_overdue(due_date: Optional[datetime], status: str, now: datetime) -> bool:
    if due_date is None or status == STATUS_COMPLETED:
        return False
    return Helpers.ensure_utc(due_date) < Helpers.ensure_utc(now)


def time_remaining(due_date: Optional[datetime], status: str, now: datetime) -> Optional[str]:
    """Coarse label for the time left until the due date"""
    if due_date is None or status == STATUS_COMPLETED:
        return None

    diff = Helpers.ensure_utc(due_date) - Helpers.ensure_utc(now)
    if diff < timedelta(0):
        return 'overdue'

    days = diff.days
    hours = diff.seconds // 3600
    if days > 0:
        return f"{days} day{'s' if days > 1 else ''}"
    if hours > 0:
        return f"{hours} hour{'s' if hours > 1 else ''}"
    return 'less than 1 hour'


def current_session_minutes(tracking: TimeTracking, now: datetime) -> int:
    if isinstance(tracking.state, Running):
        return elapsed_minutes(tracking.state.since, now)
    return 0


def format_minutes(total: int) -> str:
    if total <= 0:
        return NO_TIME_LOGGED
    hours, minutes = divmod(total, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def total_time_formatted(tracking: TimeTracking, now: datetime) -> str:
    return format_minutes(tracking.time_spent + current_session_minutes(tracking, now))


def derived_fields(document: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """Read-time values of a task document"""
    tracking = TimeTracking.from_document(document)
    due_date = Helpers.ensure_utc(document.get('due_date'))
    return {
        'is_overdue': is_overdue(due_date, tracking.status, now),
        'time_remaining': time_remaining(due_date, tracking.status, now),
        'current_session_minutes': current_session_minutes(tracking, now),
        'total_time_formatted': total_time_formatted(tracking, now),
    }
