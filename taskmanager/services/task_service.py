"""Task operations on behalf of an owner.

Every read and write is scoped to the caller's user id; a task owned by
someone else is reported exactly like a missing one.
"""
import logging
from typing import Dict, Any, Optional, List
from datetime import datetime

from ..models.task_model import TaskModel
from ..models.timer_lock_model import TimerLock
from ..utils.errors import ConflictError, NotFoundError
from ..utils.validators import Helpers
from . import lifecycle
from .lifecycle import TimeTracking

logger = logging.getLogger(__name__)

LIST_FILTERS = ('status', 'priority', 'category')
DESCRIPTIVE_FIELDS = ('title', 'description', 'priority', 'category', 'assignee', 'tags', 'due_date')
WRITE_ATTEMPTS = 3


class TaskService:
    """Service for task CRUD, statistics and timers"""

    def __init__(self, db, lock_ttl_seconds: int = 30):
        self.task_model = TaskModel(db)
        self.timer_lock = TimerLock(db, ttl_seconds=lock_ttl_seconds)

    def list_tasks(self, owner_id: str, filters: Optional[Dict[str, Any]] = None,
                   sort: str = 'created_at', order: str = 'desc') -> List[Dict[str, Any]]:
        query = {
            key: value for key, value in (filters or {}).items()
            if key in LIST_FILTERS and isinstance(value, str) and value
        }
        return self.task_model.find_by_user(owner_id, query, sort=sort, order=order)

    def get_task(self, owner_id: str, task_id: str) -> Dict[str, Any]:
        task = self.task_model.get_task(task_id, owner_id)
        if not task:
            raise NotFoundError('Task')
        return task

    def create_task(self, owner_id: str, payload: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
        """Create a task from a validated payload"""
        now = now or Helpers.get_current_timestamp()

        tracking = TimeTracking()
        status = payload.get('status', lifecycle.STATUS_TODO)
        if status != tracking.status:
            tracking = lifecycle.apply_status_change(tracking, status, now)

        task_doc = {
            'user_id': owner_id,
            'title': payload['title'],
            'description': payload.get('description'),
            'priority': payload.get('priority') or 'medium',
            'category': payload.get('category'),
            'assignee': payload.get('assignee'),
            'tags': payload.get('tags') or [],
            'due_date': payload.get('due_date'),
            'created_at': now,
            'updated_at': now,
        }
        task_doc.update(tracking.to_fields())

        task = self.task_model.create_task(task_doc)
        logger.info(f"Task {task['_id']} created for user {owner_id}")
        return task

    def update_task(self, owner_id: str, task_id: str, payload: Dict[str, Any],
                    now: Optional[datetime] = None) -> Dict[str, Any]:
        """Apply a validated partial update.

        A status different from the stored one runs the lifecycle transition
        once; descriptive and lifecycle fields go out in the same write.
        """
        now = now or Helpers.get_current_timestamp()

        def build(task):
            fields = {key: payload[key] for key in DESCRIPTIVE_FIELDS if key in payload}
            if not key_changed(task, payload, 'status'):
                return fields, False
            tracking = lifecycle.apply_status_change(TimeTracking.from_document(task), payload['status'], now)
            fields.update(tracking.to_fields())
            return fields, True

        updated = self._write_from_read(owner_id, task_id, build, now)
        logger.info(f"Task {task_id} updated by user {owner_id}")
        return updated

    def _write_from_read(self, owner_id, task_id, build, now):
        """Write the fields ``build`` computes from a fresh read of the task.

        ``build`` returns ``(fields, guarded)``. A guarded write only lands
        while the task still has the lifecycle state it was computed from;
        otherwise the task is read again and the fields recomputed.
        """
        for _ in range(WRITE_ATTEMPTS):
            task = self.get_task(owner_id, task_id)
            fields, guarded = build(task)

            condition = {'user_id': owner_id}
            if guarded:
                condition.update(lifecycle_condition(task))
            updated = self.task_model.update_task(task_id, fields, now, condition=condition)
            if updated:
                return updated
            logger.info(f"Task {task_id} changed during update, reading it again")

        raise ConflictError('Task was modified by another request, please retry')

    def delete_task(self, owner_id: str, task_id: str) -> None:
        self.get_task(owner_id, task_id)
        self.task_model.delete_task(task_id)
        logger.info(f"Task {task_id} deleted by user {owner_id}")

    def get_stats(self, owner_id: str, now: Optional[datetime] = None) -> Dict[str, int]:
        """Task counts per status plus total and overdue"""
        now = now or Helpers.get_current_timestamp()
        counts = self.task_model.get_status_counts(owner_id)

        stats = {'todo': 0, 'in-progress': 0, 'completed': 0, 'total': 0}
        for status, count in counts.items():
            stats[status] = count
            stats['total'] += count
        stats['overdue'] = self.task_model.count_overdue(now, user_id=owner_id)
        return stats

    def bulk_update(self, owner_id: str, task_ids: List[str], updates: Dict[str, Any],
                    now: Optional[datetime] = None) -> int:
        """Apply the same update to each owned task; returns how many were updated"""
        now = now or Helpers.get_current_timestamp()
        modified = 0

        for task_id in dict.fromkeys(task_ids):
            try:
                self.update_task(owner_id, task_id, updates, now)
            except NotFoundError:
                logger.info(f"Bulk update skipped task {task_id} for user {owner_id}")
                continue
            modified += 1

        logger.info(f"Bulk update completed: {modified} tasks updated for user {owner_id}")
        return modified

    def start_timer(self, owner_id: str, task_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Start the timer on one task after stopping every other running task of the owner"""
        now = now or Helpers.get_current_timestamp()
        self.get_task(owner_id, task_id)

        with self.timer_lock.hold(owner_id):
            for other in self.task_model.find_active_tasks(owner_id, exclude_id=task_id):
                stopped = lifecycle.stop_timer(TimeTracking.from_document(other), now)
                # skip if another request already flushed this session
                self.task_model.update_task(
                    other['_id'], stopped.to_fields(), now,
                    condition={'is_active': True, 'started_at': other.get('started_at')},
                )
                logger.info(f"Timer stopped on task {other['_id']} for user {owner_id}")

            # stop_timer does not take the lock
            updated = self._write_from_read(
                owner_id, task_id,
                lambda task: (lifecycle.start_timer(TimeTracking.from_document(task), now).to_fields(), True),
                now,
            )

        logger.info(f"Timer started on task {task_id} for user {owner_id}")
        return updated

    def stop_timer(self, owner_id: str, task_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or Helpers.get_current_timestamp()
        task = self.get_task(owner_id, task_id)

        tracking = TimeTracking.from_document(task)
        if not tracking.is_running:
            return task

        stopped = lifecycle.stop_timer(tracking, now)
        updated = self.task_model.update_task(
            task_id, stopped.to_fields(), now,
            condition={'is_active': True, 'started_at': task.get('started_at')},
        )
        if not updated:
            # flushed concurrently
            return self.get_task(owner_id, task_id)

        logger.info(f"Timer stopped on task {task_id} for user {owner_id}")
        return updated


def key_changed(task: Dict[str, Any], payload: Dict[str, Any], key: str) -> bool:
    return key in payload and payload[key] != task.get(key)


def lifecycle_condition(task: Dict[str, Any]) -> Dict[str, Any]:
    """Query matching the task only while its lifecycle fields are unchanged"""
    return {
        'status': task.get('status'),
        'is_active': task.get('is_active', False),
        'started_at': task.get('started_at'),
    }
