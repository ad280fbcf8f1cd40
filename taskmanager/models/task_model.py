from typing import Dict, Any, Optional, List
from datetime import datetime

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from ..utils.errors import PersistenceError
from ..utils.validators import Helpers

DATETIME_FIELDS = ('due_date', 'started_at', 'completed_at', 'created_at', 'updated_at')
SORTABLE_FIELDS = ('created_at', 'updated_at', 'due_date', 'priority', 'status', 'title')


def from_storage(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Stored document with aware UTC datetimes"""
    if document is None:
        return None
    task = dict(document)
    for key in DATETIME_FIELDS:
        if isinstance(task.get(key), datetime):
            task[key] = Helpers.ensure_utc(task[key])
    return task


def to_storage(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: Helpers.to_storage(value) if isinstance(value, datetime) else value
        for key, value in fields.items()
    }


class TaskModel:
    """Task data model for MongoDB operations"""

    def __init__(self, db):
        self.collection = db.tasks

    def create_task(self, task_doc: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a prepared task document"""
        try:
            task_doc = dict(task_doc)
            task_doc.setdefault('_id', Helpers.generate_id())
            self.collection.insert_one(to_storage(task_doc))
            return self.get_task_by_id(task_doc['_id'])
        except PyMongoError as e:
            raise PersistenceError(f"Failed to create task: {str(e)}")

    def get_task_by_id(self, task_id: str) -> Optional[Dict[str, Any]]:
        """Get task by ID"""
        try:
            return from_storage(self.collection.find_one({'_id': task_id}))
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get task: {str(e)}")

    def get_task(self, task_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Get a task only when it belongs to user_id"""
        try:
            return from_storage(self.collection.find_one({'_id': task_id, 'user_id': user_id}))
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get task: {str(e)}")

    def update_task(self, task_id: str, fields: Dict[str, Any], now: datetime,
                    condition: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Write fields in one atomic update; None values are unset.

        condition narrows the match, so the update only applies while the
        stored document still satisfies it. Returns the updated task or None
        when nothing matched.
        """
        set_fields = {key: value for key, value in fields.items() if value is not None}
        set_fields['updated_at'] = now
        unset_fields = {key: '' for key, value in fields.items() if value is None}

        update = {'$set': to_storage(set_fields)}
        if unset_fields:
            update['$unset'] = unset_fields

        query = {'_id': task_id}
        query.update(to_storage(condition or {}))

        try:
            updated = self.collection.find_one_and_update(query, update, return_document=ReturnDocument.AFTER)
            return from_storage(updated)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to update task: {str(e)}")

    def delete_task(self, task_id: str) -> bool:
        """Delete task"""
        try:
            return self.collection.delete_one({'_id': task_id}).deleted_count > 0
        except PyMongoError as e:
            raise PersistenceError(f"Failed to delete task: {str(e)}")

    def delete_tasks_for_user(self, user_id: str) -> int:
        try:
            return self.collection.delete_many({'user_id': user_id}).deleted_count
        except PyMongoError as e:
            raise PersistenceError(f"Failed to delete tasks: {str(e)}")

    def find_by_user(self, user_id: str, filters: Optional[Dict[str, Any]] = None,
                     sort: str = 'created_at', order: str = 'desc') -> List[Dict[str, Any]]:
        """Tasks of one owner, filtered on exact field values"""
        query = {'user_id': user_id}
        query.update(filters or {})

        if sort not in SORTABLE_FIELDS:
            sort = 'created_at'
        direction = ASCENDING if order == 'asc' else DESCENDING

        try:
            cursor = self.collection.find(query).sort([(sort, direction), ('_id', direction)])
            return [from_storage(doc) for doc in cursor]
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get tasks: {str(e)}")

    def find_active_tasks(self, user_id: str, exclude_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Running tasks of one owner"""
        query = {'user_id': user_id, 'is_active': True}
        if exclude_id:
            query['_id'] = {'$ne': exclude_id}
        try:
            return [from_storage(doc) for doc in self.collection.find(query)]
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get active tasks: {str(e)}")

    def count_tasks(self, query: Optional[Dict[str, Any]] = None) -> int:
        try:
            return self.collection.count_documents(to_storage(query or {}))
        except PyMongoError as e:
            raise PersistenceError(f"Failed to count tasks: {str(e)}")

    def count_overdue(self, now: datetime, user_id: Optional[str] = None) -> int:
        """Tasks past their due date and not completed"""
        query = {
            'due_date': {'$ne': None, '$lt': Helpers.to_storage(now)},
            'status': {'$ne': 'completed'},
        }
        if user_id:
            query['user_id'] = user_id
        return self.count_tasks(query)

    def get_status_counts(self, user_id: Optional[str] = None) -> Dict[str, int]:
        """Number of tasks per status"""
        pipeline = []
        if user_id:
            pipeline.append({'$match': {'user_id': user_id}})
        pipeline.append({'$group': {'_id': '$status', 'count': {'$sum': 1}}})

        try:
            return {row['_id']: row['count'] for row in self.collection.aggregate(pipeline)}
        except PyMongoError as e:
            raise PersistenceError(f"Failed to aggregate tasks: {str(e)}")

    def get_user_task_counts(self) -> Dict[str, Dict[str, int]]:
        """Per-owner task counts: {user_id: {'total': n, <status>: n, ...}}"""
        pipeline = [
            {'$group': {'_id': {'user_id': '$user_id', 'status': '$status'}, 'count': {'$sum': 1}}},
        ]

        try:
            rows = list(self.collection.aggregate(pipeline))
        except PyMongoError as e:
            raise PersistenceError(f"Failed to aggregate tasks: {str(e)}")

        counts = {}
        for row in rows:
            user_id = row['_id'].get('user_id')
            entry = counts.setdefault(user_id, {'total': 0, 'todo': 0, 'in-progress': 0, 'completed': 0})
            entry[row['_id'].get('status')] = entry.get(row['_id'].get('status'), 0) + row['count']
            entry['total'] += row['count']
        return counts
