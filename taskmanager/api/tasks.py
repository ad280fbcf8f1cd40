from flask import request, jsonify, current_app
from . import tasks_bp
from ..database import get_db
from ..middleware.auth_middleware import AuthMiddleware
from ..services.lifecycle import derived_fields
from ..services.task_service import TaskService
from ..utils.validators import Validators, Helpers


def task_to_json(task, now):
    data = {
        "id": task["_id"],
        "user_id": task.get("user_id"),
        "title": task.get("title"),
        "description": task.get("description"),
        "status": task.get("status", "todo"),
        "priority": task.get("priority", "medium"),
        "category": task.get("category"),
        "assignee": task.get("assignee"),
        "tags": task.get("tags", []),
        "due_date": Helpers.format_timestamp(task.get("due_date")),
        # time tracking
        "time_spent": task.get("time_spent", 0),
        "is_active": bool(task.get("is_active", False)),
        "started_at": Helpers.format_timestamp(task.get("started_at")),
        "completed_at": Helpers.format_timestamp(task.get("completed_at")),
        "created_at": Helpers.format_timestamp(task.get("created_at")),
        "updated_at": Helpers.format_timestamp(task.get("updated_at")),
    }
    data.update(derived_fields(task, now))
    return data


def _service():
    return TaskService(get_db(), lock_ttl_seconds=current_app.config.get("TIMER_LOCK_TTL_SECONDS", 30))


def _owner_id():
    return AuthMiddleware.get_current_user_id()


@tasks_bp.get("/stats")
@AuthMiddleware.verify_token
def task_stats():
    stats = _service().get_stats(_owner_id())
    return jsonify(Helpers.build_success_response(stats)), 200


@tasks_bp.get("")
@AuthMiddleware.verify_token
def list_tasks():
    """
    Tasks of the current user.
    Query: status, priority, category, sort, order (asc|desc)
    """
    tasks = _service().list_tasks(
        _owner_id(),
        filters={key: request.args.get(key) for key in ("status", "priority", "category")},
        sort=request.args.get("sort", "created_at"),
        order=request.args.get("order", "desc"),
    )
    now = Helpers.get_current_timestamp()
    return jsonify(Helpers.build_success_response(
        [task_to_json(task, now) for task in tasks], count=len(tasks)
    )), 200


@tasks_bp.post("")
@AuthMiddleware.verify_token
def create_task():
    """
    Expected payload: {title, description?, status?, priority?, category?,
                       assignee?, tags?, due_date?}
    """
    payload = Validators.validate_task_payload(request.get_json(silent=True))
    now = Helpers.get_current_timestamp()
    task = _service().create_task(_owner_id(), payload, now)
    return jsonify(Helpers.build_success_response(task_to_json(task, now), "Task created successfully")), 201


@tasks_bp.patch("/bulk")
@AuthMiddleware.verify_token
def bulk_update():
    """
    Expected payload: {task_ids: [...], updates: {...}}
    """
    task_ids, updates = Validators.validate_bulk_payload(request.get_json(silent=True))
    modified = _service().bulk_update(_owner_id(), task_ids, updates)
    return jsonify(Helpers.build_success_response(
        {"modified_count": modified}, f"{modified} tasks updated successfully"
    )), 200


@tasks_bp.patch("/<task_id>/start")
@AuthMiddleware.verify_token
def start_timer(task_id):
    now = Helpers.get_current_timestamp()
    task = _service().start_timer(_owner_id(), task_id, now)
    return jsonify(Helpers.build_success_response(task_to_json(task, now), "Timer started")), 200


@tasks_bp.patch("/<task_id>/stop")
@AuthMiddleware.verify_token
def stop_timer(task_id):
    now = Helpers.get_current_timestamp()
    task = _service().stop_timer(_owner_id(), task_id, now)
    return jsonify(Helpers.build_success_response(task_to_json(task, now), "Timer stopped")), 200


@tasks_bp.get("/<task_id>")
@AuthMiddleware.verify_token
def get_task(task_id):
    task = _service().get_task(_owner_id(), task_id)
    return jsonify(Helpers.build_success_response(task_to_json(task, Helpers.get_current_timestamp()))), 200


@tasks_bp.put("/<task_id>")
@AuthMiddleware.verify_token
def update_task(task_id):
    payload = Validators.validate_task_payload(request.get_json(silent=True), partial=True)
    now = Helpers.get_current_timestamp()
    task = _service().update_task(_owner_id(), task_id, payload, now)
    return jsonify(Helpers.build_success_response(task_to_json(task, now), "Task updated successfully")), 200


@tasks_bp.delete("/<task_id>")
@AuthMiddleware.verify_token
def delete_task(task_id):
    _service().delete_task(_owner_id(), task_id)
    return jsonify(Helpers.build_success_response(message="Task deleted successfully")), 200
