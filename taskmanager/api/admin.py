"""
Admin endpoints for user management and the admin dashboard.
Every route requires an authenticated user with the admin role.
"""
import logging
from datetime import timedelta
from flask import request, jsonify, current_app
from . import admin_bp
from .tasks import task_to_json
from ..database import get_db
from ..middleware.auth_middleware import AuthMiddleware, RoleMiddleware
from ..models.login_attempt_model import LoginAttemptModel, attempt_to_json
from ..models.task_model import TaskModel
from ..models.user_model import UserModel, user_to_json
from ..utils.errors import AuthorizationError, NotFoundError, ValidationError
from ..utils.validators import Helpers

logger = logging.getLogger(__name__)

SESSION_GAP_LIMIT = timedelta(hours=24)
RECENT_LOGIN_LIMIT = 5
TOP_USERS_LIMIT = 10


def _require_user(user_model, user_id):
    user = user_model.get_user(user_id)
    if not user:
        raise NotFoundError("User")
    return user


def _user_summary(user):
    return {
        "id": user["_id"],
        "name": user.get("name"),
        "email": user.get("email"),
        "username": user.get("username"),
    }


def _average_session_minutes(logins):
    """Mean gap between consecutive successful logins, ignoring gaps of a day or more"""
    gaps = []
    for newer, older in zip(logins, logins[1:]):
        gap = newer["created_at"] - older["created_at"]
        if timedelta(0) < gap < SESSION_GAP_LIMIT:
            gaps.append(gap.total_seconds())
    if not gaps:
        return 0
    return round(sum(gaps) / len(gaps) / 60)


# ========== DASHBOARD & STATISTICS ==========

@admin_bp.get("/stats")
@AuthMiddleware.verify_token
@RoleMiddleware.require_admin()
def dashboard_stats():
    """
    Admin dashboard - System-wide overview.
    Returns login, user and task statistics plus the most active users.
    """
    db = get_db()
    now = Helpers.get_current_timestamp()
    user_model = UserModel(db)
    task_model = TaskModel(db)

    login_stats = LoginAttemptModel(db).get_stats(current_app.config.get("LOGIN_STATS_DAYS", 30), now)

    user_stats = {
        "total": user_model.count_users(),
        "active": user_model.count_users({"is_active": True}),
        "google": user_model.count_users({"auth_provider": "google"}),
        "local": user_model.count_users({"auth_provider": "local"}),
        "recent": user_model.count_created_since(now - timedelta(days=7)),
    }

    counts = task_model.get_status_counts()
    total_tasks = sum(counts.values())
    task_stats = {
        "total": total_tasks,
        "completed": counts.get("completed", 0),
        "pending": counts.get("todo", 0),
        "in_progress": counts.get("in-progress", 0),
        "completion_rate": Helpers.completion_rate(counts.get("completed", 0), total_tasks),
    }

    per_user = task_model.get_user_task_counts()
    ranked = sorted(per_user.items(), key=lambda item: item[1]["total"], reverse=True)
    top_users = []
    for user_id, user_counts in ranked:
        user = user_model.get_user(user_id)
        if not user:
            continue
        top_users.append({
            **_user_summary(user),
            "task_count": user_counts["total"],
            "completed_count": user_counts["completed"],
            "completion_rate": Helpers.completion_rate(user_counts["completed"], user_counts["total"]),
        })
        if len(top_users) == TOP_USERS_LIMIT:
            break

    return jsonify(Helpers.build_success_response({
        "login_stats": login_stats,
        "user_stats": user_stats,
        "task_stats": task_stats,
        "top_users": top_users,
    })), 200


@admin_bp.get("/login-attempts")
@AuthMiddleware.verify_token
@RoleMiddleware.require_admin()
def login_attempts():
    """
    Paginated login attempts, newest first.
    Query: page, limit, success (true|false), email, days
    """
    page = Helpers.parse_int(request.args.get("page"), 1)
    limit = Helpers.parse_int(request.args.get("limit"), 50, maximum=200)
    days = Helpers.parse_int(request.args.get("days"), 0, minimum=0)

    attempts, total = LoginAttemptModel(get_db()).find_attempts(
        success=Helpers.parse_bool(request.args.get("success")),
        email=request.args.get("email"),
        days=days or None,
        page=page,
        limit=limit,
    )
    return jsonify(Helpers.build_success_response(
        [attempt_to_json(attempt) for attempt in attempts],
        pagination=Helpers.build_pagination(page, limit, total),
    )), 200


# ========== USER MANAGEMENT ==========

@admin_bp.get("/users")
@AuthMiddleware.verify_token
@RoleMiddleware.require_admin()
def list_users():
    """
    Paginated users with task counts.
    Query: page, limit, search, auth_provider, is_active (true|false)
    """
    db = get_db()
    page = Helpers.parse_int(request.args.get("page"), 1)
    limit = Helpers.parse_int(request.args.get("limit"), 20, maximum=200)

    user_model = UserModel(db)
    query = UserModel.build_search_query(
        search=request.args.get("search"),
        auth_provider=request.args.get("auth_provider"),
        is_active=Helpers.parse_bool(request.args.get("is_active")),
    )
    users, total = user_model.list_users(query, page=page, limit=limit)

    per_user = TaskModel(db).get_user_task_counts()
    data = []
    for user in users:
        counts = per_user.get(user["_id"], {"total": 0, "completed": 0})
        item = user_to_json(user)
        item.update({
            "task_count": counts["total"],
            "completed_tasks": counts["completed"],
            "completion_rate": Helpers.completion_rate(counts["completed"], counts["total"]),
        })
        data.append(item)

    return jsonify(Helpers.build_success_response(
        data, pagination=Helpers.build_pagination(page, limit, total)
    )), 200


@admin_bp.get("/users-detailed")
@AuthMiddleware.verify_token
@RoleMiddleware.require_admin()
def list_users_detailed():
    """Every user with task stats, recent logins and signup trends"""
    db = get_db()
    now = Helpers.get_current_timestamp()
    attempts_model = LoginAttemptModel(db)

    users, total = UserModel(db).list_users()
    per_user = TaskModel(db).get_user_task_counts()

    data = []
    for user in users:
        counts = per_user.get(user["_id"], {"total": 0, "todo": 0, "in-progress": 0, "completed": 0})
        recent = attempts_model.recent_successful(user["_id"], limit=RECENT_LOGIN_LIMIT)

        item = user_to_json(user)
        item["stats"] = {
            "total_tasks": counts["total"],
            "completed_tasks": counts["completed"],
            "pending_tasks": counts["todo"],
            "in_progress_tasks": counts["in-progress"],
            "completion_rate": Helpers.completion_rate(counts["completed"], counts["total"]),
            "login_count": len(recent),
            "avg_session_time": _average_session_minutes(recent),
            "recent_logins": [
                {
                    "date": Helpers.format_timestamp(login["created_at"]),
                    "ip_address": login.get("ip_address"),
                    "device_info": login.get("device_info"),
                }
                for login in recent
            ],
        }
        data.append(item)

    created = [user.get("created_at") for user in users if user.get("created_at")]
    signup_stats = {
        "today": sum(1 for at in created if at.date() == now.date()),
        "this_week": sum(1 for at in created if at >= now - timedelta(days=7)),
        "this_month": sum(1 for at in created if at >= now - timedelta(days=30)),
    }

    return jsonify(Helpers.build_success_response({
        "users": data,
        "total_count": total,
        "active_users": sum(1 for user in users if user.get("is_active", True)),
        "signup_stats": signup_stats,
    })), 200


@admin_bp.get("/users/<user_id>/tasks")
@AuthMiddleware.verify_token
@RoleMiddleware.require_admin()
def user_tasks(user_id):
    db = get_db()
    now = Helpers.get_current_timestamp()
    user = _require_user(UserModel(db), user_id)

    tasks = TaskModel(db).find_by_user(user_id)
    data = [task_to_json(task, now) for task in tasks]
    stats = {
        "total": len(data),
        "completed": sum(1 for task in data if task["status"] == "completed"),
        "pending": sum(1 for task in data if task["status"] == "todo"),
        "in_progress": sum(1 for task in data if task["status"] == "in-progress"),
        "overdue": sum(1 for task in data if task["is_overdue"]),
    }

    return jsonify(Helpers.build_success_response({
        "user": _user_summary(user),
        "tasks": data,
        "stats": stats,
    })), 200


@admin_bp.get("/users/<user_id>/login-history")
@AuthMiddleware.verify_token
@RoleMiddleware.require_admin()
def user_login_history(user_id):
    db = get_db()
    user = _require_user(UserModel(db), user_id)
    page = Helpers.parse_int(request.args.get("page"), 1)
    limit = Helpers.parse_int(request.args.get("limit"), 20, maximum=200)

    history = LoginAttemptModel(db).find_for_user(user_id, page=page, limit=limit)
    return jsonify(Helpers.build_success_response({
        "user": _user_summary(user),
        "login_history": [attempt_to_json(attempt) for attempt in history["attempts"]],
        "stats": {
            "total_attempts": history["total"],
            "successful_logins": history["successful"],
            "failed_logins": history["failed"],
            "success_rate": Helpers.completion_rate(history["successful"], history["total"]),
        },
        "pagination": Helpers.build_pagination(page, limit, history["total"]),
    })), 200


@admin_bp.patch("/users/<user_id>/status")
@AuthMiddleware.verify_token
@RoleMiddleware.require_admin()
def update_user_status(user_id):
    """
    Activate or deactivate a user.
    Expected payload: {is_active: bool}
    """
    payload = request.get_json(silent=True) or {}
    is_active = payload.get("is_active")
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be a boolean")

    user_model = UserModel(get_db())
    _require_user(user_model, user_id)
    user = user_model.update_user(user_id, {"is_active": is_active})

    logger.info(f"Admin {AuthMiddleware.get_current_user_id()} set user {user_id} active={is_active}")
    return jsonify(Helpers.build_success_response(
        user_to_json(user), f"User {'activated' if is_active else 'deactivated'} successfully"
    )), 200


@admin_bp.delete("/users/<user_id>")
@AuthMiddleware.verify_token
@RoleMiddleware.require_admin()
def delete_user(user_id):
    """Delete a non-admin user together with all of their tasks"""
    db = get_db()
    user_model = UserModel(db)
    user = _require_user(user_model, user_id)

    if user.get("role") == "admin":
        raise AuthorizationError("Cannot delete admin users")

    deleted_tasks = TaskModel(db).delete_tasks_for_user(user_id)
    user_model.delete_user(user_id)

    logger.info(f"Admin {AuthMiddleware.get_current_user_id()} deleted user {user_id} and {deleted_tasks} tasks")
    return jsonify(Helpers.build_success_response(
        {"deleted_tasks": deleted_tasks}, "User and associated data deleted successfully"
    )), 200
