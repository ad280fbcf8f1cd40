from flask import Blueprint

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")
tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/tasks")
admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

# Import modules so routes attach
from . import auth  # noqa
from . import tasks  # noqa
from . import admin  # noqa

__all__ = [
    "auth_bp",
    "tasks_bp",
    "admin_bp",
]
