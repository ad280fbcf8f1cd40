"""Task Manager backend: tasks with time tracking, authentication and an admin dashboard."""

__version__ = "1.0.0"
