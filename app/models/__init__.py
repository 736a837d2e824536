"""Database models"""

from app.models.activity_log import ActivityLog
from app.models.base import Base
from app.models.integration import Integration, Provider
from app.models.task import Task, TaskPriority, TaskStatus

__all__ = [
    "Base",
    "Task",
    "TaskStatus",
    "TaskPriority",
    "ActivityLog",
    "Integration",
    "Provider",
]
