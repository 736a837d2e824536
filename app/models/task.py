"""Task model"""

import enum

from sqlalchemy import Column, Date, DateTime, Enum, Index, Integer, String, Text

from app.models.base import Base, utcnow
from app.models.links import TaskLinks


class TaskStatus(str, enum.Enum):
    """Canonical task status"""

    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


class TaskPriority(str, enum.Enum):
    """Canonical task priority"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Task(Base):
    """Locally owned task, optionally linked to one issue per provider"""

    __tablename__ = "tasks"
    __table_args__ = (Index("ix_tasks_workspace_status", "workspace_id", "status"),)

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(String, nullable=False, index=True)

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)  # plain text
    status = Column(Enum(TaskStatus), nullable=False, default=TaskStatus.TODO)
    priority = Column(Enum(TaskPriority), nullable=False, default=TaskPriority.MEDIUM)
    due_date = Column(Date, nullable=True)

    created_by = Column(String, nullable=False)

    # JSON blob holding provider links (see app.models.links). `metadata` is
    # reserved on declarative classes, hence the attribute name.
    link_metadata = Column("metadata", Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def links(self) -> TaskLinks:
        return TaskLinks.from_json(self.link_metadata)

    def set_links(self, links: TaskLinks) -> None:
        self.link_metadata = links.to_json()

    def __repr__(self):
        return f"<Task(id={self.id}, title='{self.title}', status={self.status})>"
