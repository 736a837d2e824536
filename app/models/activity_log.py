"""Activity log model"""
import json
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from app.models.base import Base, utcnow
from app.models.links import load_json_object

IMPORTED_FROM = "imported_from_{provider}"
FIELD_CHANGED_BY = "{field}_changed_by_{provider}"
ISSUE_DELETED = "{provider}_issue_deleted"
ISSUE_CREATED = "created_{provider}_issue"


class ActivityLog(Base):
    """Append-only audit trail.

    `imported_from_<provider>` rows also serve as the reverse index from
    external issue to task (see app.services.link_index).
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_action_created", "action", "created_at"),
        Index("ix_activity_logs_task_created", "task_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(String, nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True)
    # NULL for provider-originated (system) changes
    user_id = Column(String, nullable=True)

    action = Column(String(100), nullable=False)
    entity_type = Column(String(50), nullable=False, default="task")
    entity_id = Column(String, nullable=True)
    details = Column("metadata", Text, nullable=True)  # JSON

    created_at = Column(DateTime, default=utcnow, index=True)

    @classmethod
    def for_task(
        cls,
        task: Any,
        action: str,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> "ActivityLog":
        return cls(
            workspace_id=task.workspace_id,
            task_id=task.id,
            user_id=user_id,
            action=action,
            entity_type="task",
            entity_id=str(task.id),
            details=json.dumps(details, default=str) if details is not None else None,
        )

    @property
    def details_dict(self) -> Dict[str, Any]:
        return load_json_object(self.details)

    def __repr__(self):
        return f"<ActivityLog(action={self.action}, task_id={self.task_id})>"
