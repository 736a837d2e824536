"""Apply a ChangeSet to a task, writing only real deltas"""
import logging
from typing import Any, List

from sqlalchemy.orm import Session

from app.models.activity_log import FIELD_CHANGED_BY, ActivityLog
from app.models.base import utcnow
from app.models.task import Task, TaskPriority, TaskStatus
from app.services.normalizer import ChangeSet, TaskField

logger = logging.getLogger(__name__)


def _stored_value(task: Task, task_field: TaskField) -> Any:
    value = getattr(task, task_field.value)
    if task_field == TaskField.DESCRIPTION:
        return value or ""
    if task_field == TaskField.STATUS and value is not None:
        return TaskStatus(value)
    if task_field == TaskField.PRIORITY and value is not None:
        return TaskPriority(value)
    return value


def _incoming_value(task_field: TaskField, value: Any) -> Any:
    if task_field == TaskField.DESCRIPTION:
        return value or ""
    if task_field == TaskField.STATUS:
        return TaskStatus(value)
    if task_field == TaskField.PRIORITY:
        return TaskPriority(value)
    return value


def _serialize(value: Any) -> Any:
    if isinstance(value, (TaskStatus, TaskPriority)):
        return value.value
    if value is None or isinstance(value, str):
        return value
    return str(value)


class IdempotentApplier:
    """Diff a ChangeSet against the stored task and persist the changes.

    Replaying a ChangeSet against a task already in that state writes
    nothing. Each changed field gets its own activity entry, and all of
    them are committed together with the task update.
    """

    def __init__(self, db: Session):
        self.db = db

    def apply(self, task_id: int, changes: ChangeSet) -> List[TaskField]:
        """Return the fields that were actually changed."""
        task = self.db.query(Task).filter(Task.id == task_id).first()
        if not task:
            raise ValueError(f"Task {task_id} not found")

        deltas = []
        for task_field, value in changes:
            incoming = _incoming_value(task_field, value)
            current = _stored_value(task, task_field)
            if incoming != current:
                deltas.append((task_field, current, incoming))

        if not deltas:
            logger.info(
                f"No changes for task {task_id} from {changes.provenance.provider.value} "
                f"issue {changes.provenance.external_issue_key}"
            )
            return []

        provenance = changes.provenance
        try:
            for task_field, _, incoming in deltas:
                setattr(task, task_field.value, incoming)
            task.updated_at = utcnow()

            for task_field, current, incoming in deltas:
                self.db.add(
                    ActivityLog.for_task(
                        task,
                        FIELD_CHANGED_BY.format(field=task_field.value, provider=provenance.provider.value),
                        {
                            "from": _serialize(current),
                            "to": _serialize(incoming),
                            "provider": provenance.provider.value,
                            "externalIssueKey": provenance.external_issue_key,
                            "event": provenance.raw_event_type,
                        },
                    )
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Failed to apply {provenance.provider.value} changes to task {task_id}")
            raise

        applied = [task_field for task_field, _, _ in deltas]
        logger.info(f"Applied {[f.value for f in applied]} to task {task_id} from {provenance.provider.value}")
        return applied
