"""Shared fixtures: an in-memory database and task/link builders."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import ActivityLog, Task, TaskPriority, TaskStatus
from app.models.activity_log import IMPORTED_FROM
from app.models.base import init_db
from app.models.links import TaskLinks


def make_session():
    """Fresh in-memory SQLite session with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def make_task(db, *links, **overrides) -> Task:
    values = {
        "workspace_id": "ws-1",
        "title": "Write docs",
        "description": None,
        "status": TaskStatus.TODO,
        "priority": TaskPriority.MEDIUM,
        "created_by": "user-1",
    }
    values.update(overrides)
    task = Task(**values)
    task_links = TaskLinks()
    for link in links:
        task_links = task_links.with_link(link)
    task.set_links(task_links)
    db.add(task)
    db.commit()
    return task


def record_import(db, task, link, created_at=None) -> ActivityLog:
    """Write the ``imported_from_<provider>`` entry an import would have written."""
    entry = ActivityLog.for_task(
        task,
        IMPORTED_FROM.format(provider=link.provider.value),
        {link.provider.value: link.model_dump(by_alias=True, exclude_none=True)},
        user_id=task.created_by,
    )
    if created_at is not None:
        entry.created_at = created_at
    db.add(entry)
    db.commit()
    return entry
