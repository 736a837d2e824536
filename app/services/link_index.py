"""Resolve an external issue to the local task that owns it.

There is no link table. Resolution is a two-tier scan over data that is
already written for other reasons:

1. ``imported_from_<provider>`` activity entries, newest first. These carry
   the tenant id recorded at import time.
2. The provider link object stored in each task's metadata.

First match wins. Both tiers are full scans, so this belongs on the
low-volume webhook path only and must not be used for bulk matching.
"""
import logging
import time
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from app.models.activity_log import IMPORTED_FROM, ActivityLog
from app.models.integration import Provider
from app.models.links import TaskLinks, load_json_object, parse_link
from app.models.task import Task

logger = logging.getLogger(__name__)


class LinkIndex:
    """Two-tier reverse index from (provider, external id, tenant) to task id"""

    def __init__(self, db: Session, deadline: Optional[float] = None):
        """``deadline`` is a ``time.monotonic()`` value after which scans give up."""
        self.db = db
        self.deadline = deadline

    def _expired(self) -> bool:
        return self.deadline is not None and time.monotonic() > self.deadline

    def resolve(self, provider: Provider, external_id: Any, tenant_id: Optional[Any] = None) -> Optional[int]:
        """Return the owning task id, or None if no task is linked."""
        provider = Provider(provider)
        if external_id is None or external_id == "":
            return None

        matches = self._scan_import_log(provider, external_id, tenant_id)
        if matches is None:
            return None
        if not matches:
            matches = self._scan_task_metadata(provider, external_id, tenant_id)
            if matches is None:
                return None
        if not matches:
            logger.debug(f"No task linked to {provider.value} issue {external_id} (tenant={tenant_id})")
            return None

        task_id = matches[0]
        others = [m for m in matches[1:] if m != task_id]
        if others:
            logger.warning(
                f"Ambiguous {provider.value} link for issue {external_id} (tenant={tenant_id}): "
                f"using task {task_id}, also matched tasks {sorted(set(others))}"
            )
        return task_id

    def _scan_import_log(self, provider: Provider, external_id: Any, tenant_id: Optional[Any]) -> Optional[List[int]]:
        entries = (
            self.db.query(ActivityLog)
            .filter(ActivityLog.action == IMPORTED_FROM.format(provider=provider.value))
            .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .all()
        )
        matches: List[int] = []
        for entry in entries:
            if self._expired():
                return self._timed_out(provider, external_id)
            if entry.task_id is None:
                continue
            link = parse_link(provider, load_json_object(entry.details).get(provider.value))
            if link is not None and link.matches(external_id, tenant_id):
                matches.append(entry.task_id)
        return matches

    def _scan_task_metadata(self, provider: Provider, external_id: Any, tenant_id: Optional[Any]) -> Optional[List[int]]:
        tasks = self.db.query(Task).filter(Task.link_metadata.isnot(None)).order_by(Task.id).all()
        matches: List[int] = []
        for task in tasks:
            if self._expired():
                return self._timed_out(provider, external_id)
            link = TaskLinks.from_json(task.link_metadata).get(provider)
            if link is not None and link.matches(external_id, tenant_id):
                matches.append(task.id)
        return matches

    @staticmethod
    def _timed_out(provider: Provider, external_id: Any) -> None:
        logger.warning(f"Link lookup for {provider.value} issue {external_id} ran out of time; treating as unlinked")
        return None
