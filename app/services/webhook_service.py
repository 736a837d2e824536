"""Inbound webhook processing: link lookup, normalization and apply"""
import logging
import time
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models.activity_log import ISSUE_DELETED, ActivityLog
from app.models.base import utcnow
from app.models.integration import Provider
from app.models.task import Task
from app.services.applier import IdempotentApplier
from app.services.link_index import LinkIndex
from app.services.normalizer import (
    ChangeSet,
    azure_work_item_id,
    normalize_azure_devops,
    normalize_github,
    normalize_jira,
)
from app.services.tenant import resolve_tenant

logger = logging.getLogger(__name__)

# Outcomes reported back to the route (all of them are acknowledged with 200)
APPLIED = "applied"
UNCHANGED = "unchanged"
UNMATCHED = "unmatched"
UNLINKED = "unlinked"
IGNORED = "ignored"


class WebhookService:
    """Handle one authenticated, parsed delivery from a provider.

    Nothing here raises for "expected" situations (unknown event types,
    issues with no local task, replays). Exceptions that do escape are
    genuine processing failures.
    """

    def __init__(self, db: Session, time_budget_seconds: Optional[float] = None):
        self.db = db
        if time_budget_seconds is None:
            time_budget_seconds = settings.webhook_time_budget_seconds
        self.time_budget_seconds = time_budget_seconds

    def _link_index(self) -> LinkIndex:
        deadline = None
        if self.time_budget_seconds and self.time_budget_seconds > 0:
            deadline = time.monotonic() + self.time_budget_seconds
        return LinkIndex(self.db, deadline=deadline)

    # ------------------------------------------------------------------ #
    # Jira
    # ------------------------------------------------------------------ #

    def handle_jira(self, payload: Dict[str, Any]) -> str:
        event = payload.get("webhookEvent")
        issue = payload.get("issue") or {}
        issue_key = issue.get("key")
        logger.info(f"Jira webhook received: {event} {issue_key or ''}".rstrip())

        if event not in ("jira:issue_updated", "jira:issue_deleted"):
            logger.info(f"Unhandled Jira event: {event}")
            return IGNORED
        if not issue_key:
            logger.warning(f"Jira {event} delivery without an issue key")
            return IGNORED

        tenant_id = resolve_tenant(self.db, Provider.JIRA, issue.get("self"))
        if event == "jira:issue_deleted":
            return self._unlink(Provider.JIRA, issue_key, tenant_id, event)
        return self._apply(Provider.JIRA, issue_key, tenant_id, normalize_jira(payload))

    # ------------------------------------------------------------------ #
    # GitHub
    # ------------------------------------------------------------------ #

    def handle_github(self, event: Optional[str], payload: Dict[str, Any]) -> str:
        repository = payload.get("repository") or {}
        if event == "ping":
            logger.info(f"GitHub ping received from {repository.get('full_name')}")
            return IGNORED
        if event != "issues":
            logger.info(f"Unhandled GitHub event: {event}")
            return IGNORED

        action = payload.get("action")
        issue = payload.get("issue") or {}
        issue_id = issue.get("id")
        logger.info(f"GitHub issue event: {action} {repository.get('full_name')}#{issue.get('number')}")
        if issue_id is None:
            logger.warning(f"GitHub issues.{action} delivery without an issue id")
            return IGNORED

        tenant_id = repository.get("id")
        if action == "deleted":
            return self._unlink(Provider.GITHUB, issue_id, tenant_id, f"issues.{action}")

        changes = normalize_github(payload, event)
        if changes.is_empty():
            logger.info(f"GitHub issues.{action} carries no synced field changes")
            return IGNORED
        return self._apply(Provider.GITHUB, issue_id, tenant_id, changes)

    # ------------------------------------------------------------------ #
    # Azure DevOps
    # ------------------------------------------------------------------ #

    def handle_azure_devops(self, payload: Dict[str, Any]) -> str:
        event = payload.get("eventType")
        resource = payload.get("resource") or {}
        work_item_id = azure_work_item_id(resource)
        logger.info(f"Azure DevOps webhook received: {event} {work_item_id or ''}".rstrip())

        if event not in ("workitem.updated", "workitem.deleted"):
            logger.info(f"Unhandled Azure DevOps event: {event}")
            return IGNORED
        if work_item_id is None:
            logger.warning(f"Azure DevOps {event} delivery without a work item id")
            return IGNORED

        tenant_id = resolve_tenant(self.db, Provider.AZURE_DEVOPS, _azure_self_url(payload))
        if event == "workitem.deleted":
            return self._unlink(Provider.AZURE_DEVOPS, work_item_id, tenant_id, event)
        return self._apply(Provider.AZURE_DEVOPS, work_item_id, tenant_id, normalize_azure_devops(payload))

    # ------------------------------------------------------------------ #
    # Shared paths
    # ------------------------------------------------------------------ #

    def _apply(self, provider: Provider, external_id: Any, tenant_id: Optional[Any], changes: ChangeSet) -> str:
        task_id = self._link_index().resolve(provider, external_id, tenant_id)
        if task_id is None:
            logger.info(f"No linked task for {provider.value} issue {external_id}; ignoring")
            return UNMATCHED

        try:
            applied = IdempotentApplier(self.db).apply(task_id, changes)
        except ValueError as e:
            # link index still points at a task that no longer exists
            logger.info(f"Ignoring {provider.value} issue {external_id}: {e}")
            return UNMATCHED
        return APPLIED if applied else UNCHANGED

    def _unlink(self, provider: Provider, external_id: Any, tenant_id: Optional[Any], event: str) -> str:
        """Clear the provider link from the owning task. The task itself stays."""
        task_id = self._link_index().resolve(provider, external_id, tenant_id)
        task = self.db.query(Task).filter(Task.id == task_id).first() if task_id is not None else None
        if task is None:
            logger.info(f"No linked task for deleted {provider.value} issue {external_id}; ignoring")
            return UNMATCHED

        links = task.links
        link = links.get(provider)
        if link is None or not link.matches(external_id, tenant_id):
            logger.info(f"Task {task.id} is no longer linked to {provider.value} issue {external_id}")
            return UNCHANGED

        try:
            task.set_links(links.without(provider))
            task.updated_at = utcnow()
            self.db.add(
                ActivityLog.for_task(
                    task,
                    ISSUE_DELETED.format(provider=provider.value),
                    {
                        "provider": provider.value,
                        "externalIssueKey": str(external_id),
                        "event": event,
                        provider.value: link.model_dump(by_alias=True, exclude_none=True),
                    },
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Failed to unlink task {task.id} from {provider.value} issue {external_id}")
            raise

        logger.info(f"Unlinked task {task.id} from deleted {provider.value} issue {external_id}")
        return UNLINKED


def _azure_self_url(payload: Dict[str, Any]) -> Optional[str]:
    resource = payload.get("resource") or {}
    url = resource.get("url") or ((resource.get("_links") or {}).get("self") or {}).get("href")
    if url:
        return url
    account = (payload.get("resourceContainers") or {}).get("account") or {}
    return account.get("baseUrl")
