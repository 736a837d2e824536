"""Turn provider webhook payloads into canonical ChangeSets.

Only fields the provider's changelog names as modified end up in the
ChangeSet, and values are always read from the payload's current-state
snapshot when it has them. Whether a change is a real delta is decided
later against the stored task (see app.services.applier).
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

from app.models.integration import Provider
from app.models.task import TaskStatus
from app.services import mappers

logger = logging.getLogger(__name__)


class TaskField(str, enum.Enum):
    """Task attributes a provider event may set"""

    STATUS = "status"
    PRIORITY = "priority"
    TITLE = "title"
    DESCRIPTION = "description"
    DUE_DATE = "due_date"


@dataclass(frozen=True)
class ChangeProvenance:
    provider: Provider
    external_issue_key: str
    raw_event_type: str


@dataclass
class ChangeSet:
    """Sparse set of canonical field values requested by one provider event.

    A key's presence means "the event changed this field"; its value may be
    None (e.g. a cleared due date).
    """

    provenance: ChangeProvenance
    fields: Dict[TaskField, Any] = field(default_factory=dict)

    def set(self, task_field: TaskField, value: Any) -> None:
        self.fields[TaskField(task_field)] = value

    def __contains__(self, task_field) -> bool:
        return TaskField(task_field) in self.fields

    def __iter__(self) -> Iterator[Tuple[TaskField, Any]]:
        return iter(list(self.fields.items()))

    def __len__(self) -> int:
        return len(self.fields)

    def is_empty(self) -> bool:
        return not self.fields


# --------------------------------------------------------------------------- #
# Jira
# --------------------------------------------------------------------------- #

_JIRA_FIELD_NAMES = {
    "status": TaskField.STATUS,
    "summary": TaskField.TITLE,
    "priority": TaskField.PRIORITY,
    "description": TaskField.DESCRIPTION,
    "duedate": TaskField.DUE_DATE,
    "due date": TaskField.DUE_DATE,
}

# Where each canonical field lives in Jira's ``issue.fields`` snapshot
_JIRA_SNAPSHOT_KEYS = {
    TaskField.STATUS: "status",
    TaskField.TITLE: "summary",
    TaskField.PRIORITY: "priority",
    TaskField.DESCRIPTION: "description",
    TaskField.DUE_DATE: "duedate",
}


def _jira_changed_field(item: Dict[str, Any]) -> Optional[TaskField]:
    for key in ("fieldId", "field"):
        name = item.get(key)
        if isinstance(name, str):
            mapped = _JIRA_FIELD_NAMES.get(name.strip().lower())
            if mapped is not None:
                return mapped
    return None


def normalize_jira(payload: Dict[str, Any]) -> ChangeSet:
    """Normalize a ``jira:issue_updated`` delivery."""
    issue = payload.get("issue") or {}
    snapshot = issue.get("fields") or {}
    provenance = ChangeProvenance(
        provider=Provider.JIRA,
        external_issue_key=str(issue.get("key") or ""),
        raw_event_type=str(payload.get("webhookEvent") or ""),
    )
    changes = ChangeSet(provenance)

    items = (payload.get("changelog") or {}).get("items") or []
    for item in items:
        if not isinstance(item, dict):
            continue
        task_field = _jira_changed_field(item)
        if task_field is None:
            continue

        snapshot_key = _JIRA_SNAPSHOT_KEYS[task_field]
        if snapshot_key in snapshot:
            raw = snapshot.get(snapshot_key)
        else:
            raw = item.get("toString")
            if task_field == TaskField.DUE_DATE:
                raw = item.get("to") or raw

        if task_field == TaskField.STATUS:
            value = mappers.map_jira_status_field(raw)
        elif task_field == TaskField.PRIORITY:
            value = mappers.map_jira_priority(raw)
        elif task_field == TaskField.TITLE:
            if not raw:
                logger.info(f"Ignoring empty summary change on Jira issue {provenance.external_issue_key}")
                continue
            value = str(raw)
        elif task_field == TaskField.DESCRIPTION:
            value = mappers.extract_plain_text(raw)
        else:
            value = mappers.parse_due_date(raw)
        changes.set(task_field, value)

    return changes


# --------------------------------------------------------------------------- #
# GitHub
# --------------------------------------------------------------------------- #


def normalize_github(payload: Dict[str, Any], event: str = "issues") -> ChangeSet:
    """Normalize a GitHub ``issues`` delivery.

    GitHub has no changelog list; the action, the ``changes`` object and the
    label that triggered the event say what moved.
    """
    action = str(payload.get("action") or "")
    issue = payload.get("issue") or {}
    labels = issue.get("labels") or []
    provenance = ChangeProvenance(
        provider=Provider.GITHUB,
        external_issue_key=str(issue.get("id") or ""),
        raw_event_type=f"{event}.{action}" if action else event,
    )
    changes = ChangeSet(provenance)

    if action in ("closed", "reopened"):
        changes.set(TaskField.STATUS, mappers.map_github_status(issue.get("state") or _state_for(action), labels))

    elif action == "edited":
        edited = payload.get("changes") or {}
        if "title" in edited and issue.get("title"):
            changes.set(TaskField.TITLE, str(issue["title"]))
        if "body" in edited:
            changes.set(TaskField.DESCRIPTION, issue.get("body") or "")

    elif action in ("labeled", "unlabeled"):
        name = (payload.get("label") or {}).get("name")
        if mappers.is_priority_label(name):
            changes.set(TaskField.PRIORITY, mappers.map_github_priority(labels))
        elif mappers.is_status_label(name):
            # an open issue ignores done labels in either direction
            issue_open = str(issue.get("state") or "open").lower() != "closed"
            if not (issue_open and mappers.status_from_name(name) == TaskStatus.DONE):
                changes.set(TaskField.STATUS, mappers.map_github_status(issue.get("state"), labels))

    elif action in ("milestoned", "demilestoned"):
        milestone = issue.get("milestone") or payload.get("milestone") or {}
        due_on = milestone.get("due_on") if action == "milestoned" else None
        changes.set(TaskField.DUE_DATE, mappers.parse_due_date(due_on))

    return changes


def _state_for(action: str) -> str:
    return "closed" if action == "closed" else "open"


# --------------------------------------------------------------------------- #
# Azure DevOps
# --------------------------------------------------------------------------- #

_AZURE_FIELDS = {
    "System.State": TaskField.STATUS,
    "System.Title": TaskField.TITLE,
    "Microsoft.VSTS.Common.Priority": TaskField.PRIORITY,
    "System.Description": TaskField.DESCRIPTION,
    "Microsoft.VSTS.Scheduling.DueDate": TaskField.DUE_DATE,
}


def azure_work_item_id(resource: Dict[str, Any]) -> Optional[Any]:
    """``workItemId`` on update deliveries, ``id`` on the others."""
    return resource.get("workItemId") or resource.get("id")


def normalize_azure_devops(payload: Dict[str, Any]) -> ChangeSet:
    """Normalize a ``workitem.updated`` delivery."""
    resource = payload.get("resource") or {}
    changelog = resource.get("fields") or {}
    snapshot = (resource.get("revision") or {}).get("fields") or {}
    provenance = ChangeProvenance(
        provider=Provider.AZURE_DEVOPS,
        external_issue_key=str(azure_work_item_id(resource) or ""),
        raw_event_type=str(payload.get("eventType") or ""),
    )
    changes = ChangeSet(provenance)

    for reference_name, task_field in _AZURE_FIELDS.items():
        if reference_name not in changelog:
            continue
        if reference_name in snapshot:
            raw = snapshot.get(reference_name)
        else:
            change = changelog.get(reference_name)
            raw = change.get("newValue") if isinstance(change, dict) else None

        if task_field == TaskField.STATUS:
            value = mappers.map_azure_state(raw)
        elif task_field == TaskField.PRIORITY:
            value = mappers.map_azure_priority(raw)
        elif task_field == TaskField.TITLE:
            if not raw:
                continue
            value = str(raw)
        elif task_field == TaskField.DESCRIPTION:
            value = mappers.html_to_plain_text(raw)
        else:
            value = mappers.parse_due_date(raw)
        changes.set(task_field, value)

    return changes

