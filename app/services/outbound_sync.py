"""Push local task fields out to linked provider issues"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from app.models.activity_log import ISSUE_CREATED, ActivityLog
from app.models.base import utcnow
from app.models.integration import Provider
from app.models.links import AzureDevOpsLink, GitHubLink, JiraLink, ProviderLink
from app.models.task import Task, TaskStatus
from app.services import mappers
from app.services.integrations import IntegrationClients, build_client

logger = logging.getLogger(__name__)

# Jira status categories cannot tell these apart
_JIRA_EQUIVALENT_STATUS = {
    TaskStatus.REVIEW: TaskStatus.IN_PROGRESS,
    TaskStatus.BACKLOG: TaskStatus.TODO,
}


@dataclass
class PushResult:
    success: bool
    provider: Provider
    issue_key: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["provider"] = self.provider.value
        return data


class OutboundSyncService:
    """Map a task through the inverse field tables and call the provider.

    Remote failures come back as ``PushResult(success=False)`` and never
    touch local rows. Local problems (unknown task, no link, no
    integration) raise ``ValueError``.
    """

    def __init__(self, db: Session, client_factory=build_client):
        self.db = db
        self.clients = IntegrationClients(db, client_factory)

    def _get_task(self, task_id: int) -> Task:
        task = self.db.query(Task).filter(Task.id == task_id).first()
        if not task:
            raise ValueError(f"Task {task_id} not found")
        return task

    # ------------------------------------------------------------------ #
    # Push
    # ------------------------------------------------------------------ #

    def push(self, task_id: int, provider: Provider) -> PushResult:
        """Send the task's current fields to its ``provider`` issue."""
        provider = Provider(provider)
        task = self._get_task(task_id)
        link = task.links.get(provider)
        if link is None:
            raise ValueError(f"Task {task_id} is not linked to {provider.value}")

        _, client = self.clients.get_client(provider, link.tenant_id)
        try:
            if provider == Provider.JIRA:
                self._push_jira(client, task, link)
            elif provider == Provider.GITHUB:
                self._push_github(client, task, link)
            else:
                self._push_azure_devops(client, task, link)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to push task {task_id} to {provider.value} issue {link.external_id}: {e}")
            return PushResult(False, provider, link.external_id, str(e))

        logger.info(f"Pushed task {task_id} to {provider.value} issue {link.external_id}")
        return PushResult(True, provider, link.external_id)

    def push_all(self, task_id: int) -> List[PushResult]:
        """Push to every provider the task is linked to."""
        task = self._get_task(task_id)
        results = []
        for provider in task.links.linked_providers():
            try:
                results.append(self.push(task_id, provider))
            except ValueError as e:
                logger.error(f"Cannot push task {task_id} to {provider.value}: {e}")
                results.append(PushResult(False, provider, None, str(e)))
        return results

    def _push_jira(self, client, task: Task, link: JiraLink) -> None:
        fields = {
            "summary": task.title,
            "description": mappers.plain_text_to_adf(task.description),
            "priority": {"name": mappers.jira_priority_for(task.priority)},
            "duedate": task.due_date.isoformat() if task.due_date else None,
        }
        client.update_issue(link.issue_key, fields)
        self._sync_jira_status(client, link.issue_key, TaskStatus(task.status))

    @staticmethod
    def _sync_jira_status(client, issue_key: str, status: TaskStatus) -> None:
        """Transition the issue when its status category disagrees with ``status``."""
        issue = client.get_issue(issue_key)
        remote = mappers.map_jira_status_field((issue.get("fields") or {}).get("status"))
        wanted = _JIRA_EQUIVALENT_STATUS.get(status, status)
        if _JIRA_EQUIVALENT_STATUS.get(remote, remote) == wanted:
            return
        transition = mappers.pick_jira_transition(client.get_transitions(issue_key), status)
        if transition is None:
            raise ValueError(f"No Jira transition leads to '{status.value}' for {issue_key}")
        client.transition_issue(issue_key, transition["id"])

    def _push_github(self, client, task: Task, link: GitHubLink) -> None:
        if not link.repository_full_name or link.issue_number is None:
            raise ValueError("GitHub link lacks repositoryFullName/issueNumber")
        issue = client.get_issue(link.repository_full_name, link.issue_number)
        client.update_issue(
            link.repository_full_name,
            link.issue_number,
            {
                "title": task.title,
                "body": task.description or "",
                "state": mappers.github_state_for(task.status),
                "labels": mappers.github_labels_for(task.priority, issue.get("labels")),
            },
        )

    def _push_azure_devops(self, client, task: Task, link: AzureDevOpsLink) -> None:
        client.update_issue(link.work_item_id, self._azure_fields(task, include_state=True))

    @staticmethod
    def _azure_fields(task: Task, include_state: bool) -> Dict[str, Any]:
        fields = {
            "System.Title": task.title,
            "System.Description": mappers.plain_text_to_html(task.description),
            "Microsoft.VSTS.Common.Priority": mappers.azure_priority_for(task.priority),
        }
        if include_state:
            fields["System.State"] = mappers.azure_state_for(task.status)
        if task.due_date:
            fields["Microsoft.VSTS.Scheduling.DueDate"] = task.due_date.isoformat()
        return fields

    # ------------------------------------------------------------------ #
    # Create
    # ------------------------------------------------------------------ #

    def create_remote_issue(
        self,
        task_id: int,
        provider: Provider,
        container: str,
        tenant_id: Optional[str] = None,
        work_item_type: str = "Task",
        user_id: Optional[str] = None,
    ) -> PushResult:
        """Create an issue for the task and link it.

        ``container`` is the Jira project key, the GitHub ``owner/repo`` or
        the Azure DevOps project.
        """
        provider = Provider(provider)
        task = self._get_task(task_id)
        links = task.links
        if links.get(provider) is not None:
            raise ValueError(f"Task {task_id} is already linked to {provider.value}")

        integration, client = self.clients.get_client(provider, tenant_id)
        try:
            if provider == Provider.JIRA:
                link = self._create_jira(client, task, container, integration.tenant_id)
            elif provider == Provider.GITHUB:
                link = self._create_github(client, task, container)
            else:
                link = self._create_azure_devops(client, task, container, integration.tenant_id, work_item_type)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to create {provider.value} issue for task {task_id}: {e}")
            return PushResult(False, provider, None, str(e))

        try:
            task.set_links(links.with_link(link))
            task.updated_at = utcnow()
            self.db.add(
                ActivityLog.for_task(
                    task,
                    ISSUE_CREATED.format(provider=provider.value),
                    {provider.value: link.model_dump(by_alias=True, exclude_none=True)},
                    user_id=user_id,
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Created {provider.value} issue {link.external_id} but failed to link task {task_id}")
            raise

        logger.info(f"Created {provider.value} issue {link.external_id} for task {task_id}")
        return PushResult(True, provider, link.external_id)

    def _create_jira(self, client, task: Task, project_key: str, cloud_id: Optional[str]) -> ProviderLink:
        fields = {
            "summary": task.title,
            "priority": {"name": mappers.jira_priority_for(task.priority)},
        }
        if task.description:
            fields["description"] = mappers.plain_text_to_adf(task.description)
        if task.due_date:
            fields["duedate"] = task.due_date.isoformat()
        created = client.create_issue(project_key, fields)
        issue_key = created["key"]
        if TaskStatus(task.status) not in (TaskStatus.TODO, TaskStatus.BACKLOG):
            self._sync_jira_status(client, issue_key, TaskStatus(task.status))
        return JiraLink(
            issueKey=issue_key,
            issueId=created.get("id"),
            projectKey=project_key,
            cloudId=cloud_id,
            url=created.get("self"),
        )

    def _create_github(self, client, task: Task, repo_full_name: str) -> ProviderLink:
        repository = client.get_repository(repo_full_name)
        created = client.create_issue(
            repo_full_name,
            {
                "title": task.title,
                "body": task.description or "",
                "labels": mappers.github_labels_for(task.priority),
            },
        )
        if mappers.github_state_for(task.status) == "closed":
            client.transition_issue(repo_full_name, created["number"], "closed")
        return GitHubLink(
            issueId=created["id"],
            issueNumber=created["number"],
            issueUrl=created.get("html_url"),
            repositoryId=repository.get("id"),
            repositoryFullName=repo_full_name,
        )

    def _create_azure_devops(
        self, client, task: Task, project: str, organization: Optional[str], work_item_type: str
    ) -> ProviderLink:
        created = client.create_issue(project, self._azure_fields(task, include_state=False), work_item_type)
        work_item_id = created["id"]
        state = mappers.azure_state_for(task.status)
        if state != "New":
            client.transition_issue(work_item_id, state)
        return AzureDevOpsLink(
            workItemId=work_item_id,
            organization=organization,
            project=project,
            workItemType=work_item_type,
            url=created.get("url"),
        )
