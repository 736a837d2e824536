"""Import provider issues as linked local tasks"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from app.models.activity_log import IMPORTED_FROM, ActivityLog
from app.models.integration import Provider
from app.models.links import AzureDevOpsLink, GitHubLink, JiraLink, TaskLinks
from app.models.task import Task
from app.services import mappers
from app.services.integrations import IntegrationClients, build_client

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    imported: List[int] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class ImportService:
    """Create tasks from provider issues.

    Every imported task gets its link object and an ``imported_from_<provider>``
    activity entry; the latter is what the link index scans first.
    """

    def __init__(self, db: Session, client_factory=build_client):
        self.db = db
        self.clients = IntegrationClients(db, client_factory)

    def import_issues(
        self,
        provider: Provider,
        workspace_id: str,
        user_id: str,
        external_ids: List[Any],
        container: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> ImportResult:
        """Import issues by id.

        ``external_ids`` are Jira issue keys, GitHub issue numbers (``container``
        is then the ``owner/repo``) or Azure DevOps work item ids.
        """
        provider = Provider(provider)
        if provider == Provider.GITHUB and not container:
            raise ValueError("GitHub imports need the repository full name")

        integration, client = self.clients.get_client(provider, tenant_id)
        repository: Dict[str, Any] = {}
        if provider == Provider.GITHUB:
            repository = client.get_repository(container)

        result = ImportResult()
        for external_id in external_ids:
            try:
                if provider == Provider.JIRA:
                    values, link = self._from_jira(client.get_issue(external_id), integration.tenant_id)
                elif provider == Provider.GITHUB:
                    values, link = self._from_github(client.get_issue(container, external_id), repository)
                else:
                    values, link = self._from_azure_devops(client.get_issue(external_id), integration.tenant_id)
            except (httpx.HTTPError, KeyError, ValueError) as e:
                logger.error(f"Skipping {provider.value} issue {external_id}: {e}")
                result.skipped.append(str(external_id))
                continue

            task = Task(workspace_id=workspace_id, created_by=user_id, **values)
            task.set_links(TaskLinks().with_link(link))
            self.db.add(task)
            self.db.flush()
            self.db.add(
                ActivityLog.for_task(
                    task,
                    IMPORTED_FROM.format(provider=provider.value),
                    {provider.value: link.model_dump(by_alias=True, exclude_none=True)},
                    user_id=user_id,
                )
            )
            self.db.commit()
            result.imported.append(task.id)
            logger.info(f"Imported {provider.value} issue {link.external_id} as task {task.id}")

        return result

    @staticmethod
    def _from_jira(issue: Dict[str, Any], cloud_id: Optional[str]):
        fields = issue.get("fields") or {}
        values = {
            "title": fields.get("summary") or issue["key"],
            "description": mappers.extract_plain_text(fields.get("description")) or None,
            "status": mappers.map_jira_status_field(fields.get("status")),
            "priority": mappers.map_jira_priority(fields.get("priority")),
            "due_date": mappers.parse_due_date(fields.get("duedate")),
        }
        link = JiraLink(
            issueKey=issue["key"],
            issueId=issue.get("id"),
            projectKey=(fields.get("project") or {}).get("key"),
            cloudId=cloud_id,
            url=issue.get("self"),
        )
        return values, link

    @staticmethod
    def _from_github(issue: Dict[str, Any], repository: Dict[str, Any]):
        labels = issue.get("labels") or []
        values = {
            "title": issue.get("title") or f"#{issue['number']}",
            "description": issue.get("body") or None,
            "status": mappers.map_github_status(issue.get("state"), labels),
            "priority": mappers.map_github_priority(labels),
            "due_date": mappers.parse_due_date((issue.get("milestone") or {}).get("due_on")),
        }
        link = GitHubLink(
            issueId=issue["id"],
            issueNumber=issue["number"],
            issueUrl=issue.get("html_url"),
            repositoryId=repository.get("id"),
            repositoryFullName=repository.get("full_name"),
        )
        return values, link

    @staticmethod
    def _from_azure_devops(work_item: Dict[str, Any], organization: Optional[str]):
        fields = work_item.get("fields") or {}
        values = {
            "title": fields.get("System.Title") or f"Work item {work_item['id']}",
            "description": mappers.html_to_plain_text(fields.get("System.Description")) or None,
            "status": mappers.map_azure_state(fields.get("System.State")),
            "priority": mappers.map_azure_priority(fields.get("Microsoft.VSTS.Common.Priority")),
            "due_date": mappers.parse_due_date(fields.get("Microsoft.VSTS.Scheduling.DueDate")),
        }
        link = AzureDevOpsLink(
            workItemId=work_item["id"],
            organization=organization,
            project=fields.get("System.TeamProject"),
            workItemType=fields.get("System.WorkItemType"),
            url=work_item.get("url"),
        )
        return values, link
