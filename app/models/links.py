"""Typed provider link objects embedded in ``Task.metadata``.

The blob is stored as JSON text with camelCase keys, e.g.::

    {"jira": {"issueKey": "PROJ-1", "cloudId": "abc"},
     "github": {"issueId": 42, "issueNumber": 7, "repositoryId": 99}}

``TaskLinks`` has exactly one optional slot per provider, so a task can never
carry two links for the same provider. Keys we don't know about are kept
as-is so writing the blob back never drops data.
"""

from __future__ import annotations

import json
import logging
from abc import abstractmethod
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, Field, ValidationError

from app.models.integration import Provider

logger = logging.getLogger(__name__)


class ProviderLink(BaseModel):
    """Abstract base for a per-provider link object; subclasses name the issue id."""

    provider: ClassVar[Provider]

    class Config:
        populate_by_name = True
        extra = "allow"

    @property
    @abstractmethod
    def external_id(self) -> str:
        ...

    @property
    def external_ids(self) -> Tuple[Any, ...]:
        """Every identifier an inbound event may use to refer to this issue."""
        return (self.external_id,)

    @property
    def tenant_id(self) -> Optional[str]:
        return None

    def matches(self, external_id: Any, tenant_id: Optional[Any] = None) -> bool:
        """True if this link points at ``external_id`` within ``tenant_id``.

        A missing tenant on either side acts as a wildcard.
        """
        known = {str(v) for v in self.external_ids if v is not None}
        if str(external_id) not in known:
            return False
        own_tenant = self.tenant_id
        if tenant_id is None or own_tenant is None:
            return True
        return str(own_tenant) == str(tenant_id)


class JiraLink(ProviderLink):
    provider: ClassVar[Provider] = Provider.JIRA

    issue_key: str = Field(alias="issueKey")
    issue_id: Optional[Union[str, int]] = Field(default=None, alias="issueId")
    project_key: Optional[str] = Field(default=None, alias="projectKey")
    cloud_id: Optional[str] = Field(default=None, alias="cloudId")
    url: Optional[str] = None

    @property
    def external_id(self) -> str:
        return self.issue_key

    @property
    def external_ids(self) -> Tuple[Any, ...]:
        return (self.issue_key, self.issue_id)

    @property
    def tenant_id(self) -> Optional[str]:
        return self.cloud_id


class GitHubLink(ProviderLink):
    provider: ClassVar[Provider] = Provider.GITHUB

    issue_id: int = Field(alias="issueId")
    issue_number: Optional[int] = Field(default=None, alias="issueNumber")
    issue_url: Optional[str] = Field(default=None, alias="issueUrl")
    repository_id: Optional[Union[int, str]] = Field(default=None, alias="repositoryId")
    repository_full_name: Optional[str] = Field(default=None, alias="repositoryFullName")

    @property
    def external_id(self) -> str:
        return str(self.issue_id)

    @property
    def tenant_id(self) -> Optional[str]:
        return None if self.repository_id is None else str(self.repository_id)


class AzureDevOpsLink(ProviderLink):
    provider: ClassVar[Provider] = Provider.AZURE_DEVOPS

    work_item_id: int = Field(alias="workItemId")
    organization: Optional[str] = None
    project: Optional[str] = None
    work_item_type: Optional[str] = Field(default=None, alias="workItemType")
    url: Optional[str] = None

    @property
    def external_id(self) -> str:
        return str(self.work_item_id)

    @property
    def tenant_id(self) -> Optional[str]:
        return self.organization


LINK_TYPES: Dict[Provider, Type[ProviderLink]] = {
    Provider.JIRA: JiraLink,
    Provider.GITHUB: GitHubLink,
    Provider.AZURE_DEVOPS: AzureDevOpsLink,
}


def load_json_object(raw: Optional[str]) -> Dict[str, Any]:
    """Parse a JSON text column into a dict; anything unreadable becomes {}."""
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def parse_link(provider: Provider, value: Any) -> Optional[ProviderLink]:
    """Validate one provider's link object, returning None if it is unusable."""
    if not isinstance(value, dict):
        return None
    try:
        return LINK_TYPES[Provider(provider)].model_validate(value)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed {Provider(provider).value} link {value!r}: {e}")
        return None


class TaskLinks(BaseModel):
    """All provider links of a task (at most one per provider)."""

    jira: Optional[JiraLink] = None
    github: Optional[GitHubLink] = None
    azure_devops: Optional[AzureDevOpsLink] = None

    class Config:
        extra = "allow"

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "TaskLinks":
        links: Dict[str, Any] = {}
        for key, value in load_json_object(raw).items():
            try:
                provider = Provider(key)
            except ValueError:
                links[key] = value
                continue
            link = parse_link(provider, value)
            if link is not None:
                links[provider.value] = link
        return cls(**links)

    def to_json(self) -> Optional[str]:
        data = self.model_dump(by_alias=True, exclude_none=True)
        return json.dumps(data) if data else None

    def get(self, provider: Provider) -> Optional[ProviderLink]:
        return getattr(self, Provider(provider).value)

    def with_link(self, link: ProviderLink) -> "TaskLinks":
        return self.model_copy(update={link.provider.value: link})

    def without(self, provider: Provider) -> "TaskLinks":
        return self.model_copy(update={Provider(provider).value: None})

    def linked_providers(self) -> List[Provider]:
        return [p for p in Provider if self.get(p) is not None]
