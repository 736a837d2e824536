"""Provider integration model"""

import enum
from urllib.parse import urlparse

from sqlalchemy import Column, DateTime, Enum, Integer, String

from app.models.base import Base, utcnow


class Provider(str, enum.Enum):
    """External issue trackers we synchronize with.

    The value doubles as the task metadata key and the activity tag suffix.
    """

    JIRA = "jira"
    GITHUB = "github"
    AZURE_DEVOPS = "azure_devops"


class Integration(Base):
    """A connected provider installation (Jira site, GitHub account, Azure DevOps org)"""

    __tablename__ = "integrations"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(Enum(Provider), nullable=False, index=True)
    name = Column(String, unique=True, nullable=False, index=True)
    # Jira cloud id / Azure DevOps organization. Optional for GitHub.
    tenant_id = Column(String, nullable=True, index=True)
    # Human-facing site, e.g. https://acme.atlassian.net. Used to recover the
    # tenant when a webhook self-link does not embed it.
    site_url = Column(String, nullable=True)
    access_token = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def site_hostname(self):
        if not self.site_url:
            return None
        return (urlparse(self.site_url).hostname or "").lower() or None

    def __repr__(self):
        return f"<Integration(provider={self.provider}, name='{self.name}', tenant='{self.tenant_id}')>"
