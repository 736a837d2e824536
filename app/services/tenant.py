"""Tenant identifier recovery for inbound webhook deliveries"""
import logging
import re
from typing import Optional
from urllib.parse import urlparse

from sqlalchemy.orm import Session

from app.models.integration import Integration, Provider

logger = logging.getLogger(__name__)

_JIRA_CLOUD_RE = re.compile(r"/ex/jira/([^/?#]+)")
_AZURE_DEV_RE = re.compile(r"^https?://dev\.azure\.com/([^/?#]+)", re.IGNORECASE)
_AZURE_VSTS_RE = re.compile(r"^https?://([^./]+)\.visualstudio\.com", re.IGNORECASE)


def tenant_from_url(provider: Provider, url: Optional[str]) -> Optional[str]:
    """Pattern-match a provider self-link to recover its tenant id.

    Jira: ``.../ex/jira/<cloudId>/...``. Azure DevOps:
    ``https://dev.azure.com/<org>/...`` or ``https://<org>.visualstudio.com``.
    Returns None when the URL has no recognisable shape.
    """
    if not url or not isinstance(url, str):
        return None
    provider = Provider(provider)
    if provider == Provider.JIRA:
        match = _JIRA_CLOUD_RE.search(url)
        return match.group(1) if match else None
    if provider == Provider.AZURE_DEVOPS:
        match = _AZURE_DEV_RE.match(url) or _AZURE_VSTS_RE.match(url)
        return match.group(1) if match else None
    return None


def tenant_from_integration(db: Session, provider: Provider, url: Optional[str]) -> Optional[str]:
    """Find the stored integration whose site hostname matches ``url``."""
    if not url or not isinstance(url, str):
        return None
    hostname = (urlparse(url).hostname or "").lower()
    if not hostname:
        return None
    integrations = db.query(Integration).filter(Integration.provider == Provider(provider)).all()
    for integration in integrations:
        if integration.tenant_id and integration.site_hostname == hostname:
            return integration.tenant_id
    return None


def resolve_tenant(db: Session, provider: Provider, url: Optional[str]) -> Optional[str]:
    """Self-link pattern first, then the integration table, else None (wildcard)."""
    tenant_id = tenant_from_url(provider, url)
    if tenant_id is None:
        tenant_id = tenant_from_integration(db, provider, url)
        if tenant_id is None and url:
            logger.info(f"No tenant recognised for {Provider(provider).value} URL {url}; matching any tenant")
    return tenant_id
