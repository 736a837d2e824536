"""Resolve stored integrations to authenticated provider clients"""
import logging
from typing import Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.models.integration import Integration, Provider
from app.services.azure_devops_client import AzureDevOpsClient
from app.services.github_client import GitHubClient
from app.services.jira_client import JiraClient
from app.services.provider_client import ProviderClient

logger = logging.getLogger(__name__)


def build_client(integration: Integration) -> ProviderClient:
    """Construct the REST client for an integration row"""
    provider = Provider(integration.provider)
    if provider == Provider.GITHUB:
        return GitHubClient(integration.access_token)
    if not integration.tenant_id:
        raise ValueError(f"Integration '{integration.name}' has no tenant id")
    if provider == Provider.JIRA:
        return JiraClient(integration.access_token, integration.tenant_id)
    return AzureDevOpsClient(integration.access_token, integration.tenant_id)


class IntegrationClients:
    """Per-request cache of provider clients keyed by integration"""

    def __init__(self, db: Session, client_factory=build_client):
        self.db = db
        self.client_factory = client_factory
        self.clients: Dict[int, ProviderClient] = {}

    def find_integration(self, provider: Provider, tenant_id: Optional[str] = None) -> Integration:
        """Integration for ``provider`` within ``tenant_id``.

        Without a tenant (or with no exact tenant match) the provider's only
        integration is used; several candidates is an error.
        """
        provider = Provider(provider)
        query = self.db.query(Integration).filter(Integration.provider == provider)
        if tenant_id is not None:
            integration = query.filter(Integration.tenant_id == str(tenant_id)).first()
            if integration:
                return integration

        candidates = query.order_by(Integration.id).all()
        if len(candidates) == 1:
            return candidates[0]
        if not candidates:
            raise ValueError(f"No {provider.value} integration configured")
        raise ValueError(f"Several {provider.value} integrations configured; tenant {tenant_id!r} matches none")

    def get_client(self, provider: Provider, tenant_id: Optional[str] = None) -> Tuple[Integration, ProviderClient]:
        """Get or create the client for the matching integration"""
        integration = self.find_integration(provider, tenant_id)
        if integration.id not in self.clients:
            self.clients[integration.id] = self.client_factory(integration)
        return integration, self.clients[integration.id]
