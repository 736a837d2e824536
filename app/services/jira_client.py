"""Jira Cloud REST API (v3) client"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.services.provider_client import ProviderClient

logger = logging.getLogger(__name__)


class JiraClient(ProviderClient):
    """Jira Cloud client addressed through the Atlassian API gateway"""

    def __init__(self, access_token: str, cloud_id: str, http_client: Optional[httpx.Client] = None):
        super().__init__(access_token, http_client)
        self.cloud_id = cloud_id
        self.base_url = f"https://api.atlassian.com/ex/jira/{cloud_id}/rest/api/3"

    def get_issue(self, issue_key: str) -> Dict[str, Any]:
        return self._request("GET", f"/issue/{issue_key}")

    def create_issue(self, project_key: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create an issue; returns ``{"id", "key", "self"}``."""
        payload = {"project": {"key": project_key}, "issuetype": {"name": "Task"}}
        payload.update(fields)
        return self._request("POST", "/issue", json={"fields": payload})

    def update_issue(self, issue_key: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/issue/{issue_key}", json={"fields": fields})

    def get_transitions(self, issue_key: str) -> List[Dict[str, Any]]:
        data = self._request("GET", f"/issue/{issue_key}/transitions")
        return data.get("transitions", [])

    def transition_issue(self, issue_key: str, transition_id: str) -> Dict[str, Any]:
        logger.info(f"Transitioning Jira issue {issue_key} via transition {transition_id}")
        return self._request("POST", f"/issue/{issue_key}/transitions", json={"transition": {"id": str(transition_id)}})
