"""Azure DevOps work item tracking client"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from app.services.provider_client import ProviderClient

logger = logging.getLogger(__name__)

API_VERSION = "7.1"
JSON_PATCH = {"Content-Type": "application/json-patch+json"}


def patch_document(fields: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Build a JSON Patch document setting each reference-named field."""
    return [{"op": "add", "path": f"/fields/{name}", "value": value} for name, value in fields.items()]


class AzureDevOpsClient(ProviderClient):
    def __init__(self, access_token: str, organization: str, http_client: Optional[httpx.Client] = None):
        super().__init__(access_token, http_client)
        self.organization = organization
        self.base_url = f"https://dev.azure.com/{quote(organization, safe='')}"

    def get_issue(self, work_item_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/_apis/wit/workitems/{work_item_id}", params={"api-version": API_VERSION})

    def create_issue(self, project: str, fields: Dict[str, Any], work_item_type: str = "Task") -> Dict[str, Any]:
        path = f"/{quote(project, safe='')}/_apis/wit/workitems/${quote(work_item_type, safe='')}"
        return self._request(
            "POST", path, params={"api-version": API_VERSION}, json=patch_document(fields), headers=JSON_PATCH
        )

    def update_issue(self, work_item_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request(
            "PATCH",
            f"/_apis/wit/workitems/{work_item_id}",
            params={"api-version": API_VERSION},
            json=patch_document(fields),
            headers=JSON_PATCH,
        )

    def transition_issue(self, work_item_id: int, state: str) -> Dict[str, Any]:
        logger.info(f"Moving Azure DevOps work item {work_item_id} to {state}")
        return self.update_issue(work_item_id, {"System.State": state})
