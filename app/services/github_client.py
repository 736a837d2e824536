"""GitHub REST API client (issues only)"""
from typing import Any, Dict, Optional

import httpx

from app.services.provider_client import ProviderClient


class GitHubClient(ProviderClient):
    base_url = "https://api.github.com"

    def __init__(self, access_token: str, http_client: Optional[httpx.Client] = None):
        super().__init__(access_token, http_client)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def get_issue(self, repo_full_name: str, issue_number: int) -> Dict[str, Any]:
        return self._request("GET", f"/repos/{repo_full_name}/issues/{issue_number}")

    def create_issue(self, repo_full_name: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/repos/{repo_full_name}/issues", json=fields)

    def update_issue(self, repo_full_name: str, issue_number: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PATCH", f"/repos/{repo_full_name}/issues/{issue_number}", json=fields)

    def transition_issue(self, repo_full_name: str, issue_number: int, state: str) -> Dict[str, Any]:
        """GitHub issues only have open/closed."""
        return self.update_issue(repo_full_name, issue_number, {"state": state})

    def get_repository(self, repo_full_name: str) -> Dict[str, Any]:
        return self._request("GET", f"/repos/{repo_full_name}")
