"""Shared HTTP plumbing for the provider REST clients"""
import logging
import time
from typing import Any, Dict, Optional

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


class ProviderClient:
    """Thin wrapper around ``httpx.Client`` with retries for transient failures.

    Subclasses set ``base_url`` and ``_headers()``. Non-2xx responses raise
    ``httpx.HTTPStatusError`` after retries are exhausted.
    """

    base_url: str = ""

    def __init__(self, access_token: str, http_client: Optional[httpx.Client] = None):
        self.access_token = access_token
        self._http = http_client or httpx.Client(timeout=settings.provider_timeout_seconds)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}", "Accept": "application/json"}

    @staticmethod
    def _should_retry(exc: Exception) -> bool:
        """Best-effort retry predicate for transient provider failures."""
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code in RETRY_STATUS_CODES
        if isinstance(exc, httpx.TransportError):
            return True
        return False

    def _with_retries(self, fn, *, max_attempts: int = 3, base_delay_s: float = 0.5):
        """Run callable with small exponential backoff on transient errors."""
        attempt = 1
        while True:
            try:
                return fn()
            except Exception as e:
                if attempt >= max_attempts or not self._should_retry(e):
                    raise
                logger.warning(f"Retrying {self.__class__.__name__} request after error: {e} (attempt {attempt})")
                time.sleep(base_delay_s * (2 ** (attempt - 1)))
                attempt += 1

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        request_headers = self._headers()
        if headers:
            request_headers.update(headers)

        def send():
            resp = self._http.request(method, url, params=params, json=json, headers=request_headers)
            resp.raise_for_status()
            return resp

        try:
            resp = self._with_retries(send)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise

        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    def close(self) -> None:
        self._http.close()
