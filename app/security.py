"""Webhook delivery authentication.

Every provider may be configured with a shared secret that deliveries must
present as ``Authorization: Bearer <secret>``. GitHub cannot send custom
headers, so its deliveries may instead carry an ``X-Hub-Signature-256``
HMAC of the raw body computed with the same secret. When no secret is
configured for a provider its deliveries are accepted without a check.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from typing import Mapping

from app.config import settings
from app.models.integration import Provider

logger = logging.getLogger(__name__)


def _parse_bearer_header(header_value: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer`` header."""
    if not header_value:
        return None

    scheme, _, token = header_value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def verify_bearer_secret(header_value: str | None, secret: str) -> bool:
    token = _parse_bearer_header(header_value)
    if token is None:
        return False
    return secrets.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))


def verify_github_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    """Check a ``sha256=<hex>`` signature over the raw request body."""
    if not signature or not signature.startswith("sha256="):
        return False
    expected = "sha256=" + hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


def authorize_webhook(
    provider: Provider,
    headers: Mapping[str, str],
    raw_body: bytes,
    secret: str | None = None,
) -> bool:
    """True if the delivery may be processed.

    ``secret`` defaults to the provider's configured webhook secret.
    """
    if secret is None:
        secret = settings.webhook_secret_for(provider)
    if not secret:
        return True

    if verify_bearer_secret(headers.get("authorization"), secret):
        return True
    if Provider(provider) == Provider.GITHUB and verify_github_signature(
        raw_body, headers.get("x-hub-signature-256"), secret
    ):
        return True

    logger.warning(f"Rejected {Provider(provider).value} webhook delivery: bad or missing credentials")
    return False
