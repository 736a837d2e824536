"""API routes"""

from app.api import imports, integrations, tasks, webhooks

__all__ = ["webhooks", "tasks", "imports", "integrations"]
