"""Services"""

from app.services.applier import IdempotentApplier
from app.services.import_service import ImportService
from app.services.link_index import LinkIndex
from app.services.outbound_sync import OutboundSyncService, PushResult
from app.services.webhook_service import WebhookService

__all__ = [
    "IdempotentApplier",
    "ImportService",
    "LinkIndex",
    "OutboundSyncService",
    "PushResult",
    "WebhookService",
]
