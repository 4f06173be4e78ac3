"""Serviços de aplicação.

Unidades de orquestração da sincronização (sem IO direto).
Implementações concretas de IO ficam em app/infra/.
"""

from app.services.bulk_sync import BulkSyncService
from app.services.credential_vault import CredentialVault
from app.services.renewal_scheduler import WebhookRenewalJob
from app.services.retry_queue import RetryQueue
from app.services.sync_processor import SyncProcessor
from app.services.webhook_ingress import WebhookIngress
from app.services.webhook_registration import WebhookRegistrar

__all__ = [
    "BulkSyncService",
    "CredentialVault",
    "RetryQueue",
    "SyncProcessor",
    "WebhookIngress",
    "WebhookRegistrar",
    "WebhookRenewalJob",
]
