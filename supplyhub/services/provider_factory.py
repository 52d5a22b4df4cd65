from __future__ import annotations

from functools import lru_cache

from supplyhub.config import settings
from supplyhub.services.log_side_channels import LogEmailSender, LogEventPublisher
from supplyhub.services.webhook_event_publisher import WebhookEventPublisher


@lru_cache(maxsize=1)
def get_event_publisher():
    provider = settings.event_publisher.strip().lower()
    if provider == 'webhook':
        return WebhookEventPublisher()
    return LogEventPublisher()


@lru_cache(maxsize=1)
def get_email_sender():
    # Only the logging sender ships with the core; delivery providers plug in here.
    return LogEmailSender()
