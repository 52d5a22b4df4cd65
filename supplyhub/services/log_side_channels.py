from __future__ import annotations

import json
import logging

from supplyhub.config import settings
from supplyhub.services.side_channels import OutboundEmail, OutboundEvent


logger = logging.getLogger(__name__)


class LogEventPublisher:
    """Writes events to the application log instead of a bus."""

    def publish(self, event: OutboundEvent) -> None:
        logger.info('event %s %s', event.name, json.dumps(event.data, default=str, sort_keys=True))


class LogEmailSender:
    def send(self, email: OutboundEmail) -> None:
        logger.info('email from=%s to=%s subject=%r', settings.email_from_address, email.to, email.subject)
