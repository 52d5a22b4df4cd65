from __future__ import annotations

import logging

from supplyhub.services.side_channels import EmailSender, EventPublisher, OutboundEmail, OutboundEvent


logger = logging.getLogger(__name__)


class Outbox:
    """Side-channel effects queued during a unit of work.

    Services only enqueue. The caller dispatches after ``db.commit()``; a
    rolled back unit of work calls ``discard()`` instead. Delivery failures
    are logged and never raised.
    """

    def __init__(self, publisher: EventPublisher, email_sender: EmailSender) -> None:
        self.publisher = publisher
        self.email_sender = email_sender
        self.events: list[OutboundEvent] = []
        self.emails: list[OutboundEmail] = []

    def emit(self, name: str, data: dict) -> None:
        self.events.append(OutboundEvent(name=name, data=data))

    def send_email(self, *, to: str | None, subject: str, html: str) -> None:
        if not to:
            return
        self.emails.append(OutboundEmail(to=to, subject=subject, html=html))

    def discard(self) -> None:
        self.events.clear()
        self.emails.clear()

    def dispatch(self) -> None:
        events, self.events = self.events, []
        emails, self.emails = self.emails, []
        for event in events:
            try:
                self.publisher.publish(event)
            except Exception:
                logger.exception('Failed to publish event %s', event.name)
        for email in emails:
            try:
                self.email_sender.send(email)
            except Exception:
                logger.exception('Failed to send email %r to %s', email.subject, email.to)
