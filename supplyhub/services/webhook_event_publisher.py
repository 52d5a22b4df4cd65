from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime, timezone
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from supplyhub.config import settings
from supplyhub.services.side_channels import OutboundEvent


class WebhookEventPublisher:
    """Posts each event as JSON to the configured event-bus endpoint."""

    def __init__(self, url: str | None = None, secret: str | None = None, timeout_seconds: int | None = None) -> None:
        self.url = url or settings.event_webhook_url
        self.secret = secret if secret is not None else settings.event_webhook_secret
        self.timeout_seconds = timeout_seconds or settings.event_webhook_timeout_seconds

    def _body(self, event: OutboundEvent) -> bytes:
        payload = {
            'name': event.name,
            'data': event.data,
            'sent_at': datetime.now(tz=timezone.utc).isoformat(),
        }
        return json.dumps(payload, default=str).encode('utf-8')

    def publish(self, event: OutboundEvent) -> None:
        if not self.url:
            raise RuntimeError('EVENT_WEBHOOK_URL is required for the webhook event publisher')

        body = self._body(event)
        headers = {'Content-Type': 'application/json'}
        if self.secret:
            signature = hmac.new(self.secret.encode('utf-8'), body, hashlib.sha256).hexdigest()
            headers['X-SupplyHub-Signature'] = f'sha256={signature}'

        req = Request(url=self.url, data=body, headers=headers, method='POST')
        try:
            with urlopen(req, timeout=self.timeout_seconds) as response:
                response.read()
        except HTTPError as exc:
            detail = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            raise RuntimeError(f'Event webhook error {exc.code}: {detail}') from exc
        except URLError as exc:
            raise RuntimeError(f'Event webhook network error: {exc.reason}') from exc
