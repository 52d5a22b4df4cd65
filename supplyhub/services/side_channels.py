from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class OutboundEvent:
    name: str
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class OutboundEmail:
    to: str
    subject: str
    html: str


class EventPublisher(Protocol):
    def publish(self, event: OutboundEvent) -> None: ...


class EmailSender(Protocol):
    def send(self, email: OutboundEmail) -> None: ...
