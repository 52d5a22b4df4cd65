from collections.abc import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from supplyhub.services.outbox import Outbox
from supplyhub.services.provider_factory import get_email_sender, get_event_publisher


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_outbox() -> Generator[Outbox, None, None]:
    outbox = Outbox(get_event_publisher(), get_email_sender())
    try:
        yield outbox
    except Exception:
        outbox.discard()
        raise


def commit_and_dispatch(db: Session, outbox: Outbox) -> None:
    db.commit()
    outbox.dispatch()
