from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from supplyhub.config import settings
from supplyhub.models import User, WebSession


BEARER_PREFIX = 'bearer '


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive timestamps.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _session_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.session_ttl_minutes)


def extract_bearer_token(authorization: str | None) -> str | None:
    raw = (authorization or '').strip()
    if not raw.lower().startswith(BEARER_PREFIX):
        return None
    token = raw[len(BEARER_PREFIX) :].strip()
    return token or None


def create_web_session(db: Session, user_id: int) -> str:
    token = secrets.token_urlsafe(48)
    web_session = WebSession(
        session_token=token,
        user_id=user_id,
        expires_at=_session_expiry(),
    )
    db.add(web_session)
    db.flush()
    return token


def revoke_web_session(db: Session, token: str) -> None:
    session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not session or session.revoked_at is not None:
        return
    session.revoked_at = _now()


def load_user_from_token(db: Session, token: str | None) -> User | None:
    if not token:
        return None

    row = db.execute(
        select(WebSession, User)
        .join(User, User.id == WebSession.user_id)
        .where(WebSession.session_token == token)
    ).one_or_none()
    if not row:
        return None

    web_session, user = row
    now = _now()
    if web_session.revoked_at is not None or _as_utc(web_session.expires_at) <= now:
        return None

    web_session.last_seen_at = now
    web_session.expires_at = _session_expiry()
    return user
