# Overview: Bearer token sessions; resolves a request's token to the acting seller.

"""
Session Token Management Service

Tokens are random, shown to the client once, and stored only as SHA-256
hashes. A session expires at an absolute deadline and after a period of
inactivity; deactivating a seller revokes their sessions on next use.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.orm import Session

from ..models import Seller, SessionToken
from ..time_utils import utcnow
from .sale_service import Actor


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    seller: Seller
    session: SessionToken

    @property
    def actor(self) -> Actor:
        return Actor(
            seller_id=self.seller.id,
            role=self.seller.role,
            shop_id=self.seller.shop_id,
        )


def generate_token() -> str:
    """64 hex characters (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # Tokens are already high-entropy; a fast hash is sufficient
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    session: Session,
    seller_id: int,
    *,
    absolute_timeout: timedelta = SESSION_ABSOLUTE_TIMEOUT,
) -> tuple[SessionToken, str]:
    """
    Create new session token for a seller.

    Returns (session_record, plaintext_token). Raises ValueError if the
    seller does not exist or is inactive.
    """
    seller = session.get(Seller, seller_id)
    if not seller:
        raise ValueError("Seller not found")
    if not seller.is_active:
        raise ValueError("Seller is not active")

    plaintext_token = generate_token()
    now = utcnow()

    record = SessionToken(
        seller_id=seller_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + absolute_timeout,
        is_revoked=False,
    )
    session.add(record)
    session.commit()

    return record, plaintext_token


def _revoke(session: Session, record: SessionToken, reason: str) -> None:
    record.is_revoked = True
    record.revoked_at = utcnow()
    record.revoked_reason = reason
    session.commit()


def validate_session(
    session: Session,
    token: str,
    *,
    idle_timeout: timedelta = SESSION_IDLE_TIMEOUT,
) -> SessionContext | None:
    """
    Validate a token and return its SessionContext.

    Returns None if the token is unknown, expired, revoked, idle for too
    long, or belongs to a deactivated seller. Updates last_used_at.
    """
    now = utcnow()

    record = session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not record:
        return None

    if record.expires_at < now:
        return None

    if now - record.last_used_at > idle_timeout:
        _revoke(session, record, "Idle timeout")
        return None

    seller = record.seller
    if not seller or not seller.is_active:
        _revoke(session, record, "Seller deactivated")
        return None

    record.last_used_at = now
    session.commit()

    return SessionContext(seller=seller, session=record)

