# Overview: Bearer session tokens; creation, validation and revocation.

"""
Session tokens for the POS API.

A login hands the client a random 64-char hex token; only its SHA-256
digest is stored. A session dies 24 hours after creation, after 2 hours
without a request, on logout, or as soon as its user is deactivated.
"""

import secrets
import hashlib
from datetime import timedelta
from ..extensions import db
from ..models import SessionToken, User
from quickpos.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)

USER_AGENT_MAX = 512


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """High-entropy tokens need no salt or slow hash."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _active_session(token: str) -> SessionToken | None:
    return db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Open a session for user_id and commit it.

    Returns (session, token). The plaintext token is not recoverable later.
    """
    if db.session.get(User, user_id) is None:
        raise ValueError("User not found")

    token = generate_token()
    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=(user_agent or "")[:USER_AGENT_MAX] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason


def validate_session(token: str) -> User | None:
    """
    Resolve a bearer token to its User, or None.

    Idle sessions and sessions of deactivated users are revoked on the spot
    so they stay dead. A successful call bumps last_used_at.
    """
    session = _active_session(token)
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        db.session.commit()
        return None

    user = session.user
    if user is None or not user.is_active:
        _revoke(session, "User account deactivated")
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()
    return user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns False when the token is unknown or already revoked."""
    session = _active_session(token)
    if session is None:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True
