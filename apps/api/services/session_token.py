"""Curator session tokens: signed owner claims accepted by the items and profile routes."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from config import settings


SESSION_TOKEN_TYPE = "curator_session"
SESSION_AUDIENCE = "curator-client"


class SessionTokenError(ValueError):
    """Raised for tokens that are malformed, expired or not curator sessions."""


@dataclass(frozen=True)
class SessionClaims:
    owner_id: str
    expires_at: datetime
    email: Optional[str] = None


def create_session_token(
    owner_id: str,
    email: Optional[str] = None,
    expires_hours: Optional[int] = None,
) -> str:
    """Sign a session for one owner; the owner id becomes the token subject."""
    owner = str(owner_id or "").strip()
    if not owner:
        raise SessionTokenError("Session token needs an owner id.")

    issued_at = datetime.now(timezone.utc)
    ttl = timedelta(hours=max(int(expires_hours or settings.JWT_EXPIRATION_HOURS or 24), 1))
    claims = {
        "sub": owner,
        "aud": SESSION_AUDIENCE,
        "type": SESSION_TOKEN_TYPE,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + ttl).timestamp()),
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_session_token(token: str) -> SessionClaims:
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=SESSION_AUDIENCE,
        )
    except JWTError as exc:
        raise SessionTokenError("Invalid or expired session token.") from exc

    if payload.get("type") != SESSION_TOKEN_TYPE:
        raise SessionTokenError("Not a curator session token.")
    owner = str(payload.get("sub") or "").strip()
    if not owner:
        raise SessionTokenError("Session token missing owner.")

    return SessionClaims(
        owner_id=owner,
        expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
        email=str(payload.get("email") or "") or None,
    )
