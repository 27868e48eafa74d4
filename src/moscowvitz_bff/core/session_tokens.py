"""BFF-signed session tokens issued after a provider sign-in."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from moscowvitz_bff.domain.models import Identity

SESSION_TOKEN_ISSUER = "moscowvitz-bff"
SESSION_TOKEN_ALGORITHM = "HS256"


@dataclass(frozen=True)
class IssuedSessionToken:
    """Encoded session token plus its absolute expiry."""

    token: str
    expires_at_utc: str


class SessionTokenSigner:
    """Issue and decode HS256 session tokens carrying the caller's claims."""

    def __init__(self, *, secret: str, ttl_days: int = 7) -> None:
        self._secret = secret
        self._ttl = timedelta(days=ttl_days)

    def issue(self, identity: Identity, *, now: datetime | None = None) -> IssuedSessionToken:
        issued_at = now or datetime.now(UTC)
        expires_at = issued_at + self._ttl
        claims: dict[str, Any] = {
            "iss": SESSION_TOKEN_ISSUER,
            "sub": identity.id,
            "email": identity.email,
            "role": identity.role,
            "iat": issued_at,
            "exp": expires_at,
        }
        if identity.full_name:
            claims["full_name"] = identity.full_name
        token = jwt.encode(claims, self._secret, algorithm=SESSION_TOKEN_ALGORITHM)
        return IssuedSessionToken(token=token, expires_at_utc=expires_at.isoformat())

    def looks_like_session_token(self, token: str) -> bool:
        """True when the unverified token claims to be one of ours."""
        try:
            header = jwt.get_unverified_header(token)
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            return False
        return (
            isinstance(header, dict)
            and header.get("alg") == SESSION_TOKEN_ALGORITHM
            and isinstance(claims, dict)
            and claims.get("iss") == SESSION_TOKEN_ISSUER
        )

    def decode(self, token: str) -> Identity:
        """Verify signature and expiry; raises `jwt.InvalidTokenError` subclasses."""
        payload = jwt.decode(
            token,
            key=self._secret,
            algorithms=[SESSION_TOKEN_ALGORITHM],
            issuer=SESSION_TOKEN_ISSUER,
            options={"require": ["exp", "sub", "iss"]},
        )
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise jwt.InvalidTokenError("Session token missing subject.")
        email = payload.get("email")
        role = payload.get("role")
        full_name = payload.get("full_name")
        return Identity.from_claims(
            user_id=subject,
            email=email if isinstance(email, str) else None,
            role=role if isinstance(role, str) else None,
            full_name=full_name if isinstance(full_name, str) else None,
        )
