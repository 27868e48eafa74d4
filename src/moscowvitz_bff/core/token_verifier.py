"""Resolve `Authorization` headers into caller identities.

The verifier never raises: every failure path degrades to an
unauthenticated outcome carrying a machine-readable reason code, so the
dispatcher can answer uniformly with 401.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

import jwt

from moscowvitz_bff.core.session_tokens import SessionTokenSigner
from moscowvitz_bff.domain.models import PROFILES_TABLE, Identity
from moscowvitz_bff.domain.ports import ContentStorePort, IdentityProviderPort, StoreError

BEARER_PREFIX = "Bearer "

FailureCode = Literal["TOKEN_REQUIRED", "TOKEN_INVALID", "TOKEN_EXPIRED"]

_FAILURE_MESSAGES: dict[str, str] = {
    "TOKEN_REQUIRED": "Access token required",
    "TOKEN_INVALID": "Invalid or expired token",
    "TOKEN_EXPIRED": "Token expired",
}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthOutcome:
    """Either an identity or the reason there is none."""

    identity: Identity | None
    failure_code: FailureCode | None = None

    @property
    def authenticated(self) -> bool:
        return self.identity is not None

    @property
    def failure_message(self) -> str:
        return _FAILURE_MESSAGES.get(self.failure_code or "", "Authentication required")

    @classmethod
    def denied(cls, code: FailureCode) -> AuthOutcome:
        return cls(identity=None, failure_code=code)


def extract_bearer_token(authorization_header: str | None) -> str | None:
    if not authorization_header or not authorization_header.startswith(BEARER_PREFIX):
        return None
    token = authorization_header[len(BEARER_PREFIX) :].strip()
    return token or None


class TokenVerifier:
    """Validate bearer tokens against session signatures or the identity provider.

    A session token only proves who the caller is. Role and profile data are
    re-read from the `profiles` row on every request, so a demotion or a
    deleted account takes effect before the token expires.
    """

    def __init__(
        self,
        *,
        identity_provider: IdentityProviderPort,
        session_signer: SessionTokenSigner,
        profiles: ContentStorePort,
    ) -> None:
        self._identity_provider = identity_provider
        self._session_signer = session_signer
        self._profiles = profiles

    def verify(self, authorization_header: str | None) -> AuthOutcome:
        token = extract_bearer_token(authorization_header)
        if token is None:
            return AuthOutcome.denied("TOKEN_REQUIRED")

        if self._session_signer.looks_like_session_token(token):
            return self._verify_session_token(token)
        return self._verify_provider_token(token)

    def _verify_session_token(self, token: str) -> AuthOutcome:
        try:
            identity = self._session_signer.decode(token)
        except jwt.ExpiredSignatureError:
            return AuthOutcome.denied("TOKEN_EXPIRED")
        except jwt.InvalidTokenError as exc:
            logger.info("auth.session_token_rejected reason=%s", exc)
            return AuthOutcome.denied("TOKEN_INVALID")
        try:
            profile = self._profiles.get_row(table=PROFILES_TABLE, row_id=identity.id)
        except StoreError as exc:
            logger.warning("auth.profile_lookup_failed user_id=%s error=%s", identity.id, exc)
            return AuthOutcome.denied("TOKEN_INVALID")
        if profile is None:
            logger.info("auth.session_token_unknown_user user_id=%s", identity.id)
            return AuthOutcome.denied("TOKEN_INVALID")
        return AuthOutcome(identity=identity.with_profile(profile))

    def _verify_provider_token(self, token: str) -> AuthOutcome:
        try:
            user = self._identity_provider.resolve_user(access_token=token)
        except Exception as exc:  # provider internals never reach the caller
            logger.warning("auth.provider_error error=%s", exc.__class__.__name__)
            return AuthOutcome.denied("TOKEN_INVALID")
        if user is None or not user.id:
            return AuthOutcome.denied("TOKEN_INVALID")
        return AuthOutcome(
            identity=Identity.from_claims(
                user_id=user.id,
                email=user.email,
                role=user.role,
                full_name=user.full_name,
            )
        )
