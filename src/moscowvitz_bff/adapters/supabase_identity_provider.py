"""Identity provider adapter for the hosted auth API (`/auth/v1`)."""

from __future__ import annotations

from typing import Any

import httpx

from moscowvitz_bff.adapters.supabase_http import SupabaseHttp, error_message
from moscowvitz_bff.domain.ports import (
    DuplicateAccountError,
    IdentityProviderError,
    InvalidCredentialsError,
    ProviderSession,
    ProviderUser,
    SignupResult,
)


def _metadata_value(
    payload: dict[str, Any], key: str, *, sections: tuple[str, ...] = ("user_metadata", "app_metadata")
) -> str | None:
    for section in sections:
        metadata = payload.get(section)
        if isinstance(metadata, dict):
            value = metadata.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _user_from_payload(payload: object) -> ProviderUser | None:
    if not isinstance(payload, dict):
        return None
    user_id = payload.get("id")
    if not isinstance(user_id, str) or not user_id.strip():
        return None
    email = payload.get("email")
    created_at = payload.get("created_at")
    return ProviderUser(
        id=user_id,
        email=email if isinstance(email, str) else "",
        # role is read from app_metadata only; user_metadata is client-writable.
        role=_metadata_value(payload, "role", sections=("app_metadata",)),
        full_name=_metadata_value(payload, "full_name"),
        created_at=created_at if isinstance(created_at, str) else None,
    )


class SupabaseIdentityProvider:
    """Delegate token resolution and password auth to the hosted provider."""

    def __init__(self, http: SupabaseHttp) -> None:
        self._http = http

    def _send(
        self,
        method: str,
        path: str,
        *,
        bearer: str | None = None,
        json: object = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            with self._http.client(bearer=bearer) as client:
                return client.request(method, f"/auth/v1/{path}", json=json, params=params)
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"Identity provider request failed: {exc}") from exc

    def resolve_user(self, *, access_token: str) -> ProviderUser | None:
        response = self._send("GET", "user", bearer=access_token)
        if response.status_code in {401, 403, 404}:
            return None
        if response.status_code >= 400:
            raise IdentityProviderError(error_message(response))
        return _user_from_payload(response.json())

    def sign_in(self, *, email: str, password: str) -> ProviderSession:
        response = self._send(
            "POST",
            "token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if response.status_code in {400, 401}:
            raise InvalidCredentialsError(error_message(response))
        if response.status_code >= 400:
            raise IdentityProviderError(error_message(response))
        payload = response.json()
        user = _user_from_payload(payload.get("user") if isinstance(payload, dict) else None)
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if user is None or not isinstance(access_token, str):
            raise IdentityProviderError("Sign-in response missing user or access token.")
        return ProviderSession(user=user, access_token=access_token)

    def sign_up(self, *, email: str, password: str, full_name: str | None) -> SignupResult:
        body: dict[str, Any] = {"email": email, "password": password}
        if full_name:
            body["data"] = {"full_name": full_name}
        response = self._send("POST", "signup", json=body)
        if response.status_code in {400, 422}:
            message = error_message(response)
            if "already" in message.lower():
                raise DuplicateAccountError(message)
            raise IdentityProviderError(message)
        if response.status_code >= 400:
            raise IdentityProviderError(error_message(response))
        payload = response.json()
        if not isinstance(payload, dict):
            raise IdentityProviderError("Sign-up response was not an object.")
        # Auto-confirmed projects answer with a session wrapping the user.
        if isinstance(payload.get("user"), dict):
            return SignupResult(
                user=_user_from_payload(payload["user"]),
                requires_confirmation=not payload.get("access_token"),
            )
        return SignupResult(
            user=_user_from_payload(payload),
            requires_confirmation=not payload.get("confirmed_at"),
        )

    def sign_out(self, *, access_token: str) -> None:
        response = self._send("POST", "logout", bearer=access_token)
        if response.status_code >= 400 and response.status_code not in {401, 403}:
            raise IdentityProviderError(error_message(response))
