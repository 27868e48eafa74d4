"""Shared httpx plumbing for the hosted auth and REST backends."""

from __future__ import annotations

from typing import Any

import httpx


class SupabaseHttp:
    """Builds short-lived httpx clients pointed at one hosted project."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not base_url or not api_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY are required for the supabase backend.")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    def client(self, *, bearer: str | None = None) -> httpx.Client:
        """Return a client sending the project key and the given bearer token."""
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {bearer or self._api_key}",
        }
        return httpx.Client(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout_seconds,
            transport=self._transport,
        )


def error_message(response: httpx.Response) -> str:
    """Best-effort human message from a hosted-backend error body."""
    try:
        payload: Any = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        for key in ("message", "msg", "error_description", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return f"HTTP {response.status_code}"
