"""Content store adapter for the hosted PostgREST data API."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from moscowvitz_bff.adapters.supabase_http import SupabaseHttp, error_message
from moscowvitz_bff.domain.models import Row
from moscowvitz_bff.domain.ports import StoreError

WORLD_TREE_SELECT = "*,chapters(*,events(*,scenes(*,dialogues(*)))),characters(*)"
_RETURN_REPRESENTATION = {"Prefer": "return=representation"}


def _eq(value: object) -> str:
    return f"eq.{value}"


def _order(column: str, *, descending: bool) -> str:
    return f"{column}.{'desc' if descending else 'asc'}"


def _parse_total(content_range: str | None) -> int:
    """Read the total from a `Content-Range: 0-9/27` style header."""
    if not content_range or "/" not in content_range:
        raise StoreError("Count response missing Content-Range total.")
    total = content_range.rsplit("/", maxsplit=1)[1]
    if total == "*":
        raise StoreError("Count response did not include an exact total.")
    try:
        return int(total)
    except ValueError as exc:
        raise StoreError(f"Unparseable Content-Range total: {total}") from exc


class SupabaseContentStore:
    """Issue row-level reads and writes against `/rest/v1`."""

    def __init__(self, http: SupabaseHttp) -> None:
        self._http = http

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        json: object = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        try:
            with self._http.client() as client:
                response = client.request(
                    method,
                    f"/rest/v1/{table}",
                    params=dict(params or {}),
                    json=json,
                    headers=dict(headers or {}),
                )
        except httpx.HTTPError as exc:
            raise StoreError(f"{table} request failed: {exc}") from exc
        if response.status_code >= 400:
            raise StoreError(error_message(response))
        return response

    def _rows(self, response: httpx.Response) -> list[Row]:
        if not response.content:
            return []
        payload: Any = response.json()
        if not isinstance(payload, list):
            raise StoreError("Expected a JSON array from the data API.")
        return [dict(item) for item in payload if isinstance(item, dict)]

    def ping(self) -> None:
        self._request("GET", "worlds", params={"select": "id", "limit": "1"})

    def get_owner(self, *, table: str, row_id: str) -> str | None:
        rows = self._rows(
            self._request(
                "GET",
                table,
                params={"select": "user_id", "id": _eq(row_id), "limit": "1"},
            )
        )
        if not rows or rows[0].get("user_id") is None:
            return None
        return str(rows[0]["user_id"])

    def get_row(self, *, table: str, row_id: str, owner_id: str | None = None) -> Row | None:
        params = {"select": "*", "id": _eq(row_id), "limit": "1"}
        if owner_id is not None:
            params["user_id"] = _eq(owner_id)
        rows = self._rows(self._request("GET", table, params=params))
        return rows[0] if rows else None

    def list_rows(
        self,
        *,
        table: str,
        owner_id: str,
        filters: Mapping[str, str],
        order_column: str,
        descending: bool,
    ) -> list[Row]:
        params = {"select": "*", "user_id": _eq(owner_id)}
        for column, value in filters.items():
            params[column] = _eq(value)
        params["order"] = _order(order_column, descending=descending)
        return self._rows(self._request("GET", table, params=params))

    def insert_row(self, *, table: str, values: Mapping[str, object]) -> Row:
        rows = self._rows(
            self._request("POST", table, json=dict(values), headers=_RETURN_REPRESENTATION)
        )
        if not rows:
            raise StoreError(f"Insert into {table} returned no row.")
        return rows[0]

    def update_row(
        self,
        *,
        table: str,
        row_id: str,
        owner_id: str,
        values: Mapping[str, object],
    ) -> Row | None:
        rows = self._rows(
            self._request(
                "PATCH",
                table,
                params={"id": _eq(row_id), "user_id": _eq(owner_id)},
                json=dict(values),
                headers=_RETURN_REPRESENTATION,
            )
        )
        return rows[0] if rows else None

    def delete_row(self, *, table: str, row_id: str, owner_id: str) -> bool:
        rows = self._rows(
            self._request(
                "DELETE",
                table,
                params={"id": _eq(row_id), "user_id": _eq(owner_id)},
                headers=_RETURN_REPRESENTATION,
            )
        )
        return bool(rows)

    def fetch_world_trees(
        self, *, owner_id: str | None, world_id: str | None = None
    ) -> list[Row]:
        """One nested select returning worlds with their descendant tree."""
        params = {"select": WORLD_TREE_SELECT, "order": _order("created_at", descending=True)}
        if owner_id is not None:
            params["user_id"] = _eq(owner_id)
        if world_id is not None:
            params["id"] = _eq(world_id)
        return self._rows(self._request("GET", "worlds", params=params))

    def count_rows(self, *, table: str) -> int:
        response = self._request(
            "HEAD",
            table,
            params={"select": "*"},
            headers={"Prefer": "count=exact"},
        )
        return _parse_total(response.headers.get("content-range"))

    def list_recent(self, *, table: str, limit: int | None = None) -> list[Row]:
        params = {"select": "*", "order": _order("created_at", descending=True)}
        if limit is not None:
            params["limit"] = str(limit)
        return self._rows(self._request("GET", table, params=params))
