"""Ports for the identity provider and the content store."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from moscowvitz_bff.domain.models import Row


class StoreError(RuntimeError):
    """Raised by content store adapters when the backing store fails."""


class IdentityProviderError(RuntimeError):
    """Raised by identity provider adapters when the provider fails."""


class InvalidCredentialsError(IdentityProviderError):
    """Raised when the provider rejects an email/password pair."""


class DuplicateAccountError(IdentityProviderError):
    """Raised when sign-up targets an email that is already registered."""


@dataclass(frozen=True)
class ProviderUser:
    """User record as the identity provider reports it."""

    id: str
    email: str
    role: str | None
    full_name: str | None
    created_at: str | None


@dataclass(frozen=True)
class ProviderSession:
    """Result of a successful password sign-in."""

    user: ProviderUser
    access_token: str


@dataclass(frozen=True)
class SignupResult:
    """Result of a sign-up request."""

    user: ProviderUser | None
    requires_confirmation: bool


class IdentityProviderPort(Protocol):
    """Operations the BFF delegates to the external identity provider."""

    def resolve_user(self, *, access_token: str) -> ProviderUser | None: ...

    def sign_in(self, *, email: str, password: str) -> ProviderSession: ...

    def sign_up(self, *, email: str, password: str, full_name: str | None) -> SignupResult: ...

    def sign_out(self, *, access_token: str) -> None: ...


class ContentStorePort(Protocol):
    """Row-level operations the BFF issues against the content store."""

    def ping(self) -> None: ...

    def get_owner(self, *, table: str, row_id: str) -> str | None: ...

    def get_row(self, *, table: str, row_id: str, owner_id: str | None = None) -> Row | None: ...

    def list_rows(
        self,
        *,
        table: str,
        owner_id: str,
        filters: Mapping[str, str],
        order_column: str,
        descending: bool,
    ) -> list[Row]: ...

    def insert_row(self, *, table: str, values: Mapping[str, object]) -> Row: ...

    def update_row(
        self,
        *,
        table: str,
        row_id: str,
        owner_id: str,
        values: Mapping[str, object],
    ) -> Row | None: ...

    def delete_row(self, *, table: str, row_id: str, owner_id: str) -> bool: ...

    def fetch_world_trees(
        self, *, owner_id: str | None, world_id: str | None = None
    ) -> list[Row]: ...

    def count_rows(self, *, table: str) -> int: ...

    def list_recent(self, *, table: str, limit: int | None = None) -> list[Row]: ...
