"""Resource ownership checks; every ambiguous lookup denies."""

from __future__ import annotations

import logging

from moscowvitz_bff.domain.models import Identity, ResourceKind
from moscowvitz_bff.domain.ports import ContentStorePort, StoreError

logger = logging.getLogger(__name__)


class OwnershipChecker:
    """Compare a row's `user_id` with the caller, with admin bypass."""

    def __init__(self, store: ContentStorePort) -> None:
        self._store = store

    def check(self, identity: Identity, resource_type: object, resource_id: str) -> bool:
        """Return True only when the caller may act on the resource."""
        kind = ResourceKind.parse(resource_type)
        if kind is None:
            return False
        if identity.is_admin:
            return True
        owner = self._lookup_owner(kind, resource_id)
        return owner is not None and owner == identity.id

    def resolve_owner(self, identity: Identity, kind: ResourceKind, resource_id: str) -> str | None:
        """Return the owner id mutations must be scoped by, or None to deny.

        Standard users are scoped by their own id. Admins are scoped by the
        row's actual owner so a bypassed check still hits the row.
        """
        if not identity.is_admin:
            return identity.id if self.check(identity, kind, resource_id) else None
        return self._lookup_owner(kind, resource_id)

    def _lookup_owner(self, kind: ResourceKind, resource_id: str) -> str | None:
        if not resource_id:
            return None
        try:
            return self._store.get_owner(table=kind.table, row_id=resource_id)
        except StoreError as exc:
            logger.warning(
                "ownership.lookup_failed kind=%s resource_id=%s error=%s",
                kind.value,
                resource_id,
                exc,
            )
            return None
