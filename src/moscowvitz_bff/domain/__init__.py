"""Domain models and ports for the world-building BFF."""

from moscowvitz_bff.domain.models import (
    RESOURCE_TABLES,
    Capability,
    Identity,
    ResourceKind,
    ResourceTable,
)
from moscowvitz_bff.domain.ports import (
    ContentStorePort,
    IdentityProviderError,
    IdentityProviderPort,
    ProviderUser,
    StoreError,
)

__all__ = [
    "Capability",
    "ContentStorePort",
    "Identity",
    "IdentityProviderError",
    "IdentityProviderPort",
    "ProviderUser",
    "RESOURCE_TABLES",
    "ResourceKind",
    "ResourceTable",
    "StoreError",
]
