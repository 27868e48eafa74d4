"""Core BFF domain models: caller identity and owned resource kinds."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Final


class Capability(Enum):
    """What a caller may do, resolved once when the token is verified."""

    ADMIN = "admin"
    STANDARD_USER = "user"

    @classmethod
    def from_role(cls, role: str | None) -> Capability:
        if isinstance(role, str) and role.strip().lower() == "admin":
            return cls.ADMIN
        return cls.STANDARD_USER


@dataclass(frozen=True)
class Identity:
    """Authenticated caller attached to one request."""

    id: str
    email: str
    role: str
    capability: Capability
    full_name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.capability is Capability.ADMIN

    @classmethod
    def from_claims(
        cls,
        *,
        user_id: str,
        email: str | None,
        role: str | None,
        full_name: str | None = None,
    ) -> Identity:
        """Normalize provider or session claims, defaulting role to `user`."""
        normalized_role = role.strip().lower() if isinstance(role, str) and role.strip() else "user"
        return cls(
            id=user_id,
            email=email or "",
            role=normalized_role,
            capability=Capability.from_role(normalized_role),
            full_name=full_name,
        )

    def with_profile(self, profile: Mapping[str, object]) -> Identity:
        """Rebuild the identity from the stored profile row; its role wins over any claim."""
        email = profile.get("email")
        role = profile.get("role")
        full_name = profile.get("full_name")
        return Identity.from_claims(
            user_id=self.id,
            email=str(email) if email else self.email,
            role=str(role) if role else None,
            full_name=str(full_name) if full_name else self.full_name,
        )


class ResourceKind(Enum):
    """Closed set of owned content resources."""

    WORLD = "world"
    CHAPTER = "chapter"
    CHARACTER = "character"
    EVENT = "event"
    SCENE = "scene"
    DIALOGUE = "dialogue"

    @classmethod
    def parse(cls, value: object) -> ResourceKind | None:
        """Return the kind for a raw value, or None for anything unknown."""
        if isinstance(value, ResourceKind):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @property
    def table(self) -> str:
        return RESOURCE_TABLES[self].table

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class ResourceTable:
    """Storage layout for one resource kind."""

    table: str
    order_column: str
    descending: bool
    columns: tuple[str, ...]
    parent_filters: tuple[str, ...] = ()


OWNER_COLUMN: Final = "user_id"
PROFILES_TABLE: Final = "profiles"
TIMESTAMP_COLUMNS: Final = ("created_at", "updated_at")

RESOURCE_TABLES: Final[dict[ResourceKind, ResourceTable]] = {
    ResourceKind.WORLD: ResourceTable(
        table="worlds",
        order_column="created_at",
        descending=True,
        columns=("name", "description"),
    ),
    ResourceKind.CHAPTER: ResourceTable(
        table="chapters",
        order_column="chapter_number",
        descending=False,
        columns=("world_id", "title", "description", "chapter_number"),
        parent_filters=("world_id",),
    ),
    ResourceKind.CHARACTER: ResourceTable(
        table="characters",
        order_column="name",
        descending=False,
        columns=("world_id", "name", "description"),
        parent_filters=("world_id",),
    ),
    ResourceKind.EVENT: ResourceTable(
        table="events",
        order_column="timeline_order",
        descending=False,
        columns=("world_id", "chapter_id", "title", "description", "timeline_order"),
        parent_filters=("world_id", "chapter_id"),
    ),
    ResourceKind.SCENE: ResourceTable(
        table="scenes",
        order_column="scene_order",
        descending=False,
        columns=("chapter_id", "event_id", "title", "description", "scene_order"),
        parent_filters=("chapter_id", "event_id"),
    ),
    ResourceKind.DIALOGUE: ResourceTable(
        table="dialogues",
        order_column="order_in_scene",
        descending=False,
        columns=(
            "scene_id",
            "character_id",
            "title",
            "content",
            "dialogue_type",
            "order_in_scene",
        ),
        parent_filters=("scene_id", "character_id"),
    ),
}

# Parent reference column -> kind of the row it points at.
PARENT_REFERENCES: Final[dict[str, ResourceKind]] = {
    "world_id": ResourceKind.WORLD,
    "chapter_id": ResourceKind.CHAPTER,
    "event_id": ResourceKind.EVENT,
    "scene_id": ResourceKind.SCENE,
    "character_id": ResourceKind.CHARACTER,
}

Row = dict[str, object]
