"""Typed request contracts for BFF handlers."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

DialogueType = Literal["dialogue", "narration"]


class ContractModel(BaseModel):
    """Base config for request bodies.

    Unknown keys are dropped, so client-sent `user_id` or timestamps never
    reach the store; the server stamps those itself.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


def _normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValueError("email must be a valid address.")
    return normalized


class LoginRequest(ContractModel):
    email: str = Field(min_length=3, max_length=320)
    password: SecretStr = Field(min_length=1, max_length=256)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        return _normalize_email(value)


class SignupRequest(ContractModel):
    email: str = Field(min_length=3, max_length=320)
    password: SecretStr = Field(min_length=6, max_length=256)
    full_name: str | None = Field(default=None, max_length=200)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        return _normalize_email(value)


class RefreshRequest(ContractModel):
    token: str = Field(min_length=1)


class WorldCreateRequest(ContractModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=10_000)


class WorldUpdateRequest(WorldCreateRequest):
    pass


class ChapterCreateRequest(ContractModel):
    world_id: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=300)
    description: str | None = Field(default=None, max_length=10_000)
    chapter_number: int = Field(default=1, ge=1)


class ChapterUpdateRequest(ContractModel):
    title: str = Field(min_length=1, max_length=300)
    description: str | None = Field(default=None, max_length=10_000)
    chapter_number: int | None = Field(default=None, ge=1)


class CharacterCreateRequest(ContractModel):
    world_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=10_000)


class CharacterUpdateRequest(ContractModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=10_000)


class EventCreateRequest(ContractModel):
    title: str = Field(min_length=1, max_length=300)
    description: str | None = Field(default=None, max_length=10_000)
    world_id: str | None = None
    chapter_id: str | None = None
    timeline_order: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _require_parent(self) -> EventCreateRequest:
        if not self.world_id and not self.chapter_id:
            raise ValueError("world_id or chapter_id is required.")
        return self


class EventUpdateRequest(ContractModel):
    title: str = Field(min_length=1, max_length=300)
    description: str | None = Field(default=None, max_length=10_000)
    timeline_order: int | None = Field(default=None, ge=1)


class SceneCreateRequest(ContractModel):
    title: str = Field(min_length=1, max_length=300)
    description: str | None = Field(default=None, max_length=10_000)
    chapter_id: str | None = None
    event_id: str | None = None
    scene_order: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _require_parent(self) -> SceneCreateRequest:
        if not self.chapter_id and not self.event_id:
            raise ValueError("chapter_id or event_id is required.")
        return self


class SceneUpdateRequest(ContractModel):
    title: str = Field(min_length=1, max_length=300)
    description: str | None = Field(default=None, max_length=10_000)
    scene_order: int | None = Field(default=None, ge=1)


class DialogueCreateRequest(ContractModel):
    scene_id: str = Field(min_length=1)
    character_id: str | None = None
    title: str = Field(min_length=1, max_length=300)
    content: str | None = Field(default=None, max_length=50_000)
    dialogue_type: DialogueType = "dialogue"
    order_in_scene: int = Field(default=1, ge=1)


class DialogueUpdateRequest(ContractModel):
    title: str = Field(min_length=1, max_length=300)
    content: str | None = Field(default=None, max_length=50_000)
    character_id: str | None = None
    dialogue_type: DialogueType | None = None
    order_in_scene: int | None = Field(default=None, ge=1)
