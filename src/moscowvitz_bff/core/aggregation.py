"""Shape nested world reads into dashboard payloads."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

# Nested relation name -> relations nested below it.
WORLD_TREE_SHAPE: dict[str, dict[str, Any]] = {
    "chapters": {"events": {"scenes": {"dialogues": {}}}},
    "characters": {},
}


def _normalize_node(node: Mapping[str, Any], shape: Mapping[str, Any]) -> dict[str, Any]:
    normalized = dict(node)
    for relation, child_shape in shape.items():
        children = node.get(relation)
        if not isinstance(children, list):
            children = []
        normalized[relation] = [
            _normalize_node(child, child_shape) for child in children if isinstance(child, Mapping)
        ]
    return normalized


def normalize_world_tree(world: Mapping[str, Any]) -> dict[str, Any]:
    """Replace absent or null relation arrays with empty lists at every level."""
    return _normalize_node(world, WORLD_TREE_SHAPE)


def normalize_world_trees(worlds: Iterable[Mapping[str, Any]] | None) -> list[dict[str, Any]]:
    return [normalize_world_tree(world) for world in worlds or [] if isinstance(world, Mapping)]


def build_dashboard_payload(worlds: Iterable[Mapping[str, Any]] | None) -> dict[str, Any]:
    """Compute dashboard counters from one nested read, without a second query."""
    normalized = normalize_world_trees(worlds)
    return {
        "worlds": normalized,
        "totalWorlds": len(normalized),
        "totalChapters": sum(len(world["chapters"]) for world in normalized),
        "totalCharacters": sum(len(world["characters"]) for world in normalized),
    }
