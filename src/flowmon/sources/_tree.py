"""JSON tree helpers shared by the sources.

Paths are ``/``-separated; ``""`` and ``"/"`` address the root. Stored
trees never contain ``None`` leaves or empty objects: writing ``None``
deletes, and a container that becomes empty disappears with it.
"""

from __future__ import annotations

import copy
from typing import Any


def split_path(path: str) -> tuple[str, ...]:
    return tuple(part for part in path.strip().split("/") if part)


def prune(value: Any) -> Any:
    """Drop ``None`` children and empty objects, recursively."""
    if isinstance(value, dict):
        pruned: dict[str, Any] = {}
        for key, child in value.items():
            cleaned = prune(child)
            if cleaned is not None:
                pruned[str(key)] = cleaned
        return pruned or None
    return value


def get_at(root: Any, parts: tuple[str, ...]) -> Any:
    node = root
    for part in parts:
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return copy.deepcopy(node)


def set_at(root: Any, parts: tuple[str, ...], value: Any) -> Any:
    """Return *root* with *value* stored at *parts* (``None`` deletes)."""
    value = prune(copy.deepcopy(value))
    if not parts:
        return value
    head, rest = parts[0], parts[1:]
    node = dict(root) if isinstance(root, dict) else {}
    child = set_at(node.get(head), rest, value)
    if child is None:
        node.pop(head, None)
    else:
        node[head] = child
    return node or None


def merge_at(root: Any, parts: tuple[str, ...], children: dict[str, Any]) -> Any:
    """Apply a multi-child update below *parts*; each key may itself be a path."""
    for key, value in children.items():
        root = set_at(root, parts + split_path(key), value)
    return root


def related(a: tuple[str, ...], b: tuple[str, ...]) -> bool:
    """Whether one path is an ancestor of (or equal to) the other."""
    shortest = min(len(a), len(b))
    return a[:shortest] == b[:shortest]
