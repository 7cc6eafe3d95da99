"""Key path helpers for nested settings trees.

A key path is a dot-joined address of a value inside a nested mapping
(``editor.fontSize``). A literal dot inside a key is escaped with a
backslash (``some\\.key``).
"""

import copy
import re
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

_SPLIT_RE = re.compile(r"(?<!\\)\.")


class ValueKind(str, Enum):
    """Kind of a settings value for structural diffing."""

    BRANCH = "branch"  # nested mapping, descended into
    LEAF = "leaf"      # scalar or array, compared as a whole


def kind_of(value: Any) -> ValueKind:
    """Classify a settings value. Arrays are always leaves."""
    if isinstance(value, Mapping):
        return ValueKind.BRANCH
    return ValueKind.LEAF


def split_key_path(key_path: str) -> List[str]:
    """Split a key path on unescaped dots."""
    if not key_path:
        return []
    return [part.replace("\\.", ".") for part in _SPLIT_RE.split(key_path)]


def escape_key(key: str) -> str:
    """Escape dots in a single key so it survives a join/split round trip."""
    return key.replace(".", "\\.")


def join_key_path(prefix: str, key: str) -> str:
    escaped = escape_key(key)
    return f"{prefix}.{escaped}" if prefix else escaped


def get_value_at_key_path(tree: Optional[Mapping[str, Any]], key_path: str) -> Any:
    """Return the value at ``key_path`` or None when any segment is missing."""
    value: Any = tree
    for key in split_key_path(key_path):
        if not isinstance(value, Mapping) or key not in value:
            return None
        value = value[key]
    return value


def has_key_path(tree: Optional[Mapping[str, Any]], key_path: str) -> bool:
    value: Any = tree
    for key in split_key_path(key_path):
        if not isinstance(value, Mapping) or key not in value:
            return False
        value = value[key]
    return True


def set_value_at_key_path(tree: Dict[str, Any], key_path: str, value: Any) -> None:
    """Set ``value`` at ``key_path``, creating intermediate mappings.

    A non-mapping value sitting where a mapping is needed is replaced.
    """
    keys = split_key_path(key_path)
    if not keys:
        raise ValueError("Cannot set a value at an empty key path")
    node = tree
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[keys[-1]] = value


def delete_value_at_key_path(tree: Optional[Dict[str, Any]], key_path: str) -> bool:
    """Delete the value at ``key_path``.

    Returns:
        True if something was removed
    """
    keys = split_key_path(key_path)
    if not keys or tree is None:
        return False
    node: Any = tree
    for key in keys[:-1]:
        node = node.get(key) if isinstance(node, dict) else None
        if node is None:
            return False
    if isinstance(node, dict) and keys[-1] in node:
        del node[keys[-1]]
        return True
    return False


def deep_clone(tree: Any) -> Any:
    """Deep copy a settings tree so callers never share mutable nodes."""
    return copy.deepcopy(tree)


def sort_mapping(mapping: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a new dict with keys in plain lexicographic order."""
    return {key: mapping[key] for key in sorted(mapping)}
