"""Tagged value tree for configuration documents.

Configuration documents are free-form YAML-like trees. Rather than inferring
shape at merge time, documents are converted to a closed set of node types:

- ScalarNode: str, int, float, bool or None
- ListNode: ordered items, replaced wholesale on merge
- MappingNode: string keys, merged key-by-key on merge

`merge_nodes` is exhaustive over these three types.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from typing import Union

SCALAR_TYPES = (str, int, float, bool, type(None))


@dataclass(frozen=True)
class ScalarNode:
    """Leaf value."""

    value: str | int | float | bool | None


@dataclass(frozen=True)
class ListNode:
    """Ordered sequence of nodes."""

    items: tuple[Node, ...] = ()


@dataclass(frozen=True)
class MappingNode:
    """Mapping of string keys to nodes, in insertion order."""

    entries: tuple[tuple[str, Node], ...] = ()

    def get(self, key: str) -> Node | None:
        for entry_key, node in self.entries:
            if entry_key == key:
                return node
        return None

    def keys(self) -> list[str]:
        return [key for key, _ in self.entries]


Node = Union[ScalarNode, ListNode, MappingNode]


def to_node(value: Any, path: str = "") -> Node:
    """Convert plain data into a node tree.

    Args:
        value: Plain value (mapping, list/tuple, or scalar).
        path: Dotted location of value, used in error messages.

    Returns:
        Node tree equivalent to value.

    Raises:
        TypeError: If value (or anything nested in it) is not a supported type,
            or a mapping key is not a string.
    """
    if isinstance(value, Mapping):
        entries = []
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(
                    f"Unsupported key at {path or '<root>'}: expected str, "
                    f"got {type(key).__name__} {key!r}"
                )
            entries.append((key, to_node(item, f"{path}.{key}" if path else key)))
        return MappingNode(tuple(entries))
    if isinstance(value, (list, tuple)):
        return ListNode(
            tuple(to_node(item, f"{path}[{i}]") for i, item in enumerate(value))
        )
    if isinstance(value, SCALAR_TYPES):
        return ScalarNode(value)
    raise TypeError(
        f"Unsupported value at {path or '<root>'}: {type(value).__name__} {value!r}"
    )


def to_plain(node: Node) -> Any:
    """Convert a node tree back into plain dicts, lists and scalars."""
    if isinstance(node, MappingNode):
        return {key: to_plain(item) for key, item in node.entries}
    if isinstance(node, ListNode):
        return [to_plain(item) for item in node.items]
    return node.value


def merge_nodes(lower: Node, higher: Node) -> Node:
    """Merge two node trees, higher priority winning.

    Mappings merge recursively key by key; keys only in lower keep their
    position, new keys from higher are appended. Any other combination
    (scalar, list, or a type mismatch) takes the higher node whole.
    """
    if isinstance(lower, MappingNode) and isinstance(higher, MappingNode):
        merged: dict[str, Node] = dict(lower.entries)
        for key, node in higher.entries:
            if key in merged:
                merged[key] = merge_nodes(merged[key], node)
            else:
                merged[key] = node
        return MappingNode(tuple(merged.items()))
    return higher
