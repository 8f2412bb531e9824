"""Merge utilities for label maps and configuration documents."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from workload_composer.values import merge_nodes
from workload_composer.values import to_node
from workload_composer.values import to_plain


def deep_merge(parent: Mapping[str, Any], child: Mapping[str, Any]) -> dict[str, Any]:
    """Deep merge two configuration mappings.

    Child values override parent values. Nested mappings merge recursively.
    For other types (including lists), child replaces parent wholesale.

    Args:
        parent: Base mapping.
        child: Override mapping.

    Returns:
        Merged dict (new dict, inputs not modified).

    Raises:
        TypeError: If either mapping holds a value that is not plain data.
    """
    return to_plain(merge_nodes(to_node(parent), to_node(child)))


def merge_maps(parent: Mapping[str, str], child: Mapping[str, str]) -> dict[str, str]:
    """Shallow merge two string maps (labels, annotations).

    Any key present in child overwrites the same key from parent, whichever
    layer set it first.

    Example:
        >>> merge_maps({"a": "1", "b": "2"}, {"b": "3"})
        {'a': '1', 'b': '3'}
    """
    result = dict(parent)
    result.update(child)
    return result
