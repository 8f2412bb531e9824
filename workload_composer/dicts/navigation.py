"""Path navigation over nested configuration mappings.

Document edits never modify their input; `with_nested` and `without_nested`
copy every mapping along the path and share everything else.
"""

from __future__ import annotations

from collections.abc import Mapping
from collections.abc import Sequence
from typing import Any


def get_nested(
    data: Mapping[str, Any],
    path: Sequence[str],
    default: Any = None,
) -> Any:
    """Get a value from a nested mapping by path.

    Example:
        >>> get_nested({"ssl": {"verification_mode": "none"}}, ["ssl", "verification_mode"])
        'none'
        >>> get_nested({"period": "10s"}, ["ssl", "ca"], default="unset")
        'unset'
    """
    current: Any = data
    for key in path:
        if not isinstance(current, Mapping) or key not in current:
            return default
        current = current[key]
    return current


def with_nested(
    data: Mapping[str, Any],
    path: Sequence[str],
    value: Any,
) -> dict[str, Any]:
    """Return a copy of data with value set at path.

    Intermediate mappings are created as needed; a non-mapping value found
    on the way is replaced by a new mapping.

    Raises:
        ValueError: If path is empty.
    """
    if not path:
        raise ValueError("Path must contain at least one key")

    result = dict(data)
    head, rest = path[0], path[1:]
    if not rest:
        result[head] = value
        return result

    child = result.get(head)
    result[head] = with_nested(child if isinstance(child, Mapping) else {}, rest, value)
    return result


def without_nested(data: Mapping[str, Any], path: Sequence[str]) -> dict[str, Any]:
    """Return a copy of data with the key at path removed (no-op if absent)."""
    result = dict(data)
    if not path:
        return result

    head, rest = path[0], path[1:]
    if head not in result:
        return result
    if not rest:
        del result[head]
        return result

    child = result[head]
    if isinstance(child, Mapping):
        result[head] = without_nested(child, rest)
    return result
