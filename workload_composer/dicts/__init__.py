"""Dictionary utilities for merging and navigation."""

from .merge import deep_merge
from .merge import merge_maps
from .navigation import get_nested
from .navigation import with_nested
from .navigation import without_nested

__all__ = [
    "deep_merge",
    "merge_maps",
    "get_nested",
    "with_nested",
    "without_nested",
]
