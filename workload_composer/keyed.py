"""Ordered keyed collection used for name-keyed list slots."""

from __future__ import annotations

from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Iterator
from typing import Generic
from typing import TypeVar

from workload_composer.exceptions import ConflictingIdentityError

T = TypeVar("T")


class KeyedList(Generic[T]):
    """Sequence of entries that are unique by key.

    Holds the entries in insertion order together with an index by key, so
    "find by name, merge in place, else append" is a single operation and
    both invariants (order, uniqueness) live in one place.

    Example:
        >>> entries = KeyedList([Volume(name="data")], slot="volumes")
        >>> entries.upsert(Volume(name="data", empty_dir={}), merge=lambda a, b: b)
        >>> entries.upsert(Volume(name="config"), merge=lambda a, b: b)
        >>> entries.keys()
        ['data', 'config']
    """

    def __init__(
        self,
        items: Iterable[T] = (),
        *,
        slot: str,
        key: Callable[[T], str] = lambda item: item.name,  # type: ignore[attr-defined]
    ) -> None:
        """Build from items, which must already be unique by key.

        Args:
            items: Initial entries.
            slot: Slot name used in error messages (e.g. "containers").
            key: Function extracting the merge key from an entry.

        Raises:
            ConflictingIdentityError: If two items share a key.
        """
        self._slot = slot
        self._key = key
        self._by_key: dict[str, T] = {}
        for item in items:
            self.add(item)

    def add(self, item: T) -> None:
        """Append an entry whose key is not present yet.

        Raises:
            ConflictingIdentityError: If the key is already present.
        """
        key = self._key(item)
        if key in self._by_key:
            raise ConflictingIdentityError(
                f"Duplicate entry '{key}' in {self._slot}: names must be unique"
            )
        self._by_key[key] = item

    def upsert(self, item: T, merge: Callable[[T, T], T]) -> None:
        """Merge item into the entry with the same key, or append it.

        A matched entry keeps its position; merge receives (existing, item).
        """
        key = self._key(item)
        existing = self._by_key.get(key)
        if existing is None:
            self._by_key[key] = item
        else:
            self._by_key[key] = merge(existing, item)

    def get(self, key: str) -> T | None:
        return self._by_key.get(key)

    def keys(self) -> list[str]:
        return list(self._by_key)

    def to_tuple(self) -> tuple[T, ...]:
        return tuple(self._by_key.values())

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __iter__(self) -> Iterator[T]:
        return iter(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)
