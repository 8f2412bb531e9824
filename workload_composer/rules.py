"""Field merge rules - how one slot combines across layers.

Every model field is merged with exactly one rule:

- REPLACE: replace-if-set. The higher layer's value wins when it is set
  (not None, not an empty string); struct values such as ``resources`` and
  probes are replaced as a whole, never merged field by field.
- MAP: shallow key merge, higher layer wins per key.
- APPEND: concatenate in layer order. Duplicates are kept; which of two
  same-named env vars wins is decided by whoever consumes the spec.
- KEYED: match entries by name, merge matches recursively with these same
  rules, append new names in the order each layer contributed them.

Fields not listed in SLOT_RULES use REPLACE. A model's ``exclusive_fields``
(the sources of a volume) are replaced together as soon as the higher layer
sets any of them.

Merged models never share mutable values with either input.
"""

from __future__ import annotations

import copy
import logging
from enum import Enum
from typing import Any
from typing import TypeVar

from workload_composer.dicts.merge import merge_maps
from workload_composer.exceptions import ConflictingIdentityError
from workload_composer.keyed import KeyedList
from workload_composer.models import Container
from workload_composer.models import Fragment
from workload_composer.models import SpecModel

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=SpecModel)


class SlotRule(Enum):
    REPLACE = "replace"
    MAP = "map"
    APPEND = "append"
    KEYED = "keyed"


SLOT_RULES: dict[type[SpecModel], dict[str, SlotRule]] = {
    Fragment: {
        "labels": SlotRule.MAP,
        "annotations": SlotRule.MAP,
        "containers": SlotRule.KEYED,
        "init_containers": SlotRule.KEYED,
        "volumes": SlotRule.KEYED,
    },
    Container: {
        "env": SlotRule.APPEND,
        "ports": SlotRule.APPEND,
        "volume_mounts": SlotRule.KEYED,
    },
}


def is_unset(value: Any) -> bool:
    """Return True if value means "inherit from the lower layer"."""
    return value is None or value == ""


def replace_if_set(lower: Any, higher: Any) -> Any:
    return lower if is_unset(higher) else higher


def append(lower: tuple[Any, ...], higher: tuple[Any, ...]) -> tuple[Any, ...]:
    return tuple(lower) + tuple(higher)


def merge_keyed(
    lower: tuple[M, ...],
    higher: tuple[M, ...],
    *,
    slot: str,
    override: bool = False,
) -> tuple[M, ...]:
    """Merge two name-keyed entry lists.

    Args:
        lower: Entries from lower-priority layers.
        higher: Entries from the layer being folded in.
        slot: Slot name for error messages.
        override: Whether the higher layer may replace identity fields.

    Returns:
        Lower entries in their original order (merged where matched),
        followed by new higher entries in their order.

    Raises:
        ConflictingIdentityError: If higher repeats a name, or a matched entry
            conflicts on an identity field and override is False.
    """
    entries = KeyedList(lower, slot=slot)
    for item in KeyedList(higher, slot=slot):
        if item.name in entries:  # type: ignore[attr-defined]
            logger.debug(f"Merging {slot} entry '{item.name}'")  # type: ignore[attr-defined]
        entries.upsert(item, lambda a, b: merge_model(a, b, override=override))
    return entries.to_tuple()


def _check_identity(lower: SpecModel, higher: SpecModel) -> None:
    for field in type(lower).identity_fields:
        lower_value = getattr(lower, field)
        higher_value = getattr(higher, field)
        if is_unset(lower_value) or is_unset(higher_value):
            continue
        if lower_value != higher_value:
            name = getattr(lower, "name", type(lower).__name__)
            raise ConflictingIdentityError(
                f"{type(lower).__name__} '{name}': {field} {higher_value!r} conflicts "
                f"with {lower_value!r}; only a user override may replace it"
            )


def merge_model(lower: M, higher: M, *, override: bool = False) -> M:
    """Merge two models of the same type slot by slot.

    Args:
        lower: Lower-priority value.
        higher: Higher-priority value.
        override: True when higher comes from the user layer, which is
            allowed to replace identity fields (e.g. a container image).

    Returns:
        New model instance; neither input is modified.

    Raises:
        TypeError: If the models are of different types.
        ConflictingIdentityError: See merge_keyed.
    """
    if type(lower) is not type(higher):
        raise TypeError(
            f"Cannot merge {type(higher).__name__} into {type(lower).__name__}"
        )
    if not override:
        _check_identity(lower, higher)

    rules = SLOT_RULES.get(type(lower), {})
    updates: dict[str, Any] = {}
    exclusive = type(lower).exclusive_fields
    if any(not is_unset(getattr(higher, field)) for field in exclusive):
        for field in exclusive:
            updates[field] = getattr(higher, field)

    for field in type(lower).model_fields:
        if field in updates:
            continue
        rule = rules.get(field, SlotRule.REPLACE)
        lower_value = getattr(lower, field)
        higher_value = getattr(higher, field)
        if rule is SlotRule.MAP:
            updates[field] = merge_maps(lower_value, higher_value)
        elif rule is SlotRule.APPEND:
            updates[field] = append(lower_value, higher_value)
        elif rule is SlotRule.KEYED:
            updates[field] = merge_keyed(
                lower_value, higher_value, slot=field, override=override
            )
        else:
            updates[field] = replace_if_set(lower_value, higher_value)

    return lower.model_copy(update=copy.deepcopy(updates))


def merge_fragments(
    lower: Fragment, higher: Fragment, *, override: bool = False
) -> Fragment:
    """Fold a higher-priority fragment over a lower one."""
    return merge_model(lower, higher, override=override)
