"""Presets and the per-composition preset registry.

A preset is a named bundle of contributions: a fragment to fold into the pod
template and an edit to the configuration document. Several add-ons may
depend on the same preset (every kube-state-metrics stream needs the same
sidecar in sharded mode), so application goes through a PresetRegistry that
runs each (target, preset key) pair at most once.

The registry is created per composition call and passed along explicitly;
there is no module-level state, so compositions for different targets never
see each other's applied presets.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from workload_composer.exceptions import PresetDependencyError
from workload_composer.exceptions import UnknownPresetKeyError

if TYPE_CHECKING:
    from workload_composer.defaults import FeatureFlags
    from workload_composer.defaults import KindProfile
    from workload_composer.defaults import ResourceIdentity
    from workload_composer.document import DocumentState
    from workload_composer.models import Fragment
    from workload_composer.settings import ComposerSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PresetContext:
    """Inputs a preset may read when producing its contributions.

    Attributes:
        identity: Workload being composed.
        flags: Feature flags of the composition.
        profile: Kind profile of the workload.
        settings: Platform settings.
        image: Default image of the primary container, before the user
            override is applied.
    """

    identity: ResourceIdentity
    flags: FeatureFlags
    profile: KindProfile
    settings: ComposerSettings
    image: str


def _no_requirements(flags: FeatureFlags) -> tuple[str, ...]:
    return ()


@dataclass(frozen=True)
class Preset:
    """Named, idempotent bundle of fragment and document contributions.

    Attributes:
        key: Stable identifier.
        fragment: Builds the fragment to merge into the pod template.
        document: Returns an edited copy of the working document.
        requires: Keys of presets that must be applied first, given the flags.
        description: Human readable summary.
    """

    key: str
    fragment: Callable[[PresetContext], Fragment] | None = None
    document: Callable[[PresetContext, DocumentState], DocumentState] | None = None
    requires: Callable[[FeatureFlags], tuple[str, ...]] = _no_requirements
    description: str = ""


class PresetCatalog:
    """Definitions of every preset that may be applied, by key."""

    def __init__(self, presets: Iterable[Preset] = ()) -> None:
        self._presets: dict[str, Preset] = {}
        for preset in presets:
            self.register(preset)

    def register(self, preset: Preset) -> None:
        """Add a preset definition.

        Raises:
            ValueError: If a preset with the same key is already registered.
        """
        if preset.key in self._presets:
            raise ValueError(f"Preset '{preset.key}' is already registered")
        self._presets[preset.key] = preset

    def get(self, key: str) -> Preset:
        """Return the preset for key.

        Raises:
            UnknownPresetKeyError: If key has no definition.
        """
        preset = self._presets.get(key)
        if preset is None:
            raise UnknownPresetKeyError(f"No preset registered for key '{key}'")
        return preset

    def keys(self) -> list[str]:
        return list(self._presets)

    def __contains__(self, key: object) -> bool:
        return key in self._presets


class PresetRegistry:
    """Tracks which presets have been applied to which targets.

    Scoped to one composition call. Errors raised inside that call leave the
    registry behind with the call; nothing outlives it.
    """

    def __init__(self, catalog: PresetCatalog) -> None:
        self._catalog = catalog
        self._applied: dict[tuple[str, str], None] = {}
        self._in_progress: set[tuple[str, str]] = set()

    def is_applied(self, target: str, preset_key: str) -> bool:
        return (target, preset_key) in self._applied

    def apply_once(self, target: str, preset_key: str, fn: Callable[[], None]) -> bool:
        """Run fn unless preset_key was already applied to target.

        Args:
            target: Identity of the workload being composed.
            preset_key: Key of the preset fn applies.
            fn: Performs the preset's contribution.

        Returns:
            True if fn ran, False if the preset had already been applied.

        Raises:
            UnknownPresetKeyError: If preset_key is not in the catalog.
            PresetDependencyError: If fn (directly or through requirements)
                asks for preset_key again before finishing.
        """
        if preset_key not in self._catalog:
            raise UnknownPresetKeyError(f"No preset registered for key '{preset_key}'")

        entry = (target, preset_key)
        if entry in self._applied:
            logger.debug(f"Preset '{preset_key}' already applied to {target}, skipping")
            return False
        if entry in self._in_progress:
            raise PresetDependencyError(
                f"Circular preset dependency: '{preset_key}' requires itself "
                f"while being applied to {target}"
            )

        self._in_progress.add(entry)
        try:
            fn()
        finally:
            self._in_progress.discard(entry)

        self._applied[entry] = None
        logger.debug(f"Applied preset '{preset_key}' to {target}")
        return True

    def applied_keys(self, target: str) -> tuple[str, ...]:
        """Keys applied to target, in application order."""
        return tuple(key for applied_target, key in self._applied if applied_target == target)
