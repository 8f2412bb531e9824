"""Composition engine - folds defaults, add-ons and user overrides together.

Order of layers, lowest priority first:

1. Default fragment for the resource kind
2. Active add-ons, in the fixed order of the provider list, each applied
   through the PresetRegistry so shared presets run once
3. User override, which may replace anything including container images

The same inputs always produce the same output, field order included.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from typing import Any

from workload_composer.addons import DEFAULT_PROVIDERS
from workload_composer.addons import AddonProvider
from workload_composer.addons import default_catalog
from workload_composer.defaults import FeatureFlags
from workload_composer.defaults import KindProfile
from workload_composer.defaults import ResourceIdentity
from workload_composer.defaults import build_default_fragment
from workload_composer.defaults import default_stream_vars
from workload_composer.defaults import get_profile
from workload_composer.defaults import resolve_image
from workload_composer.document import DocumentState
from workload_composer.exceptions import UnknownAddonError
from workload_composer.models import Container
from workload_composer.models import Fragment
from workload_composer.presets import PresetCatalog
from workload_composer.presets import PresetContext
from workload_composer.presets import PresetRegistry
from workload_composer.rules import merge_fragments
from workload_composer.serialization import dump_yaml
from workload_composer.serialization import fragment_to_pod_template
from workload_composer.serialization import parse_fragment
from workload_composer.serialization import parse_vars
from workload_composer.settings import ComposerSettings
from workload_composer.validator import SpecificationValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompositionRequest:
    """Everything one composition needs.

    Attributes:
        identity: Workload identity.
        flags: Feature flags.
        addons: Names of selected add-ons; order does not matter.
        user_override: User fragment (Fragment, flat mapping, pod template,
            or YAML text of either mapping).
        user_vars: User vars applied to every metric stream.
        stream_vars: User vars per metricset, applied after user_vars.
    """

    identity: ResourceIdentity
    flags: FeatureFlags = field(default_factory=FeatureFlags)
    addons: Sequence[str] = ()
    user_override: Fragment | Mapping[str, Any] | str | None = None
    user_vars: Mapping[str, Any] | None = None
    stream_vars: Mapping[str, Mapping[str, Any]] | None = None


@dataclass(frozen=True)
class Composition:
    """Final specification produced by one composition.

    Attributes:
        identity: Workload the specification belongs to.
        pod_template: Final pod template fragment.
        document: Final agent configuration document.
        applied_presets: Preset keys in the order they were applied.
        warnings: Validation warnings about the pod template.
    """

    identity: ResourceIdentity
    pod_template: Fragment
    document: dict[str, Any]
    applied_presets: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def to_pod_template(self) -> dict[str, Any]:
        """Pod template as a Kubernetes manifest dict."""
        return fragment_to_pod_template(self.pod_template)

    def document_yaml(self) -> str:
        return dump_yaml(self.document)


class _WorkingCopy:
    """Fragment and document being built by one compose call."""

    def __init__(self, fragment: Fragment, document: DocumentState) -> None:
        self.fragment = fragment
        self.document = document


class Composer:
    """Builds final specifications from layered fragments.

    A Composer holds only read-only configuration (settings, preset catalog,
    provider order, kind profiles), so one instance can serve compositions
    for different targets from several threads at once.
    """

    def __init__(
        self,
        settings: ComposerSettings | None = None,
        catalog: PresetCatalog | None = None,
        providers: Sequence[AddonProvider] | None = None,
        profiles: Mapping[str, KindProfile] | None = None,
    ) -> None:
        """Initialize composer.

        Args:
            settings: Platform settings; defaults to ComposerSettings().
            catalog: Preset definitions; defaults to the built-in catalog.
            providers: Add-on providers in application order; defaults to
                DEFAULT_PROVIDERS.
            profiles: Kind profiles; defaults to the built-in profiles.
        """
        self.settings = settings or ComposerSettings()
        self.catalog = catalog if catalog is not None else default_catalog()
        self.providers = tuple(providers if providers is not None else DEFAULT_PROVIDERS)
        self.profiles = profiles
        self._validator = SpecificationValidator()

    def compose(self, request: CompositionRequest) -> Composition:
        """Compose the final specification for one workload.

        Args:
            request: Identity, flags, add-on selection and user input.

        Returns:
            Composition with the final pod template and document.

        Raises:
            MalformedOverrideError: If user input cannot be interpreted.
            UnknownAddonError: If an add-on name has no provider.
            UnknownKindError: If the identity's kind has no profile.
            UnknownPresetKeyError: If a provider references an undefined preset.
            ConflictingIdentityError: If fragments claim the same entry with
                irreconcilable fields.
            PresetDependencyError: If preset requirements form a cycle.
        """
        identity = request.identity
        flags = request.flags

        # User input is checked before any work is done
        user_override = parse_fragment(request.user_override)
        user_vars = parse_vars(request.user_vars, "user_vars")
        stream_vars = {
            metricset: parse_vars(values, f"stream_vars.{metricset}")
            for metricset, values in (request.stream_vars or {}).items()
        }

        profile = get_profile(identity.kind, self.profiles)
        context = PresetContext(
            identity=identity,
            flags=flags,
            profile=profile,
            settings=self.settings,
            image=resolve_image(identity, profile, self.settings),
        )

        working = _WorkingCopy(
            fragment=build_default_fragment(identity, self.settings, self.profiles),
            document=DocumentState(
                vars=default_stream_vars(flags, self.settings),
                output=flags.output,
                namespace=identity.namespace,
            ),
        )

        registry = PresetRegistry(self.catalog)
        for provider in self._active_providers(request.addons, flags):
            self._apply_preset(provider.preset_key, registry, context, working)

        fragment = merge_fragments(working.fragment, user_override, override=True)
        fragment = _with_init_container_defaults(fragment, _primary_image(fragment, context))
        result = self._validator.validate_or_raise(fragment)

        for metricset in stream_vars:
            if metricset not in working.document.streams:
                logger.warning(
                    f"stream_vars for '{metricset}' ignored: stream is not enabled "
                    f"for {identity.target}"
                )

        return Composition(
            identity=identity,
            pod_template=fragment,
            document=working.document.render(user_vars, stream_vars),
            applied_presets=registry.applied_keys(identity.target),
            warnings=tuple(result.warnings),
        )

    def _active_providers(
        self, selected: Iterable[str], flags: FeatureFlags
    ) -> list[AddonProvider]:
        names = set(selected)
        known = {provider.name for provider in self.providers}
        unknown = sorted(names - known)
        if unknown:
            raise UnknownAddonError(f"Unknown add-ons: {', '.join(unknown)}")

        active = []
        for provider in self.providers:
            if provider.name not in names:
                continue
            if not provider.gate(flags):
                logger.debug(f"Add-on '{provider.name}' selected but inactive for {flags}")
                continue
            active.append(provider)
        return active

    def _apply_preset(
        self,
        preset_key: str,
        registry: PresetRegistry,
        context: PresetContext,
        working: _WorkingCopy,
    ) -> None:
        preset = self.catalog.get(preset_key)

        def apply() -> None:
            for requirement in preset.requires(context.flags):
                self._apply_preset(requirement, registry, context, working)
            if preset.fragment is not None:
                working.fragment = merge_fragments(working.fragment, preset.fragment(context))
            if preset.document is not None:
                working.document = preset.document(context, working.document)

        registry.apply_once(context.identity.target, preset_key, apply)


def _primary_image(fragment: Fragment, context: PresetContext) -> str:
    """Final image of the primary container, after the user override."""
    primary = fragment.get_container(context.profile.container_name)
    if primary is not None and primary.image:
        return primary.image
    return context.image


def _with_init_container_defaults(fragment: Fragment, image: str) -> Fragment:
    """Give init containers without an image the primary container's image."""
    if all(container.image for container in fragment.init_containers):
        return fragment
    init_containers: list[Container] = [
        container if container.image else container.model_copy(update={"image": image})
        for container in fragment.init_containers
    ]
    return fragment.model_copy(update={"init_containers": tuple(init_containers)})


def compose(
    identity: ResourceIdentity,
    flags: FeatureFlags | None = None,
    addons: Sequence[str] = (),
    user_override: Fragment | Mapping[str, Any] | str | None = None,
    user_vars: Mapping[str, Any] | None = None,
    stream_vars: Mapping[str, Mapping[str, Any]] | None = None,
    *,
    composer: Composer | None = None,
) -> Composition:
    """Compose a final specification with a default Composer.

    Example:
        composition = compose(
            ResourceIdentity(kind="kibana", name="kb", version="8.15.0"),
            user_override={"labels": {"team": "observability"}},
        )
        template = composition.to_pod_template()
    """
    composer = composer or Composer()
    return composer.compose(
        CompositionRequest(
            identity=identity,
            flags=flags or FeatureFlags(),
            addons=tuple(addons),
            user_override=user_override,
            user_vars=user_vars,
            stream_vars=stream_vars,
        )
    )
