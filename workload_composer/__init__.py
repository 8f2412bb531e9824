"""Workload Composer - layered composition of pod templates and agent configs.

A final workload specification is assembled from independently authored
fragments, lowest priority first:

    defaults -> add-ons (presets) -> user override

Each slot has one merge rule (replace-if-set, map merge, append, or keyed
merge by name), so user intent wins on conflict and no layer's contribution
is dropped.

Core entry point: `compose()` / `Composer.compose()`.
"""

from __future__ import annotations

# Add-ons
from workload_composer.addons import DEFAULT_PROVIDERS
from workload_composer.addons import AddonProvider
from workload_composer.addons import default_catalog

# Core classes
from workload_composer.composer import Composer
from workload_composer.composer import Composition
from workload_composer.composer import CompositionRequest
from workload_composer.composer import compose

# Defaults
from workload_composer.defaults import FeatureFlags
from workload_composer.defaults import KindProfile
from workload_composer.defaults import ResourceIdentity
from workload_composer.defaults import build_default_fragment
from workload_composer.defaults import default_stream_vars
from workload_composer.defaults import image_with_version

# Dict utilities
from workload_composer.dicts.merge import deep_merge
from workload_composer.dicts.merge import merge_maps

# Documents
from workload_composer.document import DocumentState

# Exceptions
from workload_composer.exceptions import CompositionError
from workload_composer.exceptions import ConflictingIdentityError
from workload_composer.exceptions import MalformedOverrideError
from workload_composer.exceptions import PresetDependencyError
from workload_composer.exceptions import UnknownAddonError
from workload_composer.exceptions import UnknownKindError
from workload_composer.exceptions import UnknownPresetKeyError

# Models
from workload_composer.models import Container
from workload_composer.models import ContainerPort
from workload_composer.models import EnvVar
from workload_composer.models import Fragment
from workload_composer.models import Probe
from workload_composer.models import ResourceRequirements
from workload_composer.models import Volume
from workload_composer.models import VolumeMount

# Presets
from workload_composer.presets import Preset
from workload_composer.presets import PresetCatalog
from workload_composer.presets import PresetContext
from workload_composer.presets import PresetRegistry

# Merge rules
from workload_composer.rules import merge_fragments

# Serialization
from workload_composer.serialization import fragment_to_pod_template
from workload_composer.serialization import parse_fragment

# Settings
from workload_composer.settings import ComposerSettings

# Validation
from workload_composer.validator import SpecificationValidator
from workload_composer.validator import ValidationResult

__all__ = [
    # Core
    "Composer",
    "Composition",
    "CompositionRequest",
    "compose",
    # Add-ons
    "AddonProvider",
    "DEFAULT_PROVIDERS",
    "default_catalog",
    # Defaults
    "FeatureFlags",
    "KindProfile",
    "ResourceIdentity",
    "build_default_fragment",
    "default_stream_vars",
    "image_with_version",
    # Dict utilities
    "deep_merge",
    "merge_maps",
    # Documents
    "DocumentState",
    # Exceptions
    "CompositionError",
    "ConflictingIdentityError",
    "MalformedOverrideError",
    "PresetDependencyError",
    "UnknownAddonError",
    "UnknownKindError",
    "UnknownPresetKeyError",
    # Models
    "Container",
    "ContainerPort",
    "EnvVar",
    "Fragment",
    "Probe",
    "ResourceRequirements",
    "Volume",
    "VolumeMount",
    # Presets
    "Preset",
    "PresetCatalog",
    "PresetContext",
    "PresetRegistry",
    # Merge rules
    "merge_fragments",
    # Serialization
    "fragment_to_pod_template",
    "parse_fragment",
    # Settings
    "ComposerSettings",
    # Validation
    "SpecificationValidator",
    "ValidationResult",
]
