"""Conversion between fragments, Kubernetes pod templates, and YAML.

User overrides arrive either as a flat fragment mapping::

    {"labels": {...}, "containers": [...], "volumes": [...]}

or in the shape of a Kubernetes pod template::

    {"metadata": {"labels": {...}}, "spec": {"containers": [...]}}

Both are accepted by `parse_fragment`, as mappings or as YAML text.
Anything that cannot be read as a fragment raises MalformedOverrideError;
nothing is coerced or dropped.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import yaml
from pydantic import ValidationError

from workload_composer.exceptions import MalformedOverrideError
from workload_composer.models import Fragment
from workload_composer.values import to_node
from workload_composer.values import to_plain

_METADATA_FIELDS = ("labels", "annotations")
_SPEC_FIELDS = ("automountServiceAccountToken", "initContainers", "containers", "volumes")


def format_validation_error(error: ValidationError) -> str:
    """One line per failing location, e.g. ``containers.0.resources.limits: ...``."""
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"]) or "<root>"
        parts.append(f"{location}: {detail['msg']}")
    return "; ".join(parts)


def fragment_from_pod_template(template: Mapping[str, Any]) -> Fragment:
    """Build a fragment from a pod-template shaped mapping.

    Raises:
        MalformedOverrideError: If the template has unexpected keys or
            values that fail validation.
    """
    unexpected = sorted(set(template) - {"metadata", "spec"})
    if unexpected:
        raise MalformedOverrideError(
            f"Unsupported pod template keys: {', '.join(unexpected)}"
        )

    metadata = template.get("metadata") or {}
    spec = template.get("spec") or {}
    if not isinstance(metadata, Mapping) or not isinstance(spec, Mapping):
        raise MalformedOverrideError("Pod template metadata and spec must be mappings")

    flat: dict[str, Any] = {}
    for key, value in metadata.items():
        if key not in _METADATA_FIELDS:
            raise MalformedOverrideError(f"Unsupported pod template field: metadata.{key}")
        flat[key] = value
    for key, value in spec.items():
        if key not in _SPEC_FIELDS:
            raise MalformedOverrideError(f"Unsupported pod template field: spec.{key}")
        flat[key] = value

    return _validate_fragment(flat)


def _validate_fragment(data: Mapping[str, Any]) -> Fragment:
    try:
        return Fragment.model_validate(dict(data))
    except ValidationError as e:
        raise MalformedOverrideError(
            f"Invalid override fragment: {format_validation_error(e)}"
        ) from e


def parse_fragment(data: Fragment | Mapping[str, Any] | str | None) -> Fragment:
    """Read a user override in any accepted shape.

    Args:
        data: A Fragment, a flat fragment mapping, a pod template mapping,
            YAML text holding either mapping, or None (no override).

    Returns:
        The override as a Fragment (empty when data is None).

    Raises:
        MalformedOverrideError: If data cannot be interpreted as a fragment.
    """
    if data is None:
        return Fragment()
    if isinstance(data, Fragment):
        return data
    if isinstance(data, str):
        data = load_yaml(data)
        if data is None:
            return Fragment()
    if not isinstance(data, Mapping):
        raise MalformedOverrideError(
            f"Override must be a mapping, got {type(data).__name__}"
        )
    if "metadata" in data or "spec" in data:
        return fragment_from_pod_template(data)
    return _validate_fragment(data)


def parse_vars(data: Mapping[str, Any] | None, name: str = "vars") -> dict[str, Any]:
    """Read user vars for the configuration document.

    Raises:
        MalformedOverrideError: If data is not a mapping of plain values.
    """
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise MalformedOverrideError(f"{name} must be a mapping, got {type(data).__name__}")
    try:
        return to_plain(to_node(data))
    except TypeError as e:
        raise MalformedOverrideError(f"Invalid {name}: {e}") from e


def fragment_to_pod_template(fragment: Fragment) -> dict[str, Any]:
    """Render a fragment as a Kubernetes pod template dict.

    Empty slots are omitted.
    """
    manifest = fragment.to_manifest()

    metadata = {key: manifest[key] for key in _METADATA_FIELDS if manifest.get(key)}
    spec = {}
    for key in _SPEC_FIELDS:
        value = manifest.get(key)
        if value is None or value == []:
            continue
        spec[key] = value

    template: dict[str, Any] = {}
    if metadata:
        template["metadata"] = metadata
    template["spec"] = spec
    return template


def load_yaml(content: str, name: str = "override") -> Any:
    """Parse YAML text supplied by a user.

    Raises:
        MalformedOverrideError: If content is not valid YAML.
    """
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise MalformedOverrideError(f"Invalid YAML in {name}: {e}") from e


def dump_yaml(data: Any) -> str:
    """Serialize a pod template or document to YAML, keeping key order."""
    return yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)
