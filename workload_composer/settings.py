"""Composer settings.

Resolves in order:
1. Explicit constructor arguments
2. WORKLOAD_COMPOSER_* environment variables (via ComposerSettings.from_env)
3. Built-in defaults
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_CONTAINER_REGISTRY = "docker.elastic.co"
DEFAULT_KSM_IMAGE = "registry.k8s.io/kube-state-metrics/kube-state-metrics:v2.10.0"
DEFAULT_PERIOD = "10s"


@dataclass(frozen=True)
class ComposerSettings:
    """Platform-level knobs shared by every composition.

    Attributes:
        container_registry: Registry prefixed to default image repositories.
        ksm_image: Image of the kube-state-metrics sidecar.
        period: Default collection period for metric streams.
    """

    container_registry: str = DEFAULT_CONTAINER_REGISTRY
    ksm_image: str = DEFAULT_KSM_IMAGE
    period: str = DEFAULT_PERIOD

    @classmethod
    def from_env(cls) -> ComposerSettings:
        """Build settings from WORKLOAD_COMPOSER_* environment variables.

        Unset or empty variables fall back to the built-in defaults.
        """
        return cls(
            container_registry=os.environ.get("WORKLOAD_COMPOSER_REGISTRY")
            or DEFAULT_CONTAINER_REGISTRY,
            ksm_image=os.environ.get("WORKLOAD_COMPOSER_KSM_IMAGE") or DEFAULT_KSM_IMAGE,
            period=os.environ.get("WORKLOAD_COMPOSER_PERIOD") or DEFAULT_PERIOD,
        )
