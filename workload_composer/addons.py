"""Built-in add-on providers and the presets they apply.

Providers run in the fixed order of DEFAULT_PROVIDERS:

1. keystore - init container that builds the secure settings keystore
2. kube-state-metrics - sidecar for sharded collection
3. one provider per kube-state-metrics metricset (state_pod, state_node, ...)

A provider is active when it is selected and its gate accepts the feature
flags. Metricset presets require the kube-state-metrics preset in sharded
mode, so selecting several metricsets still deploys a single sidecar.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from workload_composer.defaults import FeatureFlags
from workload_composer.document import DocumentState
from workload_composer.models import Container
from workload_composer.models import ContainerPort
from workload_composer.models import EnvVar
from workload_composer.models import Fragment
from workload_composer.models import HTTPGetAction
from workload_composer.models import Probe
from workload_composer.models import ResourceRequirements
from workload_composer.models import Volume
from workload_composer.models import VolumeMount
from workload_composer.presets import Preset
from workload_composer.presets import PresetCatalog
from workload_composer.presets import PresetContext

KEYSTORE_PRESET = "keystore"
KSM_PRESET = "kube-state-metrics"

KEYSTORE_VOLUME = "elastic-internal-keystore"
KEYSTORE_INIT_CONTAINER = "elastic-internal-init-keystore"
KSM_CONTAINER = "kube-state-metrics"
KSM_PORT = 8080

KSM_METRICSETS = (
    "state_container",
    "state_cronjob",
    "state_daemonset",
    "state_deployment",
    "state_job",
    "state_namespace",
    "state_node",
    "state_persistentvolume",
    "state_persistentvolumeclaim",
    "state_pod",
    "state_replicaset",
    "state_resourcequota",
    "state_service",
    "state_statefulset",
    "state_storageclass",
)

KEYSTORE_SCRIPT = """#!/usr/bin/env bash
set -eux
keystore_initialized_flag={mount}/elastic-internal-init-keystore.ok
if [[ -f "${{keystore_initialized_flag}}" ]]; then
    echo "Keystore already initialized."
    exit 0
fi
echo "Initializing keystore."
{binary} create
touch {mount}/elastic-internal-init-keystore.ok
"""


def _always(flags: FeatureFlags) -> bool:
    return True


@dataclass(frozen=True)
class AddonProvider:
    """Optional contributor to a composition.

    Attributes:
        name: Name used to select the add-on.
        preset_key: Preset applied when the provider is active.
        gate: Decides from the feature flags whether a selected provider
            actually activates.
    """

    name: str
    preset_key: str
    gate: Callable[[FeatureFlags], bool] = _always


# =============================================================================
# Keystore
# =============================================================================


def keystore_fragment(context: PresetContext) -> Fragment:
    """Init container building the keystore, its volume, and its mount.

    The init container has no image of its own; it runs the primary
    container's final image.
    """
    profile = context.profile
    mount = VolumeMount(name=KEYSTORE_VOLUME, mount_path=profile.keystore_mount_path)
    binary = f"/usr/share/{profile.repository.split('/')[-1]}/bin/{profile.kind}-keystore"
    init_container = Container(
        name=KEYSTORE_INIT_CONTAINER,
        command=(
            "/usr/bin/env",
            "bash",
            "-c",
            KEYSTORE_SCRIPT.format(mount=profile.keystore_mount_path, binary=binary),
        ),
        volume_mounts=(mount,),
        resources=ResourceRequirements(
            limits={"cpu": "100m", "memory": "128Mi"},
            requests={"cpu": "100m", "memory": "128Mi"},
        ),
    )
    return Fragment(
        init_containers=(init_container,),
        containers=(Container(name=profile.container_name, volume_mounts=(mount,)),),
        volumes=(Volume(name=KEYSTORE_VOLUME, empty_dir={}),),
    )


# =============================================================================
# kube-state-metrics
# =============================================================================


def ksm_fragment(context: PresetContext) -> Fragment:
    """kube-state-metrics sidecar that only exposes the shard of its own pod."""
    sidecar = Container(
        name=KSM_CONTAINER,
        image=context.settings.ksm_image,
        args=("--pod=$(POD_NAME)", "--pod-namespace=$(POD_NAMESPACE)"),
        env=(
            EnvVar(name="POD_NAME", value_from={"fieldRef": {"fieldPath": "metadata.name"}}),
            EnvVar(
                name="POD_NAMESPACE",
                value_from={"fieldRef": {"fieldPath": "metadata.namespace"}},
            ),
        ),
        ports=(ContainerPort(name="http-metrics", container_port=KSM_PORT),),
        readiness_probe=Probe(
            http_get=HTTPGetAction(path="/healthz", port=KSM_PORT),
            initial_delay_seconds=5,
            timeout_seconds=5,
        ),
    )
    return Fragment(containers=(sidecar,))


def ksm_document(context: PresetContext, state: DocumentState) -> DocumentState:
    """Scrape the local sidecar; every shard collects, so no leader gating."""
    return state.with_var(["hosts"], [f"localhost:{KSM_PORT}"]).without_var(["condition"])


def _requires_sidecar(flags: FeatureFlags) -> tuple[str, ...]:
    return (KSM_PRESET,) if flags.ksm_sharded else ()


def metricset_preset(metricset: str) -> Preset:
    """Preset enabling one kube-state-metrics metric stream."""

    def document(context: PresetContext, state: DocumentState) -> DocumentState:
        return state.with_stream(metricset)

    return Preset(
        key=f"kubernetes.{metricset}",
        document=document,
        requires=_requires_sidecar,
        description=f"kube-state-metrics {metricset} stream",
    )


def default_catalog() -> PresetCatalog:
    """Catalog with every built-in preset."""
    catalog = PresetCatalog(
        [
            Preset(
                key=KEYSTORE_PRESET,
                fragment=keystore_fragment,
                description="Secure settings keystore built by an init container",
            ),
            Preset(
                key=KSM_PRESET,
                fragment=ksm_fragment,
                document=ksm_document,
                description="Sharded kube-state-metrics sidecar",
            ),
        ]
    )
    for metricset in KSM_METRICSETS:
        catalog.register(metricset_preset(metricset))
    return catalog


DEFAULT_PROVIDERS: tuple[AddonProvider, ...] = (
    AddonProvider(name="keystore", preset_key=KEYSTORE_PRESET),
    AddonProvider(
        name="kube-state-metrics",
        preset_key=KSM_PRESET,
        gate=lambda flags: flags.ksm_sharded,
    ),
    *(
        AddonProvider(name=metricset, preset_key=f"kubernetes.{metricset}")
        for metricset in KSM_METRICSETS
    ),
)
