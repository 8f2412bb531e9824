"""Default fragment builder.

Produces the baseline fragment for a resource kind from its identity, and the
default vars every metric stream in the configuration document starts from.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from typing import Any

from workload_composer.exceptions import UnknownKindError
from workload_composer.models import Container
from workload_composer.models import ContainerPort
from workload_composer.models import EnvVar
from workload_composer.models import Fragment
from workload_composer.models import HTTPGetAction
from workload_composer.models import Probe
from workload_composer.models import ResourceRequirements
from workload_composer.models import Volume
from workload_composer.models import VolumeMount
from workload_composer.settings import ComposerSettings

TYPE_LABEL = "common.k8s.elastic.co/type"
BEARER_TOKEN_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/token"
LEADER_CONDITION = "${kubernetes_leaderelection.leader} == true"
KSM_SERVICE_HOST = "kube-state-metrics:8080"


@dataclass(frozen=True)
class ResourceIdentity:
    """Who the workload is.

    Attributes:
        kind: Resource kind, selects the KindProfile ("kibana", "elastic-agent").
        name: Resource name.
        version: Stack version, used for the default image tag and labels.
        namespace: Namespace the workload is deployed in.
        image: Explicit image; used verbatim instead of repository:version.
    """

    kind: str
    name: str
    version: str
    namespace: str = "default"
    image: str | None = None

    @property
    def target(self) -> str:
        """Stable key of the workload, used to scope preset application."""
        return f"{self.namespace}/{self.kind}/{self.name}"


@dataclass(frozen=True)
class FeatureFlags:
    """Switches that decide which add-ons activate and how.

    Attributes:
        ksm_sharded: Run kube-state-metrics as a sidecar of each replica
            instead of scraping a cluster-wide kube-state-metrics service.
        leader_election: Only the elected leader collects cluster-wide metrics.
        output: Name of the output the collected data is routed to.
    """

    ksm_sharded: bool = False
    leader_election: bool = False
    output: str = "default"


@dataclass(frozen=True)
class KindProfile:
    """Static defaults for one resource kind."""

    kind: str
    container_name: str
    repository: str
    port: int
    port_name: str
    probe_path: str
    probe_scheme: str
    data_volume: str
    data_mount_path: str
    keystore_mount_path: str
    resources: ResourceRequirements
    env: tuple[EnvVar, ...] = field(default_factory=tuple)

    @property
    def label_prefix(self) -> str:
        return f"{self.kind}.k8s.elastic.co"

    @property
    def name_label(self) -> str:
        return f"{self.label_prefix}/name"

    @property
    def version_label(self) -> str:
        return f"{self.label_prefix}/version"


KIBANA = KindProfile(
    kind="kibana",
    container_name="kibana",
    repository="kibana/kibana",
    port=5601,
    port_name="https",
    probe_path="/login",
    probe_scheme="HTTPS",
    data_volume="kibana-data",
    data_mount_path="/usr/share/kibana/data",
    keystore_mount_path="/usr/share/kibana/config/keystore",
    resources=ResourceRequirements(
        limits={"memory": "1Gi"},
        requests={"memory": "1Gi"},
    ),
)

ELASTIC_AGENT = KindProfile(
    kind="agent",
    container_name="agent",
    repository="beats/elastic-agent",
    port=6791,
    port_name="monitoring",
    probe_path="/liveness",
    probe_scheme="HTTP",
    data_volume="agent-data",
    data_mount_path="/usr/share/elastic-agent/state",
    keystore_mount_path="/usr/share/elastic-agent/config/keystore",
    resources=ResourceRequirements(
        limits={"memory": "800Mi"},
        requests={"cpu": "100m", "memory": "400Mi"},
    ),
    env=(
        EnvVar(name="NODE_NAME", value_from={"fieldRef": {"fieldPath": "spec.nodeName"}}),
        EnvVar(name="POD_NAME", value_from={"fieldRef": {"fieldPath": "metadata.name"}}),
    ),
)

DEFAULT_PROFILES: dict[str, KindProfile] = {
    KIBANA.kind: KIBANA,
    "elastic-agent": ELASTIC_AGENT,
    ELASTIC_AGENT.kind: ELASTIC_AGENT,
}


def get_profile(
    kind: str, profiles: Mapping[str, KindProfile] | None = None
) -> KindProfile:
    """Look up the profile for a kind.

    Raises:
        UnknownKindError: If no profile is registered for kind.
    """
    profiles = DEFAULT_PROFILES if profiles is None else profiles
    profile = profiles.get(kind)
    if profile is None:
        known = ", ".join(sorted(profiles)) or "none"
        raise UnknownKindError(f"No defaults for kind '{kind}' (known: {known})")
    return profile


def image_with_version(image: str, version: str) -> str:
    return f"{image}:{version}"


def resolve_image(
    identity: ResourceIdentity, profile: KindProfile, settings: ComposerSettings
) -> str:
    """Return the explicit image if one was given, else registry/repository:version."""
    if identity.image:
        return identity.image
    repository = f"{settings.container_registry}/{profile.repository}"
    return image_with_version(repository, identity.version)


def identity_labels(identity: ResourceIdentity, profile: KindProfile) -> dict[str, str]:
    """Labels identifying the workload's pods."""
    return {
        TYPE_LABEL: profile.kind,
        profile.name_label: identity.name,
        profile.version_label: identity.version,
    }


def readiness_probe(profile: KindProfile) -> Probe:
    return Probe(
        http_get=HTTPGetAction(
            path=profile.probe_path, port=profile.port, scheme=profile.probe_scheme
        ),
        initial_delay_seconds=10,
        period_seconds=10,
        timeout_seconds=5,
        success_threshold=1,
        failure_threshold=3,
    )


def build_default_fragment(
    identity: ResourceIdentity,
    settings: ComposerSettings | None = None,
    profiles: Mapping[str, KindProfile] | None = None,
) -> Fragment:
    """Build the baseline fragment for a workload.

    Args:
        identity: Workload identity.
        settings: Platform settings (registry); defaults to ComposerSettings().
        profiles: Kind profiles to choose from; defaults to DEFAULT_PROFILES.

    Returns:
        Fragment with one primary container (image, readiness probe, port,
        data volume mount, default resources), the data volume, identity
        labels and automount_service_account_token=False. The fragment
        shares no mutable values with the profile.

    Raises:
        UnknownKindError: If identity.kind has no profile.
    """
    settings = settings or ComposerSettings()
    profile = get_profile(identity.kind, profiles)

    container = Container(
        name=profile.container_name,
        image=resolve_image(identity, profile, settings),
        env=profile.env,
        ports=(
            ContainerPort(
                name=profile.port_name, container_port=profile.port, protocol="TCP"
            ),
        ),
        volume_mounts=(
            VolumeMount(name=profile.data_volume, mount_path=profile.data_mount_path),
        ),
        resources=profile.resources,
        readiness_probe=readiness_probe(profile),
    )

    return Fragment(
        labels=identity_labels(identity, profile),
        containers=(container,),
        volumes=(Volume(name=profile.data_volume, empty_dir={}),),
        automount_service_account_token=False,
    ).model_copy(deep=True)


def default_stream_vars(
    flags: FeatureFlags, settings: ComposerSettings | None = None
) -> dict[str, Any]:
    """Default vars every kube-state-metrics stream starts from.

    The leader-election condition is only present when gating is required;
    add-ons may switch hosts and condition afterwards.
    """
    settings = settings or ComposerSettings()
    stream_vars: dict[str, Any] = {
        "add_metadata": True,
        "hosts": [KSM_SERVICE_HOST],
        "period": settings.period,
        "bearer_token_file": BEARER_TOKEN_FILE,
    }
    if flags.leader_election:
        stream_vars["condition"] = LEADER_CONDITION
    return stream_vars
