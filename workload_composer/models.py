"""
Specification fragment models.
Uses Pydantic for validation of user-authored input.

Every model is frozen and stores sequences as tuples, so a fragment cannot be
changed once built; merging always produces new instances. Field names are
snake_case in Python and accept the camelCase spelling used by Kubernetes
manifests (``volumeMounts``, ``initContainers``, ...).
"""

from typing import Any
from typing import ClassVar

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic.alias_generators import to_camel

from workload_composer.quantity import parse_quantity


class SpecModel(BaseModel):
    """Base for all fragment models."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    # Fields that must agree when two non-override layers contribute the
    # same keyed entry.
    identity_fields: ClassVar[tuple[str, ...]] = ()

    # Fields that form one slot: a higher layer setting any of them replaces
    # all of them.
    exclusive_fields: ClassVar[tuple[str, ...]] = ()

    def to_manifest(self) -> dict[str, Any]:
        """Dump to a camelCase dict, omitting unset slots."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class EnvVar(SpecModel):
    """Container environment variable."""

    name: str
    value: str | None = None
    value_from: dict[str, Any] | None = None


class ContainerPort(SpecModel):
    """Port exposed by a container."""

    container_port: int
    name: str | None = None
    protocol: str = "TCP"


class HTTPGetAction(SpecModel):
    """HTTP GET handler of a probe."""

    path: str = "/"
    port: int | str
    scheme: str = "HTTP"


class Probe(SpecModel):
    """Readiness or liveness probe."""

    http_get: HTTPGetAction | None = None
    exec: dict[str, Any] | None = None
    tcp_socket: dict[str, Any] | None = None
    initial_delay_seconds: int | None = None
    period_seconds: int | None = None
    timeout_seconds: int | None = None
    success_threshold: int | None = None
    failure_threshold: int | None = None


class VolumeMount(SpecModel):
    """Mount of a pod volume into a container, keyed by volume name."""

    name: str
    mount_path: str | None = None
    read_only: bool | None = None
    sub_path: str | None = None


class Volume(SpecModel):
    """Pod volume, keyed by name.

    The source fields are one slot: a layer that sets any source replaces the
    lower layer's source entirely, so a merged volume never has two sources.
    """

    exclusive_fields: ClassVar[tuple[str, ...]] = (
        "empty_dir",
        "secret",
        "config_map",
        "host_path",
        "persistent_volume_claim",
        "projected",
        "downward_api",
    )

    name: str
    empty_dir: dict[str, Any] | None = None
    secret: dict[str, Any] | None = None
    config_map: dict[str, Any] | None = None
    host_path: dict[str, Any] | None = None
    persistent_volume_claim: dict[str, Any] | None = None
    projected: dict[str, Any] | None = None
    downward_api: dict[str, Any] | None = Field(default=None, alias="downwardAPI")


class ResourceRequirements(SpecModel):
    """Compute resource limits and requests.

    Merged as an atomic unit: a block set by a higher layer replaces the
    lower block entirely, limits and requests included.
    """

    limits: dict[str, str] = Field(default_factory=dict)
    requests: dict[str, str] = Field(default_factory=dict)

    @field_validator("limits", "requests", mode="before")
    @classmethod
    def _validate_quantities(cls, value: Any) -> Any:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError(
                "expected a mapping of resource name to quantity, "
                f"got {type(value).__name__}"
            )
        normalized = {}
        for resource, quantity in value.items():
            try:
                parse_quantity(quantity)
            except ValueError as e:
                raise ValueError(f"{resource}: {e}") from e
            normalized[resource] = str(quantity)
        return normalized


class Container(SpecModel):
    """Container in a pod template, keyed by name."""

    identity_fields: ClassVar[tuple[str, ...]] = ("image",)

    name: str
    image: str | None = None
    command: tuple[str, ...] | None = None
    args: tuple[str, ...] | None = None
    env: tuple[EnvVar, ...] = ()
    ports: tuple[ContainerPort, ...] = ()
    volume_mounts: tuple[VolumeMount, ...] = ()
    resources: ResourceRequirements | None = None
    readiness_probe: Probe | None = None
    liveness_probe: Probe | None = None


class Fragment(SpecModel):
    """Partial pod template contributed by one layer.

    Attributes:
        labels: Pod labels, merged key by key.
        annotations: Pod annotations, merged key by key.
        containers: Main containers, keyed by name.
        init_containers: Init containers, keyed by name.
        volumes: Pod volumes, keyed by name.
        automount_service_account_token: Present-or-absent boolean.
    """

    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    containers: tuple[Container, ...] = ()
    init_containers: tuple[Container, ...] = ()
    volumes: tuple[Volume, ...] = ()
    automount_service_account_token: bool | None = None

    def get_container(self, name: str) -> Container | None:
        """Return the main container with the given name, or None."""
        for container in self.containers:
            if container.name == name:
                return container
        return None
