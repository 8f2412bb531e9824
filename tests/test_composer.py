"""Tests for the composition engine."""

import threading

import pytest

from workload_composer.addons import KEYSTORE_INIT_CONTAINER
from workload_composer.addons import KSM_CONTAINER
from workload_composer.addons import AddonProvider
from workload_composer.addons import default_catalog
from workload_composer.composer import Composer
from workload_composer.composer import CompositionRequest
from workload_composer.composer import compose
from workload_composer.defaults import KIBANA
from workload_composer.defaults import LEADER_CONDITION
from workload_composer.defaults import TYPE_LABEL
from workload_composer.defaults import FeatureFlags
from workload_composer.defaults import ResourceIdentity
from workload_composer.defaults import build_default_fragment
from workload_composer.exceptions import ConflictingIdentityError
from workload_composer.exceptions import MalformedOverrideError
from workload_composer.exceptions import PresetDependencyError
from workload_composer.exceptions import UnknownAddonError
from workload_composer.exceptions import UnknownKindError
from workload_composer.exceptions import UnknownPresetKeyError
from workload_composer.models import Container
from workload_composer.models import EnvVar
from workload_composer.models import Fragment
from workload_composer.models import ResourceRequirements
from workload_composer.models import Volume
from workload_composer.presets import Preset
from workload_composer.presets import PresetCatalog

KIBANA_710 = ResourceIdentity(kind="kibana", name="kibana", version="7.1.0")
AGENT = ResourceIdentity(kind="elastic-agent", name="agent", version="8.15.0")


def _streams(document: dict) -> list[dict]:
    if not document["inputs"]:
        return []
    return document["inputs"][0]["streams"]


class TestComposeKibanaPodTemplate:
    """Pod template scenarios for a Kibana workload."""

    def test_defaults(self) -> None:
        """Without add-ons or overrides the result is the default fragment."""
        composition = compose(KIBANA_710)
        pod = composition.pod_template

        assert pod.automount_service_account_token is False
        assert len(pod.containers) == 1
        assert len(pod.init_containers) == 0
        assert len(pod.volumes) == 1
        container = pod.get_container(KIBANA.container_name)
        assert container is not None
        assert len(container.volume_mounts) == 1
        assert container.image == "docker.elastic.co/kibana/kibana:7.1.0"
        assert container.readiness_probe is not None
        assert container.ports
        assert pod == build_default_fragment(KIBANA_710)
        assert composition.document == {"inputs": []}
        assert composition.applied_presets == ()

    def test_keystore_adds_init_container_and_volume(self) -> None:
        """The keystore add-on contributes one init container and one volume."""
        pod = compose(KIBANA_710, addons=["keystore"]).pod_template
        assert len(pod.init_containers) == 1
        assert pod.init_containers[0].name == KEYSTORE_INIT_CONTAINER
        assert len(pod.volumes) == 2
        assert len(pod.get_container("kibana").volume_mounts) == 2

    def test_custom_image(self) -> None:
        """An explicit image is used verbatim."""
        identity = ResourceIdentity(
            kind="kibana", name="kibana", version="7.1.0", image="my-custom-image:1.0.0"
        )
        pod = compose(identity).pod_template
        assert pod.get_container("kibana").image == "my-custom-image:1.0.0"

    def test_default_resources(self) -> None:
        """Without a user block the default resources apply."""
        pod = compose(KIBANA_710).pod_template
        assert pod.get_container("kibana").resources == KIBANA.resources

    def test_user_resources_replace_defaults_atomically(self) -> None:
        """User limits only: no default requests leak in."""
        override = {
            "spec": {
                "containers": [
                    {"name": "kibana", "resources": {"limits": {"memory": "3Gi"}}}
                ]
            }
        }
        pod = compose(KIBANA_710, user_override=override).pod_template
        assert pod.get_container("kibana").resources == ResourceRequirements(
            limits={"memory": "3Gi"}
        )

    def test_user_init_containers(self) -> None:
        """A user init container is added and inherits the primary image."""
        override = {"spec": {"initContainers": [{"name": "user-init-container"}]}}
        pod = compose(KIBANA_710, user_override=override).pod_template
        assert len(pod.init_containers) == 1
        assert pod.init_containers[0].image == "docker.elastic.co/kibana/kibana:7.1.0"

    def test_user_labels_override_identity_labels(self) -> None:
        """User labels are added and may overwrite identity labels."""
        identity = ResourceIdentity(kind="kibana", name="kibana-name", version="7.4.0")
        override = {
            "metadata": {
                "labels": {
                    "label1": "value1",
                    "label2": "value2",
                    KIBANA.name_label: "overridden-kibana-name",
                }
            }
        }
        pod = compose(identity, user_override=override).pod_template
        assert pod.labels == {
            TYPE_LABEL: "kibana",
            KIBANA.name_label: "overridden-kibana-name",
            KIBANA.version_label: "7.4.0",
            "label1": "value1",
            "label2": "value2",
        }

    def test_user_environment(self) -> None:
        """User env is appended to the primary container."""
        override = {
            "spec": {
                "containers": [
                    {"name": "kibana", "env": [{"name": "user-env", "value": "user-env-value"}]}
                ]
            }
        }
        pod = compose(KIBANA_710, user_override=override).pod_template
        assert len(pod.get_container("kibana").env) == 1

    def test_user_volumes_and_volume_mounts(self) -> None:
        """User volumes and mounts are appended after the defaults."""
        override = {
            "spec": {
                "containers": [
                    {"name": "kibana", "volumeMounts": [{"name": "user-volume-mount"}]}
                ],
                "volumes": [{"name": "user-volume"}],
            }
        }
        pod = compose(KIBANA_710, user_override=override).pod_template
        assert len(pod.volumes) == 2
        mounts = pod.get_container("kibana").volume_mounts
        assert len(mounts) == 2
        assert mounts[0].name == "kibana-data"
        assert mounts[1].name == "user-volume-mount"

    def test_user_may_replace_image(self) -> None:
        """The user layer can override the primary image."""
        override = Fragment(containers=(Container(name="kibana", image="mine:1"),))
        pod = compose(KIBANA_710, user_override=override).pod_template
        assert pod.get_container("kibana").image == "mine:1"

    def test_init_containers_follow_user_image(self) -> None:
        """Keystore and user init containers run the user's primary image."""
        override = {
            "spec": {
                "containers": [{"name": "kibana", "image": "my/kibana:1"}],
                "initContainers": [{"name": "user-init"}],
            }
        }
        pod = compose(KIBANA_710, addons=["keystore"], user_override=override).pod_template
        assert [(c.name, c.image) for c in pod.init_containers] == [
            (KEYSTORE_INIT_CONTAINER, "my/kibana:1"),
            ("user-init", "my/kibana:1"),
        ]

    def test_init_container_keeps_own_image(self) -> None:
        """An init container with an image of its own keeps it."""
        override = {"initContainers": [{"name": "user-init", "image": "busybox:1"}]}
        pod = compose(KIBANA_710, user_override=override).pod_template
        assert pod.init_containers[0].image == "busybox:1"

    def test_user_volume_replaces_default_source(self) -> None:
        """A same-named user volume wins whole; no second source remains."""
        override = {"volumes": [{"name": "kibana-data", "secret": {"secretName": "s"}}]}
        pod = compose(KIBANA_710, user_override=override).pod_template
        (volume,) = pod.volumes
        assert volume.to_manifest() == {"name": "kibana-data", "secret": {"secretName": "s"}}

    def test_user_persistent_volume_claim(self) -> None:
        """The data volume can be backed by a claim."""
        override = {
            "volumes": [{"name": "kibana-data", "persistentVolumeClaim": {"claimName": "c"}}]
        }
        template = compose(KIBANA_710, user_override=override).to_pod_template()
        assert template["spec"]["volumes"] == [
            {"name": "kibana-data", "persistentVolumeClaim": {"claimName": "c"}}
        ]

    def test_yaml_override(self) -> None:
        """A user override may be given as YAML text."""
        override = "metadata:\n  labels:\n    team: observability\n"
        pod = compose(KIBANA_710, user_override=override).pod_template
        assert pod.labels["team"] == "observability"

    def test_user_automount(self) -> None:
        """The user can turn automount on."""
        override = {"spec": {"automountServiceAccountToken": True}}
        pod = compose(KIBANA_710, user_override=override).pod_template
        assert pod.automount_service_account_token is True

    def test_env_append_invariant(self) -> None:
        """Final env length is the sum of every layer's env."""
        override = {
            "containers": [
                {"name": "agent", "env": [{"name": "NODE_NAME", "value": "x"}, {"name": "B"}]}
            ]
        }
        pod = compose(AGENT, user_override=override).pod_template
        default_env = build_default_fragment(AGENT).get_container("agent").env
        env = pod.get_container("agent").env
        assert len(env) == len(default_env) + 2
        assert [e.name for e in env].count("NODE_NAME") == 2


class TestComposeAddons:
    """Add-on selection, ordering and presets."""

    def test_shared_preset_applied_once(self) -> None:
        """Two metricsets in sharded mode deploy one sidecar."""
        composition = compose(
            AGENT,
            flags=FeatureFlags(ksm_sharded=True),
            addons=["state_pod", "state_node"],
        )
        names = [c.name for c in composition.pod_template.containers]
        assert names.count(KSM_CONTAINER) == 1
        assert composition.applied_presets == (
            "kube-state-metrics",
            "kubernetes.state_node",
            "kubernetes.state_pod",
        )

    def test_explicit_sidecar_and_metricsets(self) -> None:
        """Selecting the sidecar explicitly as well still deploys it once."""
        composition = compose(
            AGENT,
            flags=FeatureFlags(ksm_sharded=True),
            addons=["state_pod", "kube-state-metrics", "state_pod"],
        )
        names = [c.name for c in composition.pod_template.containers]
        assert names == ["agent", KSM_CONTAINER]

    def test_metricsets_follow_provider_order(self) -> None:
        """Streams appear in provider order regardless of selection order."""
        composition = compose(AGENT, addons=["state_pod", "state_container"])
        datasets = [s["metricsets"][0] for s in _streams(composition.document)]
        assert datasets == ["state_container", "state_pod"]

    def test_unsharded_uses_service_and_no_sidecar(self) -> None:
        """Without sharding, streams scrape the cluster service."""
        composition = compose(AGENT, addons=["state_pod", "kube-state-metrics"])
        assert [c.name for c in composition.pod_template.containers] == ["agent"]
        (stream,) = _streams(composition.document)
        assert stream["hosts"] == ["kube-state-metrics:8080"]

    def test_leader_election_condition(self) -> None:
        """Leader-election gating adds the condition to each stream."""
        composition = compose(
            AGENT, flags=FeatureFlags(leader_election=True), addons=["state_pod"]
        )
        (stream,) = _streams(composition.document)
        assert stream["condition"] == LEADER_CONDITION

    def test_sharded_switches_hosts_and_drops_condition(self) -> None:
        """The sidecar preset points hosts at localhost and removes gating."""
        composition = compose(
            AGENT,
            flags=FeatureFlags(ksm_sharded=True, leader_election=True),
            addons=["state_pod"],
        )
        (stream,) = _streams(composition.document)
        assert stream["hosts"] == ["localhost:8080"]
        assert "condition" not in stream

    def test_document_vars(self) -> None:
        """User and per-stream vars merge over the defaults."""
        composition = compose(
            AGENT,
            flags=FeatureFlags(output="monitoring"),
            addons=["state_pod", "state_node"],
            user_vars={"period": "30s"},
            stream_vars={"state_node": {"period": "1m", "add_metadata": False}},
        )
        document = composition.document
        assert document["inputs"][0]["use_output"] == "monitoring"
        by_metricset = {s["metricsets"][0]: s for s in _streams(document)}
        assert by_metricset["state_pod"]["period"] == "30s"
        assert by_metricset["state_pod"]["add_metadata"] is True
        assert by_metricset["state_node"]["period"] == "1m"
        assert by_metricset["state_node"]["add_metadata"] is False

    def test_stream_vars_for_disabled_stream_warns(self, caplog) -> None:
        """Vars for a stream that is not enabled are reported."""
        with caplog.at_level("WARNING", logger="workload_composer.composer"):
            compose(AGENT, addons=["state_pod"], stream_vars={"state_node": {"period": "1m"}})
        assert "state_node" in caplog.text

    def test_unknown_addon(self) -> None:
        """Selecting an add-on nobody provides is an error."""
        with pytest.raises(UnknownAddonError) as exc_info:
            compose(AGENT, addons=["state_everything"])
        assert "state_everything" in str(exc_info.value)

    def test_provider_with_undefined_preset(self) -> None:
        """A provider referencing an undefined preset fails loudly."""
        composer = Composer(providers=[AddonProvider(name="broken", preset_key="missing")])
        with pytest.raises(UnknownPresetKeyError):
            composer.compose(CompositionRequest(identity=AGENT, addons=("broken",)))

    def test_circular_presets(self) -> None:
        """Presets requiring each other raise PresetDependencyError."""
        catalog = PresetCatalog(
            [
                Preset(key="a", requires=lambda flags: ("b",)),
                Preset(key="b", requires=lambda flags: ("a",)),
            ]
        )
        composer = Composer(
            catalog=catalog, providers=[AddonProvider(name="a", preset_key="a")]
        )
        with pytest.raises(PresetDependencyError):
            composer.compose(CompositionRequest(identity=AGENT, addons=("a",)))

    def test_conflicting_addon_image(self) -> None:
        """An add-on may not silently swap the primary image."""
        catalog = default_catalog()
        catalog.register(
            Preset(
                key="rogue",
                fragment=lambda context: Fragment(
                    containers=(Container(name="agent", image="other:1"),)
                ),
            )
        )
        composer = Composer(
            catalog=catalog, providers=[AddonProvider(name="rogue", preset_key="rogue")]
        )
        with pytest.raises(ConflictingIdentityError):
            composer.compose(CompositionRequest(identity=AGENT, addons=("rogue",)))


class TestComposeErrors:
    """Error reporting."""

    def test_malformed_resources(self) -> None:
        """An unparseable user quantity aborts the composition."""
        override = {"containers": [{"name": "kibana", "resources": {"limits": {"cpu": "x"}}}]}
        with pytest.raises(MalformedOverrideError):
            compose(KIBANA_710, user_override=override)

    def test_malformed_vars(self) -> None:
        """Non-mapping user vars are rejected."""
        with pytest.raises(MalformedOverrideError):
            compose(AGENT, user_vars=["period"])  # type: ignore[arg-type]

    def test_unknown_kind(self) -> None:
        """Identities of unknown kinds are rejected."""
        with pytest.raises(UnknownKindError):
            compose(ResourceIdentity(kind="logstash", name="ls", version="8"))

    def test_user_container_clashing_with_init_container(self) -> None:
        """A name shared by an init container and a main container is rejected."""
        override = {"initContainers": [{"name": "kibana"}]}
        with pytest.raises(ConflictingIdentityError):
            compose(KIBANA_710, user_override=override)

    def test_duplicate_names_in_user_override(self) -> None:
        """One layer naming the same container twice is rejected."""
        override = {"containers": [{"name": "side", "image": "a"}, {"name": "side", "image": "b"}]}
        with pytest.raises(ConflictingIdentityError):
            compose(KIBANA_710, user_override=override)


class TestComposeProperties:
    """Determinism and isolation."""

    def test_deterministic(self) -> None:
        """Identical inputs produce identical output, order included."""
        kwargs = dict(
            flags=FeatureFlags(ksm_sharded=True, leader_election=True),
            addons=["state_pod", "keystore", "state_node"],
            user_override={"labels": {"b": "2", "a": "1"}},
            user_vars={"period": "30s"},
        )
        first = compose(AGENT, **kwargs)
        second = compose(AGENT, **kwargs)
        assert first.to_pod_template() == second.to_pod_template()
        assert first.document_yaml() == second.document_yaml()
        assert first.applied_presets == second.applied_presets

    def test_user_override_not_modified(self) -> None:
        """The caller's fragment is left untouched."""
        override = Fragment(containers=(Container(name="kibana", env=()),))
        before = override.model_dump()
        compose(KIBANA_710, user_override=override)
        assert override.model_dump() == before

    def test_results_isolated_from_defaults(self) -> None:
        """Editing one result does not leak into later compositions."""
        first = compose(KIBANA_710).pod_template
        first.get_container("kibana").resources.limits["memory"] = "99Gi"
        first.volumes[0].empty_dir["medium"] = "Memory"
        agent = compose(AGENT).pod_template
        agent.get_container("agent").env[0].value_from["fieldRef"]["fieldPath"] = "x"

        other = ResourceIdentity(kind="kibana", name="other", version="7.1.0")
        second = compose(other).pod_template
        assert second.get_container("kibana").resources.limits == {"memory": "1Gi"}
        assert second.volumes[0].empty_dir == {}
        assert KIBANA.resources.limits == {"memory": "1Gi"}
        env = compose(AGENT).pod_template.get_container("agent").env
        assert env[0].value_from == {"fieldRef": {"fieldPath": "spec.nodeName"}}

    def test_results_isolated_from_user_input(self) -> None:
        """The result shares no mutable values with the caller's override."""
        override = Fragment(
            containers=(
                Container(
                    name="kibana",
                    env=(EnvVar(name="A", value_from={"fieldRef": {"fieldPath": "x"}}),),
                ),
            ),
            volumes=(Volume(name="extra", empty_dir={}),),
        )
        pod = compose(KIBANA_710, user_override=override).pod_template
        pod.get_container("kibana").env[0].value_from["fieldRef"]["fieldPath"] = "y"
        pod.volumes[1].empty_dir["medium"] = "Memory"

        assert override.containers[0].env[0].value_from == {"fieldRef": {"fieldPath": "x"}}
        assert override.volumes[0].empty_dir == {}

    def test_parallel_compositions(self) -> None:
        """One Composer serves several targets from threads independently."""
        composer = Composer()
        results = {}

        def run(name: str) -> None:
            identity = ResourceIdentity(kind="elastic-agent", name=name, version="8.15.0")
            results[name] = composer.compose(
                CompositionRequest(
                    identity=identity,
                    flags=FeatureFlags(ksm_sharded=True),
                    addons=("state_pod", "state_node"),
                )
            )

        threads = [threading.Thread(target=run, args=(f"agent-{i}",)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 4
        for composition in results.values():
            names = [c.name for c in composition.pod_template.containers]
            assert names.count(KSM_CONTAINER) == 1
            assert composition.applied_presets[0] == "kube-state-metrics"

    def test_to_pod_template(self) -> None:
        """The composed fragment renders as a Kubernetes pod template."""
        template = compose(KIBANA_710).to_pod_template()
        assert template["metadata"]["labels"][TYPE_LABEL] == "kibana"
        assert template["spec"]["automountServiceAccountToken"] is False
        assert template["spec"]["containers"][0]["name"] == "kibana"
        assert template["spec"]["containers"][0]["readinessProbe"]["httpGet"]["path"] == "/login"
