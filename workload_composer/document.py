"""Agent configuration document.

The document is built in two stages. While presets are applied, a
DocumentState collects the default stream vars and the list of enabled
metric streams. At the end, `render` merges user vars over the defaults for
each stream and produces the final nested mapping:

    inputs:
      - id: kubernetes/metrics-kube-state-metrics
        type: kubernetes/metrics
        use_output: default
        data_stream:
          namespace: default
        streams:
          - id: kubernetes/metrics-kubernetes.state_pod
            data_stream:
              type: metrics
              dataset: kubernetes.state_pod
            metricsets: [state_pod]
            add_metadata: true
            hosts: [kube-state-metrics:8080]
            period: 10s
            bearer_token_file: /var/run/secrets/kubernetes.io/serviceaccount/token
"""

from __future__ import annotations

from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import replace
from typing import Any

from workload_composer.dicts.merge import deep_merge
from workload_composer.dicts.navigation import get_nested
from workload_composer.dicts.navigation import with_nested
from workload_composer.dicts.navigation import without_nested

INPUT_ID = "kubernetes/metrics-kube-state-metrics"
INPUT_TYPE = "kubernetes/metrics"


@dataclass(frozen=True)
class DocumentState:
    """Working copy of the configuration document.

    Attributes:
        vars: Default vars shared by every stream.
        streams: Enabled metricsets, in the order they were added.
        output: Output the input routes to.
        namespace: Data stream namespace.
    """

    vars: Mapping[str, Any]
    streams: tuple[str, ...] = ()
    output: str = "default"
    namespace: str = "default"

    def get_var(self, path: Sequence[str], default: Any = None) -> Any:
        return get_nested(self.vars, path, default)

    def with_var(self, path: Sequence[str], value: Any) -> DocumentState:
        """Return a copy with the default var at path set to value."""
        return replace(self, vars=with_nested(self.vars, path, value))

    def without_var(self, path: Sequence[str]) -> DocumentState:
        """Return a copy with the default var at path removed."""
        return replace(self, vars=without_nested(self.vars, path))

    def with_stream(self, metricset: str) -> DocumentState:
        """Return a copy with metricset enabled (no-op if already enabled)."""
        if metricset in self.streams:
            return self
        return replace(self, streams=(*self.streams, metricset))

    def render(
        self,
        user_vars: Mapping[str, Any] | None = None,
        stream_vars: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Produce the final document.

        Vars for each stream are merged in order: defaults, user_vars (applies
        to every stream), then stream_vars[metricset]. Mappings merge key by
        key at every depth; lists and scalars are replaced wholesale. With no
        enabled streams the document has no inputs.
        """
        user_vars = user_vars or {}
        stream_vars = stream_vars or {}
        shared = deep_merge(self.vars, user_vars)

        streams = []
        for metricset in self.streams:
            dataset = f"kubernetes.{metricset}"
            stream: dict[str, Any] = {
                "id": f"{INPUT_TYPE}-{dataset}",
                "data_stream": {"type": "metrics", "dataset": dataset},
                "metricsets": [metricset],
            }
            stream.update(deep_merge(shared, stream_vars.get(metricset, {})))
            streams.append(stream)

        if not streams:
            return {"inputs": []}

        return {
            "inputs": [
                {
                    "id": INPUT_ID,
                    "type": INPUT_TYPE,
                    "use_output": self.output,
                    "data_stream": {"namespace": self.namespace},
                    "streams": streams,
                }
            ]
        }
