"""Deployment/StatefulSet watcher for the service-name annotation.

Confirms that the workload object itself was mutated; used when a single
signal is enough to answer an annotate request.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any

from ezkonnect.collector.signals import SignalCategory, SignalChannels
from ezkonnect.collector.watcher import ResourceWatcher
from ezkonnect.k8s.resources import SERVICE_NAME_ANNOTATION
from ezkonnect.models.instrumentation import ControllerKind

_LIST_FUNCS: dict[ControllerKind, str] = {
    ControllerKind.DEPLOYMENT: "list_namespaced_deployment",
    ControllerKind.STATEFULSET: "list_namespaced_stateful_set",
}


class WorkloadWatcher(ResourceWatcher):
    """Publishes a WORKLOAD signal when the pod template's service name changes."""

    def __init__(
        self,
        api: Any,
        namespace: str,
        name: str,
        channels: SignalChannels,
        kind: ControllerKind,
    ) -> None:
        """Initialise the workload watcher.

        Args:
            api: An ``AppsV1Api`` instance.
            kind: Which workload list endpoint to watch.
        """
        super().__init__(api, namespace, name, channels, watcher_name=f"workload.{kind.value}")
        self._kind = kind

    def _list_func(self) -> Callable[..., Coroutine[Any, Any, Any]]:
        return getattr(self._api, _LIST_FUNCS[self._kind])  # type: ignore[no-any-return]

    def _on_change(self, old: dict[str, Any], new: dict[str, Any]) -> None:
        if _service_name(old) != _service_name(new):
            self._publish(SignalCategory.WORKLOAD)


def _service_name(raw: dict[str, Any]) -> str:
    """Read the service-name annotation from a raw workload's pod template."""
    node: Any = raw
    for key in ("spec", "template", "metadata", "annotations"):
        node = node.get(key) if isinstance(node, dict) else None
    if not isinstance(node, dict):
        return ""
    return str(node.get(SERVICE_NAME_ANNOTATION, ""))
