"""Long-lived Kubernetes API access shared by every request.

One :class:`KubernetesGateway` is built at startup around a single
kubernetes_asyncio ``ApiClient`` and injected into the request handlers.
Requests still get their own watchers, created through the gateway so that
they share its connection pool.

API failures are translated here into :class:`~ezkonnect.errors.UpstreamReadError`
and :class:`~ezkonnect.errors.UpstreamWriteError`.
"""

from __future__ import annotations

from typing import Any

from kubernetes_asyncio import client as k8s_client

from ezkonnect.collector.resource_watcher import CustomResourceWatcher
from ezkonnect.collector.signals import SignalChannels
from ezkonnect.collector.workload_watcher import WorkloadWatcher
from ezkonnect.errors import UpstreamReadError, UpstreamWriteError
from ezkonnect.k8s.failures import KUBE_API_ERRORS, failure_reason, failure_status
from ezkonnect.k8s.resources import CR_GROUP, CR_PLURAL, CR_VERSION
from ezkonnect.models.config import KubeConfig
from ezkonnect.models.instrumentation import ControllerKind, InstrumentationTarget
from ezkonnect.observability.logging import get_logger

_log = get_logger("k8s.gateway")

_READ_FUNCS: dict[ControllerKind, str] = {
    ControllerKind.DEPLOYMENT: "read_namespaced_deployment",
    ControllerKind.STATEFULSET: "read_namespaced_stateful_set",
}

_REPLACE_FUNCS: dict[ControllerKind, str] = {
    ControllerKind.DEPLOYMENT: "replace_namespaced_deployment",
    ControllerKind.STATEFULSET: "replace_namespaced_stateful_set",
}


async def load_kube_credentials(config: KubeConfig) -> str:
    """Load credentials into the kubernetes_asyncio default configuration.

    Returns the credential source that was used (``kubeconfig`` or ``in-cluster``).
    """
    import kubernetes_asyncio.config as k8s_config

    if config.kubeconfig:
        await k8s_config.load_kube_config(config_file=config.kubeconfig)
        return "kubeconfig"
    try:
        # load_incluster_config() is synchronous in kubernetes-asyncio
        k8s_config.load_incluster_config()  # type: ignore[no-untyped-call]
        return "in-cluster"
    except k8s_config.ConfigException:
        await k8s_config.load_kube_config()
        return "kubeconfig"


class KubernetesGateway:
    """Typed access to workloads and InstrumentedApplication resources."""

    def __init__(self, api_client: Any) -> None:
        self._api_client = api_client
        self.apps_api = k8s_client.AppsV1Api(api_client)
        self.custom_api = k8s_client.CustomObjectsApi(api_client)

    # ------------------------------------------------------------------
    # Custom resources
    # ------------------------------------------------------------------

    async def get_custom_resource(self, namespace: str, name: str) -> dict[str, Any]:
        """Fetch the InstrumentedApplication describing workload *name*."""
        try:
            document = await self.custom_api.get_namespaced_custom_object(
                CR_GROUP, CR_VERSION, namespace, CR_PLURAL, name
            )
        except KUBE_API_ERRORS as exc:
            _log.error("custom_resource_get_failed", namespace=namespace, name=name, status=failure_status(exc))
            raise UpstreamReadError(f"{CR_PLURAL} {namespace}/{name}: {failure_reason(exc)}") from exc
        return document if isinstance(document, dict) else {}

    async def list_custom_resources(self) -> list[dict[str, Any]]:
        """List InstrumentedApplications across all namespaces."""
        try:
            listing = await self.custom_api.list_cluster_custom_object(CR_GROUP, CR_VERSION, CR_PLURAL)
        except KUBE_API_ERRORS as exc:
            _log.error("custom_resource_list_failed", status=failure_status(exc))
            raise UpstreamReadError(f"{CR_PLURAL}: {failure_reason(exc)}") from exc
        items = listing.get("items") if isinstance(listing, dict) else None
        return [item for item in items or [] if isinstance(item, dict)]

    # ------------------------------------------------------------------
    # Workloads
    # ------------------------------------------------------------------

    async def read_workload(self, target: InstrumentationTarget) -> Any:
        read = getattr(self.apps_api, _READ_FUNCS[target.controller_kind])
        try:
            return await read(target.name, target.namespace)
        except KUBE_API_ERRORS as exc:
            _log.error(
                "workload_get_failed",
                kind=target.controller_kind.value,
                namespace=target.namespace,
                name=target.name,
                status=failure_status(exc),
            )
            raise UpstreamReadError(f"{target.controller_kind.value} {target.namespace}/{target.name}: {failure_reason(exc)}") from exc

    async def replace_workload(self, target: InstrumentationTarget, workload: Any) -> None:
        """Write *workload* back; a stale resourceVersion fails with a conflict."""
        replace = getattr(self.apps_api, _REPLACE_FUNCS[target.controller_kind])
        try:
            await replace(target.name, target.namespace, workload)
        except KUBE_API_ERRORS as exc:
            _log.error(
                "workload_update_failed",
                kind=target.controller_kind.value,
                namespace=target.namespace,
                name=target.name,
                status=failure_status(exc),
            )
            raise UpstreamWriteError(f"{target.controller_kind.value} {target.namespace}/{target.name}: {failure_reason(exc)}") from exc

    # ------------------------------------------------------------------
    # Request-scoped watchers
    # ------------------------------------------------------------------

    def custom_resource_watcher(self, target: InstrumentationTarget, channels: SignalChannels) -> CustomResourceWatcher:
        return CustomResourceWatcher(self.custom_api, target.namespace, target.name, channels)

    def workload_watcher(self, target: InstrumentationTarget, channels: SignalChannels) -> WorkloadWatcher:
        return WorkloadWatcher(self.apps_api, target.namespace, target.name, channels, target.controller_kind)

    async def close(self) -> None:
        """Close the shared ApiClient connection pool."""
        await self._api_client.close()
