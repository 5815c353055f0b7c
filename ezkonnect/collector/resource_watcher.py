"""InstrumentedApplication custom resource watcher.

Publishes a SPEC signal when the resource's ``spec`` changes (log type,
active service names) and a STATUS signal when its ``status`` changes
(traces/metrics instrumented flags).  Both can fire for the same update.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any

from ezkonnect.collector.signals import SignalCategory, SignalChannels
from ezkonnect.collector.watcher import ResourceWatcher
from ezkonnect.instrumentation.documents import subdocument_changed
from ezkonnect.k8s.resources import CR_GROUP, CR_PLURAL, CR_VERSION


class CustomResourceWatcher(ResourceWatcher):
    """Watches one InstrumentedApplication for spec and status transitions.

    Usage::

        custom = kubernetes_asyncio.client.CustomObjectsApi(api_client)
        watcher = CustomResourceWatcher(custom, "ns1", "svc-a", channels)
        await watcher.start()
    """

    def __init__(self, api: Any, namespace: str, name: str, channels: SignalChannels) -> None:
        super().__init__(api, namespace, name, channels, watcher_name="custom_resource")

    def _list_func(self) -> Callable[..., Coroutine[Any, Any, Any]]:
        return self._api.list_namespaced_custom_object  # type: ignore[no-any-return]

    def _list_args(self) -> tuple[Any, ...]:
        return (CR_GROUP, CR_VERSION, self._namespace, CR_PLURAL)

    def _on_change(self, old: dict[str, Any], new: dict[str, Any]) -> None:
        if subdocument_changed(old, new, "spec"):
            self._publish(SignalCategory.SPEC)
        if subdocument_changed(old, new, "status"):
            self._publish(SignalCategory.STATUS)
