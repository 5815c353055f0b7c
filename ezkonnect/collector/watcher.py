"""Request-scoped list-then-watch over a single named Kubernetes object.

Wraps kubernetes_asyncio's Watch to provide:
- A baseline list before the stream opens, so that once :meth:`start`
  returns every later change is delivered
- Resumable watches via resourceVersion
- Exponential back-off (0.25 s - 5 s) on 429/5xx and unexpected stream ends
- Re-list on 410 Gone, comparing the fresh copy against the last one seen
- Structural comparison of consecutive copies of the object; identical
  resyncs never reach :meth:`ResourceWatcher._on_change`
"""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from typing import Any

from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

from ezkonnect.collector.signals import SignalCategory, SignalChannels, WatchSignal
from ezkonnect.errors import UpstreamReadError
from ezkonnect.k8s.failures import KUBE_API_ERRORS, failure_reason, failure_status
from ezkonnect.observability.logging import get_logger
from ezkonnect.observability.metrics import (
    watcher_errors_total,
    watcher_events_total,
    watcher_reconnects_total,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_BACKOFF_MIN_S: float = 0.25
_BACKOFF_MAX_S: float = 5.0
_BACKOFF_MULTIPLIER: float = 2.0

# Server-side stream timeout; the loop reconnects from the last resourceVersion.
_STREAM_TIMEOUT_S: int = 60


class _GoneError(Exception):
    """The stored resourceVersion is too old to resume from."""


class ResourceWatcher(ABC):
    """Async base class for watching one object by name within one namespace.

    Subclasses implement :meth:`_list_func` (which API list call to use) and
    :meth:`_on_change` (what to publish when the object changed).

    Lifecycle::

        watcher = CustomResourceWatcher(custom_api, "ns1", "svc-a", channels)
        await watcher.start()   # baseline listed, stream running
        ...                     # mutate the cluster, read channels
        await watcher.stop()
    """

    def __init__(
        self,
        api: Any,
        namespace: str,
        name: str,
        channels: SignalChannels,
        watcher_name: str = "base",
    ) -> None:
        """Initialise the watcher.

        Args:
            api: A kubernetes_asyncio API instance (e.g. CustomObjectsApi).
            namespace: Namespace of the watched object.
            name: ``metadata.name`` of the watched object.
            channels: Destination for published signals.
            watcher_name: Short identifier used in log/metric labels.
        """
        self._api = api
        self._namespace = namespace
        self._name = name
        self._channels = channels
        self._watcher_name = watcher_name
        self._log = get_logger(f"watcher.{watcher_name}").bind(namespace=namespace, name=name)

        self._resource_version: str = ""
        self._last_seen: dict[str, Any] | None = None
        self._running: bool = False
        self._task: asyncio.Task[None] | None = None
        self._backoff_s: float = _BACKOFF_MIN_S

    @property
    def field_selector(self) -> str:
        return f"metadata.name={self._name}"

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """List the object as a baseline, then start streaming changes.

        Raises:
            UpstreamReadError: the baseline list call failed.
        """
        if self._running:
            return
        try:
            await self._relist()
        except KUBE_API_ERRORS as exc:
            raise UpstreamReadError(f"watch {self._watcher_name} {self._namespace}/{self._name}: {failure_reason(exc)}") from exc
        self._running = True
        self._task = asyncio.create_task(
            self._watch_loop(),
            name=f"watcher-{self._watcher_name}-{self._namespace}/{self._name}",
        )
        self._log.debug("watcher_started", watcher=self._watcher_name, resource_version=self._resource_version)

    async def stop(self) -> None:
        """Cancel the stream task and wait for it to exit."""
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        self._log.debug("watcher_stopped", watcher=self._watcher_name)

    # ------------------------------------------------------------------
    # Abstract interface for subclasses
    # ------------------------------------------------------------------

    @abstractmethod
    def _list_func(self) -> Callable[..., Coroutine[Any, Any, Any]]:
        """Return the API list function used for the baseline and Watch.stream()."""

    def _list_args(self) -> tuple[Any, ...]:
        """Positional arguments for :meth:`_list_func`."""
        return (self._namespace,)

    @abstractmethod
    def _on_change(self, old: dict[str, Any], new: dict[str, Any]) -> None:
        """Called with two structurally different copies of the object."""

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _publish(self, category: SignalCategory) -> None:
        self._log.info("watch_signal", watcher=self._watcher_name, category=category.value)
        self._channels.publish(WatchSignal(category=category, resource_name=self._name))

    # ------------------------------------------------------------------
    # Internal watch loop
    # ------------------------------------------------------------------

    async def _watch_loop(self) -> None:
        """Main watch loop; runs until :attr:`_running` is False."""
        while self._running:
            try:
                if not await self._run_watch():
                    await self._backoff("empty_stream")
            except asyncio.CancelledError:
                return
            except _GoneError:
                watcher_reconnects_total.labels(watcher=self._watcher_name, reason="410").inc()
                self._log.warning("watch_gone_410", watcher=self._watcher_name)
                await self._relist_or_backoff()
            except ApiException as exc:
                await self._handle_api_exception(exc)
            except Exception as exc:
                if not self._running:
                    return
                self._log.error(
                    "watch_unexpected_error",
                    watcher=self._watcher_name,
                    error=str(exc),
                    exc_info=True,
                )
                watcher_reconnects_total.labels(watcher=self._watcher_name, reason="unexpected").inc()
                await self._backoff("unexpected")

    async def _run_watch(self) -> bool:
        """Open one watch stream and iterate until it terminates or raises.

        Returns False if the stream ended without delivering any event.
        """
        kwargs: dict[str, Any] = {
            "field_selector": self.field_selector,
            "allow_watch_bookmarks": True,
            "timeout_seconds": _STREAM_TIMEOUT_S,
        }
        if self._resource_version:
            kwargs["resource_version"] = self._resource_version

        w = watch.Watch()
        received = False
        try:
            async for raw_event in w.stream(self._list_func(), *self._list_args(), **kwargs):
                if not self._running:
                    return True
                received = True
                event_type: str = raw_event.get("type", "")
                raw = raw_event.get("raw_object", {})
                if not isinstance(raw, dict):
                    raw = {}

                if event_type == "ERROR":
                    if raw.get("code") == 410:
                        raise _GoneError
                    raise ApiException(status=raw.get("code", 500), reason=str(raw.get("message", "")))

                rv = _extract_rv(raw)
                if rv:
                    self._resource_version = rv
                if event_type == "BOOKMARK":
                    continue

                watcher_events_total.labels(watcher=self._watcher_name, event_type=event_type).inc()
                self._observe(event_type, raw)
                self._backoff_s = _BACKOFF_MIN_S

            # Server-side timeout; reconnect from the stored resourceVersion.
            self._log.debug("watch_stream_ended", watcher=self._watcher_name, received=received)
            return received
        finally:
            await w.close()

    def _observe(self, event_type: str, document: dict[str, Any]) -> None:
        """Compare *document* with the last copy seen and report a change."""
        if event_type == "DELETED":
            self._last_seen = None
            return
        previous = self._last_seen
        self._last_seen = document
        if previous is None or previous == document:
            return
        self._on_change(previous, document)

    async def _relist(self) -> None:
        """List the object to refresh the baseline and the resourceVersion."""
        list_func = self._list_func()
        result = await list_func(*self._list_args(), field_selector=self.field_selector)
        listing = self._api.api_client.sanitize_for_serialization(result)
        if not isinstance(listing, dict):
            listing = {}

        self._resource_version = _extract_rv(listing)
        items = listing.get("items") or []
        for item in items:
            if isinstance(item, dict) and _extract_name(item) == self._name:
                self._observe("MODIFIED", item)
                break
        else:
            self._last_seen = None

    async def _relist_or_backoff(self) -> None:
        try:
            await self._relist()
        except KUBE_API_ERRORS as exc:
            watcher_errors_total.labels(watcher=self._watcher_name, status_code=failure_status(exc)).inc()
            self._log.warning("relist_failed", watcher=self._watcher_name, status=failure_status(exc), reason=failure_reason(exc))
            self._resource_version = ""
            await self._backoff("relist_failed")

    async def _handle_api_exception(self, exc: ApiException) -> None:
        """Route an ApiException to the correct recovery path."""
        status = exc.status
        watcher_errors_total.labels(watcher=self._watcher_name, status_code=str(status)).inc()
        watcher_reconnects_total.labels(watcher=self._watcher_name, reason=str(status)).inc()

        if status == 410:
            self._log.warning("watch_gone_410", watcher=self._watcher_name)
            await self._relist_or_backoff()
        elif status in (429, 500, 503, 504):
            self._log.warning("watch_server_error", watcher=self._watcher_name, status=status)
            await self._backoff(str(status))
        else:
            self._log.error("watch_api_error", watcher=self._watcher_name, status=status, reason=exc.reason)
            await self._backoff("api_error")

    async def _backoff(self, reason: str) -> None:
        """Sleep for the current back-off duration, then increase it."""
        delay = min(self._backoff_s, _BACKOFF_MAX_S)
        self._log.debug("watcher_backoff", watcher=self._watcher_name, reason=reason, delay_s=delay)
        await asyncio.sleep(delay)
        self._backoff_s = min(self._backoff_s * _BACKOFF_MULTIPLIER, _BACKOFF_MAX_S)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _extract_rv(raw: dict[str, Any]) -> str:
    """Extract resourceVersion from a raw object or list dict."""
    metadata = raw.get("metadata")
    if isinstance(metadata, dict):
        rv = metadata.get("resourceVersion", "")
        if rv:
            return str(rv)
    return ""


def _extract_name(raw: dict[str, Any]) -> str:
    metadata = raw.get("metadata")
    if isinstance(metadata, dict):
        return str(metadata.get("name", ""))
    return ""
