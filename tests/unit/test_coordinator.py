"""Tests for ezkonnect.annotate.coordinator."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from ezkonnect.annotate.coordinator import AnnotateRun, ConfirmationCoordinator
from ezkonnect.collector.signals import SignalCategory, SignalChannels, WatchSignal
from ezkonnect.errors import (
    ConfirmationTimeoutError,
    InvalidInputError,
    MalformedResourceDocumentError,
    UpstreamReadError,
    UpstreamWriteError,
)
from ezkonnect.k8s.resources import INSTRUMENTATION_ANNOTATION, SERVICE_NAME_ANNOTATION
from ezkonnect.models.config import ConfirmationMode
from ezkonnect.models.instrumentation import ControllerKind, CoordinatorState, InstrumentationTarget
from ezkonnect.observability.metrics import annotate_requests_total

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class _FakeWatcher:
    def __init__(self, kind: str, fail: Exception | None = None) -> None:
        self.kind = kind
        self.started = False
        self.stopped = False
        self._fail = fail

    async def start(self) -> None:
        if self._fail is not None:
            raise self._fail
        self.started = True

    async def stop(self) -> None:
        self.stopped = True


class _FakeGateway:
    """In-memory gateway; a workload write emits *emit* signals on the watch channels."""

    def __init__(
        self,
        document: dict[str, Any] | None = None,
        emit: list[SignalCategory] | None = None,
        emit_delay: float = 0.0,
    ) -> None:
        self.document = document if document is not None else _cr()
        self.emit = emit or []
        self.emit_delay = emit_delay
        self.workload = SimpleNamespace(
            spec=SimpleNamespace(template=SimpleNamespace(metadata=SimpleNamespace(annotations={"team": "a"})))
        )
        self.read_error: Exception | None = None
        self.write_error: Exception | None = None
        self.get_calls: list[tuple[str, str]] = []
        self.replaced: list[InstrumentationTarget] = []
        self.watchers: list[_FakeWatcher] = []
        self.watcher_error: Exception | None = None
        self._channels: SignalChannels | None = None

    async def get_custom_resource(self, namespace: str, name: str) -> dict[str, Any]:
        self.get_calls.append((namespace, name))
        if self.read_error is not None:
            raise self.read_error
        return self.document

    async def read_workload(self, target: InstrumentationTarget) -> Any:
        return self.workload

    async def replace_workload(self, target: InstrumentationTarget, workload: Any) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.replaced.append(target)
        assert self._channels is not None
        loop = asyncio.get_running_loop()
        for category in self.emit:
            signal = WatchSignal(category=category, resource_name=target.name)
            if self.emit_delay:
                loop.call_later(self.emit_delay, self._channels.publish, signal)
            else:
                self._channels.publish(signal)

    def custom_resource_watcher(self, target: InstrumentationTarget, channels: SignalChannels) -> _FakeWatcher:
        self._channels = channels
        watcher = _FakeWatcher("custom_resource", self.watcher_error)
        self.watchers.append(watcher)
        return watcher

    def workload_watcher(self, target: InstrumentationTarget, channels: SignalChannels) -> _FakeWatcher:
        self._channels = channels
        watcher = _FakeWatcher("workload")
        self.watchers.append(watcher)
        return watcher


def _cr(log_type: str = "", service_name: str = "") -> dict[str, Any]:
    return {
        "metadata": {"name": "checkout", "namespace": "shop"},
        "spec": {
            "logType": log_type,
            "languages": [{"containerName": "app", "language": "java", "activeServiceName": service_name}],
        },
    }


def _run(
    gateway: _FakeGateway,
    *,
    controller_kind: str = "deployment",
    log_type: str | None = "app",
    service_name: str | None = "svcA",
    timeout: float = 1.0,
    mode: ConfirmationMode = ConfirmationMode.COUNTED,
) -> AnnotateRun:
    return ConfirmationCoordinator(gateway, timeout_seconds=timeout, mode=mode).new_run(
        name="checkout",
        namespace="shop",
        controller_kind=controller_kind,
        container_name="app",
        log_type=log_type,
        service_name=service_name,
    )


_ENABLE_SIGNALS = [SignalCategory.SPEC, SignalCategory.SPEC, SignalCategory.STATUS]

# ---------------------------------------------------------------------------
# Successful confirmation
# ---------------------------------------------------------------------------


class TestAnnotateSuccess:
    async def test_enable_waits_for_three_signals(self) -> None:
        gateway = _FakeGateway(emit=_ENABLE_SIGNALS)
        run = _run(gateway)

        outcome = await run.execute()

        assert run.state is CoordinatorState.SUCCEEDED
        assert outcome.expected_changes == 3
        assert outcome.observed_signals == 3
        assert outcome.target.controller_kind is ControllerKind.DEPLOYMENT
        assert gateway.get_calls == [("shop", "checkout")]

    async def test_annotations_written_to_pod_template(self) -> None:
        gateway = _FakeGateway(emit=_ENABLE_SIGNALS)
        await _run(gateway).execute()

        annotations = gateway.workload.spec.template.metadata.annotations
        assert annotations[SERVICE_NAME_ANNOTATION] == "svcA"
        assert annotations[INSTRUMENTATION_ANNOTATION] == "true"
        assert annotations["team"] == "a"

    async def test_signals_arriving_later_are_awaited(self) -> None:
        gateway = _FakeGateway(emit=_ENABLE_SIGNALS, emit_delay=0.02)
        outcome = await _run(gateway).execute()
        assert outcome.observed_signals == 3

    async def test_rollback_waits_for_disable(self) -> None:
        gateway = _FakeGateway(
            document=_cr(log_type="app", service_name="svcA"),
            emit=[SignalCategory.SPEC, SignalCategory.STATUS],
        )
        run = _run(gateway, log_type="app", service_name=None)

        outcome = await run.execute()

        assert outcome.expected_changes == 2
        annotations = gateway.workload.spec.template.metadata.annotations
        assert annotations[INSTRUMENTATION_ANNOTATION] == "rollback"
        assert SERVICE_NAME_ANNOTATION not in annotations

    async def test_no_change_returns_without_signals(self) -> None:
        gateway = _FakeGateway(document=_cr(log_type="app", service_name="svcA"))
        run = _run(gateway)

        outcome = await run.execute()

        assert run.state is CoordinatorState.SUCCEEDED
        assert outcome.expected_changes == 0
        assert len(gateway.replaced) == 1
        assert all(w.started and w.stopped for w in gateway.watchers)

    async def test_controller_kind_is_case_insensitive(self) -> None:
        gateway = _FakeGateway(emit=_ENABLE_SIGNALS)
        outcome = await _run(gateway, controller_kind="StatefulSet").execute()
        assert outcome.target.controller_kind is ControllerKind.STATEFULSET

    async def test_watchers_stopped_after_success(self) -> None:
        gateway = _FakeGateway(emit=_ENABLE_SIGNALS)
        await _run(gateway).execute()
        assert [w.kind for w in gateway.watchers] == ["custom_resource"]
        assert gateway.watchers[0].stopped

    async def test_run_cannot_execute_twice(self) -> None:
        gateway = _FakeGateway(emit=_ENABLE_SIGNALS)
        run = _run(gateway)
        await run.execute()
        with pytest.raises(RuntimeError):
            await run.execute()

    async def test_annotate_shorthand(self) -> None:
        gateway = _FakeGateway(emit=_ENABLE_SIGNALS)
        coordinator = ConfirmationCoordinator(gateway, timeout_seconds=1.0)
        outcome = await coordinator.annotate(
            name="checkout",
            namespace="shop",
            controller_kind="deployment",
            container_name="app",
            log_type="app",
            service_name="svcA",
        )
        assert outcome.observed_signals == 3


# ---------------------------------------------------------------------------
# Timeout
# ---------------------------------------------------------------------------


class TestAnnotateTimeout:
    async def test_too_few_signals_times_out(self) -> None:
        gateway = _FakeGateway(emit=[SignalCategory.SPEC])
        run = _run(gateway, timeout=0.1)

        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            await run.execute()

        assert str(exc_info.value) == "timeout: checkout"
        assert run.state is CoordinatorState.TIMED_OUT
        assert run.observed_signals == 1
        assert run.expected_changes == 3

    async def test_timeout_keeps_workload_annotations(self) -> None:
        gateway = _FakeGateway()
        with pytest.raises(ConfirmationTimeoutError):
            await _run(gateway, timeout=0.05).execute()

        annotations = gateway.workload.spec.template.metadata.annotations
        assert annotations[SERVICE_NAME_ANNOTATION] == "svcA"
        assert all(w.stopped for w in gateway.watchers)

    async def test_workload_signals_ignored_in_counted_mode(self) -> None:
        gateway = _FakeGateway(emit=[SignalCategory.WORKLOAD] * 3)
        with pytest.raises(ConfirmationTimeoutError):
            await _run(gateway, timeout=0.05).execute()


# ---------------------------------------------------------------------------
# Failures before confirmation
# ---------------------------------------------------------------------------


class TestAnnotateFailures:
    async def test_unsupported_kind_touches_nothing(self) -> None:
        gateway = _FakeGateway()
        run = _run(gateway, controller_kind="CronJob")

        with pytest.raises(InvalidInputError, match="CronJob"):
            await run.execute()

        assert run.state is CoordinatorState.FAILED
        assert gateway.get_calls == []
        assert gateway.watchers == []
        assert gateway.replaced == []

    async def test_custom_resource_read_failure(self) -> None:
        gateway = _FakeGateway()
        gateway.read_error = UpstreamReadError("instrumentedapplications shop/checkout: Not Found")
        run = _run(gateway)

        with pytest.raises(UpstreamReadError):
            await run.execute()

        assert run.state is CoordinatorState.FAILED
        assert gateway.replaced == []

    async def test_workload_write_failure_stops_watchers(self) -> None:
        gateway = _FakeGateway()
        gateway.write_error = UpstreamWriteError("deployment shop/checkout: Conflict")
        run = _run(gateway)

        with pytest.raises(UpstreamWriteError):
            await run.execute()

        assert run.state is CoordinatorState.FAILED
        assert all(w.stopped for w in gateway.watchers)

    async def test_watch_start_failure_skips_write(self) -> None:
        gateway = _FakeGateway()
        gateway.watcher_error = UpstreamReadError("watch custom_resource shop/checkout: Forbidden")

        with pytest.raises(UpstreamReadError):
            await _run(gateway).execute()

        assert gateway.replaced == []

    async def test_malformed_resource_fails_before_write(self) -> None:
        gateway = _FakeGateway(document={"spec": {"languages": "app"}})
        run = _run(gateway)

        with pytest.raises(MalformedResourceDocumentError):
            await run.execute()

        assert run.state is CoordinatorState.FAILED
        assert gateway.replaced == []


# ---------------------------------------------------------------------------
# First-signal confirmation mode
# ---------------------------------------------------------------------------


class TestFirstSignalMode:
    async def test_workload_signal_confirms(self) -> None:
        gateway = _FakeGateway(emit=[SignalCategory.WORKLOAD])
        run = _run(gateway, mode=ConfirmationMode.FIRST_SIGNAL)

        outcome = await run.execute()

        assert outcome.expected_changes == 1
        assert outcome.observed_signals == 1
        assert sorted(w.kind for w in gateway.watchers) == ["custom_resource", "workload"]
        assert all(w.stopped for w in gateway.watchers)

    async def test_no_change_needs_no_signal(self) -> None:
        gateway = _FakeGateway(document=_cr(log_type="app", service_name="svcA"))
        outcome = await _run(gateway, mode=ConfirmationMode.FIRST_SIGNAL).execute()
        assert outcome.expected_changes == 0


# ---------------------------------------------------------------------------
# Request metrics
# ---------------------------------------------------------------------------


def _kind_labels() -> set[str]:
    return {
        sample.labels["controller_kind"]
        for metric in annotate_requests_total.collect()
        for sample in metric.samples
        if sample.name.endswith("_total")
    }


class TestRequestMetrics:
    async def test_rejected_kinds_share_one_label(self) -> None:
        for i in range(20):
            with pytest.raises(InvalidInputError):
                await _run(_FakeGateway(), controller_kind=f"kind-{i}").execute()

        labels = _kind_labels()
        assert "invalid" in labels
        assert not any(label.startswith("kind-") for label in labels)

    async def test_accepted_kind_labelled_by_canonical_value(self) -> None:
        await _run(_FakeGateway(emit=_ENABLE_SIGNALS), controller_kind=" StatefulSet ").execute()

        labels = _kind_labels()
        assert "statefulset" in labels
        assert labels <= {"deployment", "statefulset", "invalid"}
