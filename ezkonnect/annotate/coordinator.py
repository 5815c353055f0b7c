"""Confirmation Coordinator: annotate a workload and wait for the reconciler.

Each annotate request runs as one :class:`AnnotateRun`::

    IDLE -> MUTATING -> WAITING -> SUCCEEDED
      |        |           +-----> TIMED_OUT
      +--------+-----------------> FAILED

The run reads the InstrumentedApplication to learn the current state,
computes how many reconciliation events the change will cause, starts the
request-scoped watchers, writes the workload annotations and then consumes
watch signals until that count is reached or the request deadline passes.

A timed-out request does not undo the workload update: the annotations stay
applied and the reconciler may still catch up later.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import structlog

from ezkonnect.annotate.annotations import apply_desired_state
from ezkonnect.collector.signals import SignalCategory, SignalChannels
from ezkonnect.errors import (
    ConfirmationTimeoutError,
    EzKonnectError,
    InvalidInputError,
    UpstreamReadError,
    UpstreamWriteError,
)
from ezkonnect.instrumentation.changes import classify_changes
from ezkonnect.instrumentation.documents import extract_observed_state
from ezkonnect.models.config import ConfirmationMode
from ezkonnect.models.instrumentation import (
    AnnotateOutcome,
    ControllerKind,
    CoordinatorState,
    DesiredState,
    InstrumentationTarget,
)
from ezkonnect.observability.metrics import (
    annotate_expected_changes,
    annotate_requests_total,
    confirmation_duration_seconds,
)

_logger = structlog.get_logger(component="annotate_coordinator")

_TERMINAL_STATES: frozenset[CoordinatorState] = frozenset(
    {CoordinatorState.SUCCEEDED, CoordinatorState.TIMED_OUT, CoordinatorState.FAILED}
)

_CATEGORIES: dict[ConfirmationMode, tuple[SignalCategory, ...]] = {
    ConfirmationMode.COUNTED: (SignalCategory.SPEC, SignalCategory.STATUS),
    ConfirmationMode.FIRST_SIGNAL: (SignalCategory.SPEC, SignalCategory.STATUS, SignalCategory.WORKLOAD),
}


class _WatcherProto(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...


class _GatewayProto(Protocol):
    """Minimal Kubernetes interface required by the coordinator."""

    async def get_custom_resource(self, namespace: str, name: str) -> dict[str, Any]: ...

    async def read_workload(self, target: InstrumentationTarget) -> Any: ...

    async def replace_workload(self, target: InstrumentationTarget, workload: Any) -> None: ...

    def custom_resource_watcher(self, target: InstrumentationTarget, channels: SignalChannels) -> _WatcherProto: ...

    def workload_watcher(self, target: InstrumentationTarget, channels: SignalChannels) -> _WatcherProto: ...


class AnnotateRun:
    """State of a single annotate request.

    Not reusable: :meth:`execute` may be awaited once.
    """

    def __init__(
        self,
        gateway: _GatewayProto,
        *,
        name: str,
        namespace: str,
        controller_kind: str,
        container_name: str,
        log_type: str | None,
        service_name: str | None,
        timeout_seconds: float,
        mode: ConfirmationMode,
    ) -> None:
        self._gateway = gateway
        self._name = name
        self._namespace = namespace
        self._controller_kind = controller_kind
        self._container_name = container_name
        self._desired = DesiredState(log_type=log_type, service_name=service_name)
        self._timeout_s = timeout_seconds
        self._mode = mode
        self._log = _logger.bind(name=name, namespace=namespace, controller_kind=controller_kind)

        self.state = CoordinatorState.IDLE
        self.expected_changes: int | None = None
        self.observed_signals: int = 0

    async def execute(self) -> AnnotateOutcome:
        """Run the request to a terminal state.

        Raises:
            InvalidInputError: unsupported controller kind; nothing was touched.
            UpstreamReadError: reading the custom resource or workload failed.
            UpstreamWriteError: updating the workload failed.
            ConfirmationTimeoutError: the workload was updated but the
                reconciler did not confirm before the deadline.
            MalformedResourceDocumentError: the custom resource is malformed.
        """
        if self.state is not CoordinatorState.IDLE:
            raise RuntimeError(f"annotate run already executed (state={self.state.value})")

        loop = asyncio.get_running_loop()
        started_at = loop.time()
        deadline = started_at + self._timeout_s
        try:
            target = self._validate()
            self._transition(CoordinatorState.MUTATING)
            outcome = await self._execute(target, deadline, started_at)
        except EzKonnectError:
            if self.state not in _TERMINAL_STATES:
                self._transition(CoordinatorState.FAILED)
            raise
        except Exception:
            self._transition(CoordinatorState.FAILED)
            raise
        finally:
            annotate_requests_total.labels(
                outcome=self.state.value,
                controller_kind=self._kind_label(),
            ).inc()

        self._log.info(
            "annotate_confirmed",
            expected_changes=outcome.expected_changes,
            observed_signals=outcome.observed_signals,
            elapsed_s=round(outcome.elapsed_s, 3),
        )
        return outcome

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _validate(self) -> InstrumentationTarget:
        kind = ControllerKind.parse(self._controller_kind)
        if kind is None:
            self._log.warning("annotate_invalid_kind")
            raise InvalidInputError(f"unsupported controller_kind {self._controller_kind!r}")
        return InstrumentationTarget(
            name=self._name,
            namespace=self._namespace,
            controller_kind=kind,
            container_name=self._container_name,
        )

    async def _execute(self, target: InstrumentationTarget, deadline: float, started_at: float) -> AnnotateOutcome:
        try:
            async with asyncio.timeout_at(deadline):
                document = await self._gateway.get_custom_resource(target.namespace, target.name)
        except TimeoutError as exc:
            raise UpstreamReadError(f"deadline exceeded reading {target.namespace}/{target.name}") from exc

        observed = extract_observed_state(document, target.container_name)
        kinds = classify_changes(self._desired, observed)
        expected = len(kinds)
        if self._mode is ConfirmationMode.FIRST_SIGNAL:
            expected = min(expected, 1)
        self.expected_changes = expected
        annotate_expected_changes.observe(expected)
        self._log.info(
            "annotate_expected_changes",
            container_name=target.container_name,
            expected_changes=expected,
            changes=[k.value for k in kinds],
            observed_log_type=observed.log_type,
            observed_service_name=observed.service_name,
        )

        channels = SignalChannels()
        watchers = [self._gateway.custom_resource_watcher(target, channels)]
        if self._mode is ConfirmationMode.FIRST_SIGNAL:
            watchers.append(self._gateway.workload_watcher(target, channels))

        try:
            # Watchers are subscribed before the workload write so that a fast
            # reconciler cannot react before the stream is open.
            try:
                async with asyncio.timeout_at(deadline):
                    for watcher in watchers:
                        await watcher.start()
            except TimeoutError as exc:
                raise UpstreamReadError(f"deadline exceeded opening watch on {target.name}") from exc

            await self._mutate(target, deadline)
            self._transition(CoordinatorState.WAITING)
            mutated_at = asyncio.get_running_loop().time()
            await self._wait(target, channels, expected, deadline, mutated_at)
        finally:
            for watcher in watchers:
                await watcher.stop()

        self._transition(CoordinatorState.SUCCEEDED)
        finished_at = asyncio.get_running_loop().time()
        confirmation_duration_seconds.labels(outcome=self.state.value).observe(finished_at - mutated_at)
        return AnnotateOutcome(
            target=target,
            desired=self._desired,
            expected_changes=expected,
            observed_signals=self.observed_signals,
            elapsed_s=finished_at - started_at,
        )

    async def _mutate(self, target: InstrumentationTarget, deadline: float) -> None:
        try:
            async with asyncio.timeout_at(deadline):
                workload = await self._gateway.read_workload(target)
        except TimeoutError as exc:
            raise UpstreamReadError(f"deadline exceeded reading {target.name}") from exc

        apply_desired_state(workload, self._desired)

        try:
            async with asyncio.timeout_at(deadline):
                await self._gateway.replace_workload(target, workload)
        except TimeoutError as exc:
            raise UpstreamWriteError(f"deadline exceeded updating {target.name}") from exc
        self._log.info(
            "workload_annotated",
            log_type=self._desired.log_type,
            service_name=self._desired.service_name,
        )

    async def _wait(
        self,
        target: InstrumentationTarget,
        channels: SignalChannels,
        expected: int,
        deadline: float,
        mutated_at: float,
    ) -> None:
        categories = _CATEGORIES[self._mode]
        try:
            async with asyncio.timeout_at(deadline):
                while self.observed_signals < expected:
                    signals = await channels.next_signals(categories)
                    self.observed_signals += len(signals)
                    self._log.debug(
                        "annotate_signals",
                        categories=[s.category.value for s in signals],
                        observed_signals=self.observed_signals,
                        expected_changes=expected,
                    )
        except TimeoutError as exc:
            self._transition(CoordinatorState.TIMED_OUT)
            confirmation_duration_seconds.labels(outcome=self.state.value).observe(
                asyncio.get_running_loop().time() - mutated_at
            )
            self._log.error(
                "annotate_timeout",
                observed_signals=self.observed_signals,
                expected_changes=expected,
            )
            raise ConfirmationTimeoutError(target.name) from exc

    def _kind_label(self) -> str:
        """Metric label for the requested kind; rejected kinds share one series."""
        kind = ControllerKind.parse(self._controller_kind)
        return kind.value if kind is not None else "invalid"

    def _transition(self, state: CoordinatorState) -> None:
        self._log.debug("annotate_state", from_state=self.state.value, to_state=state.value)
        self.state = state


class ConfirmationCoordinator:
    """Creates and runs :class:`AnnotateRun` instances against a shared gateway."""

    def __init__(
        self,
        gateway: _GatewayProto,
        timeout_seconds: float = 15.0,
        mode: ConfirmationMode = ConfirmationMode.COUNTED,
    ) -> None:
        self._gateway = gateway
        self._timeout_s = timeout_seconds
        self._mode = mode

    def new_run(
        self,
        *,
        name: str,
        namespace: str,
        controller_kind: str,
        container_name: str,
        log_type: str | None = None,
        service_name: str | None = None,
    ) -> AnnotateRun:
        return AnnotateRun(
            self._gateway,
            name=name,
            namespace=namespace,
            controller_kind=controller_kind,
            container_name=container_name,
            log_type=log_type,
            service_name=service_name,
            timeout_seconds=self._timeout_s,
            mode=self._mode,
        )

    async def annotate(self, **request: Any) -> AnnotateOutcome:
        """Shorthand for ``new_run(**request).execute()``."""
        return await self.new_run(**request).execute()
