"""Instrumentation state data structures.

Every value here is scoped to a single annotate request: it is created when
the request arrives and discarded with the response.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ControllerKind(StrEnum):
    """Workload kinds whose pod template can be annotated."""

    DEPLOYMENT = "deployment"
    STATEFULSET = "statefulset"

    @classmethod
    def parse(cls, value: str) -> ControllerKind | None:
        """Match *value* case-insensitively; return None for unsupported kinds."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class ChangeKind(StrEnum):
    """What a single workload mutation is expected to make the reconciler do.

    Each kind accounts for exactly one reconciliation event.
    ``INSTRUMENTATION_ENABLED`` and ``INSTRUMENTATION_DISABLED`` come on top of
    ``SERVICE_NAME_CHANGED``: the reconciler reports them through a separate
    status update.
    """

    LOG_TYPE_CHANGED = "log_type_changed"
    SERVICE_NAME_CHANGED = "service_name_changed"
    INSTRUMENTATION_ENABLED = "instrumentation_enabled"
    INSTRUMENTATION_DISABLED = "instrumentation_disabled"


class CoordinatorState(StrEnum):
    """Lifecycle of one annotate request."""

    IDLE = "idle"
    MUTATING = "mutating"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True)
class InstrumentationTarget:
    """The workload container an annotate request acts on."""

    name: str
    namespace: str
    controller_kind: ControllerKind
    container_name: str


@dataclass(frozen=True)
class DesiredState:
    """Instrumentation the caller asked for.

    An empty or missing ``service_name`` means traces instrumentation should
    be disabled for the container.
    """

    log_type: str | None = None
    service_name: str | None = None

    @property
    def instrumented(self) -> bool:
        return bool(self.service_name)


@dataclass(frozen=True)
class ObservedState:
    """Instrumentation currently recorded on the custom resource."""

    log_type: str = ""
    service_name: str | None = None

    @property
    def instrumented(self) -> bool:
        return bool(self.service_name)


@dataclass(frozen=True)
class InstrumentationRecord:
    """One flattened container entry of an InstrumentedApplication resource."""

    name: str
    namespace: str
    controller_kind: str
    container_name: str | None = None
    traces_instrumented: bool = False
    metrics_instrumented: bool = False
    application: str | None = None
    language: str | None = None
    service_name: str | None = None
    log_type: str | None = None


@dataclass(frozen=True)
class AnnotateOutcome:
    """Result of a confirmed annotate request.

    Attributes:
        target:           The workload container that was annotated.
        desired:          The state that was applied to the workload.
        expected_changes: Reconciliation events the request waited for.
        observed_signals: Qualifying watch signals actually consumed.
        elapsed_s:        Wall time from request entry to confirmation.
    """

    target: InstrumentationTarget
    desired: DesiredState
    expected_changes: int
    observed_signals: int
    elapsed_s: float
