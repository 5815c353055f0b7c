"""Expected-change calculation.

Given what the caller wants and what the custom resource currently records,
work out how many reconciliation events the reconciler will emit once the
workload annotations are updated.  An annotate request waits for exactly that
many qualifying watch signals.
"""

from __future__ import annotations

from ezkonnect.models.instrumentation import ChangeKind, DesiredState, ObservedState

MAX_EXPECTED_CHANGES: int = len(ChangeKind)


def classify_changes(desired: DesiredState, observed: ObservedState) -> list[ChangeKind]:
    """List the reconciliation events that moving *observed* to *desired* causes.

    Absent and empty strings compare equal.  Enabling or disabling
    instrumentation adds a status transition on top of the service-name
    change.
    """
    kinds: list[ChangeKind] = []

    if (desired.log_type or "") != (observed.log_type or ""):
        kinds.append(ChangeKind.LOG_TYPE_CHANGED)

    if (desired.service_name or "") != (observed.service_name or ""):
        kinds.append(ChangeKind.SERVICE_NAME_CHANGED)

    if desired.instrumented and not observed.instrumented:
        kinds.append(ChangeKind.INSTRUMENTATION_ENABLED)
    elif observed.instrumented and not desired.instrumented:
        kinds.append(ChangeKind.INSTRUMENTATION_DISABLED)

    return kinds


def compute_expected_changes(desired: DesiredState, observed: ObservedState) -> int:
    """Number of qualifying events to wait for; 0 means the request is a no-op."""
    return len(classify_changes(desired, observed))
