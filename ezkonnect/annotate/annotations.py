"""Pod-template annotation changes that request instrumentation from the reconciler."""

from __future__ import annotations

from typing import Any

from kubernetes_asyncio.client import V1ObjectMeta

from ezkonnect.k8s.resources import (
    INSTRUMENT_ACTION,
    INSTRUMENTATION_ANNOTATION,
    LOG_TYPE_ANNOTATION,
    ROLLBACK_ACTION,
    SERVICE_NAME_ANNOTATION,
)
from ezkonnect.models.instrumentation import DesiredState


def desired_annotations(current: dict[str, str] | None, desired: DesiredState) -> dict[str, str]:
    """Return a copy of *current* rewritten to request *desired*.

    Annotations outside the instrumentation keys are left untouched.
    """
    updated = dict(current or {})

    if desired.log_type:
        updated[LOG_TYPE_ANNOTATION] = desired.log_type
    else:
        updated.pop(LOG_TYPE_ANNOTATION, None)

    updated[INSTRUMENTATION_ANNOTATION] = INSTRUMENT_ACTION if desired.instrumented else ROLLBACK_ACTION

    if desired.service_name:
        updated[SERVICE_NAME_ANNOTATION] = desired.service_name
    else:
        updated.pop(SERVICE_NAME_ANNOTATION, None)

    return updated


def apply_desired_state(workload: Any, desired: DesiredState) -> None:
    """Rewrite the pod-template annotations of a Deployment/StatefulSet model in place."""
    template = workload.spec.template
    if template.metadata is None:
        template.metadata = V1ObjectMeta()
    template.metadata.annotations = desired_annotations(template.metadata.annotations, desired)
