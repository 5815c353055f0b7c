"""Names of the Kubernetes objects and annotations ezkonnect reads and writes."""

from __future__ import annotations

# InstrumentedApplication custom resource, maintained by the reconciler and
# named after the workload it describes.
CR_GROUP = "logz.io"
CR_VERSION = "v1alpha1"
CR_PLURAL = "instrumentedapplications"

# Pod-template annotations on the workload.
LOG_TYPE_ANNOTATION = "logz.io/application_type"
INSTRUMENTATION_ANNOTATION = "logz.io/traces_instrument"
SERVICE_NAME_ANNOTATION = "logz.io/service-name"

INSTRUMENT_ACTION = "true"
ROLLBACK_ACTION = "rollback"
