"""Pydantic request/response models for the ezkonnect REST API.

Field names are the snake_case JSON keys used on the wire.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AnnotateRequest(BaseModel):
    """Request body for ``POST /api/v1/annotate``.

    ``controller_kind`` is validated by the coordinator, not here, so that an
    unsupported kind is reported as ``invalid input`` like every other
    rejected request.
    """

    name: str = Field(..., description="Workload name.", examples=["checkout"])
    namespace: str = Field(..., description="Workload namespace.", examples=["shop"])
    controller_kind: str = Field(
        ...,
        description="Workload kind, matched case-insensitively.",
        examples=["deployment", "statefulset"],
    )
    container_name: str = Field(..., description="Container whose instrumentation changes.")
    log_type: str | None = Field(
        default=None,
        description="Desired log type; empty or missing removes it.",
        examples=["nginx"],
    )
    service_name: str | None = Field(
        default=None,
        description="Desired traces service name; empty or missing rolls instrumentation back.",
        examples=["checkout"],
    )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AnnotateResponse(BaseModel):
    """Echo of the state applied by a confirmed annotate request."""

    name: str
    namespace: str
    controller_kind: str
    container_name: str
    log_type: str
    service_name: str


class InstrumentationStateResponse(BaseModel):
    """One container entry returned by ``GET /api/v1/state``."""

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


class HealthStatus(BaseModel):
    """Response body for ``GET /api/v1/health``."""

    status: str = Field(..., description="Always ``ok`` while the process is running.", examples=["ok"])
    version: str = Field(..., description="ezkonnect version string.", examples=["0.3.0"])
