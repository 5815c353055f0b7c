"""FastAPI route handlers for the ezkonnect REST API.

All routes are registered on a single APIRouter that ``app.py`` mounts
under the ``/api/v1`` prefix.

Errors are raised as :class:`~ezkonnect.errors.EzKonnectError` subclasses and
rendered by the handlers in ``app.py`` as plain text ``<tag>: <detail>``:
    400 invalid input             -- unsupported controller kind, bad body
    500 error getting resource    -- Kubernetes get/list failed
    500 error updating resource   -- Kubernetes update failed
    500 timeout                   -- reconciler did not confirm in time
    500 malformed resource document
"""

from __future__ import annotations

from dataclasses import asdict

import structlog
from fastapi import APIRouter, Request

from ezkonnect.api.schemas import (
    AnnotateRequest,
    AnnotateResponse,
    HealthStatus,
    InstrumentationStateResponse,
)
from ezkonnect.errors import EzKonnectError
from ezkonnect.instrumentation.documents import project_records
from ezkonnect.observability.logging import request_context
from ezkonnect.observability.metrics import state_requests_total

_log = structlog.get_logger(component="api.routes")

router = APIRouter()


@router.post(
    "/annotate",
    response_model=AnnotateResponse,
    summary="Change workload instrumentation",
    description=(
        "Writes log type and traces instrumentation annotations on a Deployment "
        "or StatefulSet pod template and waits until the reconciler has applied "
        "the change to the workload's InstrumentedApplication."
    ),
)
async def post_annotate(request: Request, body: AnnotateRequest) -> AnnotateResponse:
    """``POST /api/v1/annotate``"""
    coordinator = request.app.state.coordinator
    run = coordinator.new_run(
        name=body.name,
        namespace=body.namespace,
        controller_kind=body.controller_kind,
        container_name=body.container_name,
        log_type=body.log_type,
        service_name=body.service_name,
    )
    with request_context(
        name=body.name,
        namespace=body.namespace,
        controller_kind=body.controller_kind,
        container_name=body.container_name,
    ):
        await run.execute()
    return AnnotateResponse(
        name=body.name,
        namespace=body.namespace,
        controller_kind=body.controller_kind,
        container_name=body.container_name,
        log_type=body.log_type or "",
        service_name=body.service_name or "",
    )


@router.get(
    "/state",
    response_model=list[InstrumentationStateResponse],
    summary="List instrumentation state",
    description="One entry per container recorded on every InstrumentedApplication in the cluster.",
)
async def get_state(request: Request) -> list[InstrumentationStateResponse]:
    """``GET /api/v1/state``"""
    gateway = request.app.state.gateway
    try:
        documents = await gateway.list_custom_resources()
        records = [record for document in documents for record in project_records(document)]
    except EzKonnectError:
        state_requests_total.labels(outcome="error").inc()
        raise
    state_requests_total.labels(outcome="ok").inc()
    _log.debug("state_listed", resources=len(documents), records=len(records))
    return [InstrumentationStateResponse(**asdict(record)) for record in records]


@router.get(
    "/health",
    response_model=HealthStatus,
    summary="Health check",
    description="Lightweight liveness probe.  Always returns 200 if the process is up.",
)
async def get_health() -> HealthStatus:
    """``GET /api/v1/health``"""
    from ezkonnect import __version__

    return HealthStatus(status="ok", version=__version__)
