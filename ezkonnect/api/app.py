"""FastAPI application factory."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse, Response

from ezkonnect.api.routes import router
from ezkonnect.errors import EzKonnectError, InvalidInputError, MalformedResourceDocumentError

_log = structlog.get_logger(component="api.app")


async def _handle_ezkonnect_error(request: Request, exc: EzKonnectError) -> PlainTextResponse:
    if isinstance(exc, MalformedResourceDocumentError):
        _log.error("malformed_resource_document", path=request.url.path, error=str(exc), exc_info=exc)
    else:
        _log.warning("request_failed", path=request.url.path, status=exc.status_code, error=str(exc))
    return PlainTextResponse(str(exc), status_code=exc.status_code)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> PlainTextResponse:
    fields = ", ".join(".".join(str(p) for p in err.get("loc", ())) for err in exc.errors())
    error = InvalidInputError(f"malformed request body ({fields})" if fields else "malformed request body")
    _log.warning("request_invalid", path=request.url.path, error=str(error))
    return PlainTextResponse(str(error), status_code=error.status_code)


def create_app(
    coordinator: Any,
    gateway: Any,
    metrics_enabled: bool = True,
) -> FastAPI:
    """Build the FastAPI app with its collaborators attached to ``app.state``.

    Args:
        coordinator: A :class:`~ezkonnect.annotate.ConfirmationCoordinator`.
        gateway: A :class:`~ezkonnect.k8s.gateway.KubernetesGateway`.
        metrics_enabled: Serve the Prometheus exposition at ``/metrics``.
    """
    from ezkonnect import __version__

    app = FastAPI(title="ezkonnect", version=__version__)
    app.state.coordinator = coordinator
    app.state.gateway = gateway

    app.exception_handler(EzKonnectError)(_handle_ezkonnect_error)
    app.exception_handler(RequestValidationError)(_handle_validation_error)
    app.include_router(router, prefix="/api/v1")

    if metrics_enabled:
        from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

        @app.get("/metrics", include_in_schema=False)
        async def get_metrics() -> Response:
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
