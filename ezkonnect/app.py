"""Application bootstrap for ezkonnect.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → gateway → coordinator → REST

Shutdown is fully graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from ezkonnect.config import load_config
from ezkonnect.models.config import EzKonnectConfig
from ezkonnect.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from ezkonnect.annotate.coordinator import ConfirmationCoordinator
    from ezkonnect.k8s.gateway import KubernetesGateway

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class EzKonnectApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` on an app that was never started (or already stopped) is safe.
    """

    def __init__(self) -> None:
        self.config: EzKonnectConfig | None = None

        self._gateway: KubernetesGateway | None = None
        self._coordinator: ConfirmationCoordinator | None = None
        self._rest_server: object | None = None

        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: FilteringBoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a component cannot start.
        """
        self.config = load_config()

        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("ezkonnect starting", version=_ezkonnect_version())

        await self._start_k8s_client()
        await self._start_coordinator()
        await self._start_rest()

        self._running = True
        self._log.info("ezkonnect started", port=self.config.api.port)

    async def _start_k8s_client(self) -> None:
        """Load credentials and build the shared gateway around one ApiClient."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting k8s client")
        try:
            from kubernetes_asyncio import client as k8s_client

            from ezkonnect.k8s.gateway import KubernetesGateway, load_kube_credentials

            source = await load_kube_credentials(self.config.kube)
            self._gateway = KubernetesGateway(k8s_client.ApiClient())
            self._log.info("k8s client configured", source=source)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_coordinator(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._gateway is not None
        try:
            from ezkonnect.annotate import ConfirmationCoordinator

            self._coordinator = ConfirmationCoordinator(
                gateway=self._gateway,
                timeout_seconds=self.config.annotate.timeout_seconds,
                mode=self.config.annotate.confirmation_mode,
            )
            self._log.info(
                "confirmation coordinator started",
                timeout_seconds=self.config.annotate.timeout_seconds,
                mode=self.config.annotate.confirmation_mode.value,
            )
        except Exception as exc:
            raise _ComponentError("coordinator", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        assert self._coordinator is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn

            from ezkonnect.api import create_app

            fastapi_app = create_app(
                coordinator=self._coordinator,
                gateway=self._gateway,
                metrics_enabled=self.config.metrics_enabled,
            )
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("ezkonnect shutting down")
        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]

        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        self._rest_server = None
        self._coordinator = None
        await self._stop_gateway()

        log.info("ezkonnect stopped")

    async def _stop_gateway(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._gateway is None:
            return
        log = self._log or get_logger("app")
        try:
            await asyncio.wait_for(self._gateway.close(), timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component="k8s_client", timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._gateway = None


def _ezkonnect_version() -> str:
    from ezkonnect import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = EzKonnectApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app._running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()


def run() -> None:
    """Console-script entrypoint for ``ezkonnect-server``."""
    asyncio.run(main())
