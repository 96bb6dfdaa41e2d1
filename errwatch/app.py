"""Application bootstrap for errwatch.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → delivery runner → store backend
              → notifications → service (with reporter) → REST

Shutdown is fully graceful: components are stopped in reverse startup order.
Each component's start/stop error is caught and logged independently so that
a single component failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from errwatch.background import BackgroundRunner
from errwatch.config import load_config
from errwatch.models.config import ErrwatchConfig
from errwatch.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from errwatch.notifications import NotificationDispatcher
    from errwatch.service import ErrorService
    from errwatch.store.backends import KeyValueBackend

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class ErrwatchApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self, config: ErrwatchConfig | None = None) -> None:
        self.config: ErrwatchConfig | None = config

        self._runner: BackgroundRunner | None = None
        self._backend: KeyValueBackend | None = None
        self._notifications: NotificationDispatcher | None = None
        self._service: ErrorService | None = None
        self._rest_server: object | None = None

        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def service(self) -> ErrorService | None:
        return self._service

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self, serve: bool = True) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        The caller (main()) re-raises this as a non-zero exit.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("errwatch starting", version=_errwatch_version())

        # --- 3. Background delivery ---------------------------------------
        self._runner = BackgroundRunner(name="errwatch-delivery")

        # --- 4. Store backend -------------------------------------------
        await self._start_backend()

        # --- 5. Notification dispatcher ---------------------------------
        await self._start_notifications()

        # --- 6. Error service -------------------------------------------
        await self._start_service()

        # --- 7. REST API ------------------------------------------------
        if serve:
            await self._start_rest()

        self._running = True
        self._log.info("errwatch started", port=self.config.api.port, serving=serve)

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_backend(self) -> None:
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting store backend")
        try:
            from errwatch.store.backends import build_backend

            self._backend = build_backend(self.config.store.backend, self.config.store.path)
            self._log.info(
                "store backend started",
                backend=self._backend.backend_name,
                path=self.config.store.path,
            )
        except Exception as exc:
            raise _ComponentError("store", exc) from exc

    async def _start_notifications(self) -> None:
        """Build the dispatcher. Failure here is not fatal; alerts stay local."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting notifications")
        try:
            from errwatch.notifications import build_notification_dispatcher

            dispatcher = build_notification_dispatcher(self.config.notifications, runner=self._runner)
            permissions = await dispatcher.request_permissions()
            self._notifications = dispatcher
            self._log.info(
                "notifications started",
                channels=len(dispatcher.channels),
                permitted=sorted(name for name, ok in permissions.items() if ok),
            )
        except Exception as exc:
            self._log.warning("notifications unavailable", error=str(exc))
            self._notifications = None

    async def _start_service(self) -> None:
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting error service")
        try:
            from errwatch.service import ErrorService

            self._service = ErrorService.from_config(
                self.config,
                backend=self._backend,
                notifier=self._notifications,
                runner=self._runner,
            )
            self._log.info(
                "error service started",
                records=len(self._service.records()),
                rules=len(self.config.alert_rules),
                reporting=bool(self.config.reporter.endpoint),
            )
        except Exception as exc:
            raise _ComponentError("service", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        assert self._service is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn

            from errwatch.api import build_app

            fastapi_app = build_app(service=self._service, config=self.config)
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
        """Gracefully stop all components in reverse startup order.

        Each component's stop is wrapped independently; a failure in one
        component's teardown does not prevent the others from stopping.
        """
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("errwatch shutting down")

        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        if self._background_tasks:
            _done, pending = await asyncio.wait(self._background_tasks, timeout=_SHUTDOWN_GRACE_SECONDS)
            for task in pending:
                task.cancel()
        self._background_tasks.clear()
        self._rest_server = None

        if self._service is not None:
            await self._service.flush_reports()
        if self._runner is not None:
            await self._runner.drain()

        await self._stop_component("service", self._service)
        await self._stop_component("notifications", self._notifications)
        await self._stop_component("runner", self._runner)
        self._backend = None

        log.info("errwatch stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() or close() on a component, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None) or getattr(component, "close", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))


def _errwatch_version() -> str:
    from errwatch import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = ErrwatchApp()
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
        while app.running:
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
        if app.running:
            await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
