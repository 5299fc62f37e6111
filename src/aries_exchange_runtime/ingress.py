"""Notification Ingress - runs the webhook application under uvicorn.

The server runs as a task on the caller's event loop, next to the
operator's command flow. ``stop()`` lets in-flight deliveries finish
within the configured shutdown window before the server exits.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

import uvicorn
from starlette.applications import Starlette

logger = logging.getLogger(__name__)


class NotificationIngress:
    """Background uvicorn server for the webhook application."""

    def __init__(
        self,
        app: Starlette,
        host: str = "0.0.0.0",
        port: int = 4455,
        *,
        shutdown_timeout: float = 5.0,
        log_level: str = "warning",
    ) -> None:
        self.host = host
        self.port = port
        self.shutdown_timeout = shutdown_timeout
        config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level=log_level,
            lifespan="off",
            timeout_graceful_shutdown=shutdown_timeout,
        )
        self._server = uvicorn.Server(config)
        self._task: asyncio.Task[None] | None = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, startup_timeout: float = 10.0) -> None:
        """Start serving and wait until the socket is bound."""
        if self.running:
            return
        self._task = asyncio.create_task(self._server.serve(), name="notification-ingress")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + startup_timeout
        while not self._server.started:
            if self._task.done():
                # serve() ended before binding (port in use, bad host, ...)
                self._task.result()
                raise RuntimeError(f"Notification ingress failed to start on {self.url}")
            if loop.time() >= deadline:
                await self.stop()
                raise TimeoutError(f"Notification ingress not started after {startup_timeout}s")
            await asyncio.sleep(0.05)

        logger.info(f"Listening for agent notifications on {self.url}/webhooks")

    async def stop(self) -> None:
        """Stop accepting deliveries and wait for in-flight ones to finish."""
        if self._task is None:
            return
        self._server.should_exit = True
        try:
            await asyncio.wait_for(self._task, timeout=self.shutdown_timeout + 1.0)
        except TimeoutError:
            logger.warning("Notification ingress did not stop in time, cancelling")
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        finally:
            self._task = None
        logger.info("Notification ingress stopped")

    async def __aenter__(self) -> NotificationIngress:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
