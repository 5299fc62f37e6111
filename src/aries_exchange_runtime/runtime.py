"""Exchange runtime - wires the components of one controller together.

    settings → AdminClient → CommandDriver
                  ↑               ↓ (reads)
    agent → NotificationIngress → TopicRouter → ExchangeStateStore
                                       ↓
                                   EventBus → SSE / console
"""

from __future__ import annotations

import logging
from typing import Any

from .app import create_app
from .bus import EventBus
from .config import RuntimeSettings
from .driver import CommandDriver
from .ingress import NotificationIngress
from .router import TopicRouter
from .sdk.client import AdminClient, create_client
from .store import ExchangeStateStore

logger = logging.getLogger(__name__)


class ExchangeRuntime:
    """One controller: ingress, store, router and driver over one agent."""

    def __init__(
        self,
        settings: RuntimeSettings | None = None,
        *,
        client: AdminClient | None = None,
        store: ExchangeStateStore | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.settings = settings or RuntimeSettings.from_env()
        self.client = client or create_client(
            self.settings.admin_url,
            api_key=self.settings.admin_api_key,
            timeout=self.settings.request_timeout,
        )
        self.store = store or ExchangeStateStore()
        self.bus = bus or EventBus()
        self.router = TopicRouter(self.store, self.bus, self.client)
        self.driver = CommandDriver(self.client, self.store, self.settings)
        self.app = create_app(self.router, self.store, self.bus)
        self.ingress = NotificationIngress(
            self.app,
            self.settings.webhook_host,
            self.settings.webhook_port,
            shutdown_timeout=self.settings.shutdown_timeout,
        )

    async def start(self, *, wait_for_agent: float | None = None) -> None:
        """Start the ingress, optionally waiting for the agent to be ready."""
        await self.ingress.start()
        if wait_for_agent:
            logger.info(f"Waiting for agent at {self.settings.admin_url}")
            await self.client.wait_until_ready(timeout=wait_for_agent)

    async def stop(self) -> None:
        """Refuse new commands, drain the ingress, close the admin client."""
        self.driver.close()
        try:
            await self.ingress.stop()
        finally:
            await self.client.close()

    async def __aenter__(self) -> ExchangeRuntime:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
