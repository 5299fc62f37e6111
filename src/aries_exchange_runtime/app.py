"""Notification ingress application.

Creates the Starlette ASGI application the agent posts its webhooks to.

Route organization:
- /health - Health check
- /status - Current record per kind
- /event - SSE stream of exchange events
- /webhooks/topic/{topic}/ - Agent notifications
"""

from __future__ import annotations

from starlette.applications import Starlette
from starlette.routing import Route

from .bus import EventBus
from .router import TopicRouter
from .routes import event_routes, health_routes, webhook_routes
from .store import ExchangeStateStore


def create_app(
    router: TopicRouter,
    store: ExchangeStateStore,
    bus: EventBus | None = None,
) -> Starlette:
    """Create the ingress application.

    Args:
        router: Router every webhook delivery is handed to
        store: Store exposed through /status
        bus: Bus streamed through /event (a private one if omitted)

    Returns:
        Configured Starlette application
    """
    routes: list[Route] = []
    routes.extend(health_routes)
    routes.extend(event_routes)
    routes.extend(webhook_routes)

    app = Starlette(routes=routes)
    app.state.router = router
    app.state.store = store
    app.state.bus = bus or EventBus()
    return app
