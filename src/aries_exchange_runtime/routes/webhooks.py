"""Webhook endpoint - where the agent pushes its notifications.

Each delivery is handled in its own request, so overlapping deliveries are
processed concurrently. The endpoint always answers 200: a payload the
router cannot use is logged and dropped, and the agent has nothing useful
to do with an error status.
"""

import logging

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

logger = logging.getLogger(__name__)


async def receive_webhook(request: Request) -> JSONResponse:
    """POST /webhooks/topic/{topic}/ - route one notification."""
    topic = request.path_params["topic"]
    body = await request.body()
    logger.debug(f"Webhook {topic}: {len(body)} bytes")

    await request.app.state.router.route(topic, body)
    return JSONResponse({"status": "ok"})


webhook_routes = [
    Route("/webhooks/topic/{topic}/", receive_webhook, methods=["POST"]),
    Route("/webhooks/topic/{topic}", receive_webhook, methods=["POST"]),
]
