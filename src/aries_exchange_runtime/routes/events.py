"""SSE endpoint - streams exchange events published on the runtime's bus."""

import json
from typing import Any

from starlette.requests import Request
from starlette.responses import StreamingResponse
from starlette.routing import Route

from ..events import IngressConnected, IngressConnectedProps


def format_sse(event: dict[str, Any]) -> str:
    """One SSE frame; the bus event type doubles as the SSE event name."""
    return f"event: {event['type']}\ndata: {json.dumps(event)}\n\n"


async def stream_exchange_events(request: Request) -> StreamingResponse:
    """GET /event - every store update and diagnostic, as it is routed."""
    bus = request.app.state.bus

    async def frames():
        yield format_sse(
            {"type": IngressConnected.type, "properties": IngressConnectedProps().model_dump()}
        )
        async for event in bus.stream():
            if await request.is_disconnected():
                return
            yield format_sse(event)

    return StreamingResponse(
        frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


event_routes = [
    Route("/event", stream_exchange_events, methods=["GET"]),
]
