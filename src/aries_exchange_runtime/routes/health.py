"""Health and status endpoints."""

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse({"status": "ok"})


async def exchange_status(request: Request) -> JSONResponse:
    """Current record id and state per kind, as held by the store."""
    return JSONResponse(request.app.state.store.summary())


health_routes = [
    Route("/health", health_check, methods=["GET"]),
    Route("/status", exchange_status, methods=["GET"]),
]
