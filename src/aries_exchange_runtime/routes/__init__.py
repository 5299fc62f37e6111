"""HTTP routes served by the notification ingress."""

from .events import event_routes
from .health import health_routes
from .webhooks import webhook_routes

__all__ = [
    "event_routes",
    "health_routes",
    "webhook_routes",
]
