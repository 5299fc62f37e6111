"""Aries exchange runtime.

Controller for a remote Aries agent: drives connection, issuance and
presentation exchanges through the agent's admin API and tracks their
progress from the webhooks the agent posts back.
"""

from .config import RuntimeSettings
from .driver import CommandDriver
from .errors import (
    ExchangeRuntimeError,
    MissingAttributeError,
    PrerequisiteError,
    RemoteRejectedError,
    RemoteUnreachableError,
    TransportError,
    ValidationError,
)
from .router import Topic, TopicRouter
from .runtime import ExchangeRuntime
from .store import ExchangeStateStore, RecordKind

__version__ = "0.1.0"

__all__ = [
    "CommandDriver",
    "ExchangeRuntime",
    "ExchangeRuntimeError",
    "ExchangeStateStore",
    "MissingAttributeError",
    "PrerequisiteError",
    "RecordKind",
    "RemoteRejectedError",
    "RemoteUnreachableError",
    "RuntimeSettings",
    "Topic",
    "TopicRouter",
    "TransportError",
    "ValidationError",
    "__version__",
]
