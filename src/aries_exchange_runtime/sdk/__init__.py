"""Admin API SDK.

Provides transport modes:
- http: Talk to a running agent's admin API
- mock: For testing without real I/O
"""

from .client import (
    AdminClient,
    ConnectionAPI,
    CredentialAPI,
    LedgerAPI,
    PresentationAPI,
    WalletAPI,
    create_client,
)
from .transport import (
    AdminTransport,
    AdminTransportConfig,
    HTTPAdminTransport,
    MockAdminTransport,
    RecordedCall,
    create_http_transport,
    create_mock_transport,
)

__all__ = [
    # Client
    "AdminClient",
    "ConnectionAPI",
    "CredentialAPI",
    "LedgerAPI",
    "PresentationAPI",
    "WalletAPI",
    "create_client",
    # Transport
    "AdminTransport",
    "AdminTransportConfig",
    "HTTPAdminTransport",
    "MockAdminTransport",
    "RecordedCall",
    "create_http_transport",
    "create_mock_transport",
]
