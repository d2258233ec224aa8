from feed.transport.gateway import (
    DELETE_ENDPOINT,
    POLL_ENDPOINT,
    SEND_ENDPOINT,
    TransportFailure,
    TransportGateway,
    TransportResult,
    delete_endpoint,
)
from feed.transport.http_gateway import HttpGateway

__all__ = [
    "DELETE_ENDPOINT",
    "HttpGateway",
    "POLL_ENDPOINT",
    "SEND_ENDPOINT",
    "TransportFailure",
    "TransportGateway",
    "TransportResult",
    "delete_endpoint",
]
