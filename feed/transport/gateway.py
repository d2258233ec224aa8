"""
Transport gateway contract.

The synchronization core issues every request through a TransportGateway
and receives a TransportResult. Gateways never raise for transport-level
problems; they report them as a failed result with a FailureKind.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from feed.feed_types import FailureKind

POLL_ENDPOINT = "chat-poll"
SEND_ENDPOINT = "chat-send"
DELETE_ENDPOINT = "chat-delete"


def delete_endpoint(message_id: int) -> str:
    return f"{DELETE_ENDPOINT}/{message_id}"


@dataclass(frozen=True)
class TransportFailure:
    """Why a request failed."""
    kind: FailureKind
    reason: str
    status: Optional[int] = None

    @property
    def is_transient(self) -> bool:
        """Timeouts and network blips, expected during long polling."""
        return self.kind in FailureKind.transient_kinds()

    def __str__(self) -> str:
        if self.status is not None:
            return f"{self.kind.value} (HTTP {self.status}): {self.reason}"
        return f"{self.kind.value}: {self.reason}"


@dataclass(frozen=True)
class TransportResult:
    """Outcome of one gateway request: parsed data or a failure."""
    ok: bool
    data: Any = None
    failure: Optional[TransportFailure] = None

    @classmethod
    def success(cls, data: Any = None) -> "TransportResult":
        return cls(ok=True, data=data)

    @classmethod
    def failed(cls, kind: FailureKind, reason: str, status: Optional[int] = None) -> "TransportResult":
        return cls(ok=False, failure=TransportFailure(kind, reason, status))


class TransportGateway(ABC):
    """
    Issues a request and returns a parsed response or a typed failure.

    Implementations must be safe to call concurrently from several request
    lanes on the same event loop.
    """

    @abstractmethod
    async def request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> TransportResult:
        """
        Issue one request.

        Args:
            endpoint: Endpoint name relative to the server root, e.g. "chat-poll"
            params: Query parameters
            payload: Form fields to POST; a "file" entry holds (name, bytes, mime)
            timeout: Seconds before the request completes as a TIMEOUT failure

        Returns:
            TransportResult with the parsed JSON body (or None) on success
        """
