"""
HTTP transport gateway built on requests.

Requests are blocking, so each one runs on its own daemon thread and
hands its result back to the event loop. Several lanes (live poll,
history, delete, send) can be outstanding at once, and a cancelled
request never holds up interpreter shutdown.
"""

import asyncio
import json
import logging
import threading
from typing import Any, Dict, Optional, Set

import requests

from feed.feed_types import FailureKind
from feed.transport.gateway import TransportGateway, TransportResult

logger = logging.getLogger(__name__)

TIMEOUT_STATUSES = {408, 504}
AUTHORIZATION_STATUSES = {401, 403}


class HttpGateway(TransportGateway):
    """
    TransportGateway talking to a chat server over HTTP.

    GET with query parameters when there is no payload, POST with form
    fields (and an optional file) otherwise. Responses are expected to be
    JSON; an empty 200 response is a success without data.
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        default_timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the gateway.

        Args:
            base_url: Server root; endpoint names are appended to it
            session: requests session to reuse (a new one is created if None)
            default_timeout: Timeout in seconds when a request gives none
        """
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.default_timeout = default_timeout
        self._closed = False
        self._pending: Set[asyncio.Future] = set()

    def url_for(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> TransportResult:
        if self._closed:
            return TransportResult.failed(FailureKind.NETWORK, "Gateway closed")
        url = self.url_for(endpoint)
        timeout = timeout or self.default_timeout
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

        def deliver(result: TransportResult) -> None:
            if not future.done():
                future.set_result(result)

        def do_request():
            try:
                result = self._send(url, params, payload, timeout)
            except Exception as e:
                if self._closed:
                    return
                logger.error(f"Request to {url} failed unexpectedly: {e}", exc_info=True)
                result = TransportResult.failed(FailureKind.APPLICATION, str(e))
            if self._closed:
                logger.debug(f"Discarding response from {url}: gateway closed")
                return
            try:
                loop.call_soon_threadsafe(deliver, result)
            except RuntimeError:
                logger.debug(f"Discarding response from {url}: event loop closed")

        thread = threading.Thread(target=do_request, name=f"feed-request-{endpoint}", daemon=True)
        thread.start()
        return await future

    def _send(
        self,
        url: str,
        params: Optional[Dict[str, Any]],
        payload: Optional[Dict[str, Any]],
        timeout: float,
    ) -> TransportResult:
        try:
            if payload is None:
                response = self.session.get(url, params=params, timeout=timeout)
            else:
                data = {k: v for k, v in payload.items() if k != "file"}
                files = {"file": payload["file"]} if payload.get("file") else None
                response = self.session.post(url, params=params, data=data, files=files, timeout=timeout)
        except requests.Timeout as e:
            return TransportResult.failed(FailureKind.TIMEOUT, str(e))
        except requests.ConnectionError as e:
            return TransportResult.failed(FailureKind.NETWORK, str(e))
        except requests.RequestException as e:
            return TransportResult.failed(FailureKind.APPLICATION, str(e))

        return self._classify(response)

    def _classify(self, response: requests.Response) -> TransportResult:
        """Turn an HTTP response into a TransportResult."""
        status = response.status_code
        if status != 200:
            reason = self._error_text(response)
            if status in TIMEOUT_STATUSES:
                kind = FailureKind.TIMEOUT
            elif status in AUTHORIZATION_STATUSES:
                kind = FailureKind.AUTHORIZATION
            else:
                kind = FailureKind.APPLICATION
            logger.debug(f"HTTP {status} from {response.url}: {reason}")
            return TransportResult.failed(kind, reason, status)

        if not response.content or not response.content.strip():
            return TransportResult.success(None)

        try:
            data = response.json()
        except ValueError as e:
            return TransportResult.failed(FailureKind.APPLICATION, f"Invalid JSON response: {e}", status)

        if isinstance(data, dict) and data.get("error"):
            return TransportResult.failed(FailureKind.APPLICATION, str(data["error"]), status)

        return TransportResult.success(data)

    @staticmethod
    def _error_text(response: requests.Response) -> str:
        # Error responses use the {"error": "..."} convention when they can.
        text = response.text or ""
        try:
            data = json.loads(text)
        except ValueError:
            return text.strip() or (response.reason or "")
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return text.strip()

    def close(self) -> None:
        """
        Close the session.

        Requests still in flight complete at once with a NETWORK failure;
        their responses are discarded when they arrive.
        """
        self._closed = True
        for future in list(self._pending):
            if not future.done():
                future.set_result(TransportResult.failed(FailureKind.NETWORK, "Gateway closed"))
        self.session.close()
