"""HTTP transport for the device protocol.

One ``AlpacaTransport`` is shared by every device session in the process.
It issues stateless GET (read) / PUT (write) calls, stamps each request
with the process-wide client id and the next transaction number from a
``ClientIdentity``, and turns the response envelope into either a plain
value or a typed error.  It never touches caches or capability state.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from scopesync.constants import CLIENT_ID_MAX
from scopesync.devices.catalog import Direction
from scopesync.devices.descriptor import DeviceDescriptor
from scopesync.protocol.errors import ProtocolError, TransportError

logger = logging.getLogger(__name__)


class ClientIdentity:
    """Client id plus monotonically increasing transaction counter.

    Create one per process and hand the same instance to every transport.
    The id never changes after construction; the counter is the only
    mutable state and is incremented under a lock.
    """

    def __init__(self, client_id: int | None = None) -> None:
        if client_id is None:
            client_id = random.randint(1, CLIENT_ID_MAX)
        if client_id < 1:
            raise ValueError("client_id must be positive")
        self._client_id = client_id
        self._counter = 0
        self._lock = threading.Lock()

    @property
    def client_id(self) -> int:
        return self._client_id

    @property
    def last_transaction_id(self) -> int:
        with self._lock:
            return self._counter

    def next_transaction_id(self) -> int:
        with self._lock:
            self._counter += 1
            return self._counter


def _wire_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def decode_envelope(response: httpx.Response, url: str, transaction_id: int | None = None) -> Any:
    """Return the envelope's ``Value`` or raise the matching error.

    A non-zero ``ErrorNumber`` always wins over the HTTP status, since
    devices report semantic errors with a 200 as often as without.
    """
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        raw_number = data.get("ErrorNumber", 0) or 0
        try:
            error_number = int(raw_number)
        except (TypeError, ValueError):
            raise TransportError(
                TransportError.MALFORMED, f"Invalid ErrorNumber {raw_number!r}", url, response.status_code
            ) from None
        if error_number != 0:
            raise ProtocolError(error_number, str(data.get("ErrorMessage") or ""), url)

    if response.is_error:
        text = response.text.strip()
        raise TransportError(
            TransportError.HTTP_STATUS,
            f"HTTP {response.status_code}: {text[:200]}",
            url,
            response.status_code,
        )

    if not isinstance(data, dict):
        raise TransportError(TransportError.MALFORMED, "Response is not a JSON envelope", url, response.status_code)

    echoed = data.get("ClientTransactionID")
    if transaction_id is not None and echoed not in (None, 0, transaction_id):
        logger.debug("Transaction id mismatch for %s: sent %s, got %s", url, transaction_id, echoed)

    return data.get("Value")


class AlpacaTransport:
    """Synchronous, thread-safe device protocol client built on ``httpx``."""

    def __init__(
        self,
        identity: ClientIdentity,
        timeout_s: float = 10.0,
        retries: int = 2,
        retry_delay_s: float = 1.0,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.identity = identity
        self.timeout_s = timeout_s
        self.retries = max(0, retries)
        self.retry_delay_s = retry_delay_s
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout_s, headers={"Accept": "application/json"})
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings, identity: ClientIdentity | None = None, **kwargs) -> AlpacaTransport:
        return cls(
            identity or ClientIdentity(),
            timeout_s=settings.request_timeout_s,
            retries=settings.request_retries,
            retry_delay_s=settings.retry_delay_s,
            **kwargs,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def call(
        self,
        device: DeviceDescriptor,
        name: str,
        direction: Direction,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """Perform one protocol call, retrying only retryable transport errors.

        Raises:
            ProtocolError: the device reported a non-zero error number.
            TransportError: the call could not be completed.
        """
        if direction == Direction.READ:
            method = "GET"
        elif direction == Direction.WRITE:
            method = "PUT"
        else:
            raise ValueError(f"A call needs a single direction, got {direction!r}")

        url = device.endpoint(name)
        attempts = self.retries + 1
        last_error: TransportError | None = None
        for attempt in range(attempts):
            transaction_id = self.identity.next_transaction_id()
            try:
                return self._send(method, url, transaction_id, params or {})
            except TransportError as exc:
                if not exc.retryable:
                    raise
                last_error = exc
                logger.warning("%s %s failed (attempt %d/%d): %s", method, url, attempt + 1, attempts, exc)
                if attempt + 1 < attempts:
                    self._sleep(self.retry_delay_s)
        raise last_error  # type: ignore[misc]

    def get(self, device: DeviceDescriptor, name: str, **params: Any) -> Any:
        return self.call(device, name, Direction.READ, params)

    def put(self, device: DeviceDescriptor, name: str, **params: Any) -> Any:
        return self.call(device, name, Direction.WRITE, params)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _send(self, method: str, url: str, transaction_id: int, params: Mapping[str, Any]) -> Any:
        payload = {key: _wire_value(value) for key, value in params.items()}
        payload["ClientID"] = str(self.identity.client_id)
        payload["ClientTransactionID"] = str(transaction_id)

        try:
            if method == "GET":
                response = self.client.request("GET", url, params=payload)
            else:
                response = self.client.request("PUT", url, data=payload)
        except httpx.TimeoutException as exc:
            raise TransportError(TransportError.TIMEOUT, f"Request timed out: {exc}", url) from exc
        except httpx.TransportError as exc:
            raise TransportError(TransportError.CONNECTION, f"Connection failed: {exc}", url) from exc

        logger.debug("%s %s [%d] -> %d", method, url, transaction_id, response.status_code)
        return decode_envelope(response, url, transaction_id)
