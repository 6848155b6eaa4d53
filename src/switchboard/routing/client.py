"""
switchboard.routing.client - Request/Response Client
======================================================

This module implements the Client: the caller-side facade that turns a
Message into an envelope, sends it through the transport, and settles a
future when the correlated reply arrives.

Request Lifecycle:

    submit(message)
        │  build envelope (timestamp, source, request_id)
        │  insert PendingRequest into the pending table
        │  start timeout timer (if any)
        │  transport.submit(envelope, on_reply=receive_reply)
        ▼
    ┌──────────────────────── pending ────────────────────────┐
    │  first of:                                               │
    │    reply without error  → RESOLVED  (payload)            │
    │    reply with error     → REJECTED  (typed exception)    │
    │    transport failure    → FAILED    (DeliveryFailedError)│
    │    timer fires          → TIMED_OUT (RequestTimeoutError)│
    │    cancel(request_id)   → CANCELLED (RequestCancelledError)
    └──────────────────────────────────────────────────────────┘

Exactly-Once Settlement:
    Every outcome goes through ``_settle()``, which pops the entry from the
    pending table before touching the future. Whichever outcome pops first
    wins; the others find no entry and do nothing. The table is confined to
    the event loop and ``_settle()`` has no suspension point, so pop and
    settle are atomic with respect to other coroutines.

Request IDs:
    ``"{source}:{instance}:{n}"`` where ``instance`` is a random tag per
    Client and ``n`` is a per-instance counter starting at 1. Unique for
    the lifetime of the process.

Usage:
    >>> client = Client(transport, source="popup")
    >>> expense = await client.send(
    ...     Message(type="CREATE_EXPENSE", payload={"amount": 12.5}),
    ...     timeout=5.0,
    ... )
    >>>
    >>> pending = client.submit(Message(type="FETCH_EXPENSES"))
    >>> pending.cancel()
    >>> await pending  # raises RequestCancelledError
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Generator
from functools import partial
from typing import Any, Optional
from uuid import uuid4

import structlog

from switchboard.core.config import SwitchboardConfig
from switchboard.core.enums import RequestOutcome
from switchboard.core.exceptions import (
    DeliveryFailedError,
    RequestCancelledError,
    RequestTimeoutError,
    SwitchboardError,
)
from switchboard.core.messages import Envelope, EnvelopeMetadata, Message, Reply
from switchboard.transport.base import Transport


logger = structlog.get_logger()


class _UseDefault:
    def __repr__(self) -> str:
        return "USE_DEFAULT"


# Marker for "fall back to the configured timeout"; None means no timeout.
USE_DEFAULT: Any = _UseDefault()


# =============================================================================
# PendingRequest
# =============================================================================
class PendingRequest:
    """Handle for one in-flight request. Await it to get the reply payload.

    Attributes:
        envelope: The envelope that was sent.
        outcome: How the request settled (None while pending).
    """

    def __init__(
        self,
        client: "Client",
        envelope: Envelope,
        future: "asyncio.Future[Any]",
    ) -> None:
        self._client = client
        self.envelope = envelope
        self._future = future
        self._timer: Optional[asyncio.TimerHandle] = None
        self.outcome: Optional[RequestOutcome] = None

    @property
    def request_id(self) -> str:
        assert self.envelope.request_id is not None
        return self.envelope.request_id

    @property
    def message_type(self) -> str:
        return self.envelope.type

    @property
    def future(self) -> "asyncio.Future[Any]":
        return self._future

    def done(self) -> bool:
        return self._future.done()

    def cancel(self, reason: str = "") -> bool:
        """Cancel this request. Returns False if it had already settled."""
        return self._client.cancel(self.request_id, reason=reason)

    def __await__(self) -> Generator[Any, None, Any]:
        return self._future.__await__()

    def __repr__(self) -> str:
        return (
            f"PendingRequest(request_id={self.request_id!r}, "
            f"message_type={self.message_type!r}, outcome={self.outcome})"
        )


# =============================================================================
# Client
# =============================================================================
class Client:
    """Sends envelopes and correlates replies by request id.

    Attributes:
        _transport: Delivery primitive toward the router.
        _source: Endpoint id stamped on every envelope.
        _default_timeout: Reply timeout when submit() doesn't pass one.
        _pending: The pending request table (request_id → PendingRequest).
        _counter: Per-instance monotonically increasing sequence.
        _instance: Random tag making request ids unique across clients.
        _closed: Once True, submit() fails immediately.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        source: Optional[str] = None,
        default_timeout: Any = USE_DEFAULT,
        config: Optional[SwitchboardConfig] = None,
    ) -> None:
        """Create a client.

        Args:
            transport: Transport to the router.
            source: Endpoint id for outgoing envelopes; defaults to
                ``config.source_id``.
            default_timeout: Seconds to wait for a reply, or None to wait
                forever. Defaults to ``config.client.request_timeout_seconds``.
            config: Configuration; defaults to SwitchboardConfig().
        """
        config = config or SwitchboardConfig()

        self._transport = transport
        self._source: str = source or config.source_id
        if default_timeout is USE_DEFAULT:
            default_timeout = config.client.request_timeout_seconds
        self._default_timeout: Optional[float] = default_timeout
        self._pending: dict[str, PendingRequest] = {}
        self._counter = itertools.count(1)
        self._instance: str = uuid4().hex[:8]
        self._closed: bool = False
        self._logger = logger.bind(component="client", source=self._source)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def source(self) -> str:
        return self._source

    @property
    def default_timeout(self) -> Optional[float]:
        return self._default_timeout

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting to settle."""
        return len(self._pending)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def is_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    # =========================================================================
    # Sending
    # =========================================================================

    def submit(self, message: Message, *, timeout: Any = USE_DEFAULT) -> PendingRequest:
        """Send a message and return a handle for its reply.

        Must be called from within a running event loop. Never raises for
        delivery problems: those settle the returned handle instead.

        Args:
            message: Type and payload to send.
            timeout: Seconds to wait for the reply; None waits forever.
                Defaults to the client's default timeout.

        Returns:
            An awaitable PendingRequest.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        request_id = self._next_request_id()
        envelope = Envelope(
            type=message.type,
            payload=message.payload,
            metadata=EnvelopeMetadata(source=self._source, request_id=request_id),
        )
        pending = PendingRequest(self, envelope, future)

        if self._closed:
            pending.outcome = RequestOutcome.FAILED
            future.set_exception(self._closed_error(request_id))
            return pending

        self._pending[request_id] = pending
        future.add_done_callback(partial(self._on_future_done, request_id))

        effective_timeout = self._default_timeout if timeout is USE_DEFAULT else timeout
        if effective_timeout is not None:
            pending._timer = loop.call_later(
                effective_timeout, self._expire, request_id, effective_timeout
            )

        self._logger.debug(
            "request_sending",
            request_id=request_id,
            message_type=message.type,
            timeout=effective_timeout,
        )

        try:
            self._transport.submit(envelope, self.receive_reply)
        except DeliveryFailedError as exc:
            self._settle(request_id, RequestOutcome.FAILED, error=exc)
        except Exception as exc:
            failure = DeliveryFailedError(
                message=f"Message could not be delivered: {exc}",
                request_id=request_id,
                details={"message_type": message.type, "error_type": type(exc).__name__},
            )
            failure.__cause__ = exc
            self._settle(request_id, RequestOutcome.FAILED, error=failure)

        return pending

    async def send(self, message: Message, *, timeout: Any = USE_DEFAULT) -> Any:
        """Send a message and wait for the reply payload.

        Raises:
            SwitchboardError: The typed error from the reply
                (NoHandlerRegisteredError, MiddlewareRejectedError,
                HandlerFailedError, ...), or DeliveryFailedError,
                RequestTimeoutError, RequestCancelledError.
        """
        return await self.submit(message, timeout=timeout)

    async def request(
        self,
        message_type: str,
        payload: Any = None,
        *,
        timeout: Any = USE_DEFAULT,
    ) -> Any:
        """Shortcut for ``send(Message(type=message_type, payload=payload))``."""
        return await self.send(Message(type=message_type, payload=payload), timeout=timeout)

    # =========================================================================
    # Settlement
    # =========================================================================

    def receive_reply(self, reply: Reply) -> bool:
        """Settle the pending request matching ``reply``.

        Called by the transport. Replies for unknown or already-settled
        request ids are ignored.

        Returns:
            True if this reply settled a request.
        """
        request_id = reply.request_id
        if request_id is None or request_id not in self._pending:
            self._logger.debug(
                "reply_ignored",
                request_id=request_id,
                message_type=reply.type,
            )
            return False

        if reply.error is not None:
            return self._settle(
                request_id, RequestOutcome.REJECTED, error=reply.error.to_exception()
            )
        return self._settle(request_id, RequestOutcome.RESOLVED, result=reply.payload)

    def cancel(self, request_id: str, reason: str = "") -> bool:
        """Cancel a pending request.

        Returns:
            True if the request was pending and is now cancelled, False if it
            had already settled (or never existed).
        """
        return self._settle(
            request_id,
            RequestOutcome.CANCELLED,
            error=RequestCancelledError(request_id=request_id, reason=reason),
        )

    def close(self) -> None:
        """Fail every outstanding request and refuse new ones. Idempotent."""
        self._closed = True
        outstanding = list(self._pending)
        for request_id in outstanding:
            self._settle(
                request_id,
                RequestOutcome.FAILED,
                error=self._closed_error(request_id),
            )
        if outstanding:
            self._logger.info("client_closed", failed_requests=len(outstanding))

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    # =========================================================================
    # Internal Helper Methods
    # =========================================================================

    def _next_request_id(self) -> str:
        return f"{self._source}:{self._instance}:{next(self._counter)}"

    def _closed_error(self, request_id: str) -> DeliveryFailedError:
        return DeliveryFailedError(
            message="Client is closed",
            request_id=request_id,
            error_code="CLIENT_CLOSED",
        )

    def _expire(self, request_id: str, timeout: float) -> None:
        if self._settle(
            request_id,
            RequestOutcome.TIMED_OUT,
            error=RequestTimeoutError(request_id=request_id, timeout_seconds=timeout),
        ):
            self._logger.warning("request_timeout", request_id=request_id, timeout=timeout)

    def _on_future_done(self, request_id: str, future: "asyncio.Future[Any]") -> None:
        # The awaiting task was cancelled, which cancels the future itself.
        if future.cancelled():
            self._settle(request_id, RequestOutcome.CANCELLED)

    def _settle(
        self,
        request_id: str,
        outcome: RequestOutcome,
        *,
        result: Any = None,
        error: Optional[SwitchboardError] = None,
    ) -> bool:
        """Settle a pending request exactly once.

        Returns:
            True if this call settled the request, False if it was no longer
            in the pending table.
        """
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return False

        if pending._timer is not None:
            pending._timer.cancel()
            pending._timer = None
        # A reply can race the done-callback of a future cancelled by its caller.
        if pending.future.cancelled():
            outcome = RequestOutcome.CANCELLED
        pending.outcome = outcome

        future = pending.future
        if not future.done():
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        self._logger.debug(
            "request_settled",
            request_id=request_id,
            message_type=pending.message_type,
            outcome=outcome.value,
        )
        return True
