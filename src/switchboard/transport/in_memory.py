"""
switchboard.transport.in_memory - In-Process Transport
========================================================

The development/testing transport: Client, Router and broadcast endpoints
all live in one Python process and one asyncio event loop.

Design Decisions:
    - submit() schedules ``router.handle()`` as an asyncio.Task and returns
      immediately, so the caller's timeout and cancellation genuinely race
      the reply.
    - In-flight tasks are tracked in a set so ``drain()`` can wait for them
      and so they are not garbage-collected mid-flight.
    - Endpoints are kept in a dict keyed by endpoint_id; attaching the same
      id twice replaces the earlier endpoint.

Limitations:
    - Single-process, single-loop only.
    - No serialization: payloads are passed by reference.

Usage:
    >>> transport = InMemoryTransport(router)
    >>> transport.attach(RouterEndpoint("tab:1", tab_router))
    >>> client = Client(transport, source="popup")
    >>> await client.send(Message(type="FETCH_EXPENSES"))
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional

import structlog

from switchboard.core.exceptions import DeliveryFailedError
from switchboard.core.messages import Envelope, ErrorPayload, SenderContext
from switchboard.transport.base import Endpoint, ReplyCallback, Transport

if TYPE_CHECKING:
    from switchboard.routing.router import Router


logger = structlog.get_logger()


class InMemoryTransport(Transport):
    """Connects a Client to a Router inside one event loop.

    Attributes:
        _router: The peer router; None means nobody is listening and every
            submit() fails with DeliveryFailedError.
        _sender: Sender context presented to the router. When None, one is
            derived from each envelope's source.
        _endpoints: Broadcast targets by endpoint_id.
        _in_flight: Delivery tasks not yet finished.
        _delivered_count: Replies handed back so far.
    """

    def __init__(
        self,
        router: Optional["Router"] = None,
        *,
        sender: Optional[SenderContext] = None,
    ) -> None:
        self._router = router
        self._sender = sender
        self._endpoints: dict[str, Endpoint] = {}
        self._in_flight: set[asyncio.Task[None]] = set()
        self._delivered_count: int = 0
        self._logger = logger.bind(component="transport", impl="in_memory")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        return self._router is not None

    @property
    def delivered_count(self) -> int:
        """Number of replies handed back to callers."""
        return self._delivered_count

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    # =========================================================================
    # Peer and Endpoint Management
    # =========================================================================

    def connect(self, router: "Router") -> None:
        """Set the peer router for point-to-point delivery."""
        self._router = router
        self._logger.info("transport_connected", router=router.endpoint_id)

    def disconnect(self) -> None:
        """Drop the peer router. Later submits fail with DeliveryFailedError."""
        self._router = None
        self._logger.info("transport_disconnected")

    def attach(self, endpoint: Endpoint) -> None:
        """Add a broadcast endpoint (replacing any with the same id)."""
        self._endpoints[endpoint.endpoint_id] = endpoint
        self._logger.debug(
            "endpoint_attached",
            endpoint_id=endpoint.endpoint_id,
            total_endpoints=len(self._endpoints),
        )

    def detach(self, endpoint_id: str) -> bool:
        """Remove a broadcast endpoint. Returns False if it wasn't attached."""
        removed = self._endpoints.pop(endpoint_id, None) is not None
        if removed:
            self._logger.debug("endpoint_detached", endpoint_id=endpoint_id)
        return removed

    def endpoints(self) -> list[Endpoint]:
        return list(self._endpoints.values())

    # =========================================================================
    # Delivery
    # =========================================================================

    def submit(self, envelope: Envelope, on_reply: ReplyCallback) -> None:
        """Schedule delivery of ``envelope`` to the router.

        Raises:
            DeliveryFailedError: If no router is connected.
            RuntimeError: If called outside a running event loop.
        """
        router = self._router
        if router is None:
            raise DeliveryFailedError(
                message="Message could not be delivered: no router connected",
                request_id=envelope.request_id,
                details={"message_type": envelope.type},
            )

        loop = asyncio.get_running_loop()
        task = loop.create_task(self._deliver(router, envelope, on_reply))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def drain(self) -> None:
        """Wait until every in-flight delivery has finished."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def _deliver(
        self,
        router: "Router",
        envelope: Envelope,
        on_reply: ReplyCallback,
    ) -> None:
        sender = self._sender or SenderContext(endpoint_id=envelope.metadata.source)
        try:
            reply = await router.handle(envelope, sender)
        except (Exception, asyncio.CancelledError) as exc:
            task = asyncio.current_task()
            if isinstance(exc, asyncio.CancelledError) and task is not None and task.cancelling():
                raise
            # Router.handle converts handler and middleware failures itself;
            # reaching this means the router machinery broke.
            self._logger.error(
                "router_handle_crashed",
                message_type=envelope.type,
                request_id=envelope.request_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            failure = DeliveryFailedError(
                message=f"Peer failed while handling the message: {exc}",
                request_id=envelope.request_id,
                details={"message_type": envelope.type},
            )
            reply = envelope.create_reply(
                source=router.endpoint_id,
                error=ErrorPayload.from_exception(failure),
            )

        self._delivered_count += 1
        on_reply(reply)
