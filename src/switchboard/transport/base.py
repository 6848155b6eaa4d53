"""
switchboard.transport.base - Transport Boundary
=================================================

The core never talks to the host messaging primitive directly. It talks to
a Transport, which can:

    1. Deliver an envelope to "the other side" and hand the reply back
       through a callback (point-to-point, used by Client).
    2. Enumerate the endpoints currently reachable for broadcast
       (used by Broadcaster).

    ┌────────┐  submit(envelope, on_reply)  ┌───────────┐   ┌────────┐
    │ Client │ ───────────────────────────→ │ Transport │ → │ Router │
    │        │ ←────── on_reply(reply) ──── │           │ ← │        │
    └────────┘                              └─────┬─────┘   └────────┘
                                                  │ endpoints()
    ┌─────────────┐     deliver(envelope)   ┌─────┴─────┐
    │ Broadcaster │ ──────────────────────→ │ Endpoint* │  (tabs, panels, ...)
    └─────────────┘                         └───────────┘

Implementations:
    - InMemoryTransport (transport/in_memory.py): Client and Router in the
      same process; endpoints attached explicitly.

Endpoints:
    - RouterEndpoint:    delivers into a Router (dispatch outcome discarded).
    - CallbackEndpoint:  delivers to a plain sync/async callable.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Optional, Union

import structlog

from switchboard.core.messages import Envelope, Reply, SenderContext

if TYPE_CHECKING:
    from switchboard.routing.router import Router


logger = structlog.get_logger()


# =============================================================================
# Type Aliases
# =============================================================================
# Called by the transport exactly once per submitted envelope that reached
# the peer. Synchronous: settling a pending request never needs to await.
# =============================================================================
ReplyCallback = Callable[[Reply], None]
EnvelopeCallback = Callable[[Envelope], Union[Any, Awaitable[Any]]]


# =============================================================================
# Abstract Base Class: Endpoint
# =============================================================================
class Endpoint(ABC):
    """A broadcast target (an open tab, a side panel, ...).

    ``deliver()`` raises when the endpoint cannot be reached; Broadcaster
    catches and discards that.
    """

    @property
    @abstractmethod
    def endpoint_id(self) -> str:
        """Unique identifier of this endpoint."""
        ...

    @abstractmethod
    async def deliver(self, envelope: Envelope) -> None:
        """Push one envelope to this endpoint. No reply is expected."""
        ...


# =============================================================================
# Abstract Base Class: Transport
# =============================================================================
class Transport(ABC):
    """Point-to-point and broadcast delivery primitive used by the core."""

    @abstractmethod
    def submit(self, envelope: Envelope, on_reply: ReplyCallback) -> None:
        """Start delivering ``envelope`` to the peer.

        Returns as soon as delivery has been started. The reply is handed
        to ``on_reply`` later, from the event loop.

        Raises:
            DeliveryFailedError: If no peer is reachable at all.
        """
        ...

    @abstractmethod
    def endpoints(self) -> list[Endpoint]:
        """Endpoints currently known for broadcast (snapshot)."""
        ...


# =============================================================================
# Endpoint Implementations
# =============================================================================
class RouterEndpoint(Endpoint):
    """Broadcast endpoint backed by a Router.

    Broadcast envelopes carry no request id, so the dispatch outcome is
    only logged, never sent anywhere.
    """

    def __init__(
        self,
        endpoint_id: str,
        router: "Router",
        sender: Optional[SenderContext] = None,
    ) -> None:
        self._endpoint_id = endpoint_id
        self._router = router
        self._sender = sender
        self._logger = logger.bind(component="endpoint", endpoint_id=endpoint_id)

    @property
    def endpoint_id(self) -> str:
        return self._endpoint_id

    async def deliver(self, envelope: Envelope) -> None:
        sender = self._sender or SenderContext(endpoint_id=envelope.metadata.source)
        result = await self._router.dispatch(envelope, sender)
        if not result.ok and result.error is not None:
            self._logger.debug(
                "broadcast_dispatch_failed",
                message_type=envelope.type,
                error_code=result.error.error_code,
            )


class CallbackEndpoint(Endpoint):
    """Broadcast endpoint that hands envelopes to a sync or async callable."""

    def __init__(self, endpoint_id: str, callback: EnvelopeCallback) -> None:
        self._endpoint_id = endpoint_id
        self._callback = callback

    @property
    def endpoint_id(self) -> str:
        return self._endpoint_id

    async def deliver(self, envelope: Envelope) -> None:
        outcome = self._callback(envelope)
        if inspect.isawaitable(outcome):
            await outcome
