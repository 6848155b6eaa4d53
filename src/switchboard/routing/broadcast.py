"""
switchboard.routing.broadcast - Fire-and-Forget Fan-Out
=========================================================

The Broadcaster pushes one envelope to every endpoint the transport
currently knows about (all open tabs, plus the side panel if it is open)
without expecting a reply from any of them.

    Broadcaster.broadcast(message)
        │  one envelope, no request_id
        ├──→ endpoint A  ✓
        ├──→ endpoint B  ✗ unreachable (caught, discarded)
        └──→ endpoint C  ✓
        returns 2

Rules:
    - Deliveries run concurrently and independently; ordering across
      endpoints is unspecified.
    - A failing endpoint never fails the broadcast as a whole.
    - No replies are collected.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from switchboard.core.config import SwitchboardConfig
from switchboard.core.messages import Envelope, EnvelopeMetadata, Message
from switchboard.transport.base import Endpoint, Transport


logger = structlog.get_logger()


class Broadcaster:
    """Fans a message out to all reachable endpoints.

    Args:
        transport: Source of the endpoint list.
        source: Endpoint id stamped on broadcast envelopes; defaults to
            ``config.source_id``.
        config: Configuration; defaults to SwitchboardConfig().
    """

    def __init__(
        self,
        transport: Transport,
        *,
        source: Optional[str] = None,
        config: Optional[SwitchboardConfig] = None,
    ) -> None:
        config = config or SwitchboardConfig()
        self._transport = transport
        self._source: str = source or config.source_id
        self._broadcast_count: int = 0
        self._logger = logger.bind(component="broadcaster", source=self._source)

    @property
    def broadcast_count(self) -> int:
        """Number of broadcast() calls made."""
        return self._broadcast_count

    async def broadcast(self, message: Message) -> int:
        """Deliver ``message`` to every endpoint currently known.

        Args:
            message: Type and payload to broadcast.

        Returns:
            The number of endpoints that accepted the envelope.
        """
        envelope = Envelope(
            type=message.type,
            payload=message.payload,
            metadata=EnvelopeMetadata(source=self._source),
        )
        endpoints = self._transport.endpoints()
        self._broadcast_count += 1

        if not endpoints:
            self._logger.debug("broadcast_no_endpoints", message_type=envelope.type)
            return 0

        results = await asyncio.gather(
            *(self._deliver(endpoint, envelope) for endpoint in endpoints)
        )
        delivered = sum(1 for ok in results if ok)

        self._logger.debug(
            "broadcast_completed",
            message_type=envelope.type,
            endpoints=len(endpoints),
            delivered=delivered,
        )
        return delivered

    async def _deliver(self, endpoint: Endpoint, envelope: Envelope) -> bool:
        try:
            await endpoint.deliver(envelope)
        except (Exception, asyncio.CancelledError) as exc:
            # A torn-down endpoint may raise CancelledError; only a
            # cancellation of the broadcasting task itself propagates.
            task = asyncio.current_task()
            if isinstance(exc, asyncio.CancelledError) and task is not None and task.cancelling():
                raise
            self._logger.debug(
                "broadcast_endpoint_unreachable",
                endpoint_id=endpoint.endpoint_id,
                message_type=envelope.type,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False
        return True
