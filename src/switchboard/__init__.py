"""
Switchboard - Typed Message Routing for Multi-Context Applications
===================================================================

Switchboard routes typed messages between the isolated parts of an
application (a background worker, popups, side panels, page scripts) over
a message-passing transport:

    Client ──envelope──→ Transport ──→ Router ──→ middleware ──→ handler
    Client ←──reply───── Transport ←── Router ←───────────────── result

    Broadcaster ──envelope──→ every reachable Endpoint (no replies)

Layers (top to bottom):
    1. Routing    - Router, middleware, Client, Broadcaster, retry wrapper
    2. Transport  - Delivery boundary (InMemoryTransport for one process)
    3. Core       - Envelopes, errors, config, enums, logging setup

Quick Start:
    >>> from switchboard import Client, InMemoryTransport, Message, Router
    >>> router = Router()
    >>> router.register("PING", lambda envelope, sender: "pong")
    >>> client = Client(InMemoryTransport(router), source="popup")
    >>> await client.send(Message(type="PING"))
    'pong'
"""

# =============================================================================
# Package Version
# =============================================================================
__version__ = "0.1.0"

# =============================================================================
# Package-Level Exports
# =============================================================================
# The everyday API. For everything else import from the subpackages:
#   from switchboard.core.exceptions import RetryExhaustedError
#   from switchboard.transport.base import CallbackEndpoint
# =============================================================================
from switchboard.core.config import SwitchboardConfig, load_config
from switchboard.core.exceptions import (
    DeliveryFailedError,
    HandlerFailedError,
    MiddlewareRejectedError,
    NoHandlerRegisteredError,
    RequestCancelledError,
    RequestTimeoutError,
    SwitchboardError,
)
from switchboard.core.log_setup import configure_logging
from switchboard.core.messages import Envelope, Message, Reply, SenderContext
from switchboard.routing.broadcast import Broadcaster
from switchboard.routing.client import Client, PendingRequest
from switchboard.routing.router import Router
from switchboard.transport.in_memory import InMemoryTransport

__all__ = [
    "__version__",
    # Config & logging
    "SwitchboardConfig",
    "load_config",
    "configure_logging",
    # Messages
    "Envelope",
    "Message",
    "Reply",
    "SenderContext",
    # Routing
    "Router",
    "Client",
    "PendingRequest",
    "Broadcaster",
    # Transport
    "InMemoryTransport",
    # Errors
    "SwitchboardError",
    "NoHandlerRegisteredError",
    "MiddlewareRejectedError",
    "HandlerFailedError",
    "DeliveryFailedError",
    "RequestTimeoutError",
    "RequestCancelledError",
]
