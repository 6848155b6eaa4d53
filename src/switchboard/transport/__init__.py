"""
switchboard.transport - Delivery Boundary
===========================================

The only layer that knows how envelopes physically move. The routing layer
talks to the abstract Transport and Endpoint classes defined in base.py.
"""

from switchboard.transport.base import (
    CallbackEndpoint,
    Endpoint,
    RouterEndpoint,
    Transport,
)
from switchboard.transport.in_memory import InMemoryTransport

__all__ = [
    "Transport",
    "Endpoint",
    "RouterEndpoint",
    "CallbackEndpoint",
    "InMemoryTransport",
]
