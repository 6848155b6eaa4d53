"""
switchboard.core.messages - Envelope and Reply Types
=====================================================

This module defines the data that flows through Switchboard: the envelope
a Client sends, the reply a Router produces, and the structured error and
sender context that travel with them.

Message Architecture:

    ┌─────────────────────────────────────────────────────────────┐
    │  Envelope                                                    │
    │  ├── type:       Dispatch key ("CREATE_EXPENSE", ...)        │
    │  ├── payload:    Opaque to the router, validated by handler  │
    │  └── metadata                                                │
    │       ├── timestamp:   Creation time (epoch milliseconds)    │
    │       ├── source:      Originating endpoint id               │
    │       └── request_id:  Correlation key (None = broadcast)    │
    └─────────────────────────────────────────────────────────────┘
                         │ Router.handle()
                         ▼
    ┌─────────────────────────────────────────────────────────────┐
    │  Reply                                                       │
    │  ├── type:       Same as the request                         │
    │  ├── payload:    Handler result (on success)                 │
    │  ├── error:      ErrorPayload (on failure)                   │
    │  └── metadata:   Same request_id, source = responder         │
    └─────────────────────────────────────────────────────────────┘

Envelopes and replies are frozen: they are created once at send time and
never modified while in flight. They are not persisted.

Usage:
    >>> envelope = Envelope(
    ...     type="CREATE_EXPENSE",
    ...     payload={"merchant": "Acme", "amount": 12.5, "currency": "USD"},
    ...     metadata=EnvelopeMetadata(source="popup", request_id="popup-1"),
    ... )
    >>> reply = envelope.create_reply(source="background", payload={"expense": {...}})
    >>> reply.metadata.request_id == envelope.metadata.request_id
    True
"""

from __future__ import annotations

import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from switchboard.core.exceptions import SwitchboardError, error_from_dict


# =============================================================================
# Helper Functions
# =============================================================================
def _now_ms() -> int:
    """Get the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# =============================================================================
# Structured Error Payload
# =============================================================================
# The router-side form of an exception. Everything that goes wrong inside a
# dispatch (blocked middleware, missing handler, failing handler) is turned
# into one of these before it reaches the transport.
# =============================================================================
class ErrorPayload(BaseModel):
    """Structured, transport-safe description of a failure.

    Attributes:
        error_type: Exception class name (e.g., "NoHandlerRegisteredError").
            The client uses it to rebuild the matching exception class.
        error_code: Machine-readable code (e.g., "NO_HANDLER_REGISTERED").
        message: Human-readable description.
        details: Extra context (message_type, middleware_id, ...).
    """

    model_config = ConfigDict(frozen=True)

    error_type: str = Field(description="Exception class name")
    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(default="", description="Human-readable description")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional debugging context",
    )

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorPayload":
        """Build a payload from any exception.

        SwitchboardErrors keep their own code and details; anything else is
        reported as UNEXPECTED_ERROR with its class name.
        """
        if isinstance(exc, SwitchboardError):
            return cls.model_validate(exc.to_dict())
        return cls(
            error_type=type(exc).__name__,
            error_code="UNEXPECTED_ERROR",
            message=str(exc),
        )

    def to_exception(self) -> SwitchboardError:
        """Rebuild the typed exception this payload describes."""
        return error_from_dict(self.model_dump())


# =============================================================================
# Envelope Metadata
# =============================================================================
class EnvelopeMetadata(BaseModel):
    """Correlation metadata carried by every envelope and reply.

    Attributes:
        timestamp: Creation time in epoch milliseconds.
        source: Identifier of the endpoint that created the envelope.
        request_id: Correlation key. Set by the Client on every envelope
            that expects a reply; None on broadcast envelopes.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(
        default_factory=_now_ms,
        description="Creation time (epoch milliseconds)",
    )
    source: str = Field(
        min_length=1,
        description="Originating endpoint identifier",
    )
    request_id: Optional[str] = Field(
        default=None,
        min_length=1,
        description="Correlation key linking a request to its reply",
    )


# =============================================================================
# Envelope
# =============================================================================
class Envelope(BaseModel):
    """The unit exchanged between a Client and a Router.

    Attributes:
        type: Semantic kind of the message; the Router's dispatch key.
            Each logical message kind has exactly one tag system-wide.
        payload: Message data. Opaque to the router.
        metadata: Timestamp, source and correlation id.
    """

    model_config = ConfigDict(frozen=True)

    type: str = Field(min_length=1, description="Dispatch key")
    payload: Any = Field(default=None, description="Opaque message data")
    metadata: EnvelopeMetadata = Field(description="Correlation metadata")

    @property
    def request_id(self) -> Optional[str]:
        """Shortcut for ``metadata.request_id``."""
        return self.metadata.request_id

    @property
    def expects_reply(self) -> bool:
        """True when the sender is waiting for a correlated reply."""
        return self.metadata.request_id is not None

    def create_reply(
        self,
        source: str,
        payload: Any = None,
        error: Optional[ErrorPayload] = None,
    ) -> "Reply":
        """Create the reply correlated with this envelope.

        Args:
            source: Identifier of the responding endpoint.
            payload: Handler result (ignored by clients when error is set).
            error: Structured failure, if the dispatch failed.

        Returns:
            A Reply with the same type and request_id as this envelope.
        """
        return Reply(
            type=self.type,
            payload=payload,
            error=error,
            metadata=EnvelopeMetadata(
                source=source,
                request_id=self.metadata.request_id,
            ),
        )


# =============================================================================
# Reply
# =============================================================================
class Reply(BaseModel):
    """The router's answer to one envelope.

    Exactly one of ``payload`` / ``error`` is meaningful: a reply with an
    error rejects the caller's request, otherwise the payload resolves it.
    """

    model_config = ConfigDict(frozen=True)

    type: str = Field(min_length=1, description="Type of the request answered")
    payload: Any = Field(default=None, description="Handler result")
    error: Optional[ErrorPayload] = Field(
        default=None,
        description="Structured failure (None on success)",
    )
    metadata: EnvelopeMetadata = Field(description="Correlation metadata")

    @property
    def request_id(self) -> Optional[str]:
        return self.metadata.request_id

    @property
    def is_error(self) -> bool:
        return self.error is not None


# =============================================================================
# Sender Context
# =============================================================================
# Who sent an envelope, as seen by the receiving side. Comparable to the
# "sender" object a browser runtime hands to message listeners.
# =============================================================================
class SenderContext(BaseModel):
    """Describes the sender of an envelope to middleware and handlers.

    Attributes:
        endpoint_id: Identifier of the sending endpoint (tab, panel, ...).
        authenticated: Whether the transport vouches for the sender.
        attributes: Free-form transport-specific data (url, tab id, ...).
    """

    model_config = ConfigDict(frozen=True)

    endpoint_id: str = Field(description="Sending endpoint identifier")
    authenticated: bool = Field(default=False)
    attributes: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Message
# =============================================================================
class Message(BaseModel):
    """What a caller hands to Client.send() or Broadcaster.broadcast().

    The Client and Broadcaster add the metadata and turn it into an Envelope.

    Example:
        >>> Message(type="FETCH_EXPENSES")
        >>> Message(type="CREATE_EXPENSE", payload={"amount": 12.5})
    """

    type: str = Field(min_length=1, description="Dispatch key")
    payload: Any = Field(default=None, description="Message data")


# =============================================================================
# Dispatch Result
# =============================================================================
class DispatchResult(BaseModel):
    """Outcome of Router.dispatch(): a success value or a structured error.

    The router never raises for routing or handler failures; it returns one
    of these instead.

    Attributes:
        type: Type of the dispatched envelope.
        ok: True when the handler ran and returned normally.
        value: The handler's return value, unmodified (success only).
        error: Structured failure (failure only).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: str
    ok: bool
    value: Any = None
    error: Optional[ErrorPayload] = None

    @classmethod
    def success(cls, message_type: str, value: Any) -> "DispatchResult":
        return cls(type=message_type, ok=True, value=value)

    @classmethod
    def failure(cls, message_type: str, exc: BaseException) -> "DispatchResult":
        return cls(type=message_type, ok=False, error=ErrorPayload.from_exception(exc))

    def unwrap(self) -> Any:
        """Return the value, or raise the typed exception for a failure."""
        if self.ok:
            return self.value
        assert self.error is not None
        raise self.error.to_exception()
