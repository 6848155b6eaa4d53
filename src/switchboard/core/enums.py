"""
switchboard.core.enums - Type-Safe Enumerations
=================================================

This module defines the enumeration types used throughout Switchboard.

All enums inherit from both `str` and `Enum`, which means:
    - They serialize to strings in JSON/YAML (Pydantic-friendly)
    - They can be compared with plain strings: DuplicatePolicy.REJECT == "reject"
    - They load cleanly from environment variables and YAML config files

Architecture Mapping:

    ┌─────────────────────────────────────────────────────────────────┐
    │  ROUTER                                                         │
    │    DuplicatePolicy:    What happens on re-registration of a type │
    │    MiddlewareDecision: Continue or block a dispatch             │
    ├─────────────────────────────────────────────────────────────────┤
    │  CLIENT                                                         │
    │    RequestOutcome: How a pending request was settled            │
    └─────────────────────────────────────────────────────────────────┘
"""

from enum import Enum


# =============================================================================
# Duplicate Registration Policy
# =============================================================================
# A Router maps each message type to exactly one handler. When a second
# handler is registered for a type that already has one, the router applies
# this policy:
#
#   OVERWRITE → the new handler replaces the old one (last registration wins)
#   REJECT    → registration fails with DuplicateHandlerError
# =============================================================================
class DuplicatePolicy(str, Enum):
    """Policy applied when a handler is registered for an already-mapped type.

    Usage:
        >>> router = Router(duplicate_policy=DuplicatePolicy.REJECT)
        >>> router.register("PING", ping)
        >>> router.register("PING", other)  # raises DuplicateHandlerError
    """

    OVERWRITE = "overwrite"     # Last registration wins
    REJECT = "reject"           # Second registration raises


# =============================================================================
# Middleware Decision
# =============================================================================
# Middleware may return this enum to state its decision explicitly. Plain
# bools and None are accepted too (see routing/middleware.py).
# =============================================================================
class MiddlewareDecision(str, Enum):
    """Explicit allow/deny decision returned by a middleware."""

    CONTINUE = "continue"       # Let the envelope through to the next stage
    BLOCK = "block"             # Stop the dispatch; no handler runs


# =============================================================================
# Request Outcome
# =============================================================================
# Every pending request on a Client settles exactly once, with one of these
# outcomes. Used for logging and for the PendingRequest.outcome property.
# =============================================================================
class RequestOutcome(str, Enum):
    """How a pending client request was settled.

    State Transitions:
        (pending) → RESOLVED:   reply arrived without an error
        (pending) → REJECTED:   reply arrived carrying an error
        (pending) → FAILED:     transport could not deliver the request
        (pending) → TIMED_OUT:  no reply within the timeout
        (pending) → CANCELLED:  caller cancelled the request
    """

    RESOLVED = "resolved"
    REJECTED = "rejected"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
