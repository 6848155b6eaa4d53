"""
switchboard.core.exceptions - Custom Exception Hierarchy
==========================================================

This module defines the structured exception hierarchy for Switchboard.
Components raise and catch specific exception types that carry contextual
information, and every exception can be flattened into a dict (for a reply
envelope) and rebuilt from one on the caller's side.

Exception Hierarchy:
    SwitchboardError (base)
        ├── ConfigurationError         - Invalid config, malformed YAML
        ├── RoutingError               - Router-side dispatch failures
        │     ├── NoHandlerRegisteredError
        │     ├── MiddlewareRejectedError
        │     ├── HandlerFailedError
        │     ├── DuplicateHandlerError
        │     └── RouterSealedError
        ├── RequestError               - Client-side request lifecycle
        │     ├── DeliveryFailedError
        │     ├── RequestTimeoutError
        │     └── RequestCancelledError
        ├── RetryExhaustedError        - Bounded handler retry gave up
        └── RemoteError                - Error of a type this side doesn't know

Crossing the Transport:
    The Router never lets a raw exception reach the transport. It converts
    failures into an ErrorPayload (see core/messages.py) via ``to_dict()``;
    the Client turns the payload back into the matching exception class via
    ``error_from_dict()``, so callers can ``except NoHandlerRegisteredError``.

Usage:
    >>> from switchboard.core.exceptions import NoHandlerRegisteredError
    >>> try:
    ...     await client.send(Message(type="UNKNOWN_TYPE"))
    ... except NoHandlerRegisteredError as e:
    ...     print(e.error_code, e.message_type)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional


# =============================================================================
# Base Exception
# =============================================================================
class SwitchboardError(Exception):
    """Base exception for all Switchboard errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code for programmatic handling.
            Convention: UPPER_SNAKE_CASE (e.g., "NO_HANDLER_REGISTERED").
        details: Arbitrary dict with additional debugging context. Must stay
            JSON-friendly because it travels inside reply envelopes.

    Example:
        >>> try:
        ...     router.register("PING", handler)
        ... except SwitchboardError as e:
        ...     print(f"[{e.error_code}] {e.message}")
    """

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize this exception to a dictionary.

        Returns:
            Dictionary with error_type, message, error_code, and details.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SwitchboardError":
        """Rebuild an exception of this class from ``to_dict()`` output.

        Subclasses whose constructors take specific arguments override this
        and read them back out of ``details``.
        """
        return cls(
            message=data.get("message", ""),
            error_code=data.get("error_code", "UNKNOWN_ERROR"),
            details=dict(data.get("details") or {}),
        )

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


# =============================================================================
# Configuration Error
# =============================================================================
class ConfigurationError(SwitchboardError):
    """Raised when Switchboard configuration is invalid.

    Common Causes:
        - Malformed YAML in switchboard.yaml
        - YAML top level is not a mapping
        - Values rejected by validation (negative timeouts, unknown policy)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


# =============================================================================
# Routing Errors (Router side)
# =============================================================================
class RoutingError(SwitchboardError):
    """Base class for failures raised by or reported from the Router."""

    def __init__(
        self,
        message: str,
        error_code: str = "ROUTING_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class NoHandlerRegisteredError(RoutingError):
    """Dispatch reached a message type with no registered handler.

    Unknown types are a routing outcome, not a parse error: the envelope is
    well-formed, nobody just listens for it.

    Attributes:
        message_type: The envelope type that had no handler.
    """

    def __init__(
        self,
        message_type: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["message_type"] = message_type

        super().__init__(
            message=f"No handler registered for message type {message_type!r}",
            error_code="NO_HANDLER_REGISTERED",
            details=enriched_details,
        )

        self.message_type = message_type

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NoHandlerRegisteredError":
        details = dict(data.get("details") or {})
        return cls(message_type=details.pop("message_type", ""), details=details)


class MiddlewareRejectedError(RoutingError):
    """A middleware vetoed the envelope; no handler ran.

    Attributes:
        middleware_id: Name of the blocking middleware.
        reason: Why it blocked (explicit reason, or the text of the exception
            the middleware raised).
    """

    def __init__(
        self,
        middleware_id: str,
        reason: str = "",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["middleware_id"] = middleware_id
        enriched_details["reason"] = reason

        text = f"Middleware {middleware_id!r} rejected the message"
        if reason:
            text = f"{text}: {reason}"

        super().__init__(
            message=text,
            error_code="MIDDLEWARE_REJECTED",
            details=enriched_details,
        )

        self.middleware_id = middleware_id
        self.reason = reason

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MiddlewareRejectedError":
        details = dict(data.get("details") or {})
        return cls(
            middleware_id=details.pop("middleware_id", ""),
            reason=details.pop("reason", ""),
            details=details,
        )


class HandlerFailedError(RoutingError):
    """A handler raised while processing an envelope.

    The Router wraps the original exception so it can travel back to the
    caller as a structured error. When the cause is itself a
    SwitchboardError its error_code is kept in ``details["cause_code"]``.

    Attributes:
        message_type: The envelope type whose handler failed.
        cause: The original exception (only available on the router side;
            None after rehydration on the client side).
    """

    def __init__(
        self,
        message_type: str,
        cause: Optional[BaseException] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["message_type"] = message_type
        if cause is not None:
            enriched_details["cause_type"] = type(cause).__name__
            enriched_details["cause_message"] = str(cause)
            if isinstance(cause, SwitchboardError):
                enriched_details["cause_code"] = cause.error_code

        cause_message = enriched_details.get("cause_message", "")
        text = f"Handler for message type {message_type!r} failed"
        if cause_message:
            text = f"{text}: {cause_message}"

        super().__init__(
            message=text,
            error_code="HANDLER_FAILED",
            details=enriched_details,
        )

        self.message_type = message_type
        self.cause = cause

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HandlerFailedError":
        details = dict(data.get("details") or {})
        return cls(message_type=details.pop("message_type", ""), details=details)


class DuplicateHandlerError(RoutingError):
    """Registration rejected because the type already has a handler."""

    def __init__(self, message_type: str) -> None:
        super().__init__(
            message=f"A handler is already registered for message type {message_type!r}",
            error_code="DUPLICATE_HANDLER",
            details={"message_type": message_type},
        )
        self.message_type = message_type

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DuplicateHandlerError":
        return cls(message_type=(data.get("details") or {}).get("message_type", ""))


class RouterSealedError(RoutingError):
    """Structural change attempted on a sealed router."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            message=f"Router is sealed; {operation}() is not allowed after startup",
            error_code="ROUTER_SEALED",
            details={"operation": operation},
        )
        self.operation = operation

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RouterSealedError":
        return cls(operation=(data.get("details") or {}).get("operation", ""))


# =============================================================================
# Request Errors (Client side)
# =============================================================================
# These settle a pending request without a reply from the router. They are
# raised to the caller awaiting Client.send() / a PendingRequest.
# =============================================================================
class RequestError(SwitchboardError):
    """Base class for client-side request lifecycle failures.

    Attributes:
        request_id: Correlation id of the affected request, if known.
    """

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        error_code: str = "REQUEST_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        if request_id:
            enriched_details["request_id"] = request_id

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.request_id = request_id

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RequestError":
        details = dict(data.get("details") or {})
        return cls(
            message=data.get("message", ""),
            request_id=details.pop("request_id", None),
            error_code=data.get("error_code", "REQUEST_ERROR"),
            details=details,
        )


class DeliveryFailedError(RequestError):
    """The transport could not reach the peer at all.

    Also used with error_code "CLIENT_CLOSED" for requests that were still
    outstanding when the client was closed.
    """

    def __init__(
        self,
        message: str = "Message could not be delivered: no reachable peer",
        request_id: Optional[str] = None,
        error_code: str = "DELIVERY_FAILED",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            request_id=request_id,
            error_code=error_code,
            details=details,
        )


class RequestTimeoutError(RequestError):
    """No reply arrived within the request's timeout."""

    def __init__(
        self,
        request_id: Optional[str] = None,
        timeout_seconds: float = 0.0,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["timeout_seconds"] = timeout_seconds

        super().__init__(
            message=f"Request timed out after {timeout_seconds}s waiting for a reply",
            request_id=request_id,
            error_code="REQUEST_TIMEOUT",
            details=enriched_details,
        )

        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RequestTimeoutError":
        details = dict(data.get("details") or {})
        return cls(
            request_id=details.pop("request_id", None),
            timeout_seconds=details.pop("timeout_seconds", 0.0),
            details=details,
        )


class RequestCancelledError(RequestError):
    """The caller cancelled the request before it settled."""

    def __init__(
        self,
        request_id: Optional[str] = None,
        reason: str = "",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        if reason:
            enriched_details["reason"] = reason

        text = "Request was cancelled"
        if reason:
            text = f"{text}: {reason}"

        super().__init__(
            message=text,
            request_id=request_id,
            error_code="REQUEST_CANCELLED",
            details=enriched_details,
        )

        self.reason = reason

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RequestCancelledError":
        details = dict(data.get("details") or {})
        return cls(
            request_id=details.pop("request_id", None),
            reason=details.pop("reason", ""),
            details=details,
        )


# =============================================================================
# Retry Exhausted
# =============================================================================
class RetryExhaustedError(SwitchboardError):
    """A retry-wrapped handler kept failing after the allowed retries.

    Attributes:
        message_type: Type of the envelope being handled.
        attempts: Total number of handler invocations made.
        cause: The last exception raised by the handler.
    """

    def __init__(
        self,
        message_type: str,
        attempts: int,
        cause: Optional[BaseException] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["message_type"] = message_type
        enriched_details["attempts"] = attempts
        if cause is not None:
            enriched_details["last_error"] = str(cause)
            if isinstance(cause, SwitchboardError):
                enriched_details["last_error_code"] = cause.error_code

        super().__init__(
            message=(
                f"Handler for message type {message_type!r} gave up "
                f"after {attempts} attempts"
            ),
            error_code="RETRY_EXHAUSTED",
            details=enriched_details,
        )

        self.message_type = message_type
        self.attempts = attempts
        self.cause = cause

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RetryExhaustedError":
        details = dict(data.get("details") or {})
        return cls(
            message_type=details.pop("message_type", ""),
            attempts=details.pop("attempts", 0),
            details=details,
        )


# =============================================================================
# Remote Error
# =============================================================================
class RemoteError(SwitchboardError):
    """An error reported by the peer whose type is not known locally.

    Keeps the peer's error_type so nothing is lost when, for example, a
    newer router reports an error class an older client has never seen.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "REMOTE_ERROR",
        details: Optional[dict[str, Any]] = None,
        error_type: str = "RemoteError",
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)
        self.error_type = error_type

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["error_type"] = self.error_type
        return data


# =============================================================================
# Rehydration
# =============================================================================
_ERROR_TYPES: dict[str, type[SwitchboardError]] = {
    cls.__name__: cls
    for cls in (
        SwitchboardError,
        ConfigurationError,
        RoutingError,
        NoHandlerRegisteredError,
        MiddlewareRejectedError,
        HandlerFailedError,
        DuplicateHandlerError,
        RouterSealedError,
        RequestError,
        DeliveryFailedError,
        RequestTimeoutError,
        RequestCancelledError,
        RetryExhaustedError,
    )
}


def error_from_dict(data: Mapping[str, Any]) -> SwitchboardError:
    """Turn ``SwitchboardError.to_dict()`` output back into an exception.

    Args:
        data: Mapping with error_type, message, error_code and details.

    Returns:
        An instance of the class named by ``error_type``, or a RemoteError
        when that name is unknown.
    """
    error_type = data.get("error_type", "")
    cls = _ERROR_TYPES.get(error_type)
    if cls is None:
        return RemoteError(
            message=data.get("message", ""),
            error_code=data.get("error_code", "REMOTE_ERROR"),
            details=dict(data.get("details") or {}),
            error_type=error_type or "RemoteError",
        )
    return cls.from_dict(data)
