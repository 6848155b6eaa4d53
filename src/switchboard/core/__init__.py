"""
switchboard.core - Foundation Layer
=====================================

The building blocks every other Switchboard package depends on:

    - config:      Configuration management (SwitchboardConfig, load_config)
    - enums:       Type-safe enumerations (DuplicatePolicy, RequestOutcome, ...)
    - exceptions:  Structured exception hierarchy and rehydration
    - messages:    Envelope, Reply, ErrorPayload, SenderContext, DispatchResult
    - log_setup:   structlog configuration

Dependency Rule:
    core/ depends on NOTHING else in the switchboard package.
"""

from switchboard.core.config import (
    ClientConfig,
    RouterConfig,
    SwitchboardConfig,
    get_default_config,
    load_config,
)
from switchboard.core.enums import DuplicatePolicy, MiddlewareDecision, RequestOutcome
from switchboard.core.exceptions import (
    ConfigurationError,
    DeliveryFailedError,
    DuplicateHandlerError,
    HandlerFailedError,
    MiddlewareRejectedError,
    NoHandlerRegisteredError,
    RemoteError,
    RequestCancelledError,
    RequestError,
    RequestTimeoutError,
    RetryExhaustedError,
    RouterSealedError,
    RoutingError,
    SwitchboardError,
    error_from_dict,
)
from switchboard.core.log_setup import configure_logging
from switchboard.core.messages import (
    DispatchResult,
    Envelope,
    EnvelopeMetadata,
    ErrorPayload,
    Message,
    Reply,
    SenderContext,
)

__all__ = [
    # Config
    "SwitchboardConfig",
    "ClientConfig",
    "RouterConfig",
    "load_config",
    "get_default_config",
    "configure_logging",
    # Enums
    "DuplicatePolicy",
    "MiddlewareDecision",
    "RequestOutcome",
    # Messages
    "Envelope",
    "EnvelopeMetadata",
    "Reply",
    "ErrorPayload",
    "SenderContext",
    "Message",
    "DispatchResult",
    # Exceptions
    "SwitchboardError",
    "ConfigurationError",
    "RoutingError",
    "NoHandlerRegisteredError",
    "MiddlewareRejectedError",
    "HandlerFailedError",
    "DuplicateHandlerError",
    "RouterSealedError",
    "RequestError",
    "DeliveryFailedError",
    "RequestTimeoutError",
    "RequestCancelledError",
    "RetryExhaustedError",
    "RemoteError",
    "error_from_dict",
]
