"""
switchboard.routing - Routing Layer
=====================================

    - Router:       Type → handler registry behind a middleware chain
    - Middleware:   Pre-dispatch gates (AuthMiddleware, LoggingMiddleware)
    - Client:       Request/response with correlation, timeout, cancel
    - Broadcaster:  Fire-and-forget fan-out to all endpoints
    - with_retry:   Bounded re-invocation of a handler after recovery
"""

from switchboard.routing.broadcast import Broadcaster
from switchboard.routing.client import USE_DEFAULT, Client, PendingRequest
from switchboard.routing.middleware import (
    AuthMiddleware,
    AuthProvider,
    FunctionMiddleware,
    LoggingMiddleware,
    Middleware,
    MiddlewareResult,
)
from switchboard.routing.retry import RetryPolicy, with_retry
from switchboard.routing.router import Handler, Router

__all__ = [
    "Router",
    "Handler",
    "Middleware",
    "MiddlewareResult",
    "FunctionMiddleware",
    "AuthMiddleware",
    "AuthProvider",
    "LoggingMiddleware",
    "Client",
    "PendingRequest",
    "USE_DEFAULT",
    "Broadcaster",
    "RetryPolicy",
    "with_retry",
]
