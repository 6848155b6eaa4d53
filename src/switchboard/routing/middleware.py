"""
switchboard.routing.middleware - Pre-Dispatch Gates
=====================================================

Middleware runs before a handler and decides whether an envelope may
proceed. The Router runs its chain in registration order; the first
middleware that blocks (or raises) ends the dispatch with a
MiddlewareRejectedError, and nothing after it runs.

Evaluation Flow (inside Router.dispatch):

    Envelope ──→ ┌────────────┐   ┌────────────┐   ┌────────────┐
                 │ logging    │ → │ auth       │ → │ ...        │ → handler
                 └────────────┘   └─────┬──────┘   └────────────┘
                                        │ block / raise
                                        ↓
                              MiddlewareRejectedError

What a Middleware May Return:
    continue:  None, True, MiddlewareDecision.CONTINUE,
               MiddlewareResult(allowed=True)
    block:     False, MiddlewareDecision.BLOCK,
               MiddlewareResult(allowed=False, reason="...")

Plain functions work too; ``Router.use()`` wraps them in FunctionMiddleware:

    >>> async def only_from_tabs(envelope, sender):
    ...     return sender.endpoint_id.startswith("tab:")
    >>> router.use(only_from_tabs)

Built-in Middleware:
    1. AuthMiddleware     - Blocks non-public types while unauthenticated
    2. LoggingMiddleware  - Logs every envelope; always continues
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Optional, Protocol, Union

import structlog
from pydantic import BaseModel, Field

from switchboard.core.config import SwitchboardConfig
from switchboard.core.enums import MiddlewareDecision
from switchboard.core.messages import Envelope, SenderContext


logger = structlog.get_logger()


# =============================================================================
# Middleware Result Model
# =============================================================================
class MiddlewareResult(BaseModel):
    """Explicit decision returned by a middleware.

    Attributes:
        allowed: True lets the envelope through, False blocks it.
        reason: Why it was blocked; surfaces in MiddlewareRejectedError.
        metadata: Extra context for logs.

    Example:
        >>> MiddlewareResult(allowed=False, reason="User is not signed in")
    """

    allowed: bool = Field(description="Whether the envelope may proceed")
    reason: str = Field(default="", description="Explanation of the decision")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def allow(cls) -> "MiddlewareResult":
        return cls(allowed=True)

    @classmethod
    def block(cls, reason: str = "", **metadata: Any) -> "MiddlewareResult":
        return cls(allowed=False, reason=reason, metadata=metadata)


MiddlewareOutcome = Union[MiddlewareResult, MiddlewareDecision, bool, None]
MiddlewareFunc = Callable[
    [Envelope, SenderContext],
    Union[MiddlewareOutcome, Awaitable[MiddlewareOutcome]],
]


def interpret_outcome(outcome: Any) -> MiddlewareResult:
    """Normalize anything a middleware may return into a MiddlewareResult.

    Raises:
        TypeError: If the value is not one of the accepted forms.
    """
    if outcome is None or outcome is True:
        return MiddlewareResult.allow()
    if outcome is False:
        return MiddlewareResult.block()
    if isinstance(outcome, MiddlewareResult):
        return outcome
    if isinstance(outcome, MiddlewareDecision):
        return MiddlewareResult(allowed=outcome is MiddlewareDecision.CONTINUE)
    raise TypeError(
        f"Middleware returned unsupported value of type {type(outcome).__name__}"
    )


# =============================================================================
# Abstract Base Class: Middleware
# =============================================================================
class Middleware(ABC):
    """Base class for all middleware.

    Subclasses implement:
        - ``name`` property: identity reported in MiddlewareRejectedError.
        - ``process()``: inspect the envelope and return a decision.

    Middleware must not modify the envelope (it is frozen anyway) and must
    not keep per-dispatch state on ``self``: several dispatches may be in
    flight at once.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier of this middleware in logs and rejection errors."""
        ...

    @abstractmethod
    async def process(
        self, envelope: Envelope, sender: SenderContext
    ) -> MiddlewareOutcome:
        """Decide whether ``envelope`` may proceed to the next stage."""
        ...


class FunctionMiddleware(Middleware):
    """Adapts a plain sync or async callable to the Middleware interface.

    Args:
        func: ``(envelope, sender) -> outcome`` or a coroutine function.
        name: Identity for errors and logs. Defaults to the function's
            qualified name.
    """

    def __init__(self, func: MiddlewareFunc, name: Optional[str] = None) -> None:
        self._func = func
        self._name = name or getattr(func, "__qualname__", None) or repr(func)

    @property
    def name(self) -> str:
        return self._name

    async def process(
        self, envelope: Envelope, sender: SenderContext
    ) -> MiddlewareOutcome:
        outcome = self._func(envelope, sender)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome


# =============================================================================
# Built-in Middleware: AuthMiddleware
# =============================================================================
# Blocks everything except the auth handshake while the sender is not
# signed in. The check is asynchronous because the collaborator usually
# reads a token store.
#
# Expected collaborator:
#   class AuthProvider(Protocol):
#       async def is_authenticated(self, sender: SenderContext) -> bool: ...
# =============================================================================
class AuthProvider(Protocol):
    """Collaborator consulted by AuthMiddleware."""

    async def is_authenticated(self, sender: SenderContext) -> bool: ...


class AuthMiddleware(Middleware):
    """Blocks non-public message types while the sender is unauthenticated.

    Args:
        auth: Collaborator answering "is this sender signed in?".
        public_prefixes: Type prefixes that are always allowed (the auth
            flow itself, e.g. "AUTH_CAPTURE_TOKEN"). Defaults to
            ``config.router.public_message_prefixes``.
        config: Configuration; defaults to SwitchboardConfig().

    Example:
        >>> router.use(AuthMiddleware(token_store, public_prefixes=["AUTH_"]))
        >>> # FETCH_EXPENSES while signed out → MiddlewareRejectedError
    """

    def __init__(
        self,
        auth: AuthProvider,
        public_prefixes: Optional[Sequence[str]] = None,
        *,
        config: Optional[SwitchboardConfig] = None,
    ) -> None:
        if public_prefixes is None:
            config = config or SwitchboardConfig()
            public_prefixes = config.router.public_message_prefixes
        self._auth = auth
        self._public_prefixes = tuple(public_prefixes)
        self._logger = logger.bind(component="middleware", middleware="auth")

    @property
    def name(self) -> str:
        return "AuthMiddleware"

    def is_public(self, message_type: str) -> bool:
        return message_type.startswith(self._public_prefixes)

    async def process(
        self, envelope: Envelope, sender: SenderContext
    ) -> MiddlewareResult:
        if self.is_public(envelope.type):
            return MiddlewareResult.allow()

        if await self._auth.is_authenticated(sender):
            return MiddlewareResult.allow()

        self._logger.info(
            "auth_required",
            message_type=envelope.type,
            endpoint_id=sender.endpoint_id,
        )
        return MiddlewareResult.block(
            "Authentication required",
            message_type=envelope.type,
        )


# =============================================================================
# Built-in Middleware: LoggingMiddleware
# =============================================================================
class LoggingMiddleware(Middleware):
    """Logs every envelope that reaches the router. Never blocks.

    Args:
        level: structlog method name to log with ("debug", "info", ...).
    """

    def __init__(self, level: str = "debug") -> None:
        self._logger = logger.bind(component="middleware", middleware="logging")
        self._log = getattr(self._logger, level)

    @property
    def name(self) -> str:
        return "LoggingMiddleware"

    async def process(self, envelope: Envelope, sender: SenderContext) -> None:
        self._log(
            "message_received",
            message_type=envelope.type,
            request_id=envelope.request_id,
            source=envelope.metadata.source,
            endpoint_id=sender.endpoint_id,
        )
        return None
