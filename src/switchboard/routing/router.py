"""
switchboard.routing.router - Typed Message Router
===================================================

This module implements the Router: the receiving side of Switchboard. It
owns a registry mapping message types to handlers and an ordered chain of
middleware, and turns every inbound envelope into either a success value
or a structured error.

Architecture Context:

    Transport ──envelope──→ ┌──────────────────────────────────┐
                            │ Router.handle(envelope, sender)  │
                            │                                  │
                            │  1. middleware chain (in order)  │
                            │  2. registry lookup by type      │
                            │  3. handler(envelope, sender)    │
                            │  4. wrap result / error in Reply │
                            └──────────────┬───────────────────┘
    Transport ←──reply─────────────────────┘

Dispatch Contract:
    ``dispatch()`` never raises for routing or handler failures. The
    outcome is always a DispatchResult:

        middleware blocks or raises  → MiddlewareRejectedError (no handler ran)
        no handler for envelope.type → NoHandlerRegisteredError
        handler raises               → HandlerFailedError (wrapping the cause)
        handler returns              → success, value unmodified

Registration Phase:
    Handlers and middleware are registered during startup. The registry
    and chain are not guarded against mutation during dispatch; call
    ``seal()`` once setup is done and any later structural change raises
    RouterSealedError.

Usage:
    >>> router = Router()
    >>> router.use(LoggingMiddleware())
    >>> router.use(AuthMiddleware(token_store))
    >>>
    >>> async def create_expense(envelope, sender):
    ...     return {"expense": await expenses.create(envelope.payload)}
    >>> router.register("CREATE_EXPENSE", create_expense)
    >>> router.seal()
    >>>
    >>> result = await router.dispatch(envelope, sender)
    >>> result.ok, result.value
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Optional, Union

import structlog

from switchboard.core.config import SwitchboardConfig
from switchboard.core.enums import DuplicatePolicy
from switchboard.core.exceptions import (
    DuplicateHandlerError,
    HandlerFailedError,
    MiddlewareRejectedError,
    NoHandlerRegisteredError,
    RouterSealedError,
)
from switchboard.core.messages import DispatchResult, Envelope, Reply, SenderContext
from switchboard.routing.middleware import (
    FunctionMiddleware,
    Middleware,
    MiddlewareFunc,
    interpret_outcome,
)


logger = structlog.get_logger()


# =============================================================================
# Type Aliases
# =============================================================================
# A Handler takes the envelope and the sender context and returns the reply
# payload. It may be a plain function or a coroutine function. Collaborators
# (services, stores) are bound in before registration: bound methods,
# callable class instances or functools.partial.
# =============================================================================
Handler = Callable[[Envelope, SenderContext], Union[Any, Awaitable[Any]]]


class Router:
    """Dispatches envelopes to exactly one handler through a middleware chain.

    Attributes:
        _handlers: Maps message type to its handler.
        _middleware: Ordered middleware chain; registration order is
            execution order.
        _duplicate_policy: Default policy for re-registration of a type.
        _endpoint_id: Identifier stamped as ``source`` on replies.
        _sealed: Once True, structural changes raise RouterSealedError.
    """

    def __init__(
        self,
        *,
        endpoint_id: Optional[str] = None,
        duplicate_policy: Optional[DuplicatePolicy] = None,
        config: Optional[SwitchboardConfig] = None,
    ) -> None:
        """Create a router.

        Args:
            endpoint_id: Source id put on replies. Defaults to
                ``config.source_id``.
            duplicate_policy: Overrides ``config.router.duplicate_policy``.
            config: Configuration; defaults to SwitchboardConfig().
        """
        config = config or SwitchboardConfig()

        self._handlers: dict[str, Handler] = {}
        self._middleware: list[Middleware] = []
        self._duplicate_policy: DuplicatePolicy = (
            duplicate_policy or config.router.duplicate_policy
        )
        self._endpoint_id: str = endpoint_id or config.source_id
        self._sealed: bool = False
        self._logger = logger.bind(component="router", endpoint_id=self._endpoint_id)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def endpoint_id(self) -> str:
        return self._endpoint_id

    @property
    def duplicate_policy(self) -> DuplicatePolicy:
        return self._duplicate_policy

    @property
    def registered_types(self) -> list[str]:
        """Registered message types, in registration order."""
        return list(self._handlers)

    @property
    def middleware(self) -> list[Middleware]:
        """A copy of the middleware chain, in execution order."""
        return list(self._middleware)

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    def has_handler(self, message_type: str) -> bool:
        return message_type in self._handlers

    # =========================================================================
    # Registration
    # =========================================================================

    def register(
        self,
        message_type: str,
        handler: Handler,
        *,
        policy: Optional[DuplicatePolicy] = None,
    ) -> None:
        """Register the handler for a message type.

        Args:
            message_type: Dispatch key. Must be non-empty.
            handler: ``(envelope, sender) -> result``, sync or async.
            policy: Duplicate policy for this call; defaults to the router's.

        Raises:
            ValueError: If ``message_type`` is empty.
            DuplicateHandlerError: If the type already has a handler and the
                effective policy is REJECT.
            RouterSealedError: If the router has been sealed.
        """
        self._ensure_not_sealed("register")
        if not message_type:
            raise ValueError("message_type must be a non-empty string")

        effective = policy or self._duplicate_policy
        replaced = message_type in self._handlers
        if replaced and effective is DuplicatePolicy.REJECT:
            self._logger.warning("handler_registration_rejected", message_type=message_type)
            raise DuplicateHandlerError(message_type)

        self._handlers[message_type] = handler
        self._logger.info(
            "handler_registered",
            message_type=message_type,
            replaced=replaced,
            total_handlers=len(self._handlers),
        )

    def unregister(self, message_type: str) -> bool:
        """Remove the handler for a type. Returns False if there was none."""
        self._ensure_not_sealed("unregister")
        removed = self._handlers.pop(message_type, None) is not None
        if removed:
            self._logger.info("handler_unregistered", message_type=message_type)
        return removed

    def use(
        self, middleware: Union[Middleware, MiddlewareFunc]
    ) -> Middleware:
        """Append a middleware to the chain.

        Plain callables are wrapped in FunctionMiddleware.

        Returns:
            The Middleware instance that was appended.

        Raises:
            RouterSealedError: If the router has been sealed.
        """
        self._ensure_not_sealed("use")
        if not isinstance(middleware, Middleware):
            middleware = FunctionMiddleware(middleware)

        self._middleware.append(middleware)
        self._logger.info(
            "middleware_registered",
            middleware=middleware.name,
            position=len(self._middleware) - 1,
        )
        return middleware

    def seal(self) -> None:
        """Freeze the registry and middleware chain. Idempotent."""
        if not self._sealed:
            self._sealed = True
            self._logger.info(
                "router_sealed",
                handlers=len(self._handlers),
                middleware=len(self._middleware),
            )

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def dispatch(
        self, envelope: Envelope, sender: SenderContext
    ) -> DispatchResult:
        """Route one envelope through the middleware chain to its handler.

        Args:
            envelope: The inbound envelope.
            sender: Who sent it.

        Returns:
            DispatchResult with the handler's unmodified return value, or a
            structured error. Never raises for routing or handler failures.
        """
        log = self._logger.bind(
            message_type=envelope.type,
            request_id=envelope.request_id,
        )
        log.debug("dispatch_started", middleware=len(self._middleware))

        # --- Step 1: middleware chain, in registration order ---
        for position, middleware in enumerate(self._middleware):
            rejection = await self._run_middleware(middleware, position, envelope, sender)
            if rejection is not None:
                log.info(
                    "middleware_rejected",
                    middleware=rejection.middleware_id,
                    reason=rejection.reason,
                )
                return DispatchResult.failure(envelope.type, rejection)

        # --- Step 2: registry lookup ---
        handler = self._handlers.get(envelope.type)
        if handler is None:
            log.warning("no_handler_registered")
            return DispatchResult.failure(
                envelope.type, NoHandlerRegisteredError(envelope.type)
            )

        # --- Step 3: invoke the handler ---
        try:
            value = handler(envelope, sender)
            if inspect.isawaitable(value):
                value = await value
        except asyncio.CancelledError as exc:
            # A handler that raises CancelledError on its own is a failed
            # handler. Only cancellation of the dispatching task propagates.
            if _being_cancelled():
                raise
            log.error("handler_failed", error="cancelled", error_type=type(exc).__name__)
            return DispatchResult.failure(
                envelope.type, HandlerFailedError(envelope.type, cause=exc)
            )
        except Exception as exc:
            log.error(
                "handler_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return DispatchResult.failure(
                envelope.type, HandlerFailedError(envelope.type, cause=exc)
            )

        log.debug("dispatch_completed")
        return DispatchResult.success(envelope.type, value)

    async def handle(self, envelope: Envelope, sender: SenderContext) -> Reply:
        """Dispatch and wrap the outcome in a reply correlated by request_id.

        This is the transport-facing entry point.
        """
        result = await self.dispatch(envelope, sender)
        if result.ok:
            return envelope.create_reply(source=self._endpoint_id, payload=result.value)
        return envelope.create_reply(source=self._endpoint_id, error=result.error)

    # =========================================================================
    # Internal Helper Methods
    # =========================================================================

    async def _run_middleware(
        self,
        middleware: Middleware,
        position: int,
        envelope: Envelope,
        sender: SenderContext,
    ) -> Optional[MiddlewareRejectedError]:
        """Run one middleware; return the rejection if it blocked or raised."""
        try:
            decision = interpret_outcome(await middleware.process(envelope, sender))
        except (Exception, asyncio.CancelledError) as exc:
            if isinstance(exc, asyncio.CancelledError) and _being_cancelled():
                raise
            return MiddlewareRejectedError(
                middleware_id=middleware.name,
                reason=str(exc) or type(exc).__name__,
                details={"position": position, "error_type": type(exc).__name__},
            )

        if decision.allowed:
            return None

        details: dict[str, Any] = {"position": position}
        if decision.metadata:
            details["metadata"] = decision.metadata
        return MiddlewareRejectedError(
            middleware_id=middleware.name,
            reason=decision.reason,
            details=details,
        )

    def _ensure_not_sealed(self, operation: str) -> None:
        if self._sealed:
            raise RouterSealedError(operation)


def _being_cancelled() -> bool:
    """True if the current task has a pending cancellation request."""
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0
