"""
switchboard.routing.retry - Bounded Handler Retries
=====================================================

Some handlers fail in ways a collaborator can fix: an expired auth token
can be refreshed, a transient storage error may clear. ``with_retry()``
wraps such a handler so it is re-invoked after a recovery step, but only a
bounded number of times:

    attempt 0 ──✗ AUTH_EXPIRED──→ on_retry() → sleep(delay 0) ─┐
    attempt 1 ──✗ AUTH_EXPIRED──→ on_retry() → sleep(delay 1) ─┤
    ...                                                         │
    attempt N ──✗──→ RetryExhaustedError (last error attached)  │
         ✓ at any point → result returned ←─────────────────────┘

Only SwitchboardErrors whose error_code is listed in
``RetryPolicy.retryable_errors`` are retried. Everything else propagates
unchanged on the first failure.

The retry delay uses exponential backoff with jitter:

    delay = min(initial_delay * (backoff_multiplier ^ attempt) + jitter, max_delay)

Usage:
    >>> async def refresh(envelope, sender, error):
    ...     await token_store.refresh()
    >>> router.register(
    ...     "FETCH_EXPENSES",
    ...     with_retry(fetch_expenses, RetryPolicy(max_retries=1), on_retry=refresh),
    ... )
"""

from __future__ import annotations

import asyncio
import inspect
import random
from collections.abc import Awaitable, Callable
from typing import Any, Optional, Union

import structlog
from pydantic import BaseModel, Field

from switchboard.core.config import SwitchboardConfig
from switchboard.core.exceptions import RetryExhaustedError, SwitchboardError
from switchboard.core.messages import Envelope, SenderContext
from switchboard.routing.router import Handler


logger = structlog.get_logger()


RetryHook = Callable[
    [Envelope, SenderContext, SwitchboardError],
    Union[Any, Awaitable[Any]],
]


# =============================================================================
# RetryPolicy
# =============================================================================
class RetryPolicy(BaseModel):
    """How many times to retry a handler, how long to wait, and for what.

    Attributes:
        max_retries: Retries after the first attempt. 0 disables retrying.
        initial_delay: Base delay in seconds before the first retry.
        max_delay: Cap on the delay in seconds.
        backoff_multiplier: Growth factor of the delay per attempt.
        retryable_errors: Error codes worth retrying.

    Example:
        >>> policy = RetryPolicy(max_retries=2, initial_delay=0.1)
        >>> policy.is_retryable("AUTH_EXPIRED")   # True
        >>> policy.is_retryable("INVALID_INPUT")  # False
    """

    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries after the first attempt",
    )
    initial_delay: float = Field(
        default=0.0,
        ge=0,
        le=30.0,
        description="Base delay in seconds before the first retry",
    )
    max_delay: float = Field(
        default=10.0,
        ge=0,
        le=300.0,
        description="Maximum delay cap in seconds",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Multiplier for exponential backoff",
    )
    retryable_errors: list[str] = Field(
        default_factory=lambda: ["AUTH_EXPIRED", "TRANSIENT_ERROR"],
        description="Error codes that are worth retrying",
    )

    @classmethod
    def from_config(
        cls, config: Optional[SwitchboardConfig] = None, **overrides: Any
    ) -> "RetryPolicy":
        """Build a policy bounded by ``config.max_handler_retries``."""
        config = config or SwitchboardConfig()
        values: dict[str, Any] = {"max_retries": config.max_handler_retries}
        values.update(overrides)
        return cls(**values)

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (zero-based).

        Jitter adds up to 10% of the base delay so concurrent retries spread
        out. Always between 0 and max_delay.
        """
        base_delay = self.initial_delay * (self.backoff_multiplier ** attempt)
        jitter = random.uniform(0, base_delay * 0.1)
        return min(base_delay + jitter, self.max_delay)

    def is_retryable(self, error_code: str) -> bool:
        return error_code in self.retryable_errors


# =============================================================================
# Retry Wrapper
# =============================================================================
def with_retry(
    handler: Handler,
    policy: Optional[RetryPolicy] = None,
    *,
    on_retry: Optional[RetryHook] = None,
) -> Handler:
    """Wrap a handler so retryable failures are retried a bounded number of times.

    Args:
        handler: The handler to protect, sync or async.
        policy: Bounds and retryable codes. Defaults to RetryPolicy().
        on_retry: Recovery step awaited before every retry, e.g. a token
            refresh. Receives ``(envelope, sender, error)``. If it raises,
            that error propagates and no further attempts are made.

    Returns:
        An async handler suitable for Router.register().
    """
    policy = policy or RetryPolicy()
    name = getattr(handler, "__qualname__", None) or repr(handler)
    log = logger.bind(component="retry", handler=name)

    async def retrying_handler(envelope: Envelope, sender: SenderContext) -> Any:
        attempt = 0
        while True:
            try:
                result = handler(envelope, sender)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except SwitchboardError as exc:
                if not policy.is_retryable(exc.error_code):
                    raise
                if attempt >= policy.max_retries:
                    log.warning(
                        "retry_exhausted",
                        message_type=envelope.type,
                        attempts=attempt + 1,
                        error_code=exc.error_code,
                    )
                    raise RetryExhaustedError(
                        envelope.type, attempts=attempt + 1, cause=exc
                    ) from exc

                delay = policy.calculate_delay(attempt)
                log.info(
                    "handler_retrying",
                    message_type=envelope.type,
                    attempt=attempt + 1,
                    max_retries=policy.max_retries,
                    error_code=exc.error_code,
                    delay=round(delay, 3),
                )
                if on_retry is not None:
                    outcome = on_retry(envelope, sender, exc)
                    if inspect.isawaitable(outcome):
                        await outcome
                if delay > 0:
                    await asyncio.sleep(delay)
                attempt += 1

    retrying_handler.__qualname__ = f"with_retry({name})"
    return retrying_handler
