"""
Custom Middleware Example - Writing Your Own Pre-Dispatch Gate
================================================================

Middleware is any subclass of ``Middleware`` (or any plain function passed
to ``Router.use()``). This example adds a per-sender rate limiter and a
retry-wrapped handler whose API token expires once.

Usage:
    python examples/custom_middleware.py
"""

from __future__ import annotations

import asyncio
from collections import Counter

from switchboard import Client, InMemoryTransport, Message, MiddlewareRejectedError, Router
from switchboard.core.exceptions import SwitchboardError
from switchboard.core.messages import Envelope, SenderContext
from switchboard.routing.middleware import Middleware, MiddlewareResult
from switchboard.routing.retry import RetryPolicy, with_retry


class RateLimitMiddleware(Middleware):
    """Blocks a sender after ``limit`` messages."""

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._seen: Counter[str] = Counter()

    @property
    def name(self) -> str:
        return "RateLimitMiddleware"

    async def process(self, envelope: Envelope, sender: SenderContext) -> MiddlewareResult:
        self._seen[sender.endpoint_id] += 1
        if self._seen[sender.endpoint_id] > self._limit:
            return MiddlewareResult.block("Rate limit exceeded", limit=self._limit)
        return MiddlewareResult.allow()


async def main() -> None:
    router = Router(endpoint_id="background")
    router.use(RateLimitMiddleware(limit=3))

    # Plain functions are wrapped in FunctionMiddleware.
    router.use(lambda envelope, sender: not envelope.type.startswith("INTERNAL_"))

    state = {"token_valid": False}

    async def fetch_expenses(envelope, sender):
        if not state["token_valid"]:
            raise SwitchboardError("Token expired", error_code="AUTH_EXPIRED")
        return [{"merchant": "Acme", "amount": 12.5}]

    async def refresh_token(envelope, sender, error):
        print(f"Refreshing token after {error.error_code}")
        state["token_valid"] = True

    router.register(
        "FETCH_EXPENSES",
        with_retry(fetch_expenses, RetryPolicy(max_retries=1), on_retry=refresh_token),
    )

    async with Client(InMemoryTransport(router), source="popup") as popup:
        print(f"Expenses : {await popup.request('FETCH_EXPENSES')}")

        for message_type in ("INTERNAL_RESET", "FETCH_EXPENSES", "FETCH_EXPENSES"):
            try:
                await popup.request(message_type)
                print(f"{message_type:<16}: ok")
            except MiddlewareRejectedError as exc:
                print(f"{message_type:<16}: blocked by {exc.middleware_id} ({exc.reason or 'no reason'})")


if __name__ == "__main__":
    asyncio.run(main())
