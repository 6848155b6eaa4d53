"""
Expense Extension Example - Popup Talks to the Background Worker
==================================================================

This example wires a miniature expense-tracking browser extension:

    popup ──Client──→ InMemoryTransport ──→ background Router
                                              ├── LoggingMiddleware
                                              ├── AuthMiddleware
                                              └── CREATE_EXPENSE / FETCH_EXPENSES
    open tabs ←── Broadcaster (EXPENSES_CHANGED)

It shows the three outcomes a caller has to handle: a successful reply, a
message type nobody handles, and a request blocked by authentication.

Usage:
    python examples/expense_extension.py
"""

from __future__ import annotations

import asyncio

from switchboard import (
    Broadcaster,
    Client,
    InMemoryTransport,
    Message,
    MiddlewareRejectedError,
    NoHandlerRegisteredError,
    Router,
    configure_logging,
    load_config,
)
from switchboard.routing.middleware import AuthMiddleware, LoggingMiddleware
from switchboard.transport.base import CallbackEndpoint


class TokenStore:
    def __init__(self) -> None:
        self.token: str | None = None

    async def is_authenticated(self, sender) -> bool:
        return self.token is not None

    async def capture(self, envelope, sender) -> dict:
        self.token = envelope.payload["token"]
        return {"authenticated": True}


class ExpenseService:
    def __init__(self, broadcaster: Broadcaster) -> None:
        self._broadcaster = broadcaster
        self._expenses: list[dict] = []

    async def create_expense(self, envelope, sender) -> dict:
        expense = {"id": len(self._expenses) + 1, **envelope.payload}
        self._expenses.append(expense)
        await self._broadcaster.broadcast(
            Message(type="EXPENSES_CHANGED", payload={"count": len(self._expenses)})
        )
        return {"expense": expense}

    async def fetch_expenses(self, envelope, sender) -> list[dict]:
        return list(self._expenses)


async def main() -> None:
    """Start the background router and send a few messages from the popup."""
    config = load_config()
    configure_logging(config)

    # --- Background worker setup ---
    router = Router(endpoint_id="background", config=config)
    transport = InMemoryTransport(router)
    broadcaster = Broadcaster(transport, source="background", config=config)
    tokens = TokenStore()
    expenses = ExpenseService(broadcaster)

    router.use(LoggingMiddleware(level="info"))
    router.use(AuthMiddleware(tokens, config=config))
    router.register("AUTH_CAPTURE_TOKEN", tokens.capture)
    router.register("CREATE_EXPENSE", expenses.create_expense)
    router.register("FETCH_EXPENSES", expenses.fetch_expenses)
    router.seal()

    transport.attach(
        CallbackEndpoint("tab:1", lambda envelope: print(f"[tab:1] {envelope.type} {envelope.payload}"))
    )

    # --- Popup ---
    async with Client(transport, source="popup", config=config) as popup:
        try:
            await popup.send(Message(type="FETCH_EXPENSES"))
        except MiddlewareRejectedError as exc:
            print(f"Signed out   : {exc.reason}")

        await popup.request("AUTH_CAPTURE_TOKEN", {"token": "demo-token"})

        result = await popup.send(
            Message(
                type="CREATE_EXPENSE",
                payload={"merchant": "Acme", "amount": 12.5, "currency": "USD"},
            )
        )
        print(f"Created      : {result['expense']}")
        print(f"All expenses : {await popup.request('FETCH_EXPENSES')}")

        try:
            await popup.send(Message(type="UNKNOWN_TYPE"))
        except NoHandlerRegisteredError as exc:
            print(f"Unknown type : [{exc.error_code}] {exc.message}")


if __name__ == "__main__":
    asyncio.run(main())
