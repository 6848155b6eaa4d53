"""
Tests for switchboard.routing.router
======================================

These tests verify the Router: the type → handler registry behind an
ordered middleware chain.

What's Being Tested:
    - Registration:  overwrite/reject policies, unregister, sealing
    - Dispatch:      sync and async handlers, unmodified results
    - Failures:      unknown type, blocking middleware, raising handler
    - handle():      replies correlated by request_id

All tests are async (pytest-asyncio with asyncio_mode=auto).
"""

import asyncio
from functools import partial

import pytest

from switchboard.core.config import RouterConfig, SwitchboardConfig
from switchboard.core.enums import DuplicatePolicy
from switchboard.core.exceptions import (
    DuplicateHandlerError,
    HandlerFailedError,
    MiddlewareRejectedError,
    NoHandlerRegisteredError,
    RouterSealedError,
)
from switchboard.core.messages import Envelope, EnvelopeMetadata, SenderContext
from switchboard.routing.middleware import FunctionMiddleware, Middleware, MiddlewareResult
from switchboard.routing.router import Router


SENDER = SenderContext(endpoint_id="popup")


def _make_envelope(
    message_type: str = "PING",
    payload=None,
    request_id: str | None = "popup:test:1",
) -> Envelope:
    return Envelope(
        type=message_type,
        payload=payload,
        metadata=EnvelopeMetadata(source="popup", request_id=request_id),
    )


# =============================================================================
# Test: Registration
# =============================================================================
class TestRegistration:
    """Tests for register(), unregister() and duplicate policies."""

    def test_register_and_lookup(self, router: Router) -> None:
        router.register("PING", lambda envelope, sender: "pong")
        assert router.has_handler("PING")
        assert router.registered_types == ["PING"]

    def test_empty_type_rejected(self, router: Router) -> None:
        with pytest.raises(ValueError):
            router.register("", lambda envelope, sender: None)

    async def test_overwrite_keeps_last_registration(self, router: Router) -> None:
        """With OVERWRITE (the default) the last registration wins."""
        router.register("PING", lambda envelope, sender: "first")
        router.register("PING", lambda envelope, sender: "second")

        result = await router.dispatch(_make_envelope(), SENDER)

        assert result.value == "second"
        assert router.registered_types == ["PING"]

    def test_reject_policy_from_constructor(self) -> None:
        router = Router(duplicate_policy=DuplicatePolicy.REJECT)
        router.register("PING", lambda envelope, sender: "first")
        with pytest.raises(DuplicateHandlerError) as exc_info:
            router.register("PING", lambda envelope, sender: "second")
        assert exc_info.value.message_type == "PING"

    def test_reject_policy_from_config(self) -> None:
        config = SwitchboardConfig(router=RouterConfig(duplicate_policy="reject"))
        router = Router(config=config)
        assert router.duplicate_policy is DuplicatePolicy.REJECT

    async def test_per_call_policy_overrides_router(self, router: Router) -> None:
        router.register("PING", lambda envelope, sender: "first")
        with pytest.raises(DuplicateHandlerError):
            router.register(
                "PING", lambda envelope, sender: "second", policy=DuplicatePolicy.REJECT
            )
        result = await router.dispatch(_make_envelope(), SENDER)
        assert result.value == "first"

    def test_unregister(self, router: Router) -> None:
        router.register("PING", lambda envelope, sender: "pong")
        assert router.unregister("PING") is True
        assert router.unregister("PING") is False
        assert not router.has_handler("PING")

    def test_endpoint_id_defaults_to_config_source(self) -> None:
        assert Router(config=SwitchboardConfig(source_id="side-panel")).endpoint_id == "side-panel"


# =============================================================================
# Test: Sealing
# =============================================================================
class TestSealing:
    """After seal(), the registry and chain are frozen."""

    def test_seal_blocks_structural_changes(self, router: Router) -> None:
        router.register("PING", lambda envelope, sender: "pong")
        router.seal()

        assert router.is_sealed
        with pytest.raises(RouterSealedError):
            router.register("PONG", lambda envelope, sender: None)
        with pytest.raises(RouterSealedError):
            router.unregister("PING")
        with pytest.raises(RouterSealedError) as exc_info:
            router.use(lambda envelope, sender: None)
        assert exc_info.value.details["operation"] == "use"

    def test_seal_is_idempotent(self, router: Router) -> None:
        router.seal()
        router.seal()
        assert router.is_sealed

    async def test_sealed_router_still_dispatches(self, router: Router) -> None:
        router.register("PING", lambda envelope, sender: "pong")
        router.seal()
        assert (await router.dispatch(_make_envelope(), SENDER)).value == "pong"


# =============================================================================
# Test: Dispatch
# =============================================================================
class TestDispatch:
    """Tests for dispatch() outcomes."""

    async def test_sync_handler(self, router: Router) -> None:
        router.register("PING", lambda envelope, sender: "pong")
        result = await router.dispatch(_make_envelope(), SENDER)
        assert result.ok is True
        assert result.value == "pong"

    async def test_async_handler_receives_envelope_and_sender(self, router: Router) -> None:
        seen = {}

        async def handler(envelope: Envelope, sender: SenderContext):
            seen["payload"] = envelope.payload
            seen["sender"] = sender.endpoint_id
            return {"expense": {"id": 1, **envelope.payload}}

        router.register("CREATE_EXPENSE", handler)
        result = await router.dispatch(
            _make_envelope("CREATE_EXPENSE", payload={"amount": 12.5}), SENDER
        )

        assert result.value == {"expense": {"id": 1, "amount": 12.5}}
        assert seen == {"payload": {"amount": 12.5}, "sender": "popup"}

    async def test_result_returned_unmodified(self, router: Router) -> None:
        value = {"items": [1, 2, 3], "total": None}
        router.register("PING", lambda envelope, sender: value)
        result = await router.dispatch(_make_envelope(), SENDER)
        assert result.value == value

    async def test_none_result_is_success(self, router: Router) -> None:
        router.register("PING", lambda envelope, sender: None)
        result = await router.dispatch(_make_envelope(), SENDER)
        assert result.ok is True
        assert result.value is None

    async def test_bound_collaborator(self, router: Router) -> None:
        """Collaborators are bound in before registration."""

        class ExpenseStore:
            def __init__(self) -> None:
                self.items = ["coffee"]

            async def list_expenses(self, envelope, sender):
                return list(self.items)

        async def count(store, envelope, sender):
            return len(store.items)

        store = ExpenseStore()
        router.register("FETCH_EXPENSES", store.list_expenses)
        router.register("COUNT_EXPENSES", partial(count, store))

        assert (await router.dispatch(_make_envelope("FETCH_EXPENSES"), SENDER)).value == ["coffee"]
        assert (await router.dispatch(_make_envelope("COUNT_EXPENSES"), SENDER)).value == 1

    async def test_unknown_type(self, router: Router) -> None:
        result = await router.dispatch(_make_envelope("UNKNOWN_TYPE"), SENDER)
        assert result.ok is False
        assert result.error.error_code == "NO_HANDLER_REGISTERED"
        with pytest.raises(NoHandlerRegisteredError) as exc_info:
            result.unwrap()
        assert exc_info.value.message_type == "UNKNOWN_TYPE"

    async def test_handler_exception_becomes_structured_error(self, router: Router) -> None:
        def handler(envelope, sender):
            raise ValueError("amount must be positive")

        router.register("CREATE_EXPENSE", handler)
        result = await router.dispatch(_make_envelope("CREATE_EXPENSE"), SENDER)

        assert result.ok is False
        assert result.error.error_type == "HandlerFailedError"
        assert result.error.details["cause_type"] == "ValueError"
        assert result.error.details["cause_message"] == "amount must be positive"
        with pytest.raises(HandlerFailedError):
            result.unwrap()

    async def test_handler_raising_cancelled_error_is_a_failure(self, router: Router) -> None:
        async def torn_down(envelope, sender):
            raise asyncio.CancelledError()

        router.register("FETCH_EXPENSES", torn_down)
        result = await router.dispatch(_make_envelope("FETCH_EXPENSES"), SENDER)

        assert result.ok is False
        assert result.error.error_type == "HandlerFailedError"
        assert result.error.details["cause_type"] == "CancelledError"

    async def test_cancelling_the_dispatch_still_propagates(self, router: Router) -> None:
        router.register("SLOW", lambda envelope, sender: asyncio.Event().wait())
        task = asyncio.create_task(router.dispatch(_make_envelope("SLOW"), SENDER))
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_concurrent_dispatches_are_independent(self, router: Router) -> None:
        async def slow_echo(envelope, sender):
            await asyncio.sleep(0.01 * envelope.payload)
            return envelope.payload

        router.register("ECHO", slow_echo)
        results = await asyncio.gather(
            *(router.dispatch(_make_envelope("ECHO", payload=n), SENDER) for n in (3, 1, 2))
        )
        assert [r.value for r in results] == [3, 1, 2]


# =============================================================================
# Test: Middleware Chain
# =============================================================================
class TestMiddlewareChain:
    """Middleware runs in order; the first block stops everything after it."""

    def _recording(self, calls: list[str], name: str, outcome=None):
        def middleware(envelope, sender):
            calls.append(name)
            return outcome

        return FunctionMiddleware(middleware, name=name)

    async def test_all_continue_reaches_handler(self, router: Router) -> None:
        calls: list[str] = []
        for name in ("first", "second", "third"):
            router.use(self._recording(calls, name))
        router.register("PING", lambda envelope, sender: calls.append("handler") or "pong")

        result = await router.dispatch(_make_envelope(), SENDER)

        assert result.value == "pong"
        assert calls == ["first", "second", "third", "handler"]

    @pytest.mark.parametrize("blocking_position", [0, 1, 2])
    async def test_block_stops_chain(self, router: Router, blocking_position: int) -> None:
        calls: list[str] = []
        names = ["first", "second", "third"]
        for position, name in enumerate(names):
            outcome = False if position == blocking_position else None
            router.use(self._recording(calls, name, outcome))
        router.register("PING", lambda envelope, sender: calls.append("handler"))

        result = await router.dispatch(_make_envelope(), SENDER)

        assert result.ok is False
        assert calls == names[: blocking_position + 1]
        error = result.error.to_exception()
        assert isinstance(error, MiddlewareRejectedError)
        assert error.middleware_id == names[blocking_position]
        assert error.details["position"] == blocking_position

    async def test_block_with_reason(self, router: Router) -> None:
        router.use(
            FunctionMiddleware(
                lambda envelope, sender: MiddlewareResult.block("Rate limited", limit=5),
                name="RateLimit",
            )
        )
        router.register("PING", lambda envelope, sender: "pong")

        result = await router.dispatch(_make_envelope(), SENDER)

        assert result.error.details["reason"] == "Rate limited"
        assert result.error.details["metadata"] == {"limit": 5}

    async def test_raising_middleware_blocks(self, router: Router) -> None:
        handled = []

        async def broken(envelope, sender):
            raise RuntimeError("token store offline")

        router.use(FunctionMiddleware(broken, name="Broken"))
        router.register("PING", lambda envelope, sender: handled.append(True))

        result = await router.dispatch(_make_envelope(), SENDER)

        assert handled == []
        assert result.error.error_code == "MIDDLEWARE_REJECTED"
        assert result.error.details["reason"] == "token store offline"
        assert result.error.details["error_type"] == "RuntimeError"

    async def test_middleware_raising_cancelled_error_blocks(self, router: Router) -> None:
        async def torn_down(envelope, sender):
            raise asyncio.CancelledError()

        router.use(FunctionMiddleware(torn_down, name="TornDown"))
        router.register("PING", lambda envelope, sender: "pong")

        result = await router.dispatch(_make_envelope(), SENDER)

        assert result.error.error_code == "MIDDLEWARE_REJECTED"
        assert result.error.details["error_type"] == "CancelledError"

    async def test_unsupported_return_value_blocks(self, router: Router) -> None:
        router.use(FunctionMiddleware(lambda envelope, sender: "yes", name="Sloppy"))
        router.register("PING", lambda envelope, sender: "pong")
        result = await router.dispatch(_make_envelope(), SENDER)
        assert result.error.error_code == "MIDDLEWARE_REJECTED"

    async def test_middleware_runs_before_lookup(self, router: Router) -> None:
        """An unknown type is still gated by middleware first."""
        router.use(FunctionMiddleware(lambda envelope, sender: False, name="Gate"))
        result = await router.dispatch(_make_envelope("UNKNOWN_TYPE"), SENDER)
        assert result.error.error_code == "MIDDLEWARE_REJECTED"

    def test_use_wraps_callables(self, router: Router) -> None:
        def only_tabs(envelope, sender):
            return sender.endpoint_id.startswith("tab:")

        registered = router.use(only_tabs)
        assert isinstance(registered, Middleware)
        assert registered.name.endswith("only_tabs")
        assert router.middleware == [registered]


# =============================================================================
# Test: handle()
# =============================================================================
class TestHandle:
    """handle() wraps dispatch outcomes in correlated replies."""

    async def test_success_reply(self, router: Router) -> None:
        router.register("PING", lambda envelope, sender: "pong")
        envelope = _make_envelope(request_id="popup:test:42")

        reply = await router.handle(envelope, SENDER)

        assert reply.request_id == "popup:test:42"
        assert reply.type == "PING"
        assert reply.payload == "pong"
        assert reply.error is None
        assert reply.metadata.source == "background"

    async def test_error_reply(self, router: Router) -> None:
        reply = await router.handle(_make_envelope("UNKNOWN_TYPE"), SENDER)
        assert reply.is_error
        assert reply.request_id == "popup:test:1"
        assert reply.error.error_code == "NO_HANDLER_REGISTERED"
