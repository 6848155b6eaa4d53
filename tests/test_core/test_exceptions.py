"""
Tests for switchboard.core.exceptions
=======================================

What's Being Tested:
    - The hierarchy: every error is a SwitchboardError with a stable code
    - to_dict(): the dict that travels inside error replies
    - error_from_dict(): rebuilding the right class on the caller side
"""

import pytest

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


# =============================================================================
# Test: Hierarchy and Codes
# =============================================================================
class TestHierarchy:
    """Each error sits under the right base and carries its code."""

    @pytest.mark.parametrize(
        "error, base, code",
        [
            (ConfigurationError("bad"), SwitchboardError, "CONFIG_ERROR"),
            (NoHandlerRegisteredError("X"), RoutingError, "NO_HANDLER_REGISTERED"),
            (MiddlewareRejectedError("Auth"), RoutingError, "MIDDLEWARE_REJECTED"),
            (HandlerFailedError("X"), RoutingError, "HANDLER_FAILED"),
            (DuplicateHandlerError("X"), RoutingError, "DUPLICATE_HANDLER"),
            (RouterSealedError("register"), RoutingError, "ROUTER_SEALED"),
            (DeliveryFailedError(), RequestError, "DELIVERY_FAILED"),
            (RequestTimeoutError("r-1", 1.0), RequestError, "REQUEST_TIMEOUT"),
            (RequestCancelledError("r-1"), RequestError, "REQUEST_CANCELLED"),
            (RetryExhaustedError("X", 3), SwitchboardError, "RETRY_EXHAUSTED"),
        ],
    )
    def test_base_and_code(self, error, base, code) -> None:
        assert isinstance(error, base)
        assert isinstance(error, SwitchboardError)
        assert error.error_code == code

    def test_to_dict(self) -> None:
        error = SwitchboardError("boom", error_code="BOOM", details={"k": "v"})
        assert error.to_dict() == {
            "error_type": "SwitchboardError",
            "message": "boom",
            "error_code": "BOOM",
            "details": {"k": "v"},
        }

    def test_str_is_message(self) -> None:
        assert str(SwitchboardError("boom")) == "boom"

    def test_repr(self) -> None:
        assert "error_code='UNKNOWN_ERROR'" in repr(SwitchboardError("boom"))


# =============================================================================
# Test: Specific Errors
# =============================================================================
class TestSpecificErrors:
    def test_middleware_rejected_message(self) -> None:
        error = MiddlewareRejectedError("AuthMiddleware", reason="Authentication required")
        assert error.middleware_id == "AuthMiddleware"
        assert error.reason == "Authentication required"
        assert "Authentication required" in error.message

    def test_handler_failed_records_cause(self) -> None:
        cause = SwitchboardError("expired", error_code="AUTH_EXPIRED")
        error = HandlerFailedError("FETCH_EXPENSES", cause=cause)
        assert error.cause is cause
        assert error.details["cause_type"] == "SwitchboardError"
        assert error.details["cause_message"] == "expired"
        assert error.details["cause_code"] == "AUTH_EXPIRED"

    def test_handler_failed_without_switchboard_cause(self) -> None:
        error = HandlerFailedError("FETCH_EXPENSES", cause=ValueError("nope"))
        assert "cause_code" not in error.details

    def test_retry_exhausted_records_last_error(self) -> None:
        cause = SwitchboardError("expired", error_code="AUTH_EXPIRED")
        error = RetryExhaustedError("FETCH_EXPENSES", attempts=4, cause=cause)
        assert error.attempts == 4
        assert error.details["last_error_code"] == "AUTH_EXPIRED"

    def test_request_error_keeps_request_id(self) -> None:
        error = RequestTimeoutError(request_id="popup:abc:2", timeout_seconds=0.5)
        assert error.request_id == "popup:abc:2"
        assert error.details["timeout_seconds"] == 0.5


# =============================================================================
# Test: Rehydration
# =============================================================================
class TestErrorFromDict:
    """error_from_dict() rebuilds the class named in the dict."""

    def test_rebuilds_middleware_rejection(self) -> None:
        original = MiddlewareRejectedError(
            "AuthMiddleware", reason="Authentication required", details={"position": 1}
        )
        rebuilt = error_from_dict(original.to_dict())

        assert type(rebuilt) is MiddlewareRejectedError
        assert rebuilt.middleware_id == "AuthMiddleware"
        assert rebuilt.reason == "Authentication required"
        assert rebuilt.details["position"] == 1
        assert rebuilt.to_dict() == original.to_dict()

    def test_rebuilds_delivery_failure_with_custom_code(self) -> None:
        original = DeliveryFailedError(
            message="Client is closed", request_id="popup:abc:1", error_code="CLIENT_CLOSED"
        )
        rebuilt = error_from_dict(original.to_dict())
        assert isinstance(rebuilt, DeliveryFailedError)
        assert rebuilt.error_code == "CLIENT_CLOSED"
        assert rebuilt.request_id == "popup:abc:1"

    def test_unknown_type_is_remote_error(self) -> None:
        rebuilt = error_from_dict(
            {"error_type": "Mystery", "message": "?", "error_code": "MYSTERY", "details": {}}
        )
        assert isinstance(rebuilt, RemoteError)
        assert rebuilt.to_dict()["error_type"] == "Mystery"

    def test_missing_fields_tolerated(self) -> None:
        rebuilt = error_from_dict({})
        assert isinstance(rebuilt, RemoteError)
        assert rebuilt.error_code == "REMOTE_ERROR"
