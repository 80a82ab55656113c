"""
Tests for Middleware in app/core/middleware.py

Covers:
- CorrelationIdMiddleware: correlation ID propagation
- RequestLoggingMiddleware: request logging
- SecurityHeadersMiddleware: security headers
- AuthRateLimitMiddleware: rate limiting on /auth/ paths
- Exception handlers: AppException, request validation, generic Exception
"""
from decimal import Decimal

from fastapi import FastAPI
from pydantic import BaseModel
import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from app.core.middleware import (
    AuthRateLimitMiddleware,
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    setup_exception_handlers,
)
from app.core.exceptions import InsufficientBalanceError, InternalServiceError


# ============================================================================
# Helpers
# ============================================================================


def _hello(request: Request) -> PlainTextResponse:
    """Minimal endpoint."""
    return PlainTextResponse("ok")


def _error(request: Request) -> PlainTextResponse:
    """Endpoint that raises."""
    raise ValueError("boom")


def _build_app(
    *,
    middlewares: list[tuple] | None = None,
) -> Starlette:
    """Build a minimal Starlette app with the given middleware."""
    app = Starlette(routes=[
        Route("/test", _hello),
        Route("/api/auth/login", _hello, methods=["GET", "POST"]),
        Route("/error", _error),
    ])
    if middlewares:
        for mw_class, kwargs in middlewares:
            app.add_middleware(mw_class, **kwargs)
    return app


class _Body(BaseModel):
    amount: int


def _build_fastapi_app() -> FastAPI:
    """FastAPI app wired with the real exception handlers"""
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/domain-error")
    async def domain_error():
        raise InsufficientBalanceError(Decimal("10.00"), Decimal("20.00"))

    @app.get("/internal-error")
    async def internal_error():
        try:
            raise ConnectionError("db unreachable at 10.0.0.5")
        except ConnectionError as e:
            raise InternalServiceError("executing transfer") from e

    @app.post("/validated")
    async def validated(body: _Body):
        return {"amount": body.amount}

    @app.get("/crash")
    async def crash():
        raise RuntimeError("db host 10.0.0.9 unreachable")

    return app


# ============================================================================
# CorrelationIdMiddleware
# ============================================================================


class TestCorrelationIdMiddleware:

    @pytest.mark.unit
    def test_generates_correlation_id_when_missing(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            response = client.get("/test")
            assert response.status_code == 200
            assert len(response.headers["x-correlation-id"]) == 8

    @pytest.mark.unit
    def test_preserves_existing_correlation_id(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            response = client.get("/test", headers={"X-Correlation-ID": "my-id"})
            assert response.headers["x-correlation-id"] == "my-id"

    @pytest.mark.unit
    def test_correlation_id_unique_per_request(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            r1 = client.get("/test")
            r2 = client.get("/test")
            assert r1.headers["x-correlation-id"] != r2.headers["x-correlation-id"]


# ============================================================================
# RequestLoggingMiddleware
# ============================================================================


class TestRequestLoggingMiddleware:

    @pytest.mark.unit
    def test_successful_request_logged(self) -> None:
        app = _build_app(middlewares=[(RequestLoggingMiddleware, {})])
        with TestClient(app) as client:
            assert client.get("/test").status_code == 200

    @pytest.mark.unit
    def test_exception_in_handler_reraised(self) -> None:
        app = _build_app(middlewares=[(RequestLoggingMiddleware, {})])
        with TestClient(app, raise_server_exceptions=False) as client:
            assert client.get("/error").status_code == 500


# ============================================================================
# SecurityHeadersMiddleware
# ============================================================================


class TestSecurityHeadersMiddleware:

    @pytest.mark.unit
    def test_production_headers(self) -> None:
        app = _build_app(middlewares=[(SecurityHeadersMiddleware, {"debug": False})])
        with TestClient(app) as client:
            response = client.get("/test")
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["cache-control"] == "no-store"
        assert response.headers["content-security-policy"] == "upgrade-insecure-requests"
        assert "max-age=31536000" in response.headers["strict-transport-security"]

    @pytest.mark.unit
    def test_debug_skips_transport_headers(self) -> None:
        app = _build_app(middlewares=[(SecurityHeadersMiddleware, {"debug": True})])
        with TestClient(app) as client:
            response = client.get("/test")
        assert response.headers["x-content-type-options"] == "nosniff"
        assert "strict-transport-security" not in response.headers
        assert "content-security-policy" not in response.headers


# ============================================================================
# AuthRateLimitMiddleware
# ============================================================================


class TestAuthRateLimitMiddleware:

    @pytest.mark.unit
    def test_allows_requests_under_limit(self) -> None:
        app = _build_app(
            middlewares=[(AuthRateLimitMiddleware, {"max_requests": 3, "window_seconds": 60})]
        )
        with TestClient(app) as client:
            for _ in range(3):
                assert client.post("/api/auth/login").status_code == 200

    @pytest.mark.unit
    def test_blocks_over_limit(self) -> None:
        app = _build_app(
            middlewares=[(AuthRateLimitMiddleware, {"max_requests": 3, "window_seconds": 60})]
        )
        with TestClient(app) as client:
            for _ in range(3):
                client.post("/api/auth/login")
            response = client.post("/api/auth/login")

        assert response.status_code == 429
        assert response.headers["retry-after"] == "60"
        assert response.json()["error"]["code"] == "ERR_1006"

    @pytest.mark.unit
    def test_other_paths_not_limited(self) -> None:
        app = _build_app(
            middlewares=[(AuthRateLimitMiddleware, {"max_requests": 1, "window_seconds": 60})]
        )
        with TestClient(app) as client:
            for _ in range(5):
                assert client.get("/test").status_code == 200

    @pytest.mark.unit
    def test_window_expires(self) -> None:
        limiter = AuthRateLimitMiddleware(_build_app(), max_requests=1, window_seconds=60)
        limiter._requests["10.0.0.1"] = [1000.0]
        limiter._requests["10.0.0.2"] = [1000.0, 1050.0]

        limiter._cleanup_window("10.0.0.1", 1061.0)
        limiter._cleanup_window("10.0.0.2", 1061.0)

        assert "10.0.0.1" not in limiter._requests
        assert limiter._requests["10.0.0.2"] == [1050.0]


# ============================================================================
# Exception handlers
# ============================================================================


class TestExceptionHandlers:

    @pytest.mark.unit
    def test_domain_error_shape(self) -> None:
        with TestClient(_build_fastapi_app()) as client:
            response = client.get("/domain-error")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "ERR_4001"
        assert error["message"] == "insufficient balance"
        assert error["details"] == {"current_balance": "10.00", "required_amount": "20.00"}
        assert "x-correlation-id" in response.headers

    @pytest.mark.unit
    def test_internal_error_hides_cause(self) -> None:
        with TestClient(_build_fastapi_app()) as client:
            response = client.get("/internal-error")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "ERR_1000"
        assert "10.0.0.5" not in response.text

    @pytest.mark.unit
    def test_request_validation_is_400(self) -> None:
        with TestClient(_build_fastapi_app()) as client:
            response = client.post("/validated", json={"amount": "not-a-number"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "ERR_1001"
        assert error["details"]["errors"][0]["field"] == "amount"

    @pytest.mark.unit
    def test_unhandled_exception_is_generic_500(self) -> None:
        with TestClient(_build_fastapi_app(), raise_server_exceptions=False) as client:
            response = client.get("/crash")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "ERR_1000"
        message = response.json()["error"]["message"]
        assert message == "An unexpected error occurred"
        assert "10.0.0.9" not in message
