"""Global error handlers: every failure is a structured `{"ok": false, ...}` body with the request id."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ledgerboard.errors import ConfigurationError, LedgerboardError, UpstreamUnavailable
from ledgerboard.obs.logging import current_request_id

_LOG = logging.getLogger(__name__)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or current_request_id()


def _error(request: Request, status_code: int, error: str, **extra) -> JSONResponse:
    payload = {"ok": False, "error": error, "request_id": _request_id(request), **extra}
    return JSONResponse(status_code=status_code, content=payload)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        return _error(request, exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        return _error(request, 422, "validation_error", errors=exc.errors())

    @app.exception_handler(ConfigurationError)
    async def configuration_exc_handler(request: Request, exc: ConfigurationError):  # type: ignore[override]
        _LOG.error("request.configuration_error", extra={"reason": exc.reason})
        return _error(request, 500, exc.reason)

    @app.exception_handler(UpstreamUnavailable)
    async def upstream_exc_handler(request: Request, exc: UpstreamUnavailable):  # type: ignore[override]
        _LOG.warning("request.upstream_unavailable", extra={"reason": exc.reason})
        return _error(request, 503, exc.reason)

    @app.exception_handler(LedgerboardError)
    async def domain_exc_handler(request: Request, exc: LedgerboardError):  # type: ignore[override]
        return _error(request, 502, exc.reason)

    @app.exception_handler(RedisError)
    async def redis_exc_handler(request: Request, exc: RedisError):  # type: ignore[override]
        _LOG.warning("request.store_unavailable", extra={"reason": type(exc).__name__})
        return _error(request, 503, "store_unavailable")
