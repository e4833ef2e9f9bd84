"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.domain.search.policy import SearchPolicyError
from app.infra.rate_limit import RateLimitExceeded
from app.infra.store import StoreError
from app.obs import logging as obs_logging

logger = logging.getLogger(__name__)


def get_request_id(request: Request, default: str = "unknown") -> str:
    """Id assigned by the observability middleware, else the one bound to the log context."""
    rid = getattr(request.state, "request_id", None)
    if rid:
        return str(rid)
    return obs_logging.current_request_id() or default


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": exc.detail, "request_id": rid}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": "validation_error", "errors": jsonable_encoder(exc.errors()), "request_id": rid}
        return JSONResponse(status_code=400, content=payload)

    @app.exception_handler(ValidationError)
    async def model_validation_exc_handler(request: Request, exc: ValidationError):  # type: ignore[override]
        # query models built through Depends() raise plain pydantic errors
        rid = get_request_id(request)
        errors = jsonable_encoder(exc.errors(include_url=False, include_context=False))
        payload = {"detail": "validation_error", "errors": errors, "request_id": rid}
        return JSONResponse(status_code=400, content=payload)

    @app.exception_handler(SearchPolicyError)
    async def policy_exc_handler(request: Request, exc: SearchPolicyError):  # type: ignore[override]
        rid = get_request_id(request)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "request_id": rid})

    @app.exception_handler(StoreError)
    async def store_exc_handler(request: Request, exc: StoreError):  # type: ignore[override]
        rid = get_request_id(request)
        logger.error("store_unavailable operation=%s reason=%s", exc.operation, exc.reason, exc_info=exc)
        payload = {"detail": "store_unavailable", "retryable": exc.retryable, "request_id": rid}
        return JSONResponse(status_code=500, content=payload)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_exc_handler(request: Request, exc: RateLimitExceeded):  # type: ignore[override]
        rid = get_request_id(request)
        return JSONResponse(
            status_code=429,
            content={"detail": "rate_limited", "retry_after": exc.result.retry_after, "request_id": rid},
            headers=exc.result.headers(),
        )
