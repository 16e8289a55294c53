"""
middleware.py

HTTP plumbing shared by every route:
- domain exception -> JSON error mapping
- request timing/logging with slow-request warnings
- fixed-window rate limiting per client
"""
import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cinestream.core import metrics
from cinestream.core.config import settings
from cinestream.core.errors import CineStreamError
from cinestream.services.auth import user_id_from_token
from cinestream.services.rate_limit import check_rate_limit

logger = logging.getLogger(__name__)


def error_body(error: str, message: str, **extra) -> dict:
    body = {"error": error, "message": message}
    body.update(extra)
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CineStreamError)
    async def handle_domain_error(request: Request, exc: CineStreamError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        headers = {}
        retry_after = exc.details.get("retry_after")
        if retry_after:
            headers["Retry-After"] = str(int(retry_after))
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.error, exc.message), headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        content = error_body(_status_phrase(exc.status_code), message)
        if not isinstance(exc.detail, str):
            content["detail"] = exc.detail
        return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", [])[1:]), "message": err.get("msg")}
            for err in exc.errors()
        ]
        first = errors[0]["message"] if errors else "Invalid request"
        return JSONResponse(status_code=400, content=error_body("Invalid request", first, errors=errors))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error", "An unexpected error occurred"),
        )


def _status_phrase(code: int) -> str:
    return {
        400: "Invalid request",
        401: "Unauthorized",
        403: "Forbidden",
        404: "Not found",
        405: "Method not allowed",
        409: "Conflict",
        429: "Rate limit exceeded",
    }.get(code, "Error")


def client_identity(request: Request) -> str:
    """user:<id> for a valid bearer token, else ip:<first X-Forwarded-For or peer address>."""
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        user_id = user_id_from_token(auth[7:].strip())
        if user_id is not None:
            return f"user:{user_id}"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return f"ip:{first}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


def register_middleware(app: FastAPI) -> None:
    # Registered first so it runs innermost; timing covers the handler only
    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        if not settings.rate_limit_enabled or request.method == "OPTIONS":
            return await call_next(request)
        client_id = client_identity(request)
        try:
            result = await check_rate_limit(client_id, request.url.path)
        except Exception as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            result = None

        if result is not None and not result.allowed:
            await metrics.increment("rate_limit_rejections")
            return JSONResponse(
                status_code=429,
                content=error_body(
                    "Rate limit exceeded",
                    f"Too many requests. Please try again in {result.reset_after} seconds.",
                    retryAfter=result.reset_after,
                ),
                headers={
                    "Retry-After": str(result.reset_after),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        if result is not None:
            response.headers["X-RateLimit-Limit"] = str(result.limit)
            response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        return response

    @app.middleware("http")
    async def request_timing(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        response.headers["X-Response-Time"] = f"{elapsed_ms:.1f}ms"
        line = f"{request.method} {request.url.path} -> {response.status_code} in {elapsed_ms:.1f}ms"
        if elapsed_ms >= settings.slow_request_ms:
            logger.warning(f"Slow request: {line}")
        else:
            logger.info(line)
        await metrics.timing("http_request", elapsed_ms)
        return response
