"""
api/main.py -- HTTP adapter for the identity-core authentication service.

Run with:  uvicorn api.main:app --reload

Wiring (lifespan):
  startup   build PrincipalDirectory and RevocationStore on DATABASE_URL,
            hand SECRET_KEY to a TokenCodec once, compose AuthService, start
            the scheduled revocation purge.
  shutdown  cancel the purge, dispose both engines.

Request path (outermost first): CORS, SlowAPI rate limiting, request log,
router. Service code raises AuthError subclasses; one handler below turns
them into the {"error": {...}} envelope with the kind's HTTP status.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.directory import PrincipalDirectory
from auth.revocation import RevocationStore
from auth.service import AuthService
from auth.tokens import TokenCodec
from core.config import get_settings
from core.errors import AuthError, StoreUnavailable

VERSION = "0.1.0"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("identity.api")


async def _purge_loop(service: AuthService, interval: float) -> None:
    """Sweep expired revocation records on a fixed interval.

    logout/refresh already purge opportunistically; this keeps the table
    bounded on an instance that sees no such traffic.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await asyncio.to_thread(service.purge_expired)
        except StoreUnavailable:
            logger.warning("Scheduled purge skipped: revocation store unavailable")
            continue
        if removed:
            logger.info("Scheduled purge removed %d revocation record(s)", removed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    directory = PrincipalDirectory(settings.database_url, timeout=settings.store_timeout_seconds)
    revocations = RevocationStore(settings.database_url, timeout=settings.store_timeout_seconds)
    codec = TokenCodec(settings.secret_key, issuer=settings.token_issuer)
    service = AuthService.from_settings(settings, codec, revocations, directory)

    app.state.directory = directory
    app.state.revocations = revocations
    app.state.auth_service = service
    app.state.purge_task = asyncio.create_task(_purge_loop(service, settings.revocation_purge_interval_seconds))
    logger.info(
        "identity-core %s ready (issuer=%s, ttl=%ss, refresh_grace=%ss)",
        VERSION,
        settings.token_issuer,
        settings.token_ttl_seconds,
        settings.refresh_grace_seconds,
    )

    yield

    app.state.purge_task.cancel()
    revocations.close()
    directory.close()
    logger.info("identity-core stopped")


app = FastAPI(
    title="identity-core API",
    description="Token issuance, introspection, refresh and revocation.",
    version=VERSION,
    lifespan=lifespan,
)

# Browser clients only need the token endpoints and bearer-protected reads.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)
app.add_middleware(SlowAPIMiddleware)
app.state.limiter = limiter  # slowapi reads it from here


@app.middleware("http")
async def log_requests(request: Request, call_next):
    # Path only: query strings and bodies may carry tokens.
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    client = request.client.host if request.client else "-"
    logger.info("%s %s -> %d (%.1fms) from %s", request.method, request.url.path, response.status_code, elapsed_ms, client)
    return response


app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


def _error(
    status_code: int,
    code: str,
    message: str,
    detail: Optional[str] = None,
    retryable: bool = False,
) -> JSONResponse:
    envelope = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail, retryable=retryable))
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    status_code = exc.kind.http_status
    response = _error(status_code, exc.code, exc.message, retryable=exc.retryable)
    if exc.retryable:
        response.headers["Retry-After"] = "1"
    if status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = _error(429, "rate_limited", "Too many requests.", detail=str(exc), retryable=True)
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Routes raise HTTPException with a {"code", "message"} dict; pass it through as the error."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # The traceback goes to the log, never into the response.
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Liveness plus a reachability probe of the directory and revocation databases."""
    state = request.app.state
    database = "ok" if state.revocations.ping() and state.directory.ping() else "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
