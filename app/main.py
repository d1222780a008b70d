"""
Cozy Connect — FastAPI Application Entry Point

Production-ready application with:
- Async lifespan management (record store, email client, identity verifier)
- CORS, timeout, and structured-logging middleware
- A single handler rendering domain errors as ``{success, error, errorType}``
- Health-check endpoints (liveness + deep readiness)
- Active-request tracking for graceful shutdown
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.config import get_settings
from app.errors import CozyConnectError, DuplicateRecord, StoreUnavailable
from app.services.email_service import EmailService
from app.services.feedback_service import FeedbackService
from app.services.linking_service import LinkingService
from app.services.match_service import MatchService
from app.services.profile_gateway import ProfileGateway
from app.store import build_store
from app.utils.identity import GoogleIdentityVerifier

# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------

def _log_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(ensure_ascii=False),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(_log_level(get_settings().LOG_LEVEL)),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger("cozy")

# ---------------------------------------------------------------------------
# Active request counter for graceful shutdown
# ---------------------------------------------------------------------------

_active_requests: int = 0
_active_requests_lock = asyncio.Lock()
_shutdown_event = asyncio.Event()

DRAIN_TIMEOUT_SECONDS = 15


async def _increment_active() -> None:
    global _active_requests
    async with _active_requests_lock:
        _active_requests += 1


async def _decrement_active() -> None:
    global _active_requests
    async with _active_requests_lock:
        _active_requests -= 1


async def _drain_active_requests() -> None:
    """Wait until all in-flight requests complete or timeout expires."""
    deadline = time.monotonic() + DRAIN_TIMEOUT_SECONDS
    while True:
        async with _active_requests_lock:
            if _active_requests <= 0:
                break
        if time.monotonic() >= deadline:
            logger.warning(
                "drain_timeout_exceeded",
                remaining_requests=_active_requests,
            )
            break
        await asyncio.sleep(0.25)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the store and services, attach them to ``app.state``, and
    release them on shutdown."""
    settings = get_settings()

    # -- Startup --------------------------------------------------------- #
    logger.info(
        "startup_begin",
        environment=settings.ENVIRONMENT,
        log_level=settings.LOG_LEVEL,
        store_backend=settings.STORE_BACKEND,
    )

    # 1. Record store.  The SQL backend creates its table on first start;
    #    production schemas are managed by Alembic.
    store = build_store(settings)
    if settings.STORE_BACKEND == "sql":
        await store.create_schema()
    logger.info("store_initialised", backend=store.backend_name)

    # 2. Collaborators
    email = EmailService(
        settings.RESEND_API_KEY,
        settings.EMAIL_FROM,
        endpoint_url=settings.RESEND_ENDPOINT_URL,
    )
    profiles = ProfileGateway(store, settings.PROFILES_TABLE_ID)

    app.state.store = store
    app.state.email = email
    app.state.profiles = profiles
    app.state.matches = MatchService(store, settings.MATCHES_TABLE_ID, profiles)
    app.state.linking = LinkingService(profiles, email)
    app.state.feedback = FeedbackService(store, settings.FEEDBACK_TABLE_ID)
    app.state.identity = GoogleIdentityVerifier(
        settings.GOOGLE_CLIENT_ID, settings.GOOGLE_JWKS_URL
    )

    if not settings.GOOGLE_CLIENT_ID:
        logger.warning("google_client_id_missing", note="all sign-ins will be rejected")

    logger.info("startup_complete")

    yield

    # -- Shutdown -------------------------------------------------------- #
    logger.info("shutdown_begin")

    # 1. Drain in-flight requests
    _shutdown_event.set()
    await _drain_active_requests()

    # 2. Close HTTP clients and database pools
    await email.aclose()
    await store.aclose()
    logger.info("store_closed")

    logger.info("shutdown_complete")


# ---------------------------------------------------------------------------
# Middleware classes
# ---------------------------------------------------------------------------

class TimeoutMiddleware(BaseHTTPMiddleware):
    """Abort requests that exceed a configurable wall-clock timeout."""

    def __init__(self, app, timeout_seconds: float = 30.0) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await asyncio.wait_for(
                call_next(request),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "request_timeout",
                method=request.method,
                path=request.url.path,
                timeout=self.timeout_seconds,
            )
            return JSONResponse(
                status_code=504,
                content={
                    "success": False,
                    "error": "Request timed out",
                    "errorType": "TIMEOUT",
                },
            )


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()

        await _increment_active()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
            )
            raise
        finally:
            await _decrement_active()

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request_handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return response


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

settings = get_settings()

app = FastAPI(
    title="Cozy Connect",
    description="Swipe-to-connect profile matching for the Cozy community",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# -- Middleware (last added runs first) ---------- #

app.add_middleware(StructuredLoggingMiddleware)
app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -- Error rendering ------------------------------------------------------- #


def _error_body(message: str, error_type: str) -> dict:
    return {"success": False, "error": message, "errorType": error_type}


@app.exception_handler(CozyConnectError)
async def handle_domain_error(request: Request, exc: CozyConnectError) -> JSONResponse:
    message = exc.message
    if isinstance(exc, StoreUnavailable) and not isinstance(exc, DuplicateRecord):
        logger.error(
            "store_unavailable",
            method=request.method,
            path=request.url.path,
            error=exc.message,
        )
        if get_settings().is_production:
            message = "The data service is temporarily unavailable"
    elif exc.status_code >= 500:
        logger.error(
            "request_failed",
            method=request.method,
            path=request.url.path,
            error_type=exc.error_type,
            error=exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content=_error_body(message, exc.error_type))


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    return JSONResponse(
        status_code=422,
        content={**_error_body(message, "INVALID_REQUEST"), "details": _jsonable_errors(errors)},
    )


def _jsonable_errors(errors: list) -> list[dict]:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in errors
    ]


# -- Health-check endpoints ------------------------------------------------ #


@app.get("/api/health", tags=["health"])
async def health_liveness() -> dict:
    """Lightweight liveness probe. Always healthy while the process is
    running."""
    return {"status": "healthy"}


@app.get("/api/health/deep", tags=["health"])
async def health_deep(request: Request) -> dict:
    """Deep readiness probe: verifies the record store answers a query."""
    store = request.app.state.store
    result: dict = {
        "status": "healthy",
        "store": "connected",
        "backend": store.backend_name,
    }

    try:
        await store.ping(get_settings().PROFILES_TABLE_ID)
    except StoreUnavailable as exc:
        logger.error("health_store_failure", error=exc.message)
        result["store"] = f"error: {exc.message}"
        result["status"] = "degraded"

    return result


# -- API router ------------------------------------------------------------ #

from app.api.router import router as api_router  # noqa: E402

app.include_router(api_router, prefix="/api")
