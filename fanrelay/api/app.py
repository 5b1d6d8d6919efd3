"""FastAPI application for the fanrelay webhook relay.

Endpoints:
  POST   /webhook   -- Broadcast an inbound event to every connected client
  GET    /health    -- Health check (client count, uptime)
  GET    /          -- Service info
  GET    /metrics   -- Prometheus metrics
  WS     /, /ws     -- Live event stream
"""

from __future__ import annotations

import json
import logging
import time
import warnings
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, Request, Response, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Suppress slowapi's use of deprecated asyncio.iscoroutinefunction (fixed upstream in Python 3.16)
warnings.filterwarnings(
    "ignore",
    message=r".*asyncio\.iscoroutinefunction.*",
    category=DeprecationWarning,
    module=r"slowapi\..*",
)
from prometheus_fastapi_instrumentator import Instrumentator  # noqa: E402
from slowapi import Limiter  # noqa: E402
from slowapi.errors import RateLimitExceeded  # noqa: E402
from slowapi.util import get_remote_address  # noqa: E402

import fanrelay  # noqa: E402
from fanrelay.api.websocket import WebSocketConnection  # noqa: E402
from fanrelay.auth import WebhookAuthorizer, require_webhook_auth, shared_secret_predicate  # noqa: E402
from fanrelay.config import Settings, settings  # noqa: E402
from fanrelay.core.broadcaster import Broadcaster  # noqa: E402
from fanrelay.core.models import Event  # noqa: E402
from fanrelay.core.registry import ConnectionRegistry  # noqa: E402
from fanrelay.exceptions import InvalidPayloadError, RelayError  # noqa: E402
from fanrelay.logging_config import log_startup_info, setup_logging  # noqa: E402
from fanrelay.metrics import RelayMetrics  # noqa: E402

logger = logging.getLogger("fanrelay")
_audit_logger = logging.getLogger("fanrelay.audit")

_GREETING = json.dumps(
    {"type": "connected", "message": "WebSocket connection established"}
).encode("utf-8")

_AVAILABLE_ENDPOINTS = ["/health", "/webhook"]

# Parsed but unused while the limiter is disabled.
_FALLBACK_RATE_LIMIT = "600/minute"

# ---------------------------------------------------------------------------
# App lifecycle
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg: Settings = app.state.settings
    app.state.started_at = time.monotonic()
    setup_logging(cfg)
    log_startup_info(cfg)
    yield
    # Graceful shutdown: refuse new sessions, let broadcasts finish, then close peers
    registry: ConnectionRegistry = app.state.registry
    broadcaster: Broadcaster = app.state.broadcaster
    remaining = registry.close()
    logger.info("Shutting down, %d connections registered", len(remaining))
    await broadcaster.drain(timeout=cfg.shutdown_timeout)
    closed = await broadcaster.close_all(code=1001, reason="server shutting down")
    logger.info("Shutdown complete, closed %d connections", closed)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter()


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON; json.loads accepts them by default.
    raise ValueError(f"Invalid JSON constant {name}")


def _uptime(request: Request) -> float:
    return time.monotonic() - request.app.state.started_at


@router.get("/health", tags=["Health"], summary="Health check")
async def health(request: Request):
    registry: ConnectionRegistry = request.app.state.registry
    uptime = round(_uptime(request), 1)
    return {
        "status": "ok",
        "version": fanrelay.__version__,
        "clients": registry.size(),
        "uptime": uptime,
        "uptime_seconds": uptime,
    }


@router.get("/", tags=["Health"], summary="Service info")
async def info(request: Request):
    cfg: Settings = request.app.state.settings
    registry: ConnectionRegistry = request.app.state.registry
    host = request.headers.get("host", request.url.netloc)
    scheme = "wss" if request.url.scheme == "https" else "ws"
    return {
        "status": "ok",
        "service": cfg.service_name,
        "endpoints": {
            "webhook": "POST /webhook",
            "health": "GET /health",
            "websocket": f"{scheme}://{host}",
        },
        "clients": registry.size(),
    }


async def receive_webhook(request: Request):
    """Normalize the JSON body into an Event and broadcast it to every client."""
    body = await request.body()
    try:
        raw: Any = json.loads(body, parse_constant=_reject_constant)
    except ValueError:
        raise InvalidPayloadError() from None
    if not isinstance(raw, dict):
        raise InvalidPayloadError("Webhook body must be a JSON object")

    cfg: Settings = request.app.state.settings
    registry: ConnectionRegistry = request.app.state.registry
    broadcaster: Broadcaster = request.app.state.broadcaster

    event = Event.from_webhook(
        raw,
        default_type=cfg.default_event_type,
        default_source_id=cfg.default_source_id,
    )
    delivered = await broadcaster.broadcast_event(event)
    total = registry.size()
    logger.info(
        "Event %s from %s delivered to %d clients (%d connected)",
        event.type,
        event.source_id,
        delivered,
        total,
        extra={"event_type": event.type, "delivered": delivered, "total_clients": total},
    )
    return {"status": "ok", "clients": delivered, "totalClients": total}


@router.websocket("/")
@router.websocket("/ws")
async def relay_socket(websocket: WebSocket):
    """Register the session, greet it, and hold it open until the peer leaves.

    Inbound frames are read only to notice the disconnect; their content is
    ignored.
    """
    state = websocket.app.state
    cfg: Settings = state.settings
    registry: ConnectionRegistry = state.registry

    await websocket.accept()
    connection = WebSocketConnection(websocket)
    if not registry.register(connection):
        await connection.close(code=1001, reason="server shutting down")
        return

    try:
        if cfg.greeting_enabled:
            outcome = await connection.send(_GREETING, timeout=cfg.send_timeout)
            if not outcome.ok:
                return
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except Exception:
        logger.warning(
            "Connection %s failed",
            connection.connection_id,
            exc_info=True,
            extra={"connection_id": connection.connection_id},
        )
    finally:
        registry.unregister(connection)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    *,
    authorize: WebhookAuthorizer | None = None,
) -> FastAPI:
    """Build a relay app with its own registry, broadcaster and metrics.

    *authorize* overrides the shared-secret check built from settings.
    """
    cfg = app_settings or settings

    app = FastAPI(
        title="fanrelay",
        description="Relays inbound webhook events to connected WebSocket clients.",
        version=fanrelay.__version__,
        lifespan=lifespan,
    )

    metrics = RelayMetrics()
    registry = ConnectionRegistry()
    broadcaster = Broadcaster(
        registry,
        send_timeout=cfg.send_timeout,
        prune_closed=cfg.prune_closed,
        metrics=metrics,
    )
    metrics.connections.set_function(registry.size)

    app.state.settings = cfg
    app.state.registry = registry
    app.state.broadcaster = broadcaster
    app.state.metrics = metrics
    app.state.authorize = authorize or shared_secret_predicate(
        cfg.webhook_secret, cfg.secret_header
    )
    app.state.started_at = time.monotonic()
    # Rate limiter, per app so each app honours its own settings
    limiter = Limiter(key_func=get_remote_address, enabled=cfg.rate_limit_enabled)
    app.state.limiter = limiter
    app.add_api_route(
        "/webhook",
        limiter.limit(cfg.rate_limit if cfg.rate_limit_enabled else _FALLBACK_RATE_LIMIT)(
            receive_webhook
        ),
        methods=["POST"],
        tags=["Webhook"],
        summary="Broadcast an inbound event",
        dependencies=[Depends(require_webhook_auth)],
    )

    # -----------------------------------------------------------------------
    # Error handlers
    # -----------------------------------------------------------------------
    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        """Centralized handler for custom relay exceptions."""
        request_id = getattr(request.state, "request_id", "unknown")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_type,
                "message": exc.message,
                "request_id": request_id,
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        if exc.status_code == 404:
            content: dict[str, Any] = {
                "error": "not_found",
                "message": "Not Found",
                "availableEndpoints": _AVAILABLE_ENDPOINTS,
                "request_id": request_id,
            }
        else:
            content = {
                "error": "http_error",
                "message": str(exc.detail),
                "request_id": request_id,
            }
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429 with Retry-After header on rate limit."""
        request_id = getattr(request.state, "request_id", "unknown")
        _audit_logger.warning(
            "Rate limit exceeded: %s %s from %s",
            request.method,
            request.url.path,
            get_remote_address(request),
            extra={"event_category": "audit", "action": "rate_limit_exceeded"},
        )
        response = JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "message": str(exc.detail),
                "request_id": request_id,
            },
        )
        response.headers["Retry-After"] = "60"
        return response

    # -----------------------------------------------------------------------
    # CORS middleware
    # -----------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origin_list,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", cfg.secret_header],
    )

    # -----------------------------------------------------------------------
    # Security headers middleware
    # -----------------------------------------------------------------------
    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

    # -----------------------------------------------------------------------
    # Request logging middleware (also sets request_id on state for error handlers)
    # -----------------------------------------------------------------------
    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next) -> Response:
        request_id = str(uuid4())[:8]
        request.state.request_id = request_id
        start = time.monotonic()
        response: Response = await call_next(request)
        elapsed_ms = round((time.monotonic() - start) * 1000, 1)
        logger.info(
            "%s %s %s %.1fms [%s]",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
        )
        response.headers["X-Request-ID"] = request_id
        return response

    # -----------------------------------------------------------------------
    # Prometheus metrics
    # -----------------------------------------------------------------------
    Instrumentator(
        excluded_handlers=["/metrics"],
        should_respect_env_var=False,
        registry=metrics.registry,
    ).instrument(app).expose(app, endpoint="/metrics", tags=["Metrics"])

    app.include_router(router)
    return app


app = create_app()
