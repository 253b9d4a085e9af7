"""
Main FastAPI application.

Gateway notification service with:
- Explicitly wired collaborators (no implicit gateway singletons)
- Request ID tracking
- Structured logging
- Prometheus metrics
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import redis.asyncio as aioredis
import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payment_notifications import __version__
from payment_notifications.config import Settings, get_settings
from payment_notifications.core.events import (
    EventDispatcher,
    EventSink,
    LoggingEventSink,
    RedisStreamEventSink,
)
from payment_notifications.core.notifications import NotificationHandler
from payment_notifications.core.order_store import SqlAlchemyOrderStore
from payment_notifications.core.reconciliation import ReconciliationEngine
from payment_notifications.database.connection import close_db, get_session_factory, init_db
from payment_notifications.integrations.verifier import (
    AlipayNotificationVerifier,
    WechatPaymentVerifier,
    WechatRefundVerifier,
)
from payment_notifications.monitoring.health import HealthCheck
from payment_notifications.monitoring.logging import setup_logging

from .routes import Services, monitoring_router, notify_router

logger = structlog.get_logger(__name__)


def _build_event_sink(settings: Settings) -> tuple[EventSink, Optional[aioredis.Redis]]:
    if settings.event_sink == "redis":
        if not settings.redis_url:
            raise ValueError("REDIS_URL is required when EVENT_SINK=redis")
        redis_client = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        sink = RedisStreamEventSink(
            redis_client,
            stream_name=settings.event_stream_name,
            maxlen=settings.event_stream_maxlen,
        )
        return sink, redis_client
    return LoggingEventSink(), None


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    event_sink: Optional[EventSink] = None,
    alipay_verifier: Optional[AlipayNotificationVerifier] = None,
    wechat_verifier: Optional[WechatPaymentVerifier] = None,
    wechat_refund_verifier: Optional[WechatRefundVerifier] = None,
) -> FastAPI:
    """
    Build the application and wire its collaborators.

    Anything not passed in is built from settings. When no session factory is
    given, the global engine is used and its tables are created on startup.

    Args:
        settings: Application settings
        session_factory: Database session factory
        event_sink: Destination for order events
        alipay_verifier: Alipay notification verifier
        wechat_verifier: WeChat Pay payment verifier
        wechat_refund_verifier: WeChat Pay refund verifier

    Returns:
        FastAPI: Configured application
    """
    settings = settings or get_settings()
    setup_logging(settings)

    manage_database = session_factory is None
    session_factory = session_factory or get_session_factory()

    redis_client = None
    if event_sink is None:
        event_sink, redis_client = _build_event_sink(settings)

    events = EventDispatcher(event_sink)
    engine = ReconciliationEngine(SqlAlchemyOrderStore(session_factory), events)
    services = Services(
        handler=NotificationHandler(engine),
        alipay=alipay_verifier
        or AlipayNotificationVerifier(settings.alipay_signature_check, settings.alipay_app_id),
        wechat=wechat_verifier or WechatPaymentVerifier(settings.wechat_signature_check),
        wechat_refund=wechat_refund_verifier
        or WechatRefundVerifier(settings.wechat_refund_decrypt),
        health_check=HealthCheck(session_factory, redis_client),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
        """
        Application lifespan manager.

        Handles startup and shutdown events.
        """
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            env=settings.app_env,
            event_sink=type(event_sink).__name__,
        )

        if manage_database:
            try:
                await init_db()
                logger.info("database_initialized")
            except Exception as e:
                logger.error("database_initialization_failed", error=str(e))
                raise

        yield

        logger.info("application_shutdown", pending_events=events.pending_count)
        await events.drain()
        if redis_client is not None:
            await redis_client.close()
        if manage_database:
            try:
                await close_db()
                logger.info("database_connections_closed")
            except Exception as e:
                logger.error("database_shutdown_error", error=str(e))

    app = FastAPI(
        title="Payment Notification Service",
        description=(
            "Reconciles Alipay and WeChat Pay asynchronous notifications into order "
            "state exactly once, and answers each gateway with its mandated reply."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )
    app.state.services = services
    app.state.events = events

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """
        Add request ID to all requests for tracing.

        Also adds timing information and structured logging context.
        """
        request_id = str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        logger.info(
            "request_started",
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response

        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled exceptions.
        """
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            },
        )

    app.include_router(notify_router)
    app.include_router(monitoring_router)

    return app


def main() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "payment_notifications.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
