"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, open sockets, the
database engine). Middleware, CORS, and routers all registered here.

The realtime and webhook collaborators are built eagerly in create_app()
and parked on app.state, not in the lifespan: tests drive the app through
httpx's ASGITransport, which never runs lifespan events, and they swap
collaborators by passing their own into create_app().
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskhub import __version__
from taskhub.api import api_router
from taskhub.auth.verifier import CredentialVerifier
from taskhub.config import settings
from taskhub.db.engine import async_session_factory
from taskhub.errors import register_exception_handlers
from taskhub.logging_config import configure_logging
from taskhub.realtime.dispatcher import EventDispatcher
from taskhub.realtime.notifier import RealtimeNotifier
from taskhub.realtime.registry import ConnectionRegistry
from taskhub.services.membership import (
    MembershipOracle,
    SqlMembershipOracle,
    SqlUserDirectory,
)
from taskhub.webhooks.handlers import register_default_handlers
from taskhub.webhooks.ingress import WebhookIngress
from taskhub.webhooks.processor import WebhookProcessor
from taskhub.webhooks.secret_resolver import SecretResolver

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown.
    """
    logger.info(
        "taskhub.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from taskhub.redis_client import close_redis, init_redis
    try:
        await init_redis()
        logger.info("taskhub.redis_connected")
    except Exception as e:
        logger.warning("taskhub.redis_unavailable", error=str(e))
        # Redis is optional: only rate limiting goes away without it

    yield

    logger.info("taskhub.shutdown", **app.state.registry.stats())
    await app.state.registry.close_all(code=1001, reason="Server shutting down")
    await close_redis()

    from taskhub.db.engine import engine
    await engine.dispose()


def create_app(
    *,
    membership_oracle: Optional[MembershipOracle] = None,
    credential_verifier: Optional[CredentialVerifier] = None,
    webhook_ingress: Optional[WebhookIngress] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="TaskHub",
        description="Projects, tasks and notes with realtime fan-out and webhook ingress",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Collaborators ─────────────────────────────────────────
    if membership_oracle is None:
        membership_oracle = SqlMembershipOracle(async_session_factory)
    if credential_verifier is None:
        lookup = None
        if settings.auth_check_user_exists:
            lookup = SqlUserDirectory(async_session_factory).exists
        credential_verifier = CredentialVerifier(user_lookup=lookup)

    registry = ConnectionRegistry()
    notifier = RealtimeNotifier(registry)

    if webhook_ingress is None:
        processor = WebhookProcessor()
        register_default_handlers(processor, notifier)
        webhook_ingress = WebhookIngress(
            processor,
            SecretResolver(settings.webhook_secrets),
            require_signature=settings.webhook_require_signature,
            max_body_bytes=settings.webhook_max_body_bytes,
        )

    app.state.registry = registry
    app.state.notifier = notifier
    app.state.membership_oracle = membership_oracle
    app.state.credential_verifier = credential_verifier
    app.state.dispatcher = EventDispatcher(registry, membership_oracle)
    app.state.webhook_ingress = webhook_ingress
    app.state.ws_auth_timeout = settings.ws_auth_timeout_seconds

    register_exception_handlers(app)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → RequestContext → handler

    from taskhub.middleware.rate_limit import RateLimitMiddleware
    from taskhub.middleware.request_context import RequestContextMiddleware

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        webhook_rpm=settings.rate_limit_webhook_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount API routes
    app.include_router(api_router)

    # Mount WebSocket route
    from taskhub.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: taskhub.main:app)
app = create_app()
