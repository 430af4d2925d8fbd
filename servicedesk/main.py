import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from servicedesk.api.routes import coverage, ping, tickets, tracking
from servicedesk.core.config import Settings, get_settings
from servicedesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from servicedesk.coverage import CoverageService
from servicedesk.metrics import metrics_registry
from servicedesk.middleware import AuthenticationMiddleware
from servicedesk.security import (
    RATE_LIMITS,
    InMemoryRateLimiterBackend,
    RateLimiter,
    RateLimiterBackend,
    RateLimitPolicy,
    RedisRateLimiterBackend,
)
from servicedesk.services import PostgresConnectionTester, to_asyncpg_dsn
from servicedesk.tickets import TicketRepository, TicketService, TrackingService

logger = logging.getLogger(__name__)


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Policies come from the defaults, overridden by the configured limits."""

    policies = dict(RATE_LIMITS)
    policies["track_folio"] = RateLimitPolicy(
        "track_folio",
        max_requests=settings.track_folio_max_requests,
        interval_seconds=settings.track_folio_interval_seconds,
    )
    policies["coverage_check"] = RateLimitPolicy(
        "coverage_check",
        max_requests=settings.coverage_check_max_requests,
        interval_seconds=settings.coverage_check_interval_seconds,
    )

    backend: RateLimiterBackend
    if settings.rate_limit_redis_url:
        backend = RedisRateLimiterBackend.from_url(settings.rate_limit_redis_url)
    else:
        backend = InMemoryRateLimiterBackend()
    return RateLimiter(backend, policies=policies, metrics=metrics_registry)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    app.state.logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)
    app.state.tracer_provider = tracer_provider

    postgres_tester = PostgresConnectionTester(dsn=settings.postgres_dsn)
    rate_limiter = build_rate_limiter(settings)
    app.state.postgres_tester = postgres_tester
    app.state.rate_limiter = rate_limiter

    db_engine = create_async_engine(to_asyncpg_dsn(settings.postgres_dsn), pool_pre_ping=True)
    session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
    repository = TicketRepository(session_factory, engine=db_engine)
    if settings.create_schema_on_startup:
        await repository.ensure_schema()

    app.state.db_engine = db_engine
    app.state.ticket_service = TicketService(
        repository,
        enforce_transitions=settings.enforce_status_transitions,
        metrics=metrics_registry,
    )
    app.state.tracking_service = TrackingService(repository, rate_limiter, metrics=metrics_registry)
    app.state.coverage_service = CoverageService(session_factory)
    logger.info("%s started (%s)", settings.app_name, settings.environment)
    try:
        yield
    finally:
        await db_engine.dispose()
        await postgres_tester.close()
        await rate_limiter.close()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(AuthenticationMiddleware)
    app.include_router(ping.router)
    app.include_router(coverage.router)
    app.include_router(tracking.router)
    app.include_router(tickets.router)
    return app


app = create_app()
