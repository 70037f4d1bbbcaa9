"""FastAPI application wiring for the subscription service."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.runner import SubscriptionLifecycleRunner
from .domain.service import AdminService
from .logging_config import configure_logging
from .mailer import ResendEmailClient
from .notifier import LifecycleNotifier
from .repository import SubscriberRepository
from .scheduling.daily_check import build_run_guard

settings = get_settings()


def build_runner(
    repository: SubscriberRepository, mailer: ResendEmailClient, settings: Settings
) -> SubscriptionLifecycleRunner:
    """Assemble the lifecycle runner over the Postgres repository and Resend."""
    return SubscriptionLifecycleRunner(
        repository,
        LifecycleNotifier(repository, mailer),
        timezone=settings.lifecycle_timezone,
        ledger=repository if settings.lifecycle_ledger_enabled else None,
        audit=repository,
    )


def build_mailer(settings: Settings) -> ResendEmailClient:
    return ResendEmailClient(
        settings.resend_api_key,
        sender=settings.email_from,
        base_url=settings.resend_api_url,
        timeout=settings.email_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, mailer, services) for the app lifecycle."""
    configure_logging(settings.log_level)
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    mailer = build_mailer(settings)
    repository = SubscriberRepository(pool)
    app.state.pool = pool
    app.state.settings = settings
    app.state.admin_service = AdminService(repository, timezone=settings.lifecycle_timezone)
    app.state.lifecycle_runner = build_runner(repository, mailer, settings)
    app.state.run_guard = build_run_guard(settings)
    try:
        yield
    finally:
        mailer.close()
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
