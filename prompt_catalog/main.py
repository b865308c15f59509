# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Prompt Catalog FastAPI Application — Ingestion, retrieval and usage analytics.

Entry point: uvicorn prompt_catalog.main:app --host 0.0.0.0 --port 8200
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from prompt_catalog.api.alerts import router as alerts_router
from prompt_catalog.api.errors import APIError, api_error_handler, systemic_error_handler
from prompt_catalog.api.ingest import router as ingest_router
from prompt_catalog.api.oss_callback import router as oss_callback_router
from prompt_catalog.api.prompts import router as prompts_router
from prompt_catalog.api.usage import router as usage_router
from prompt_catalog.api.webhook import router as webhook_router
from prompt_catalog.config import get_settings
from prompt_catalog.core.errors import SystemicError
from prompt_catalog.core.logging import setup_logging
from prompt_catalog.parsers.batch_validator import BatchValidator
from prompt_catalog.parsers.registry import ParserRegistry
from prompt_catalog.pipeline.catalog_writer import CatalogWriter
from prompt_catalog.pipeline.ingestion import IngestionPipeline
from prompt_catalog.pipeline.reconciler import VersionReconciler
from prompt_catalog.query.ranker import PromptRanker
from prompt_catalog.resilience.retry import RetryManager, RetryPolicy
from prompt_catalog.services.health_monitor import HealthMonitor
from prompt_catalog.services.landing_store import build_landing_store
from prompt_catalog.services.notifier import build_notifier
from prompt_catalog.services.usage_recorder import UsageRecorder
from prompt_catalog.storage.database import Database
from prompt_catalog.storage.repositories import CatalogRepository

logger = logging.getLogger("catalog")

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown hooks."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    # ── Startup ───────────────────────────────────────────────
    logger.info("Prompt catalog starting up...")
    app.state.settings = settings

    # Warehouse
    db = Database(settings.DATABASE_URL, timeout=settings.WAREHOUSE_TIMEOUT_SECONDS)
    await db.init()
    app.state.db = db

    repo = CatalogRepository(db.session_factory, timeout=settings.WAREHOUSE_TIMEOUT_SECONDS)
    app.state.repo = repo

    # Health Monitor (optional, Redis-backed windows)
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    app.state.redis = redis
    health_monitor = None
    if settings.HEALTH_MONITOR_ENABLED:
        notifier = build_notifier(settings.ALERT_WEBHOOK_URL, settings.NOTIFY_TIMEOUT_SECONDS)
        health_monitor = HealthMonitor.from_settings(redis, notifier, settings)
        await health_monitor.start()
    app.state.health_monitor = health_monitor

    # Ingestion Pipeline
    reconciler = VersionReconciler(settings.ARCHIVE_POLICY, settings.ARCHIVE_SCOPE)
    writer = CatalogWriter(
        repo=repo,
        reconciler=reconciler,
        retry=RetryManager(RetryPolicy(
            max_attempts=settings.WRITE_MAX_ATTEMPTS,
            backoff_base=settings.WRITE_BACKOFF_BASE,
            max_backoff=settings.WRITE_BACKOFF_MAX,
        )),
        health_monitor=health_monitor,
    )
    app.state.pipeline = IngestionPipeline(
        parser_registry=ParserRegistry(),
        validator=BatchValidator(tag_delimiter=settings.TAG_DELIMITER),
        reconciler=reconciler,
        writer=writer,
        repo=repo,
        landing_store=build_landing_store(settings),
        health_monitor=health_monitor,
    )

    # Retrieval + usage
    app.state.ranker = PromptRanker(repo)
    app.state.usage_recorder = UsageRecorder(repo, health_monitor)

    logger.info(
        "Prompt catalog ready — host=%s port=%d db=%s landing=%s archive=%s/%s monitor=%s",
        settings.HOST,
        settings.PORT,
        settings.DATABASE_URL.split("@")[-1] if "@" in settings.DATABASE_URL else "***",
        settings.LANDING_STORE,
        settings.ARCHIVE_POLICY,
        settings.ARCHIVE_SCOPE,
        "enabled" if health_monitor else "disabled",
    )

    yield

    # ── Shutdown ──────────────────────────────────────────────
    logger.info("Prompt catalog shutting down...")

    if health_monitor:
        await health_monitor.stop()

    await redis.aclose()
    await db.close()
    logger.info("Prompt catalog stopped.")


# ── App ───────────────────────────────────────────────────────


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Build the application; tests pass use_lifespan=False and fill app.state."""
    application = FastAPI(
        title="Prompt Catalog",
        description="Versioned ADDIE prompt catalog with usage analytics",
        version=VERSION,
        lifespan=lifespan if use_lifespan else None,
    )
    application.add_exception_handler(APIError, api_error_handler)
    application.add_exception_handler(SystemicError, systemic_error_handler)

    @application.get("/health", tags=["system"])
    async def health():
        """Health check endpoint."""
        checks = {}
        db = getattr(application.state, "db", None)
        if db is not None:
            try:
                checks["warehouse"] = "ok" if await db.ping() else "error"
            except (SQLAlchemyError, OSError) as e:
                logger.warning("Warehouse health check failed: %s", e)
                checks["warehouse"] = "error"
        redis = getattr(application.state, "redis", None)
        if redis is not None:
            try:
                await redis.ping()
                checks["redis"] = "ok"
            except RedisError as e:
                logger.warning("Redis health check failed: %s", e)
                checks["redis"] = "error"

        status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
        return {
            "status": status,
            "service": "prompt_catalog",
            "version": VERSION,
            "checks": checks,
        }

    # ── API Routers ───────────────────────────────────────────
    application.include_router(oss_callback_router)
    application.include_router(ingest_router)
    application.include_router(prompts_router)
    application.include_router(usage_router)
    application.include_router(webhook_router)
    application.include_router(alerts_router)
    return application


app = create_app()
