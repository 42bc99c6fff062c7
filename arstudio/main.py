"""FastAPI application entrypoint."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import Response

from arstudio.api.router import api_router
from arstudio.config import get_settings
from arstudio.database import Base, engine
from arstudio.ml.metrics import TrainingMetricsCollector
from arstudio.services.training_service import build_coordinator
from arstudio.storage import build_stores

settings = get_settings()

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.JSONRenderer(),
    ]
)
logger = structlog.get_logger()

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list)


@app.on_event("startup")
def on_startup() -> None:
    """Create the schema and compose the training coordinator."""
    if settings.env.lower() == "production":
        if "*" in settings.cors_origin_list:
            raise RuntimeError("CORS_ORIGINS cannot contain '*' in production")
        if settings.docs_enabled:
            logger.warning("docs_enabled_in_production")

    Base.metadata.create_all(bind=engine)

    session_store, settings_store = build_stores(settings)
    metrics = TrainingMetricsCollector()
    coordinator = build_coordinator(
        settings,
        session_store=session_store,
        settings_store=settings_store,
        metrics=metrics,
    )
    coordinator.load_saved_config()

    app.state.session_store = session_store
    app.state.metrics = metrics
    app.state.coordinator = coordinator
    logger.info("app.startup", env=settings.env, model_types=coordinator.default_model_types)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    """Stop any running session and cancel progress schedules."""
    coordinator = getattr(app.state, "coordinator", None)
    if coordinator is not None:
        await coordinator.cleanup()
    logger.info("app.shutdown")


@app.get("/healthz", tags=["health"])
def healthcheck() -> dict[str, str]:
    """Simple health endpoint for probes."""
    return {"status": "ok"}


@app.get("/health", tags=["health"], include_in_schema=False)
def healthcheck_legacy() -> dict[str, str]:
    """Legacy alias for older dashboard builds."""
    return {"status": "ok"}


@app.get("/metrics", tags=["monitoring"])
def metrics(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    payload, content_type = request.app.state.metrics.render_latest()
    return Response(content=payload, media_type=content_type)


app.include_router(api_router, prefix=settings.api_v1_prefix)
