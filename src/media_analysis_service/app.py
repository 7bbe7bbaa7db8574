"""FastAPI application factory for the media analysis service."""

from __future__ import annotations

import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import get_orchestrator, router as api_router
from .config import get_settings
from .logging import configure_logging
from .monitoring import ensure_metrics_server


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    if get_orchestrator.cache_info().currsize:
        await get_orchestrator().aclose()
        get_orchestrator.cache_clear()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.logging, service_name=settings.service_name, environment=settings.environment)

    metrics_disabled = os.getenv("MEDIA_DISABLE_METRICS", "false").lower() in {"1", "true", "yes"}
    if not metrics_disabled:
        ensure_metrics_server(settings.monitoring.prometheus_port)

    app = FastAPI(
        title="Media Analysis Service",
        version=settings.api_version,
        docs_url=f"{settings.base_url}/docs",
        redoc_url=f"{settings.base_url}/redoc",
        openapi_url=f"{settings.base_url}/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    app.include_router(api_router, prefix=settings.base_url)

    @app.get("/healthz")
    async def root_health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


def main() -> None:
    host = os.getenv("MEDIA_HOST", "0.0.0.0")
    port = int(os.getenv("MEDIA_PORT", "8000"))
    reload_enabled = os.getenv("MEDIA_RELOAD", "false").lower() in {"1", "true", "yes"}
    uvicorn.run(
        "media_analysis_service.app:app",
        host=host,
        port=port,
        reload=reload_enabled,
    )


if __name__ == "__main__":
    main()
