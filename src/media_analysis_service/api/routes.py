"""API route definitions for the media analysis service."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import format_datetime
from functools import lru_cache

import httpx
from fastapi import APIRouter, Depends, Response, status

from ..config import Settings, get_settings, settings_dependency
from ..errors import ProviderError, raise_error
from ..monitoring import collect_dependency_status
from ..orchestrator import ReconciliationOrchestrator
from ..schemas import AnalysisRequest
from .schemas import AnalysisResponse, HealthResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@lru_cache
def get_orchestrator() -> ReconciliationOrchestrator:
    return ReconciliationOrchestrator.from_settings(get_settings())


def orchestrator_dependency() -> ReconciliationOrchestrator:
    return get_orchestrator()


@router.post(
    "/analysis",
    status_code=status.HTTP_200_OK,
    response_model=AnalysisResponse,
)
async def reconcile_analysis(
    payload: AnalysisRequest,
    response: Response,
    settings: Settings = Depends(settings_dependency),
    orchestrator: ReconciliationOrchestrator = Depends(orchestrator_dependency),
) -> AnalysisResponse:
    try:
        outcome = await asyncio.wait_for(
            orchestrator.reconcile(payload),
            timeout=settings.reconcile.request_timeout_sec,
        )
    except asyncio.TimeoutError:
        logger.warning("Reconciliation timed out for %s/%s", payload.tenant, payload.external_id)
        raise_error("ERR_RECONCILE_TIMEOUT")
    except (ProviderError, httpx.HTTPError) as exc:
        raise_error("ERR_PROVIDER_FAILED", detail=str(exc))
    except Exception as exc:  # noqa: BLE001
        raise_error("ERR_RECONCILE_FAILED", detail=str(exc))

    expires = outcome.expires
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    response.headers["Expires"] = format_datetime(expires.astimezone(timezone.utc), usegmt=True)
    return AnalysisResponse(status=outcome.status.value, expires=outcome.expires, output=outcome.output)


@router.get("/monitor/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(settings_dependency)) -> HealthResponse:
    deps = await asyncio.to_thread(collect_dependency_status, settings)
    overall = "ok" if all(value == "ok" for value in deps.values()) else "degraded"
    return HealthResponse(status=overall, timestamp=datetime.now(timezone.utc), dependencies=deps)
