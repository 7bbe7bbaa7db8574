"""Async HTTP client for the media analysis provider's breakdown endpoints."""

from __future__ import annotations

from typing import Dict, Optional
from urllib.parse import quote_plus

import httpx
import structlog

from .config import ProviderSettings
from .errors import ProviderError
from .schemas import AnalysisRequest

logger = structlog.get_logger(__name__)

BREAKDOWNS_PATH = "Breakdowns/Api/Partner/Breakdowns"


def search_path(external_id: str) -> str:
    return f"/{BREAKDOWNS_PATH}/Search?externalId={quote_plus(external_id)}"


def breakdown_path(job_id: str) -> str:
    return f"/{BREAKDOWNS_PATH}/{quote_plus(job_id)}"


def build_submission_path(request: AnalysisRequest) -> str:
    """Compose the job creation path with every query value percent-encoded."""

    if not request.video:
        raise ValueError("A media locator is required to submit an analysis job")

    ext_id = quote_plus(request.external_id)
    query = (
        f"{BREAKDOWNS_PATH}"
        f"?name={ext_id}&externalId={ext_id}"
        f"&videoUrl={quote_plus(request.video)}"
        "&privacy=private&searchable=true"
    )
    if request.description:
        query += "&description=" + quote_plus(request.description)
    if request.categories:
        query += "&metadata=" + quote_plus(" ".join(request.categories))
    return query


class AnalysisProviderClient:
    """Thin wrapper around the provider API; the API key may be overridden per call."""

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=httpx.Timeout(settings.timeout_sec),
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def _headers(self, api_key: Optional[str]) -> Dict[str, str]:
        key = api_key or self._settings.api_key
        if not key:
            return {}
        return {self._settings.api_key_header: key}

    async def request(self, path: str, *, is_post: bool = False, api_key: Optional[str] = None) -> str:
        method = "POST" if is_post else "GET"
        response = await self._client.request(
            method,
            path,
            headers=self._headers(api_key),
            content=b"" if is_post else None,
        )
        if response.status_code >= 400:
            raise ProviderError(
                f"{method} {path} failed ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )
        return response.text

    async def submit_job(self, request: AnalysisRequest, *, api_key: Optional[str] = None) -> httpx.Response:
        """POST a job creation request; the caller decides what a failed status means."""

        path = build_submission_path(request)
        response = await self._client.post(path, headers=self._headers(api_key), content=b"")
        logger.info(
            "analysis job submitted",
            tenant=request.tenant,
            external_id=request.external_id,
            status_code=response.status_code,
        )
        return response

    async def aclose(self) -> None:
        await self._client.aclose()
