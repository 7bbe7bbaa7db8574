"""Reconciliation of analysis requests against the result cache and the provider.

One call runs strictly in order: tenant settings, search, then either the
fallback lookup plus submission or the detail fetch plus featurization. Nothing
loops or retries; a caller that gets a pending outcome comes back after the
retry-after hint.
"""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from typing import Any, Callable, Optional

import httpx
import structlog

from .cache import CacheStore, Clock, ResultCacheGateway, utcnow
from .cache_keys import CacheRole, detail_cache_key, search_cache_key, submission_marker_key
from .config import CacheSettings, ReconcileSettings, Settings
from .errors import FallbackResolverError
from .fallback import FallbackMetadataResolver
from .features import extract_features
from .monitoring import record_request_outcome, record_submission, track_step
from .provider import AnalysisProviderClient, breakdown_path, search_path
from .schemas import (
    PROCESSED_STATE,
    AnalysisRequest,
    CachedContent,
    JobResult,
    JobState,
    ReconcileOutcome,
    SearchResult,
    TenantSettings,
    enrich_request,
)
from .tenants import TenantSettingsProvider

logger = structlog.get_logger(__name__)

FeatureExtractor = Callable[[JobResult], Any]


class ReconciliationOrchestrator:
    def __init__(
        self,
        *,
        tenants: TenantSettingsProvider,
        gateway: ResultCacheGateway,
        provider: AnalysisProviderClient,
        fallback: FallbackMetadataResolver,
        store: CacheStore,
        settings: ReconcileSettings,
        cache_settings: CacheSettings,
        extractor: FeatureExtractor = extract_features,
        clock: Clock = utcnow,
    ) -> None:
        self._tenants = tenants
        self._gateway = gateway
        self._provider = provider
        self._fallback = fallback
        self._store = store
        self._settings = settings
        self._cache_settings = cache_settings
        self._extractor = extractor
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReconciliationOrchestrator":
        store = CacheStore.from_settings(settings.cache)
        provider = AnalysisProviderClient(settings.provider)
        return cls(
            tenants=TenantSettingsProvider(settings.tenants),
            gateway=ResultCacheGateway(store, provider, settings.cache),
            provider=provider,
            fallback=FallbackMetadataResolver(settings.fallback),
            store=store,
            settings=settings.reconcile,
            cache_settings=settings.cache,
        )

    async def aclose(self) -> None:
        await self._provider.aclose()
        await self._store.aclose()

    async def reconcile(self, request: AnalysisRequest) -> ReconcileOutcome:
        log = logger.bind(tenant=request.tenant, external_id=request.external_id)
        try:
            outcome = await self._reconcile(request, log)
        except asyncio.CancelledError:
            log.warning("reconciliation cancelled", force_refresh=request.force_refresh)
            record_request_outcome("cancelled")
            raise
        except Exception:
            log.exception("reconciliation failed", request=request.model_dump(mode="json"))
            record_request_outcome("failed")
            raise

        record_request_outcome(outcome.status.value)
        return outcome

    def pending(self) -> ReconcileOutcome:
        return ReconcileOutcome.pending(self._clock() + timedelta(seconds=self._settings.retry_after_sec))

    async def _reconcile(self, request: AnalysisRequest, log: Any) -> ReconcileOutcome:
        with track_step("tenant_settings"):
            tenant_settings = await self._tenants.resolve(request.tenant)
        api_key = tenant_settings.key if tenant_settings else None

        with track_step("search"):
            search = SearchResult.from_content(await self._search(request, api_key))

        job_id = search.first_job_id
        if job_id is None:
            await self._submit_if_possible(request, tenant_settings, api_key, log)
            return self.pending()

        with track_step("fetch"):
            detail = await self._fetch(request, job_id, api_key)
        job = JobResult.from_content(detail)
        if job.job_state is JobState.NOT_READY:
            log.info("analysis job not processed yet", job_id=job_id, state=job.state)
            return self.pending()

        with track_step("featurize"):
            output = self._extractor(job)
        return ReconcileOutcome.finished(detail.model_copy(update={"output": output}))

    def _search_ttl(self, body: str) -> int:
        data = json.loads(body) if body else {}
        if isinstance(data, dict) and data.get("results"):
            return self._cache_settings.default_ttl_sec
        return self._cache_settings.pending_ttl_sec

    def _detail_ttl(self, body: str) -> int:
        data = json.loads(body) if body else {}
        if isinstance(data, dict) and data.get("state") == PROCESSED_STATE:
            return self._cache_settings.default_ttl_sec
        return self._cache_settings.pending_ttl_sec

    async def _search(self, request: AnalysisRequest, api_key: Optional[str]) -> CachedContent:
        return await self._gateway.request_with_cache(
            request.tenant,
            search_cache_key(request.external_id),
            search_path(request.external_id),
            force_refresh=request.force_refresh,
            api_key=api_key,
            ttl_for=self._search_ttl,
            role=CacheRole.SEARCH.value,
        )

    async def _fetch(self, request: AnalysisRequest, job_id: str, api_key: Optional[str]) -> CachedContent:
        return await self._gateway.request_with_cache(
            request.tenant,
            detail_cache_key(request.external_id),
            breakdown_path(job_id),
            force_refresh=request.force_refresh,
            api_key=api_key,
            ttl_for=self._detail_ttl,
            role=CacheRole.BREAKDOWN.value,
        )

    async def _resolve_locator(
        self, request: AnalysisRequest, tenant_settings: TenantSettings | None, log: Any
    ) -> AnalysisRequest:
        if request.has_locator:
            return request
        try:
            with track_step("fallback"):
                located = await self._fallback.resolve(request.external_id, tenant_settings)
        except FallbackResolverError as exc:
            log.warning("fallback lookup failed", error=str(exc))
            located = None
        except Exception:
            log.exception("fallback lookup raised, treating as no locator")
            located = None
        return enrich_request(request, located)

    async def _submit_if_possible(
        self,
        request: AnalysisRequest,
        tenant_settings: TenantSettings | None,
        api_key: Optional[str],
        log: Any,
    ) -> None:
        request = await self._resolve_locator(request, tenant_settings, log)
        if not request.has_locator:
            log.info("no media locator available, submission skipped")
            record_submission("no_locator")
            return

        marker = submission_marker_key(request.external_id)
        if self._settings.submission_marker_enabled:
            claimed = await self._store.claim(request.tenant, marker, self._settings.submission_marker_ttl_sec)
            if not claimed:
                log.info("submission already in progress")
                record_submission("skipped")
                return

        response: httpx.Response | None = None
        try:
            with track_step("submit"):
                response = await self._provider.submit_job(request, api_key=api_key)
        except httpx.HTTPError as exc:
            log.warning("analysis job submission failed", error=str(exc))
        finally:
            # also runs on cancellation, when the POST may never have gone out
            if self._settings.submission_marker_enabled and (response is None or not response.is_success):
                await self._store.release(request.tenant, marker)

        succeeded = response is not None and response.is_success
        if response is not None and not succeeded:
            log.warning("analysis job submission rejected", status_code=response.status_code)
        record_submission("success" if succeeded else "failure")
