"""Shared pytest fixtures for the media analysis service tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
import pytest

from media_analysis_service.cache import CacheStore, ResultCacheGateway
from media_analysis_service.config import (
    CacheSettings,
    FallbackSettings,
    LoggingSettings,
    ProviderSettings,
    ReconcileSettings,
    Settings,
)
from media_analysis_service.orchestrator import ReconciliationOrchestrator
from media_analysis_service.provider import AnalysisProviderClient

FIXED_NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class _FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache store."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool | None:
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, key: str) -> int:
        self.ttls.pop(key, None)
        return 1 if self.data.pop(key, None) is not None else 0

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None


class _ProviderStub:
    """Canned provider answers served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.job_ids: list[str] = []
        self.search_status = 200
        self.detail: dict[str, Any] | None = None
        self.submit_status = 200
        self.submit_error: Exception | None = None
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            if self.submit_error is not None:
                raise self.submit_error
            return httpx.Response(self.submit_status, json={"id": "new-job"})
        if request.url.path.endswith("/Search"):
            if self.search_status != 200:
                return httpx.Response(self.search_status, text="search unavailable")
            return httpx.Response(200, json={"results": [{"id": job_id} for job_id in self.job_ids]})
        if self.detail is None:
            return httpx.Response(404, text="breakdown not found")
        return httpx.Response(200, json=self.detail)

    @property
    def searches(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "GET" and r.url.path.endswith("/Search")]

    @property
    def fetches(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "GET" and not r.url.path.endswith("/Search")]

    @property
    def submissions(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]


class _TenantsStub:
    def __init__(self) -> None:
        self.settings = None
        self.calls: list[str] = []

    async def resolve(self, tenant: str):
        self.calls.append(tenant)
        return self.settings


class _FallbackStub:
    def __init__(self) -> None:
        self.locator = None
        self.error: Exception | None = None
        self.delay: float = 0.0
        self.calls: list[str] = []

    async def resolve(self, external_id: str, tenant_settings):
        self.calls.append(external_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.locator


@pytest.fixture()
def test_settings(tmp_path) -> Settings:
    return Settings(
        service_name="media-analysis-service-test",
        environment="test",
        api_version="v1",
        base_url="/api/v1",
        logging=LoggingSettings(log_dir=str(tmp_path / "logs")),
        provider=ProviderSettings(base_url="https://provider.test/", api_key="shared-key"),
        fallback=FallbackSettings(base_url="https://fallback.test", api_key="fb-key", api_secret="fb-secret"),
        cache=CacheSettings(
            redis_url="redis://cache.test:6379/0",
            namespace="test",
            default_ttl_sec=3600,
            pending_ttl_sec=240,
        ),
        reconcile=ReconcileSettings(retry_after_sec=300, request_timeout_sec=5),
    )


@pytest.fixture()
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def fake_redis() -> _FakeRedis:
    return _FakeRedis()


@pytest.fixture()
def provider_stub() -> _ProviderStub:
    return _ProviderStub()


@pytest.fixture()
def tenants_stub() -> _TenantsStub:
    return _TenantsStub()


@pytest.fixture()
def fallback_stub() -> _FallbackStub:
    return _FallbackStub()


@pytest.fixture()
def cache_store(fake_redis, test_settings) -> CacheStore:
    return CacheStore(fake_redis, test_settings.cache.namespace, clock=lambda: FIXED_NOW)


@pytest.fixture()
def provider_client(provider_stub, test_settings) -> AnalysisProviderClient:
    return AnalysisProviderClient(test_settings.provider, transport=httpx.MockTransport(provider_stub.handler))


@pytest.fixture()
def make_orchestrator(
    test_settings, cache_store, provider_client, tenants_stub, fallback_stub
) -> Callable[..., ReconciliationOrchestrator]:
    def _build(**overrides: Any) -> ReconciliationOrchestrator:
        clock = overrides.pop("clock", lambda: FIXED_NOW)
        reconcile = overrides.pop("reconcile", test_settings.reconcile)
        kwargs: dict[str, Any] = dict(
            tenants=tenants_stub,
            gateway=ResultCacheGateway(cache_store, provider_client, test_settings.cache, clock=clock),
            provider=provider_client,
            fallback=fallback_stub,
            store=cache_store,
            settings=reconcile,
            cache_settings=test_settings.cache,
            clock=clock,
        )
        kwargs.update(overrides)
        return ReconciliationOrchestrator(**kwargs)

    return _build
