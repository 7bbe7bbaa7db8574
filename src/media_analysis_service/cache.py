"""Redis-backed result cache and the gateway that fronts the analysis provider.

All state that must survive between calls lives here: cached provider payloads
tagged with an expiry hint, and short-lived submission markers.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import redis.asyncio as aioredis
import structlog

from .cache_keys import storage_key
from .config import CacheSettings
from .monitoring import record_cache_lookup
from .provider import AnalysisProviderClient
from .schemas import CachedContent

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]
TtlPolicy = Callable[[str], int]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheStore:
    """Key/value store with TTL metadata, namespaced per tenant."""

    def __init__(self, client: aioredis.Redis, namespace: str, *, clock: Clock = utcnow) -> None:
        self._client = client
        self._namespace = namespace
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> "CacheStore":
        client = aioredis.Redis.from_url(settings.redis_url, decode_responses=True)
        return cls(client, settings.namespace)

    def _key(self, tenant: str, cache_key: str) -> str:
        return storage_key(self._namespace, tenant, cache_key)

    async def get(self, tenant: str, cache_key: str) -> Optional[CachedContent]:
        raw = await self._client.get(self._key(tenant, cache_key))
        if raw is None:
            return None
        return CachedContent.model_validate_json(raw)

    async def put(self, tenant: str, cache_key: str, content: CachedContent) -> None:
        ttl = int((content.expires - self._clock()).total_seconds())
        await self._client.set(
            self._key(tenant, cache_key),
            content.model_dump_json(),
            ex=max(ttl, 1),
        )

    async def claim(self, tenant: str, cache_key: str, ttl_sec: int) -> bool:
        """Atomically create a marker; False when another caller holds it."""

        created = await self._client.set(
            self._key(tenant, cache_key),
            self._clock().isoformat(),
            ex=ttl_sec,
            nx=True,
        )
        return bool(created)

    async def release(self, tenant: str, cache_key: str) -> None:
        await self._client.delete(self._key(tenant, cache_key))

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def aclose(self) -> None:
        await self._client.aclose()


class ResultCacheGateway:
    """Serve provider responses from the store while fresh, else call the provider and cache."""

    def __init__(
        self,
        store: CacheStore,
        provider: AnalysisProviderClient,
        settings: CacheSettings,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._provider = provider
        self._settings = settings
        self._clock = clock

    def _default_ttl(self, _body: str) -> int:
        return self._settings.default_ttl_sec

    async def request_with_cache(
        self,
        tenant: str,
        cache_key: str,
        remote_path: str,
        *,
        force_refresh: bool = False,
        is_post: bool = False,
        api_key: Optional[str] = None,
        ttl_for: TtlPolicy | None = None,
        role: str = "default",
    ) -> CachedContent:
        log = logger.bind(tenant=tenant, cache_key=cache_key, role=role)
        now = self._clock()

        if force_refresh:
            record_cache_lookup(role, "bypass")
        else:
            cached = await self._store.get(tenant, cache_key)
            if cached is not None and cached.expires > now:
                record_cache_lookup(role, "hit")
                log.debug("cache hit", expires=cached.expires.isoformat())
                return cached
            record_cache_lookup(role, "miss")

        body = await self._provider.request(remote_path, is_post=is_post, api_key=api_key)
        ttl = (ttl_for or self._default_ttl)(body)
        content = CachedContent(value=body, expires=now + timedelta(seconds=ttl))
        await self._store.put(tenant, cache_key, content)
        log.debug("cache refreshed", ttl=ttl)
        return content
