"""Per-tenant credential overrides stored as JSON documents in MinIO."""

from __future__ import annotations

import asyncio
import threading
from typing import Optional
from urllib.parse import urlparse

import structlog
from minio import Minio
from minio.error import S3Error

from .config import TenantStoreSettings
from .schemas import TenantSettings

logger = structlog.get_logger(__name__)

_MISSING_CODES = {"NoSuchKey", "NoSuchBucket", "NoSuchObject"}


def build_minio_client(settings: TenantStoreSettings) -> Minio:
    parsed = urlparse(settings.endpoint)
    netloc = parsed.netloc or parsed.path
    return Minio(
        netloc,
        access_key=settings.access_key,
        secret_key=settings.secret_key,
        secure=parsed.scheme == "https",
        region=settings.region,
    )


class TenantSettingsProvider:
    """Resolve a tenant to its overrides; a missing document is not an error."""

    def __init__(self, settings: TenantStoreSettings, client: Minio | None = None) -> None:
        self._settings = settings
        self._client = client
        self._client_lock = threading.Lock()

    def _get_client(self) -> Minio:
        if self._client is not None:
            return self._client
        with self._client_lock:
            if self._client is None:
                self._client = build_minio_client(self._settings)
            return self._client

    def object_name(self, tenant: str) -> str:
        return self._settings.object_template.format(tenant=tenant)

    def _load(self, tenant: str) -> Optional[TenantSettings]:
        client = self._get_client()
        bucket = self._settings.bucket
        if not client.bucket_exists(bucket):
            return None

        try:
            response = client.get_object(bucket, self.object_name(tenant))
        except S3Error as exc:
            if exc.code in _MISSING_CODES:
                return None
            raise

        try:
            body = response.read()
        finally:
            response.close()
            response.release_conn()
        return TenantSettings.model_validate_json(body)

    async def resolve(self, tenant: str) -> Optional[TenantSettings]:
        settings = await asyncio.to_thread(self._load, tenant)
        if settings is None:
            logger.info("tenant settings not found, using shared credentials", tenant=tenant)
        return settings
