"""Fallback metadata lookups for requests that arrive without a media locator."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urljoin

import structlog
from requests import Response, Session
from requests.exceptions import RequestException

from .config import FallbackSettings
from .errors import FallbackResolverError
from .schemas import FallbackLocator, TenantSettings

logger = structlog.get_logger(__name__)


def sign_request(secret: str, method: str, path: str, params: Mapping[str, Any], body: str = "") -> str:
    """Signature over secret, method, path, sorted params and body (sha256, base64, 43 chars)."""

    to_sign = secret + method.upper() + path
    to_sign += "".join(f"{key}={params[key]}" for key in sorted(params))
    to_sign += body
    digest = hashlib.sha256(to_sign.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")[:43].rstrip("=")


@dataclass(frozen=True)
class FallbackCredentials:
    api_key: str
    api_secret: str


def _bitrate(stream: Mapping[str, Any]) -> float:
    try:
        return float(stream.get("video_bitrate") or 0)
    except (TypeError, ValueError):
        return 0.0


def pick_stream_url(streams: List[Mapping[str, Any]]) -> Optional[str]:
    """Prefer the highest-bitrate progressive mp4 stream, else any stream with a URL."""

    candidates = [s for s in streams if isinstance(s, Mapping) and s.get("url")]
    if not candidates:
        return None
    mp4 = [s for s in candidates if str(s.get("stream_type", "")).lower() in {"mp4", "progressive"}]
    pool = mp4 or candidates
    best = max(pool, key=_bitrate)
    return str(best["url"])


class FallbackMetadataResolver:
    """Look up a playable URL, description and keywords for an external id."""

    def __init__(self, settings: FallbackSettings, session: Session | None = None) -> None:
        self._settings = settings
        self._session = session or Session()
        self._session.headers.setdefault("Accept", "application/json")

    def credentials_for(self, tenant_settings: TenantSettings | None) -> Optional[FallbackCredentials]:
        key = (tenant_settings.fallback_key if tenant_settings else None) or self._settings.api_key
        secret = (tenant_settings.fallback_secret if tenant_settings else None) or self._settings.api_secret
        if not key or not secret:
            return None
        return FallbackCredentials(api_key=key, api_secret=secret)

    def _get(self, path: str, creds: FallbackCredentials, extra: Dict[str, Any] | None = None) -> Any:
        params: Dict[str, Any] = dict(extra or {})
        params["api_key"] = creds.api_key
        params["expires"] = int(time.time()) + self._settings.signature_expiry_sec
        params["signature"] = sign_request(creds.api_secret, "GET", path, params)

        url = urljoin(self._settings.base_url.rstrip("/") + "/", path.lstrip("/"))
        try:
            response = self._session.get(url, params=params, timeout=self._settings.timeout_sec)
        except RequestException as exc:  # noqa: BLE001
            raise FallbackResolverError(f"lookup request failed: {exc}") from exc
        self._ensure_success(response, path)
        try:
            return response.json()
        except ValueError as exc:
            raise FallbackResolverError(f"lookup response is not valid JSON ({path})") from exc

    def _ensure_success(self, response: Response, path: str) -> None:
        if response.status_code >= 400:
            raise FallbackResolverError(f"lookup {path} failed ({response.status_code}): {response.text[:200]}")

    def lookup(self, external_id: str, tenant_settings: TenantSettings | None) -> Optional[FallbackLocator]:
        creds = self.credentials_for(tenant_settings)
        if creds is None:
            logger.info("fallback credentials missing, skipping lookup", external_id=external_id)
            return None
        try:
            return self._locate(external_id, creds)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            # ValueError also covers pydantic ValidationError
            raise FallbackResolverError(f"unexpected lookup payload for {external_id}: {exc}") from exc

    def _locate(self, external_id: str, creds: FallbackCredentials) -> Optional[FallbackLocator]:
        base = self._settings.lookup_path.rstrip("/")
        escaped = external_id.replace("'", "\\'")
        assets = self._get(base, creds, {"where": f"external_id='{escaped}'"})
        items = assets.get("items") if isinstance(assets, dict) else None
        if not items:
            return None

        asset = items[0]
        embed_code = asset.get("embed_code")
        if not embed_code:
            return None

        streams = self._get(f"{base}/{embed_code}/streams", creds)
        url = pick_stream_url(streams if isinstance(streams, list) else [])
        if not url:
            return None

        labels = self._get(f"{base}/{embed_code}/labels", creds)
        label_items = labels.get("items", []) if isinstance(labels, dict) else []
        keywords = [str(item["name"]) for item in label_items if item.get("name")]

        return FallbackLocator(url=url, description=asset.get("description") or None, keywords=keywords)

    async def resolve(self, external_id: str, tenant_settings: TenantSettings | None) -> Optional[FallbackLocator]:
        return await asyncio.to_thread(self.lookup, external_id, tenant_settings)
