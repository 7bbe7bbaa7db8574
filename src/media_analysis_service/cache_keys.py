"""Cache key derivation for the per-role entries kept about one external id.

Tenant and external id are percent-encoded before joining, so neither can
smuggle a ``:`` separator into the key of another tenant or id.
"""

from __future__ import annotations

from enum import Enum
from urllib.parse import quote


class CacheRole(str, Enum):
    SEARCH = "search"
    BREAKDOWN = "breakdown"
    SUBMISSION = "submission"


def _segment(value: str) -> str:
    return quote(value, safe="")


def derive_cache_key(external_id: str, role: CacheRole) -> str:
    # search and detail payloads share the id, the suffix keeps them apart
    return f"{_segment(external_id)}:{role.value}"


def search_cache_key(external_id: str) -> str:
    return derive_cache_key(external_id, CacheRole.SEARCH)


def detail_cache_key(external_id: str) -> str:
    return derive_cache_key(external_id, CacheRole.BREAKDOWN)


def submission_marker_key(external_id: str) -> str:
    return derive_cache_key(external_id, CacheRole.SUBMISSION)


def storage_key(namespace: str, tenant: str, cache_key: str) -> str:
    """Full key in the shared store, scoped by tenant."""

    return f"{namespace}:{_segment(tenant)}:{cache_key}"
