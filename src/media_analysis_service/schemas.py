"""Domain models shared by the reconciliation orchestrator and its collaborators."""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

PROCESSED_STATE = "Processed"


class AnalysisRequest(BaseModel):
    """One inbound call; identity is the ``(tenant, external_id)`` pair."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    tenant: str = Field(..., alias="site", min_length=1, description="Tenant / application identifier")
    external_id: str = Field(..., alias="id", min_length=1, description="Caller-stable media identifier")
    video: Optional[str] = Field(None, description="Media locator URL")
    description: Optional[str] = None
    categories: Optional[List[str]] = Field(None, description="Category or keyword terms")
    force_refresh: bool = Field(False, alias="forceRefresh")

    @property
    def has_locator(self) -> bool:
        return bool(self.video)


class FallbackLocator(BaseModel):
    url: str
    description: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)


def enrich_request(request: AnalysisRequest, fallback: FallbackLocator | None) -> AnalysisRequest:
    """Return a copy of ``request`` with empty fields filled from ``fallback``.

    The locator is only taken when the request has none. Description and
    categories are only filled when the request left them empty, so values the
    caller supplied always survive.
    """

    if fallback is None or not fallback.url or request.has_locator:
        return request

    update: Dict[str, Any] = {"video": fallback.url}
    if not request.description and fallback.description:
        update["description"] = fallback.description
    if not request.categories and fallback.keywords:
        update["categories"] = list(fallback.keywords)
    return request.model_copy(update=update)


class TenantSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: Optional[str] = Field(None, description="Analysis provider API key override")
    fallback_key: Optional[str] = Field(None, alias="fallbackKey")
    fallback_secret: Optional[str] = Field(None, alias="fallbackSecret")


class CachedContent(BaseModel):
    """Cached provider payload plus the time before which callers should not re-poll."""

    value: str = ""
    expires: datetime
    output: Optional[Any] = None


class SearchHit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None


class SearchResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    results: Optional[List[SearchHit]] = None

    @classmethod
    def from_content(cls, content: CachedContent) -> "SearchResult":
        data = json.loads(content.value) if content.value else {}
        return cls.model_validate(data or {})

    @property
    def first_job_id(self) -> Optional[str]:
        # provider ordering is most relevant first
        if not self.results:
            return None
        return self.results[0].id


class JobState(str, Enum):
    PROCESSED = "processed"
    NOT_READY = "not_ready"


class JobResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    state: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_content(cls, content: CachedContent) -> "JobResult":
        data = json.loads(content.value) if content.value else {}
        if not isinstance(data, dict):
            raise ValueError("Job detail payload must be a JSON object")
        return cls(id=data.get("id"), state=data.get("state"), payload=data)

    @property
    def job_state(self) -> JobState:
        if self.state == PROCESSED_STATE:
            return JobState.PROCESSED
        return JobState.NOT_READY


class ReconcileStatus(str, Enum):
    pending = "pending"
    finished = "finished"


class ReconcileOutcome(BaseModel):
    status: ReconcileStatus
    expires: datetime
    output: Optional[Any] = None

    @classmethod
    def pending(cls, expires: datetime) -> "ReconcileOutcome":
        return cls(status=ReconcileStatus.pending, expires=expires)

    @classmethod
    def finished(cls, content: CachedContent) -> "ReconcileOutcome":
        return cls(status=ReconcileStatus.finished, expires=content.expires, output=content.output)
