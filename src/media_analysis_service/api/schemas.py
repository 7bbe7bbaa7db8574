"""Response models for the analysis API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class AnalysisResponse(BaseModel):
    status: Literal["pending", "finished"]
    expires: datetime = Field(..., description="Do not poll again before this time")
    output: Optional[Any] = Field(None, description="Extracted features once the analysis finished")


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded", "down"] = "ok"
    timestamp: datetime
    dependencies: dict[str, str] = Field(default_factory=dict)
