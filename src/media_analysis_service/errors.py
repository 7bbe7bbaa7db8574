"""Error code registry, API error helpers and upstream failure types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import HTTPException, status


class ProviderError(RuntimeError):
    """Raised when the analysis provider answers with a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FallbackResolverError(RuntimeError):
    """Raised when the fallback metadata provider lookup fails."""


@dataclass(frozen=True)
class ErrorCodeSpec:
    code: str
    zh: str
    en: str
    status: int
    http_status: int


class ErrorRegistry:
    def __init__(self) -> None:
        self._codes: Dict[str, ErrorCodeSpec] = {}

    def register(self, spec: ErrorCodeSpec) -> None:
        if spec.code in self._codes:
            raise ValueError(f"Error code {spec.code} already registered")
        self._codes[spec.code] = spec

    def get(self, code: str) -> ErrorCodeSpec:
        if code not in self._codes:
            raise KeyError(f"Unknown error code: {code}")
        return self._codes[code]


ERRORS = ErrorRegistry()


def register_default_errors() -> None:
    ERRORS.register(
        ErrorCodeSpec(
            code="ERR_RECONCILE_FAILED",
            zh="分析结果获取失败",
            en="Media analysis reconciliation failed",
            status=5001,
            http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    )
    ERRORS.register(
        ErrorCodeSpec(
            code="ERR_PROVIDER_FAILED",
            zh="分析服务调用失败",
            en="Analysis provider request failed",
            status=5021,
            http_status=status.HTTP_502_BAD_GATEWAY,
        )
    )
    ERRORS.register(
        ErrorCodeSpec(
            code="ERR_RECONCILE_TIMEOUT",
            zh="请求超时或被取消，请稍后重试",
            en="Reconciliation timed out or was cancelled, retry later",
            status=5041,
            http_status=status.HTTP_504_GATEWAY_TIMEOUT,
        )
    )


register_default_errors()


def raise_error(code: str, *, detail: Optional[str] = None) -> None:
    spec = ERRORS.get(code)
    raise HTTPException(
        status_code=spec.http_status,
        detail={
            "status": "failure",
            "error_code": spec.code,
            "error_status": spec.status,
            "message": detail or spec.en,
            "zh_message": spec.zh,
        },
    )
