"""Monitoring utilities for dependency checks and Prometheus metrics."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Dict, Iterator
from urllib.parse import urlparse

from minio import Minio
from minio.error import S3Error
from prometheus_client import Counter, Histogram, start_http_server
import redis
from redis.exceptions import RedisError

from .config import Settings

logger = logging.getLogger(__name__)

RECONCILE_REQUESTS = Counter(
    "reconcile_requests_total",
    "Reconciliation calls by outcome",
    labelnames=("outcome",),
)
JOB_SUBMISSIONS = Counter(
    "reconcile_submissions_total",
    "Analysis job submissions by result",
    labelnames=("result",),
)
CACHE_LOOKUPS = Counter(
    "reconcile_cache_lookups_total",
    "Result cache lookups by role and result",
    labelnames=("role", "result"),
)
STEP_SECONDS = Histogram(
    "reconcile_step_seconds",
    "Duration of individual reconciliation steps",
    labelnames=("step",),
)

_metrics_started = False


def ensure_metrics_server(port: int) -> None:
    global _metrics_started
    if _metrics_started:
        return
    start_http_server(port)
    _metrics_started = True
    logger.info("Prometheus metrics server started", extra={"port": port})


def record_request_outcome(outcome: str) -> None:
    RECONCILE_REQUESTS.labels(outcome=outcome).inc()


def record_submission(result: str) -> None:
    JOB_SUBMISSIONS.labels(result=result).inc()


def record_cache_lookup(role: str, result: str) -> None:
    CACHE_LOOKUPS.labels(role=role, result=result).inc()


@contextmanager
def track_step(step: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        STEP_SECONDS.labels(step=step).observe(time.perf_counter() - started)


def _check_redis(settings: Settings) -> str:
    try:
        client = redis.Redis.from_url(
            settings.cache.redis_url,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
        return "ok"
    except RedisError as exc:
        logger.warning("Redis health check failed", exc_info=exc)
        return f"error:{exc.__class__.__name__}"


def _check_minio(settings: Settings) -> str:
    parsed = urlparse(settings.tenants.endpoint)
    secure = parsed.scheme == "https"
    netloc = parsed.netloc or parsed.path
    try:
        client = Minio(
            netloc,
            access_key=settings.tenants.access_key,
            secret_key=settings.tenants.secret_key,
            secure=secure,
        )
        exists = client.bucket_exists(settings.tenants.bucket)
        return "ok" if exists else "missing-bucket"
    except S3Error as exc:
        logger.warning("MinIO health check failed", exc_info=exc)
        return f"error:{exc.code}"
    except Exception as exc:  # pragma: no cover - defensive
        logger.exception("MinIO unexpected failure")
        return f"error:{exc.__class__.__name__}"


def collect_dependency_status(settings: Settings) -> Dict[str, str]:
    """Probe the cache store and the tenant settings bucket."""

    return {
        "redis": _check_redis(settings),
        "minio": _check_minio(settings),
    }
