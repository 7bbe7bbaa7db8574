"""Unit tests for monitoring utilities and dependency checks."""

from __future__ import annotations

import pytest
from redis.exceptions import RedisError

from media_analysis_service.monitoring import (
    collect_dependency_status,
    ensure_metrics_server,
    record_cache_lookup,
    record_request_outcome,
    record_submission,
    track_step,
    _check_minio,
    _check_redis,
)


class _CounterStub:
    def __init__(self) -> None:
        self.calls: list[dict[str, str]] = []
        self.count = 0

    def labels(self, **kwargs):
        self.calls.append(kwargs)
        return self

    def inc(self) -> None:
        self.count += 1


class _HistogramStub:
    def __init__(self) -> None:
        self.calls: list[dict[str, str]] = []
        self.observed: list[float] = []

    def labels(self, **kwargs):
        self.calls.append(kwargs)
        return self

    def observe(self, value: float) -> None:
        self.observed.append(value)


def test_ensure_metrics_server_runs_once(monkeypatch):
    starts: list[int] = []
    monkeypatch.setattr("media_analysis_service.monitoring._metrics_started", False)
    monkeypatch.setattr("media_analysis_service.monitoring.start_http_server", lambda port: starts.append(port))

    ensure_metrics_server(9999)
    ensure_metrics_server(9999)

    assert starts == [9999]


def test_record_metrics_increment(monkeypatch):
    requests = _CounterStub()
    submissions = _CounterStub()
    lookups = _CounterStub()
    monkeypatch.setattr("media_analysis_service.monitoring.RECONCILE_REQUESTS", requests)
    monkeypatch.setattr("media_analysis_service.monitoring.JOB_SUBMISSIONS", submissions)
    monkeypatch.setattr("media_analysis_service.monitoring.CACHE_LOOKUPS", lookups)

    record_request_outcome("pending")
    record_submission("success")
    record_cache_lookup("search", "hit")

    assert requests.calls == [{"outcome": "pending"}]
    assert submissions.calls == [{"result": "success"}]
    assert lookups.calls == [{"role": "search", "result": "hit"}]
    assert requests.count == submissions.count == lookups.count == 1


def test_track_step_observes_even_on_error(monkeypatch):
    histogram = _HistogramStub()
    monkeypatch.setattr("media_analysis_service.monitoring.STEP_SECONDS", histogram)

    with pytest.raises(RuntimeError):
        with track_step("search"):
            raise RuntimeError("boom")

    assert histogram.calls == [{"step": "search"}]
    assert len(histogram.observed) == 1
    assert histogram.observed[0] >= 0


def test_check_redis_success(monkeypatch, test_settings):
    class _Client:
        def ping(self):
            return True

    monkeypatch.setattr(
        "media_analysis_service.monitoring.redis.Redis.from_url",
        lambda *args, **kwargs: _Client(),
    )

    assert _check_redis(test_settings) == "ok"


def test_check_redis_failure(monkeypatch, test_settings):
    def _raise(*_args, **_kwargs):
        raise RedisError("boom")

    monkeypatch.setattr("media_analysis_service.monitoring.redis.Redis.from_url", _raise)

    assert _check_redis(test_settings) == "error:RedisError"


def test_check_minio_reports_bucket_status(monkeypatch, test_settings):
    class _Minio:
        def __init__(self, *_args, **_kwargs):
            pass

        def bucket_exists(self, bucket):
            return bucket == "keys"

    monkeypatch.setattr("media_analysis_service.monitoring.Minio", _Minio)
    assert _check_minio(test_settings) == "ok"

    test_settings.tenants.bucket = "other"
    assert _check_minio(test_settings) == "missing-bucket"


def test_collect_dependency_status_aggregates(monkeypatch, test_settings):
    monkeypatch.setattr("media_analysis_service.monitoring._check_redis", lambda settings: "redis-ok")
    monkeypatch.setattr("media_analysis_service.monitoring._check_minio", lambda settings: "minio-ok")

    assert collect_dependency_status(test_settings) == {"redis": "redis-ok", "minio": "minio-ok"}
