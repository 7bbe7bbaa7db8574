"""Centralized settings and configuration loading utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseModel):
    level: str = "INFO"
    log_dir: str = "./logs"
    max_log_file_size_mb: int = 100
    backup_count: int = 7
    file_name: str = "media-analysis.log"
    json_file: bool = True


class MonitoringSettings(BaseModel):
    health_api: str = "/api/v1/monitor/health"
    prometheus_port: int = 9092


class ProviderSettings(BaseModel):
    base_url: str = "https://videobreakdown.azure-api.net/"
    api_key: Optional[str] = None
    api_key_header: str = "Ocp-Apim-Subscription-Key"
    timeout_sec: float = 30.0


class FallbackSettings(BaseModel):
    base_url: str = "https://api.ooyala.com"
    lookup_path: str = "/v2/assets"
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    timeout_sec: float = 15.0
    signature_expiry_sec: int = 300


class CacheSettings(BaseModel):
    redis_url: str = "redis://localhost:6379/3"
    namespace: str = "media-analysis"
    default_ttl_sec: int = Field(3600, ge=1)
    pending_ttl_sec: int = Field(240, ge=1)


class TenantStoreSettings(BaseModel):
    endpoint: str = "http://minio:9000"
    access_key: str = "access_key"
    secret_key: str = "secret_key"
    bucket: str = "keys"
    object_template: str = "videoindexer.{tenant}.json"
    region: str | None = None


class ReconcileSettings(BaseModel):
    retry_after_sec: int = Field(300, ge=1)
    request_timeout_sec: float = Field(60.0, gt=0)
    submission_marker_enabled: bool = True
    submission_marker_ttl_sec: int = Field(600, ge=1)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MEDIA_", env_nested_delimiter="__", extra="allow")

    service_name: str = "media-analysis-service"
    environment: str = "dev"
    api_version: str = "v1"
    base_url: str = "/api/v1"

    logging: LoggingSettings = LoggingSettings()
    monitoring: MonitoringSettings = MonitoringSettings()
    provider: ProviderSettings = ProviderSettings()
    fallback: FallbackSettings = FallbackSettings()
    cache: CacheSettings = CacheSettings()
    tenants: TenantStoreSettings = TenantStoreSettings()
    reconcile: ReconcileSettings = ReconcileSettings()

    @staticmethod
    def load_yaml_config_file(file_path: str | Path | None) -> Dict[str, Any]:
        if not file_path:
            return {}
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        import yaml  # lazy import for optional dependency

        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError("Configuration YAML must produce a mapping")
        return data

    @classmethod
    def from_source(cls, *, config_file: str | None = None, **overrides: Any) -> "Settings":
        base_data = cls.load_yaml_config_file(config_file)
        base_data.update(overrides)
        return cls(**base_data)


@lru_cache
def get_settings() -> Settings:
    cfg_file = os.getenv("MEDIA_CONFIG_FILE")
    if cfg_file:
        return Settings.from_source(config_file=cfg_file)

    default_path = Path.cwd() / "config" / "settings.yaml"
    if default_path.exists():
        return Settings.from_source(config_file=str(default_path))

    return Settings()


def reload_settings() -> None:
    get_settings.cache_clear()


def settings_dependency() -> Settings:
    return get_settings()
