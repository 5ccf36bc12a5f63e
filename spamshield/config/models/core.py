# spamshield/config/models/core.py
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class LoggingConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    level: str = "INFO"
    json_enabled: bool = False
    service_name: str = "spamshield"
    debug_loggers: List[str] = []


class ServiceRateLimit(BaseModel):
    max_calls: int = Field(default=10, ge=1)
    period_seconds: float = Field(default=1.0, gt=0)


class RateLimitConfig(BaseModel):
    """Лимиты внешних сервисов (общие для процесса)."""
    model_config = ConfigDict(protected_namespaces=())

    queue_timeout_seconds: float = 0.5
    cas: ServiceRateLimit = Field(default_factory=lambda: ServiceRateLimit(max_calls=20, period_seconds=1.0))
    threat_intel: ServiceRateLimit = Field(default_factory=lambda: ServiceRateLimit(max_calls=4, period_seconds=60.0))
    ai_veto: ServiceRateLimit = Field(default_factory=lambda: ServiceRateLimit(max_calls=60, period_seconds=60.0))


class PipelineConfig(BaseModel):
    """Таймауты конвейера, кэширование конфигурации и фоновые задачи."""
    model_config = ConfigDict(protected_namespaces=())

    check_timeout_seconds: float = 8.0
    evaluation_deadline_seconds: float = 12.0
    config_cache_ttl_seconds: int = 60
    model_dir: str = "data/models"
    retrain_interval_hours: int = 6
    recommendations_interval_hours: int = 24
    recommendations_lookback_days: int = 30
    similarity_seed_limit: int = 500
    # Текстовые списки доменов (по одному на строку или hosts-формат)
    blocklist_sources: List[str] = []
    blocklist_sync_interval_hours: int = 24
