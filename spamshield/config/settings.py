# spamshield/config/settings.py
from functools import lru_cache
from typing import Any, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from spamshield.config.models import (
    AIConfig,
    LoggingConfig,
    PipelineConfig,
    RateLimitConfig,
    ThresholdConfig,
)


class Settings(BaseSettings):
    REDIS_URL: str = "redis://localhost:6379/0"

    OPENAI_API_KEY: Optional[SecretStr] = None
    VIRUSTOTAL_API_KEY: Optional[SecretStr] = None

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    detection: ThresholdConfig = Field(default_factory=ThresholdConfig)

    @field_validator("REDIS_URL", mode="before")
    @classmethod
    def assemble_redis_dsn(cls, v: Any) -> str:
        if isinstance(v, str) and not v.startswith(("redis://", "rediss://", "unix://")):
            return f"redis://{v}"
        return v

    @property
    def openai_api_key(self) -> str:
        return self.OPENAI_API_KEY.get_secret_value() if self.OPENAI_API_KEY else ""

    @property
    def virustotal_api_key(self) -> str:
        return self.VIRUSTOTAL_API_KEY.get_secret_value() if self.VIRUSTOTAL_API_KEY else ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Загружает и кэширует настройки процесса."""
    return Settings()
