# spamshield/services/config_service.py
"""
Загрузка конфигурации порогов для чата.
"""
import json
import time
from typing import Any, Dict, Optional, Tuple

from loguru import logger
from pydantic import ValidationError

from spamshield.config.models import TUNABLE_THRESHOLDS, ThresholdConfig
from spamshield.exceptions import ConfigurationError
from spamshield.storage.base import ThresholdConfigStore

GLOBAL_CHAT_ID = 0


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ThresholdConfigService:
    """
    Эффективная конфигурация чата.

    Порядок наложения: значения по умолчанию из настроек → глобальная
    конфигурация (chat 0) → конфигурация чата. Результат разбирается один
    раз и кэшируется на TTL. Поврежденная конфигурация не заменяется
    значениями по умолчанию: оценка сообщения без известных порогов
    хуже отсутствия вердикта.
    """

    DEFAULT_TTL = 60

    def __init__(self, store: ThresholdConfigStore, defaults: Optional[ThresholdConfig] = None, ttl_seconds: int = DEFAULT_TTL):
        self.store = store
        self.defaults = defaults or ThresholdConfig()
        self.ttl_seconds = ttl_seconds
        self._cache: Dict[int, Tuple[float, ThresholdConfig]] = {}

    async def get_config(self, chat_id: Optional[int]) -> ThresholdConfig:
        """
        Возвращает конфигурацию чата.

        Raises:
            ConfigurationError: JSON поврежден или не проходит валидацию
        """
        chat_id = chat_id or GLOBAL_CHAT_ID
        cached = self._cache.get(chat_id)
        if cached and time.monotonic() < cached[0]:
            return cached[1]

        data = self.defaults.model_dump()
        data = _deep_merge(data, await self._load_overrides(GLOBAL_CHAT_ID))
        if chat_id != GLOBAL_CHAT_ID:
            data = _deep_merge(data, await self._load_overrides(chat_id))

        try:
            config = ThresholdConfig.model_validate(data)
        except ValidationError as e:
            logger.error(f"❌ Невалидная конфигурация порогов для чата {chat_id}: {e}")
            raise ConfigurationError(f"Invalid threshold config for chat {chat_id}: {e}") from e

        self._cache[chat_id] = (time.monotonic() + self.ttl_seconds, config)
        return config

    async def _load_overrides(self, chat_id: int) -> Dict[str, Any]:
        raw = await self.store.get_raw(chat_id)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"❌ Поврежденный JSON конфигурации чата {chat_id}: {e}")
            raise ConfigurationError(f"Malformed threshold config JSON for chat {chat_id}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Threshold config for chat {chat_id} must be a JSON object")
        return data

    async def save_config(self, chat_id: Optional[int], overrides: Dict[str, Any]) -> ThresholdConfig:
        """
        Сохраняет переопределения чата после валидации.

        Returns:
            Новая эффективная конфигурация
        """
        chat_id = chat_id or GLOBAL_CHAT_ID
        candidate = self.defaults.model_dump()
        if chat_id != GLOBAL_CHAT_ID:
            candidate = _deep_merge(candidate, await self._load_overrides(GLOBAL_CHAT_ID))
        candidate = _deep_merge(candidate, overrides)
        try:
            ThresholdConfig.model_validate(candidate)
        except ValidationError as e:
            raise ConfigurationError(f"Rejected threshold config for chat {chat_id}: {e}") from e

        await self.store.save_raw(chat_id, json.dumps(overrides, ensure_ascii=False))
        self.invalidate(chat_id)
        logger.info(f"🔧 Конфигурация порогов чата {chat_id} обновлена")
        return await self.get_config(chat_id)

    async def apply_threshold(self, algorithm: str, value: float, chat_id: Optional[int] = None) -> ThresholdConfig:
        """
        Записывает новый порог алгоритма в конфигурацию (по умолчанию глобальную).

        Raises:
            ConfigurationError: Для алгоритма нет настраиваемого порога
        """
        location = TUNABLE_THRESHOLDS.get(algorithm)
        if location is None:
            raise ConfigurationError(f"Algorithm '{algorithm}' has no tunable threshold")

        chat_id = chat_id or GLOBAL_CHAT_ID
        section, field_name = location
        overrides = await self._load_overrides(chat_id)
        overrides.setdefault(section, {})[field_name] = value
        logger.info(f"🎯 Порог {algorithm}.{field_name} = {value} (chat {chat_id})")
        return await self.save_config(chat_id, overrides)

    def invalidate(self, chat_id: Optional[int] = None) -> None:
        """Сбрасывает кэш; изменение глобальной конфигурации сбрасывает все чаты."""
        if chat_id in (None, GLOBAL_CHAT_ID):
            self._cache.clear()
        else:
            self._cache.pop(chat_id, None)
