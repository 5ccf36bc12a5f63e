# spamshield/checks/base.py
"""
Базовый класс для всех проверок.
"""
import asyncio
import json
import time
from abc import ABC, abstractmethod

import aiohttp
from loguru import logger

from spamshield.config.models import AlgorithmConfig, ThresholdConfig
from spamshield.exceptions import RateLimitedError
from spamshield.models import CheckName, CheckRequest, CheckResult


class BaseCheck(ABC):
    """
    Базовый класс проверки сообщения.

    Каждая проверка имеет дешевый синхронный фильтр применимости
    (should_execute) и асинхронную оценку (check). Оценка никогда не
    бросает исключений: любой сбой превращается в воздержание с
    заполненным полем error.

    Атрибуты класса:
        name: Имя проверки
        config_section: Атрибут ThresholdConfig с настройками проверки
        critical: Выполняется даже для доверенных авторов и админов
        requires_text: Не выполняется для сообщений без текста и OCR
        applies_min_length: Пропускает тексты короче min_message_length
        runs_after_pipeline: Выполняется во второй фазе (после остальных)
        pre_filter: Выполняется до остальных проверок и может завершить оценку
    """

    name: CheckName
    config_section: str
    critical: bool = False
    requires_text: bool = True
    applies_min_length: bool = True
    runs_after_pipeline: bool = False
    pre_filter: bool = False

    def section(self, config: ThresholdConfig) -> AlgorithmConfig:
        return getattr(config, self.config_section)

    def is_enabled(self, config: ThresholdConfig) -> bool:
        return self.section(config).enabled

    def should_execute(self, request: CheckRequest, config: ThresholdConfig) -> bool:
        """
        Проверяет, применима ли проверка к сообщению.

        Args:
            request: Запрос на проверку
            config: Конфигурация чата

        Returns:
            True если проверку нужно выполнить
        """
        if not self.is_enabled(config):
            return False
        if request.is_privileged and not self.critical:
            return False
        if self.requires_text and not request.has_content:
            return False
        if self.requires_text and not self.critical and self._is_too_short(request, config):
            return False
        return self._is_eligible(request, config)

    def _is_too_short(self, request: CheckRequest, config: ThresholdConfig) -> bool:
        if not self.applies_min_length or request.check_short_messages:
            return False
        min_length = request.min_message_length if request.min_message_length is not None else config.min_message_length
        return len(request.combined_text) < min_length

    def _is_eligible(self, request: CheckRequest, config: ThresholdConfig) -> bool:
        return True

    async def check(self, request: CheckRequest, config: ThresholdConfig) -> CheckResult:
        """
        Выполняет проверку и гарантирует результат без исключений.

        asyncio.CancelledError пробрасывается: отменой управляет координатор.

        Returns:
            Результат проверки
        """
        started = time.perf_counter()
        try:
            result = await self._run(request, config)
        except asyncio.CancelledError:
            raise
        except RateLimitedError as e:
            logger.warning(f"⚠️ {self.name.value}: {e}")
            result = CheckResult.abstain(self.name, f"Rate limited: {e.service}", error="rate_limited")
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ {self.name.value}: timed out (user {request.user_id})")
            result = CheckResult.abstain(self.name, f"{self.name.value} check timed out - abstaining", error="timeout")
        except aiohttp.ClientError as e:
            logger.warning(f"⚠️ {self.name.value}: network error: {e}")
            result = CheckResult.abstain(self.name, f"Network error: {type(e).__name__}", error="network")
        except json.JSONDecodeError as e:
            logger.warning(f"⚠️ {self.name.value}: malformed upstream response: {e}")
            result = CheckResult.abstain(self.name, "Failed to parse upstream response", error="parse")
        except Exception as e:
            logger.exception(f"❌ {self.name.value} check failed for user {request.user_id}")
            result = CheckResult.abstain(self.name, f"{self.name.value} failed: {type(e).__name__}", error=str(e) or type(e).__name__)

        result.processing_time_ms = (time.perf_counter() - started) * 1000
        return result

    @abstractmethod
    async def _run(self, request: CheckRequest, config: ThresholdConfig) -> CheckResult:
        """Собственно алгоритм проверки."""
        pass
