# spamshield/services/rate_limiter.py
"""
Ограничение частоты обращений к внешним сервисам.
"""
import asyncio
import time
from collections import deque
from typing import Deque, Dict, Optional

from loguru import logger

from spamshield.exceptions import RateLimitedError


class SlidingWindowRateLimiter:
    """
    Лимитер со скользящим окном.

    Не более max_calls обращений за period_seconds. Вызывающий ждет слот
    не дольше timeout, после чего получает отказ и должен воздержаться.
    """

    def __init__(self, name: str, max_calls: int, period_seconds: float):
        if max_calls < 1:
            raise ValueError("max_calls должен быть >= 1")
        if period_seconds <= 0:
            raise ValueError("period_seconds должен быть > 0")

        self.name = name
        self.max_calls = max_calls
        self.period_seconds = period_seconds
        self._calls: Deque[float] = deque()
        self._lock = asyncio.Lock()
        self._granted = 0
        self._rejected = 0

    def _evict(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.period_seconds:
            self._calls.popleft()

    async def acquire(self, timeout: float) -> bool:
        """
        Пытается занять слот в окне.

        Args:
            timeout: Максимальное время ожидания в секундах

        Returns:
            True если слот получен, False если бюджет ожидания исчерпан
        """
        deadline = time.monotonic() + max(0.0, timeout)

        while True:
            async with self._lock:
                now = time.monotonic()
                self._evict(now)
                if len(self._calls) < self.max_calls:
                    self._calls.append(now)
                    self._granted += 1
                    return True
                wait = self._calls[0] + self.period_seconds - now

            remaining = deadline - time.monotonic()
            if remaining <= 0 or wait > remaining:
                self._rejected += 1
                logger.debug(f"⚠️ Rate limiter '{self.name}': slot unavailable within {timeout:.2f}s")
                return False
            await asyncio.sleep(wait)

    async def acquire_or_raise(self, timeout: float) -> None:
        """Как acquire, но бросает RateLimitedError при отказе."""
        if not await self.acquire(timeout):
            raise RateLimitedError(self.name, timeout)

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "in_window": len(self._calls),
            "max_calls": self.max_calls,
            "period_seconds": self.period_seconds,
            "granted": self._granted,
            "rejected": self._rejected,
        }


class RateLimiterRegistry:
    """Один лимитер на внешний сервис для всего процесса."""

    def __init__(self, limits: Optional[Dict[str, tuple]] = None, queue_timeout: float = 0.5):
        """
        Args:
            limits: Имя сервиса -> (max_calls, period_seconds)
            queue_timeout: Бюджет ожидания слота по умолчанию
        """
        self.queue_timeout = queue_timeout
        self._limiters: Dict[str, SlidingWindowRateLimiter] = {}
        for name, (max_calls, period) in (limits or {}).items():
            self._limiters[name] = SlidingWindowRateLimiter(name, max_calls, period)

    @classmethod
    def from_config(cls, config) -> "RateLimiterRegistry":
        """Создает реестр из RateLimitConfig."""
        limits = {
            name: (getattr(config, name).max_calls, getattr(config, name).period_seconds)
            for name in ("cas", "threat_intel", "ai_veto")
        }
        return cls(limits=limits, queue_timeout=config.queue_timeout_seconds)

    def get(self, name: str) -> SlidingWindowRateLimiter:
        limiter = self._limiters.get(name)
        if limiter is None:
            # Неизвестный сервис получает консервативный лимит
            limiter = SlidingWindowRateLimiter(name, max_calls=1, period_seconds=1.0)
            self._limiters[name] = limiter
            logger.warning(f"⚠️ Rate limiter '{name}' не настроен, используется 1 req/s")
        return limiter

    async def acquire(self, name: str, timeout: Optional[float] = None) -> None:
        """Занимает слот сервиса или бросает RateLimitedError."""
        budget = self.queue_timeout if timeout is None else timeout
        await self.get(name).acquire_or_raise(budget)
