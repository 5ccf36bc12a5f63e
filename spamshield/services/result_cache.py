# spamshield/services/result_cache.py
"""
Кэш результатов дорогих проверок с защитой от stampede.
"""
import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from loguru import logger
from redis.asyncio import Redis

from spamshield.models import CheckName, CheckResult
from spamshield.utils.keys import KeyFactory
from spamshield.utils.text_utils import content_hash, normalize_whitespace


def build_cache_key(check_name: CheckName, message: str, ocr_text: Optional[str], params: Dict[str, Any]) -> str:
    """
    Ключ кэша по содержимому запроса.

    Учитываются только семантические поля: нормализованный текст, текст OCR
    и параметры проверки, влияющие на результат.
    """
    digest = content_hash(
        check_name.value,
        normalize_whitespace(message),
        normalize_whitespace(ocr_text or ""),
        params,
    )
    return KeyFactory.check_result_cache(check_name.value, digest)


class CheckResultCache:
    """
    Кэш CheckResult с single-flight.

    Архитектура:
    ┌──────────────────────────────┐
    │  get_or_compute(key, fn)     │
    └──────────────────────────────┘
               ↓
    ┌──────────────────────────────┐
    │  in-flight задачи по ключу   │  ← параллельные вызовы ждут одну задачу
    └──────────────────────────────┘
               ↓
    ┌──────────────────────────────┐
    │  Redis (SET EX) / память     │
    └──────────────────────────────┘

    Вычисление выполняется отдельной задачей: отмена одного ожидающего
    не отменяет общий вызов, результат все равно попадет в кэш.
    """

    DEFAULT_TTL = 24 * 3600

    def __init__(self, redis: Optional[Redis] = None, default_ttl: int = DEFAULT_TTL):
        """
        Args:
            redis: Клиент Redis; без него используется локальная память
            default_ttl: Время жизни записи в секундах
        """
        self.redis = redis
        self.default_ttl = default_ttl
        self._inflight: Dict[str, asyncio.Task] = {}
        self._local: Dict[str, Tuple[float, str]] = {}
        self._hit_count = 0
        self._miss_count = 0
        self._shared_count = 0

        backend = "redis" if redis is not None else "memory"
        logger.debug(f"🔧 CheckResultCache инициализирован (backend: {backend}, TTL: {default_ttl}s)")

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[CheckResult]],
        ttl: Optional[int] = None,
        should_store: Callable[[CheckResult], bool] = lambda r: r.error is None,
    ) -> Tuple[CheckResult, bool]:
        """
        Возвращает результат из кэша или вычисляет его ровно один раз.

        Args:
            key: Ключ кэша
            compute: Фабрика корутины с дорогим вызовом
            ttl: Время жизни записи (по умолчанию default_ttl)
            should_store: Предикат сохранения результата

        Returns:
            Кортеж (результат, был ли он получен без собственного вызова)
        """
        inflight = self._inflight.get(key)
        if inflight is not None:
            self._shared_count += 1
            logger.debug(f"📦 Single-flight: ожидание вызова в полете для {key}")
            return await asyncio.shield(inflight), True

        cached = await self._load(key)
        if cached is not None:
            self._hit_count += 1
            return cached, True

        # Повторная проверка после await: вызов мог начаться, пока читали кэш
        inflight = self._inflight.get(key)
        if inflight is not None:
            self._shared_count += 1
            return await asyncio.shield(inflight), True

        self._miss_count += 1
        task = asyncio.create_task(self._compute_and_store(key, compute, ttl, should_store))
        self._inflight[key] = task
        task.add_done_callback(lambda t: self._on_done(key, t))
        return await asyncio.shield(task), False

    def _on_done(self, key: str, task: asyncio.Task) -> None:
        self._inflight.pop(key, None)
        # Ошибку получает каждый ожидающий; здесь только помечаем ее прочитанной
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"⚠️ Вычисление для {key} завершилось ошибкой: {task.exception()!r}")

    async def _compute_and_store(self, key, compute, ttl, should_store) -> CheckResult:
        result = await compute()
        if should_store(result):
            try:
                await self._store(key, result, ttl or self.default_ttl)
            except Exception as e:
                logger.error(f"❌ Не удалось сохранить результат в кэш {key}: {e}")
        return result

    async def _load(self, key: str) -> Optional[CheckResult]:
        try:
            if self.redis is not None:
                raw = await self.redis.get(key)
            else:
                raw = self._get_local(key)
        except Exception as e:
            logger.error(f"❌ Ошибка чтения кэша {key}: {e}")
            return None

        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return CheckResult.from_dict(json.loads(raw))
        except (ValueError, KeyError) as e:
            logger.warning(f"⚠️ Поврежденная запись кэша {key}: {e}")
            return None

    async def _store(self, key: str, result: CheckResult, ttl: int) -> None:
        payload = json.dumps(result.to_dict(), ensure_ascii=False)
        if self.redis is not None:
            await self.redis.set(key, payload, ex=ttl)
        else:
            self._local[key] = (time.monotonic() + ttl, payload)

    def _get_local(self, key: str) -> Optional[str]:
        entry = self._local.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if time.monotonic() >= expires_at:
            del self._local[key]
            return None
        return payload

    async def invalidate(self, key: str) -> None:
        if self.redis is not None:
            await self.redis.delete(key)
        self._local.pop(key, None)

    def get_hit_rate(self) -> float:
        total = self._hit_count + self._miss_count
        if total == 0:
            return 0.0
        return (self._hit_count / total) * 100

    def get_stats(self) -> dict:
        return {
            "hits": self._hit_count,
            "misses": self._miss_count,
            "shared_inflight": self._shared_count,
            "inflight": len(self._inflight),
            "hit_rate": self.get_hit_rate(),
        }
