# spamshield/services/stop_word_service.py
from typing import Iterable, Set

from async_lru import alru_cache
from loguru import logger
from redis.asyncio import Redis

from spamshield.utils.keys import KeyFactory


class StopWordService:
    """
    Сервис управления стоп-словами и стоп-фразами.

    Архитектура:
    - Redis SET как источник истины
    - In-memory LRU кэш, чтобы проверка не обращалась к Redis на каждое сообщение
    - Инвалидация кэша при любых изменениях
    """

    MIN_WORD_LENGTH = 2

    def __init__(self, redis: Redis):
        """
        Args:
            redis: Клиент Redis для хранения данных
        """
        self.redis = redis
        self.keys = KeyFactory

        logger.info("✅ Сервис StopWordService инициализирован.")

    @alru_cache(maxsize=1)
    async def get_stop_words_set(self) -> Set[str]:
        """
        Получает набор стоп-слов с кэшированием.

        Returns:
            Set[str]: Набор стоп-слов в нижнем регистре
        """
        try:
            words = await self.redis.smembers(self.keys.stop_words())
        except Exception as e:
            logger.error(f"❌ Ошибка получения стоп-слов из Redis: {e}")
            raise

        decoded = {
            w.decode("utf-8") if isinstance(w, bytes) else str(w)
            for w in words
        }
        logger.debug(f"✅ Загружено {len(decoded)} стоп-слов из Redis")
        return decoded

    def _normalize_word(self, word: str) -> str:
        return " ".join(word.lower().split())

    def _validate_word(self, word: str) -> bool:
        if not word or not word.strip():
            logger.warning("⚠️ Попытка операции с пустым словом")
            return False

        if len(self._normalize_word(word)) < self.MIN_WORD_LENGTH:
            logger.warning(f"⚠️ Слово слишком короткое: '{word}'")
            return False

        return True

    def _invalidate_cache(self) -> None:
        self.get_stop_words_set.cache_clear()
        logger.debug("🔄 Кэш стоп-слов инвалидирован")

    async def add_stop_words(self, words: Iterable[str]) -> int:
        """
        Добавляет стоп-слова или фразы.

        Args:
            words: Слова для добавления

        Returns:
            int: Количество новых слов
        """
        normalized = [self._normalize_word(w) for w in words if self._validate_word(w)]
        if not normalized:
            return 0

        added = await self.redis.sadd(self.keys.stop_words(), *normalized)
        if added:
            logger.success(f"✅ Добавлено стоп-слов: {added}")
            self._invalidate_cache()
        return int(added)

    async def remove_stop_word(self, word: str) -> bool:
        """
        Удаляет стоп-слово.

        Returns:
            bool: True если слово было удалено
        """
        if not self._validate_word(word):
            return False

        removed = await self.redis.srem(self.keys.stop_words(), self._normalize_word(word))
        if removed:
            logger.success(f"✅ Стоп-слово удалено: '{word}'")
            self._invalidate_cache()
            return True

        logger.warning(f"⚠️ Стоп-слово не найдено: '{word}'")
        return False
