# spamshield/services/similarity_index.py
"""
Индекс SimHash-отпечатков для поиска почти-дубликатов.
"""
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, List, Optional

from loguru import logger

from spamshield.utils.simhash import compute_simhash, similarity_percent


@dataclass(frozen=True)
class SimilarityMatch:
    similarity: float
    is_known_spam: bool
    repeats: int


class SimilarityIndex:
    """
    Хранит отпечатки известного спама и скользящее окно последних
    сообщений каждого чата.

    Все операции синхронные и не обращаются к внешним ресурсам.
    """

    DEFAULT_WINDOW = 50
    MAX_SPAM_FINGERPRINTS = 5000

    def __init__(self, window_size: int = DEFAULT_WINDOW):
        self.window_size = window_size
        self._windows: Dict[int, Deque[int]] = defaultdict(lambda: deque(maxlen=self.window_size))
        self._spam: Deque[int] = deque(maxlen=self.MAX_SPAM_FINGERPRINTS)

    def seed_spam(self, texts: Iterable[str]) -> int:
        """
        Добавляет отпечатки известного спама.

        Returns:
            Количество добавленных отпечатков
        """
        added = 0
        for text in texts:
            fingerprint = compute_simhash(text)
            if fingerprint:
                self._spam.append(fingerprint)
                added += 1
        logger.info(f"📦 SimilarityIndex: загружено {added} спам-отпечатков")
        return added

    def match(self, chat_id: int, text: str, min_similarity: float) -> Optional[SimilarityMatch]:
        """
        Сравнивает текст с известным спамом и окном чата.

        Returns:
            Лучшее совпадение или None
        """
        fingerprint = compute_simhash(text)
        if not fingerprint:
            return None

        best_spam = max((similarity_percent(fingerprint, s) for s in self._spam), default=0.0)
        if best_spam >= min_similarity:
            return SimilarityMatch(best_spam, True, 0)

        similar = [
            similarity_percent(fingerprint, previous)
            for previous in self._windows.get(chat_id, ())
        ]
        similar = [s for s in similar if s >= min_similarity]
        if similar:
            return SimilarityMatch(max(similar), False, len(similar))
        return None

    def remember(self, chat_id: int, text: str, window_size: Optional[int] = None) -> None:
        """Добавляет сообщение в скользящее окно чата."""
        fingerprint = compute_simhash(text)
        if not fingerprint:
            return
        window = self._windows[chat_id]
        if window_size and window.maxlen != window_size:
            window = deque(window, maxlen=window_size)
            self._windows[chat_id] = window
        window.append(fingerprint)

    def window(self, chat_id: int) -> List[int]:
        return list(self._windows.get(chat_id, ()))

    def get_stats(self) -> dict:
        return {
            "spam_fingerprints": len(self._spam),
            "chats": len(self._windows),
        }
