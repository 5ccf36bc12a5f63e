# spamshield/services/recommendations/stop_words.py
"""
Рекомендации по списку стоп-слов: что добавить и что убрать.
"""
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from loguru import logger

from spamshield.models import CheckName, Classification, DetectionRecord, TrainingSample, utcnow
from spamshield.services.stop_word_service import StopWordService
from spamshield.storage.base import DetectionRepository, TrainingSampleRepository
from spamshield.utils.text_utils import tokenize

MIN_SPAM_SAMPLES = 50
MIN_HAM_SAMPLES = 100
MIN_SPAM_FREQUENCY = 5.0
MAX_HAM_FREQUENCY = 1.0
MIN_WORD_LENGTH = 3
MIN_TRIGGERS = 5
MIN_PRECISION = 70.0
INACTIVE_DAYS = 30


@dataclass(frozen=True)
class StopWordAddition:
    word: str
    spam_frequency: float
    ham_frequency: float
    spam_to_ham_ratio: float
    spam_count: int
    ham_count: int


@dataclass(frozen=True)
class StopWordRemoval:
    word: str
    precision: float
    total_triggers: int
    correct_triggers: int
    false_positives: int
    last_triggered_at: Optional[datetime]
    days_since_last_trigger: Optional[int]
    reason: str


@dataclass
class StopWordRecommendationBatch:
    period_start: datetime
    period_end: datetime
    total_spam_samples: int
    total_ham_samples: int
    total_detections: int
    additions: List[StopWordAddition] = field(default_factory=list)
    removals: List[StopWordRemoval] = field(default_factory=list)
    validation_message: Optional[str] = None

    @property
    def has_recommendations(self) -> bool:
        return bool(self.additions or self.removals)


def is_confirmed_spam(record: DetectionRecord) -> bool:
    """Оценка модератора важнее вердикта конвейера."""
    if record.human_verdict is not None:
        return record.human_verdict == "spam"
    return record.classification in (Classification.SPAM, Classification.AUTO_BAN)


def _document_frequency(samples: Iterable[TrainingSample]) -> Counter:
    counts: Counter = Counter()
    for sample in samples:
        counts.update(set(tokenize(sample.text)))
    return counts


def _triggered_words(record: DetectionRecord) -> List[str]:
    for item in record.check_results:
        if item.get("check_name") == CheckName.STOP_WORDS.value and not item.get("abstained"):
            return [m.lower() for m in item.get("matches") or []]
    return []


class StopWordRecommendationService:
    """
    Анализ стоп-слов по обучающим примерам и истории проверок.

    Добавление: слово встречается в ≥5% спама и <1% ham, сортировка по
    отношению частот. Удаление: слово ни разу не сработало, точность
    ниже 70% (при ≥5 срабатываниях) или не срабатывало больше 30 дней.

    Рекомендации только формируются; список меняет модератор.
    """

    def __init__(
        self,
        detection_repository: DetectionRepository,
        training_repository: TrainingSampleRepository,
        stop_word_service: StopWordService,
    ):
        self.detection_repository = detection_repository
        self.training_repository = training_repository
        self.stop_word_service = stop_word_service

    async def generate(self, since: datetime) -> StopWordRecommendationBatch:
        logger.info(f"📊 Анализ стоп-слов с {since.isoformat()}")
        samples = [s for s in await self.training_repository.list_all() if s.created_at >= since]
        spam = [s for s in samples if s.is_spam]
        ham = [s for s in samples if not s.is_spam]
        records = await self.detection_repository.list_since(since)
        stop_words = await self.stop_word_service.get_stop_words_set()

        batch = StopWordRecommendationBatch(
            period_start=since,
            period_end=utcnow(),
            total_spam_samples=len(spam),
            total_ham_samples=len(ham),
            total_detections=len(records),
        )
        if len(spam) < MIN_SPAM_SAMPLES:
            batch.validation_message = f"Insufficient spam samples: {len(spam)} found, need at least {MIN_SPAM_SAMPLES}"
        elif len(ham) < MIN_HAM_SAMPLES:
            batch.validation_message = f"Insufficient ham samples: {len(ham)} found, need at least {MIN_HAM_SAMPLES}"
        if batch.validation_message:
            logger.warning(f"⚠️ Недостаточно данных для рекомендаций стоп-слов: {batch.validation_message}")
            return batch

        batch.additions = self.find_additions(spam, ham, stop_words)
        batch.removals = self.find_removals(records, stop_words, batch.period_end)
        logger.success(f"✅ Стоп-слова: добавить {len(batch.additions)}, убрать {len(batch.removals)}")
        return batch

    @staticmethod
    def find_additions(
        spam: List[TrainingSample],
        ham: List[TrainingSample],
        stop_words: Set[str],
    ) -> List[StopWordAddition]:
        spam_counts = _document_frequency(spam)
        ham_counts = _document_frequency(ham)

        candidates: List[StopWordAddition] = []
        for word, spam_count in spam_counts.items():
            if word in stop_words or len(word) < MIN_WORD_LENGTH:
                continue
            spam_frequency = spam_count / len(spam) * 100
            ham_count = ham_counts.get(word, 0)
            ham_frequency = ham_count / len(ham) * 100
            if spam_frequency < MIN_SPAM_FREQUENCY or ham_frequency >= MAX_HAM_FREQUENCY:
                continue
            candidates.append(StopWordAddition(
                word=word,
                spam_frequency=spam_frequency,
                ham_frequency=ham_frequency,
                spam_to_ham_ratio=spam_frequency / (ham_frequency + 0.01),
                spam_count=spam_count,
                ham_count=ham_count,
            ))
        return sorted(candidates, key=lambda c: (-c.spam_to_ham_ratio, c.word))

    @staticmethod
    def find_removals(records: List[DetectionRecord], stop_words: Set[str], now: datetime) -> List[StopWordRemoval]:
        correct: Dict[str, int] = Counter()
        false_positives: Dict[str, int] = Counter()
        last_seen: Dict[str, datetime] = {}

        for record in records:
            spam = is_confirmed_spam(record)
            for word in _triggered_words(record):
                if spam:
                    correct[word] += 1
                else:
                    false_positives[word] += 1
                if word not in last_seen or record.detected_at > last_seen[word]:
                    last_seen[word] = record.detected_at

        removals: List[StopWordRemoval] = []
        for word in sorted(stop_words):
            total = correct[word] + false_positives[word]
            if total == 0:
                removals.append(StopWordRemoval(
                    word=word,
                    precision=0.0,
                    total_triggers=0,
                    correct_triggers=0,
                    false_positives=0,
                    last_triggered_at=None,
                    days_since_last_trigger=None,
                    reason="Never triggered in analysis period (dead weight)",
                ))
                continue
            if total < MIN_TRIGGERS:
                continue

            precision = correct[word] / total * 100
            days_idle = (now - last_seen[word]).days
            if precision < MIN_PRECISION:
                reason = f"Low precision ({precision:.1f}%) - causes too many false positives"
            elif days_idle > INACTIVE_DAYS:
                reason = f"Not triggered in {days_idle} days (inactive)"
            else:
                continue
            removals.append(StopWordRemoval(
                word=word,
                precision=precision,
                total_triggers=total,
                correct_triggers=correct[word],
                false_positives=false_positives[word],
                last_triggered_at=last_seen[word],
                days_since_last_trigger=days_idle,
                reason=reason,
            ))
        return sorted(removals, key=lambda r: r.precision)
