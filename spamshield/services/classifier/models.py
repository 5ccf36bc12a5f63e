# spamshield/services/classifier/models.py
"""
Модели классификатора spam/ham.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict

from spamshield.models import utcnow

MIN_SAMPLES_PER_CLASS = 10
MIN_BALANCED_SPAM_RATIO = 0.2
MAX_BALANCED_SPAM_RATIO = 0.8
TARGET_SPAM_RATIO = 0.3


@dataclass(frozen=True)
class ClassifierMetadata:
    """
    Метаданные обученной модели.

    Attributes:
        spam_count: Примеров спама
        ham_count: Примеров не-спама
        spam_ratio: Доля спама
        is_balanced: Доля спама в допустимом диапазоне
        spam_needed: Сколько спам-примеров добавить до целевой доли
        ham_excess: Сколько ham-примеров лишние для целевой доли
        sha256: Хэш сериализованной модели (заполняется при сохранении)
    """
    spam_count: int
    ham_count: int
    spam_ratio: float
    is_balanced: bool
    spam_needed: int = 0
    ham_excess: int = 0
    trained_at: datetime = field(default_factory=utcnow)
    sha256: str = ""

    @classmethod
    def from_counts(cls, spam_count: int, ham_count: int) -> "ClassifierMetadata":
        total = spam_count + ham_count
        ratio = spam_count / total if total else 0.0

        spam_needed = 0
        if ratio < MIN_BALANCED_SPAM_RATIO:
            target_total = int(ham_count / (1 - TARGET_SPAM_RATIO))
            spam_needed = max(0, int(target_total * TARGET_SPAM_RATIO) - spam_count)

        ham_excess = 0
        if ratio > MAX_BALANCED_SPAM_RATIO:
            max_ham = int(spam_count * (1 - TARGET_SPAM_RATIO) / TARGET_SPAM_RATIO)
            ham_excess = max(0, ham_count - max_ham)

        return cls(
            spam_count=spam_count,
            ham_count=ham_count,
            spam_ratio=ratio,
            is_balanced=MIN_BALANCED_SPAM_RATIO <= ratio <= MAX_BALANCED_SPAM_RATIO,
            spam_needed=spam_needed,
            ham_excess=ham_excess,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["trained_at"] = self.trained_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassifierMetadata":
        data = dict(data)
        data["trained_at"] = datetime.fromisoformat(data["trained_at"])
        return cls(**data)


@dataclass(frozen=True)
class ModelHandle:
    """
    Неизменяемый контейнер активной модели.

    Заменяется целиком при переобучении; читатели берут ссылку
    и работают со снимком.
    """
    pipeline: Any
    metadata: ClassifierMetadata
    spam_index: int = 1
