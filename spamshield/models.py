# spamshield/models.py
"""
Модели данных конвейера модерации.
"""
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from spamshield.utils.text_utils import extract_urls

MAX_SCORE = 5.0
MIN_SCORE = 0.0
OCR_SEPARATOR = "\n\n[IMAGE TEXT]\n"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckName(str, Enum):
    STOP_WORDS = "stop_words"
    INVISIBLE_CHARS = "invisible_chars"
    SPACING = "spacing"
    SIMILARITY = "similarity"
    CAS = "cas"
    CLASSIFIER = "classifier"
    URL_BLOCKLIST = "url_blocklist"
    CHANNEL_REPLY = "channel_reply"
    THREAT_INTEL = "threat_intel"
    AI_VETO = "ai_veto"


class Classification(str, Enum):
    CLEAN = "clean"
    REVIEW = "review"
    SPAM = "spam"
    AUTO_BAN = "auto_ban"


class AIResult(str, Enum):
    SPAM = "spam"
    CLEAN = "clean"
    REVIEW = "review"


class TrainingSource(str, Enum):
    MANUAL = "manual"
    DETECTION_FEEDBACK = "detection_feedback"
    AUTO_COLLECTED = "auto_collected"


class RecommendationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class HistoryMessage:
    """Предыдущее сообщение чата для контекста AI-проверки."""
    user_name: str
    message: str
    was_spam: bool = False


@dataclass(frozen=True)
class CheckRequest:
    """
    Входной запрос на проверку одного сообщения.

    Неизменяем после создания. Поля min_message_length и
    check_short_messages со значением None берутся из конфигурации чата.

    Attributes:
        message: Текст сообщения (пустой для медиа без подписи)
        ocr_text: Текст, распознанный на изображении
        user_id: ID автора
        chat_id: ID чата
        is_trusted: Автор в списке доверенных
        is_admin: Автор является администратором
        is_channel_reply: Сообщение является ответом на пост канала
        has_spam_flags: Другая проверка уже пометила сообщение как спам
        history: Последние сообщения чата
        received_at: Время получения (не влияет на хэш контента)
        metadata: Дополнительные параметры только для чтения
    """
    message: str = ""
    ocr_text: Optional[str] = None
    user_id: int = 0
    chat_id: int = 0
    message_id: Optional[int] = None
    user_name: Optional[str] = None
    is_trusted: bool = False
    is_admin: bool = False
    is_channel_reply: bool = False
    has_spam_flags: bool = False
    min_message_length: Optional[int] = None
    check_short_messages: Optional[bool] = None
    history: Tuple[HistoryMessage, ...] = ()
    received_at: datetime = field(default_factory=utcnow)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "message", self.message or "")
        object.__setattr__(self, "history", tuple(self.history))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def combined_text(self) -> str:
        """Текст сообщения, объединенный с OCR-текстом изображения."""
        message = self.message.strip()
        ocr = (self.ocr_text or "").strip()
        if message and ocr:
            return f"{message}{OCR_SEPARATOR}{ocr}"
        return message or ocr

    @property
    def has_content(self) -> bool:
        return bool(self.combined_text)

    @property
    def urls(self) -> List[str]:
        return extract_urls(self.combined_text)

    @property
    def is_privileged(self) -> bool:
        return self.is_trusted or self.is_admin

    def with_spam_flags(self, has_spam_flags: bool) -> "CheckRequest":
        """Копия запроса с обновленным флагом спам-сигналов."""
        return replace(self, has_spam_flags=has_spam_flags, metadata=dict(self.metadata))


@dataclass
class CheckResult:
    """
    Результат одной проверки.

    Attributes:
        check_name: Имя проверки
        score: Оценка в диапазоне [0.0, 5.0]
        abstained: Проверка не участвует в подсчете (оценка всегда 0.0)
        details: Пояснение для аудита и логов
        error: Класс ошибки, если проверка завершилась сбоем
        processing_time_ms: Время выполнения
        metadata: Дополнительные данные (например, вердикт AI)
    """
    check_name: CheckName
    score: float = 0.0
    abstained: bool = False
    details: str = ""
    error: Optional[str] = None
    processing_time_ms: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.check_name = CheckName(self.check_name)
        score = float(self.score)
        if math.isnan(score):
            score = 0.0
        self.score = min(MAX_SCORE, max(MIN_SCORE, score))
        if self.abstained:
            self.score = 0.0

    @classmethod
    def verdict(cls, check_name: CheckName, score: float, details: str, **metadata: Any) -> "CheckResult":
        return cls(check_name=check_name, score=score, abstained=False, details=details, metadata=metadata)

    @classmethod
    def abstain(cls, check_name: CheckName, details: str, error: Optional[str] = None) -> "CheckResult":
        return cls(check_name=check_name, score=0.0, abstained=True, details=details, error=error)

    @property
    def ai_result(self) -> Optional[AIResult]:
        value = self.metadata.get("ai_result")
        return AIResult(value) if value else None

    @property
    def is_review(self) -> bool:
        return not self.abstained and self.ai_result is AIResult.REVIEW

    def with_details_suffix(self, suffix: str) -> "CheckResult":
        return replace(self, details=f"{self.details}{suffix}", metadata=dict(self.metadata))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "check_name": self.check_name.value,
            "score": self.score,
            "abstained": self.abstained,
            "details": self.details,
            "error": self.error,
            "processing_time_ms": self.processing_time_ms,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CheckResult":
        return cls(
            check_name=CheckName(data["check_name"]),
            score=data.get("score", 0.0),
            abstained=data.get("abstained", False),
            details=data.get("details", ""),
            error=data.get("error"),
            processing_time_ms=data.get("processing_time_ms", 0.0),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class AggregateVerdict:
    """
    Итоговый вердикт по сообщению.

    total_score вычисляется из results, поэтому всегда равен сумме
    оценок неабстейнувших проверок.
    """
    results: List[CheckResult]
    classification: Classification
    vetoed: bool = False
    primary_reason: str = ""
    timed_out: List[CheckName] = field(default_factory=list)
    hard_blocked: bool = False
    processing_time_ms: float = 0.0
    user_id: int = 0
    chat_id: int = 0
    message_id: Optional[int] = None

    @property
    def total_score(self) -> float:
        return sum(r.score for r in self.results if not r.abstained)

    @property
    def contributing(self) -> List[CheckResult]:
        return [r for r in self.results if not r.abstained]

    def get(self, check_name: CheckName) -> Optional[CheckResult]:
        for result in self.results:
            if result.check_name == check_name:
                return result
        return None


@dataclass(frozen=True)
class TrainingSample:
    """Размеченный пример для обучения классификатора."""
    text: str
    is_spam: bool
    source: TrainingSource = TrainingSource.MANUAL
    confidence: Optional[float] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "is_spam": self.is_spam,
            "source": self.source.value,
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrainingSample":
        return cls(
            text=data["text"],
            is_spam=bool(data["is_spam"]),
            source=TrainingSource(data.get("source", TrainingSource.MANUAL.value)),
            confidence=data.get("confidence"),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else utcnow(),
        )


@dataclass
class DetectionRecord:
    """Запись о проверке сообщения для хранилища и обратной связи."""
    chat_id: int
    user_id: int
    classification: Classification
    total_score: float
    check_results: List[Dict[str, Any]]
    message_id: Optional[int] = None
    vetoed: bool = False
    training_eligible: bool = False
    message_length: int = 0
    has_urls: bool = False
    human_verdict: Optional[str] = None
    detected_at: datetime = field(default_factory=utcnow)
    record_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def from_verdict(cls, verdict: AggregateVerdict, request: CheckRequest, training_eligible: bool) -> "DetectionRecord":
        return cls(
            chat_id=request.chat_id,
            user_id=request.user_id,
            message_id=request.message_id,
            classification=verdict.classification,
            total_score=verdict.total_score,
            vetoed=verdict.vetoed,
            training_eligible=training_eligible,
            message_length=len(request.combined_text),
            has_urls=bool(request.urls),
            check_results=[
                {
                    "check_name": r.check_name.value,
                    "score": r.score,
                    "abstained": r.abstained,
                    "details": r.details,
                    "ai_result": r.metadata.get("ai_result"),
                    "confidence": r.metadata.get("confidence"),
                    "matches": r.metadata.get("matches"),
                }
                for r in verdict.results
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "chat_id": self.chat_id,
            "user_id": self.user_id,
            "message_id": self.message_id,
            "classification": self.classification.value,
            "total_score": self.total_score,
            "vetoed": self.vetoed,
            "training_eligible": self.training_eligible,
            "message_length": self.message_length,
            "has_urls": self.has_urls,
            "human_verdict": self.human_verdict,
            "detected_at": self.detected_at.isoformat(),
            "check_results": self.check_results,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DetectionRecord":
        return cls(
            record_id=data["record_id"],
            chat_id=data["chat_id"],
            user_id=data["user_id"],
            message_id=data.get("message_id"),
            classification=Classification(data["classification"]),
            total_score=data["total_score"],
            vetoed=data.get("vetoed", False),
            training_eligible=data.get("training_eligible", False),
            message_length=data.get("message_length", 0),
            has_urls=data.get("has_urls", False),
            human_verdict=data.get("human_verdict"),
            detected_at=datetime.fromisoformat(data["detected_at"]),
            check_results=list(data.get("check_results") or []),
        )


@dataclass
class ThresholdRecommendation:
    """
    Предложение по изменению порога алгоритма.

    Статус меняется только pending → approved | rejected.
    """
    algorithm: str
    current_threshold: Optional[float]
    recommended_threshold: float
    confidence_score: float
    veto_rate_before: float
    estimated_veto_rate_after: float
    spam_flags_count: int
    vetoed_count: int
    training_period_start: datetime
    training_period_end: datetime
    sample_message_ids: List[str] = field(default_factory=list)
    status: RecommendationStatus = RecommendationStatus.PENDING
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "algorithm": self.algorithm,
            "current_threshold": self.current_threshold,
            "recommended_threshold": self.recommended_threshold,
            "confidence_score": self.confidence_score,
            "veto_rate_before": self.veto_rate_before,
            "estimated_veto_rate_after": self.estimated_veto_rate_after,
            "spam_flags_count": self.spam_flags_count,
            "vetoed_count": self.vetoed_count,
            "training_period_start": self.training_period_start.isoformat(),
            "training_period_end": self.training_period_end.isoformat(),
            "sample_message_ids": self.sample_message_ids,
            "status": self.status.value,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "review_notes": self.review_notes,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ThresholdRecommendation":
        reviewed_at = data.get("reviewed_at")
        return cls(
            id=data["id"],
            algorithm=data["algorithm"],
            current_threshold=data.get("current_threshold"),
            recommended_threshold=data["recommended_threshold"],
            confidence_score=data["confidence_score"],
            veto_rate_before=data["veto_rate_before"],
            estimated_veto_rate_after=data["estimated_veto_rate_after"],
            spam_flags_count=data["spam_flags_count"],
            vetoed_count=data["vetoed_count"],
            training_period_start=datetime.fromisoformat(data["training_period_start"]),
            training_period_end=datetime.fromisoformat(data["training_period_end"]),
            sample_message_ids=list(data.get("sample_message_ids") or []),
            status=RecommendationStatus(data["status"]),
            reviewed_by=data.get("reviewed_by"),
            reviewed_at=datetime.fromisoformat(reviewed_at) if reviewed_at else None,
            review_notes=data.get("review_notes"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
