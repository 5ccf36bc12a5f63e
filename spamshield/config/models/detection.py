# spamshield/config/models/detection.py
"""
Пороги и параметры алгоритмов обнаружения спама.

Загружаются для каждого чата; chat_id 0 означает глобальные значения.
"""
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AlgorithmConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=(), extra="ignore")

    enabled: bool = True


class StopWordsConfig(AlgorithmConfig):
    score_per_match: float = Field(default=1.5, ge=0.0, le=5.0)
    fuzzy_threshold: int = Field(default=90, ge=50, le=100)
    min_fuzzy_length: int = 5


class InvisibleCharsConfig(AlgorithmConfig):
    min_count: int = Field(default=1, ge=1)
    base_score: float = Field(default=2.0, ge=0.0, le=5.0)
    per_extra_score: float = Field(default=0.25, ge=0.0)


class SpacingConfig(AlgorithmConfig):
    min_words: int = 5
    short_word_length: int = 2
    suspicious_ratio_threshold: float = Field(default=0.35, ge=0.0, le=1.0)
    min_confidence: float = Field(default=50, ge=0, le=100)


class SimilarityConfig(AlgorithmConfig):
    min_similarity: float = Field(default=85, ge=0, le=100)
    window_size: int = Field(default=50, ge=1)
    min_repeats: int = Field(default=2, ge=1)
    repeat_score: float = Field(default=2.0, ge=0.0, le=5.0)
    spam_match_score: float = Field(default=3.0, ge=0.0, le=5.0)
    min_message_length: int = 10


class BlocklistConfig(AlgorithmConfig):
    api_url: str = "https://api.cas.chat"
    timeout_seconds: float = 5.0
    score: float = Field(default=5.0, ge=0.0, le=5.0)
    cache_ttl_seconds: int = 3600


class ClassifierConfig(AlgorithmConfig):
    min_spam_probability: float = Field(default=50, ge=0, le=100)
    min_message_length: int = 10


class ChannelReplyConfig(AlgorithmConfig):
    score: float = Field(default=1.5, ge=0.0, le=5.0)


class ThreatIntelConfig(AlgorithmConfig):
    api_url: str = "https://www.virustotal.com/api/v3"
    timeout_seconds: float = 5.0
    score: float = Field(default=3.0, ge=0.0, le=5.0)
    max_urls: int = 3


class UrlBlocklistConfig(AlgorithmConfig):
    # Совпадение завершает оценку сразу, без остальных проверок
    hard_block: bool = True
    score: float = Field(default=5.0, ge=0.0, le=5.0)


class AIVetoConfig(AlgorithmConfig):
    veto_mode: bool = True
    check_short_messages: bool = False
    min_message_length: int = 10
    # None: модель провайдера по умолчанию (AI__OPENAI_MODEL)
    model: Optional[str] = None
    temperature: float = 0.1
    max_tokens: int = 500
    system_prompt: Optional[str] = None
    message_history_count: int = 3
    timeout_seconds: float = 10.0
    cache_ttl_hours: int = 24


# Алгоритм -> (секция, поле) для настраиваемого порога уверенности
TUNABLE_THRESHOLDS: Dict[str, Tuple[str, str]] = {
    "classifier": ("classifier", "min_spam_probability"),
    "spacing": ("spacing", "min_confidence"),
    "similarity": ("similarity", "min_similarity"),
}


class ThresholdConfig(BaseModel):
    """
    Полная конфигурация обнаружения для чата.

    Глобальные пороги:
        review_threshold: Сумма, с которой сообщение уходит на модерацию
        spam_threshold: Сумма, с которой сообщение считается спамом
        auto_ban_threshold: Сумма, при которой срабатывает автобан
        review_cap: Максимальный вклад вердикта AI "review"
        veto_threshold: Уверенность AI (в %), при которой вердикт "spam" не требует ревью
    """
    model_config = ConfigDict(protected_namespaces=(), extra="ignore")

    stop_words: StopWordsConfig = Field(default_factory=StopWordsConfig)
    invisible_chars: InvisibleCharsConfig = Field(default_factory=InvisibleCharsConfig)
    spacing: SpacingConfig = Field(default_factory=SpacingConfig)
    similarity: SimilarityConfig = Field(default_factory=SimilarityConfig)
    cas: BlocklistConfig = Field(default_factory=BlocklistConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    channel_reply: ChannelReplyConfig = Field(default_factory=ChannelReplyConfig)
    url_blocklist: UrlBlocklistConfig = Field(default_factory=UrlBlocklistConfig)
    threat_intel: ThreatIntelConfig = Field(default_factory=ThreatIntelConfig)
    ai_veto: AIVetoConfig = Field(default_factory=AIVetoConfig)

    review_threshold: float = Field(default=3.0, ge=0.0)
    spam_threshold: float = Field(default=5.0, ge=0.0)
    auto_ban_threshold: float = Field(default=7.0, ge=0.0)
    review_cap: float = Field(default=3.0, ge=0.0, le=5.0)
    veto_threshold: float = Field(default=95, ge=0, le=100)
    min_message_length: int = Field(default=10, ge=0)

    @model_validator(mode="after")
    def check_threshold_order(self) -> "ThresholdConfig":
        if not self.review_threshold <= self.spam_threshold <= self.auto_ban_threshold:
            raise ValueError(
                "Пороги должны удовлетворять review <= spam <= auto_ban "
                f"({self.review_threshold}, {self.spam_threshold}, {self.auto_ban_threshold})"
            )
        return self

    def get_threshold(self, algorithm: str) -> Optional[float]:
        """Текущий настраиваемый порог алгоритма или None."""
        location = TUNABLE_THRESHOLDS.get(algorithm)
        if location is None:
            return None
        section, field_name = location
        return float(getattr(getattr(self, section), field_name))
