# spamshield/storage/base.py
"""
Контракты внешнего хранилища, которые нужны конвейеру.
"""
from datetime import datetime
from typing import List, Optional, Protocol

from spamshield.models import (
    DetectionRecord,
    RecommendationStatus,
    ThresholdRecommendation,
    TrainingSample,
)


class ThresholdConfigStore(Protocol):
    async def get_raw(self, chat_id: int) -> Optional[str]:
        """JSON конфигурации чата или None."""
        ...

    async def save_raw(self, chat_id: int, payload: str) -> None:
        ...


class DetectionRepository(Protocol):
    async def save(self, record: DetectionRecord) -> None:
        ...

    async def list_since(self, since: datetime) -> List[DetectionRecord]:
        ...

    async def set_human_verdict(self, record_id: str, verdict: str) -> bool:
        ...


class TrainingSampleRepository(Protocol):
    async def add(self, sample: TrainingSample) -> None:
        ...

    async def list_all(self) -> List[TrainingSample]:
        ...

    async def list_spam(self, limit: Optional[int] = None) -> List[TrainingSample]:
        ...


class RecommendationRepository(Protocol):
    async def add(self, recommendation: ThresholdRecommendation) -> None:
        ...

    async def get(self, recommendation_id: str) -> Optional[ThresholdRecommendation]:
        ...

    async def update(self, recommendation: ThresholdRecommendation) -> None:
        ...

    async def list_by_status(self, status: RecommendationStatus) -> List[ThresholdRecommendation]:
        ...
