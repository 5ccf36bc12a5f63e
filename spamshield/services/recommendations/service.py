# spamshield/services/recommendations/service.py
"""
Рекомендации по порогам алгоритмов на основе истории veto.
"""
import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import numpy as np
from loguru import logger
from sklearn.linear_model import LogisticRegression
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import StandardScaler

from spamshield.config.models import TUNABLE_THRESHOLDS
from spamshield.exceptions import InvalidRecommendationTransition, RecommendationNotFound
from spamshield.models import CheckName, RecommendationStatus, ThresholdRecommendation, utcnow
from spamshield.services.config_service import ThresholdConfigService
from spamshield.services.recommendations.features import (
    RecordFeatures,
    build_labels,
    build_matrix,
    extract_features,
)
from spamshield.storage.base import DetectionRepository, RecommendationRepository

MIN_RECORDS = 50
MIN_VETO_RATE = 10.0
MIN_VETOED = 3
SAMPLE_IDS_LIMIT = 10
BASE_THRESHOLD = 70.0
DEFAULT_RECOMMENDED = 75.0
MAX_THRESHOLD = 95
THRESHOLD_STEP = 5
VETO_PROBABILITY_CUTOFF = 0.5


@dataclass
class AlgorithmVetoStats:
    total_flags: int = 0
    vetoed_count: int = 0
    vetoed_message_ids: List[str] = field(default_factory=list)

    @property
    def veto_rate(self) -> float:
        return self.vetoed_count / self.total_flags * 100 if self.total_flags else 0.0


def calculate_confidence(vetoed_count: int) -> float:
    """Уверенность рекомендации: 70% при 3 отменах, 95% при 50 и более."""
    if vetoed_count < 3:
        return 50.0
    if vetoed_count >= 50:
        return 95.0
    return 70.0 + (vetoed_count - 3) / 47 * 25


def estimate_veto_rate_after(veto_rate: float, recommended: float, current: float) -> float:
    """Оценка: каждые 10 пунктов порога снижают долю отмен на 30%."""
    reduction = (recommended - current) / 10 * veto_rate * 0.3
    return round(max(0.0, veto_rate - reduction), 1)


class ThresholdRecommendationService:
    """
    Анализ отмен (veto) и подбор порогов.

    Поток generate():
        1. Записи проверок за период (минимум 50)
        2. Признаки и метка veto для каждой записи
        3. Статистика срабатываний и отмен по алгоритмам
        4. Логистическая регрессия предсказывает вероятность veto
        5. Перебор порогов от текущего +5 до 95 с шагом 5
        6. Рекомендации сохраняются со статусом pending

    Рекомендации не применяются автоматически: только через approve().
    """

    def __init__(
        self,
        detection_repository: DetectionRepository,
        recommendation_repository: RecommendationRepository,
        config_service: ThresholdConfigService,
    ):
        self.detection_repository = detection_repository
        self.recommendation_repository = recommendation_repository
        self.config_service = config_service

    async def generate(self, since: datetime) -> List[ThresholdRecommendation]:
        """
        Формирует рекомендации по записям начиная с since.

        Returns:
            Сохраненные рекомендации (пустой список при нехватке данных)
        """
        logger.info(f"📊 Анализ порогов с {since.isoformat()}")
        records = await self.detection_repository.list_since(since)
        if len(records) < MIN_RECORDS:
            logger.warning(f"⚠️ Недостаточно записей для рекомендаций ({len(records)}, нужно {MIN_RECORDS})")
            return []

        features = [extract_features(r) for r in records]
        stats = self.analyze_veto_patterns(features)
        predictions = await asyncio.to_thread(self._predict_vetoes, features)
        config = await self.config_service.get_config(None)
        period_end = utcnow()

        recommendations: List[ThresholdRecommendation] = []
        for algorithm, algorithm_stats in stats.items():
            veto_rate = algorithm_stats.veto_rate
            if veto_rate <= MIN_VETO_RATE or algorithm_stats.vetoed_count < MIN_VETOED:
                continue

            current = config.get_threshold(algorithm.value)
            recommended = self.find_optimal_threshold(features, predictions, algorithm, current, veto_rate)
            recommendation = ThresholdRecommendation(
                algorithm=algorithm.value,
                current_threshold=current,
                recommended_threshold=recommended,
                confidence_score=calculate_confidence(algorithm_stats.vetoed_count),
                veto_rate_before=veto_rate,
                estimated_veto_rate_after=estimate_veto_rate_after(
                    veto_rate, recommended, current if current is not None else BASE_THRESHOLD
                ),
                spam_flags_count=algorithm_stats.total_flags,
                vetoed_count=algorithm_stats.vetoed_count,
                training_period_start=since,
                training_period_end=period_end,
                sample_message_ids=algorithm_stats.vetoed_message_ids[:SAMPLE_IDS_LIMIT],
            )
            await self.recommendation_repository.add(recommendation)
            recommendations.append(recommendation)
            logger.info(
                f"💡 {algorithm.value}: доля отмен {veto_rate:.1f}%, порог {current} → {recommended}"
            )

        logger.success(f"✅ Сформировано рекомендаций: {len(recommendations)}")
        return recommendations

    @staticmethod
    def analyze_veto_patterns(features: Sequence[RecordFeatures]) -> Dict[CheckName, AlgorithmVetoStats]:
        stats: Dict[CheckName, AlgorithmVetoStats] = defaultdict(AlgorithmVetoStats)
        for record in features:
            for algorithm in record.flagged:
                item = stats[algorithm]
                item.total_flags += 1
                if record.was_vetoed:
                    item.vetoed_count += 1
                    sample_id = record.message_id if record.message_id is not None else record.record_id
                    item.vetoed_message_ids.append(str(sample_id))
        return dict(stats)

    @staticmethod
    def _predict_vetoes(features: Sequence[RecordFeatures]) -> np.ndarray:
        """Предсказанные метки veto; при одном классе в данных - наблюдаемые метки."""
        labels = build_labels(features)
        if len(np.unique(labels)) < 2:
            logger.info("ℹ️ В данных один класс, симуляция по наблюдаемым меткам")
            return labels.astype(bool)

        model = make_pipeline(StandardScaler(), LogisticRegression(max_iter=1000, random_state=42))
        matrix = build_matrix(features)
        model.fit(matrix, labels)
        return model.predict_proba(matrix)[:, 1] > VETO_PROBABILITY_CUTOFF

    @staticmethod
    def find_optimal_threshold(
        features: Sequence[RecordFeatures],
        predictions: np.ndarray,
        algorithm: CheckName,
        current: Optional[float],
        veto_rate: float,
    ) -> float:
        best = current if current is not None else DEFAULT_RECOMMENDED
        lowest = veto_rate
        start = int(current if current is not None else BASE_THRESHOLD) + THRESHOLD_STEP

        for threshold in range(start, MAX_THRESHOLD + 1, THRESHOLD_STEP):
            relevant = [i for i, f in enumerate(features) if f.confidence(algorithm) >= threshold]
            if not relevant:
                continue
            simulated = float(np.count_nonzero(predictions[relevant])) / len(relevant) * 100
            logger.debug(f"🔍 {algorithm.value} порог {threshold}: {simulated:.1f}% отмен ({len(relevant)} записей)")
            if simulated < lowest and simulated < MIN_VETO_RATE:
                best = float(threshold)
                lowest = simulated
        return best

    # --- Ревью рекомендаций ---

    async def _get_pending(self, recommendation_id: str) -> ThresholdRecommendation:
        recommendation = await self.recommendation_repository.get(recommendation_id)
        if recommendation is None:
            raise RecommendationNotFound(recommendation_id)
        if recommendation.status is not RecommendationStatus.PENDING:
            raise InvalidRecommendationTransition(
                f"Recommendation {recommendation_id} is already {recommendation.status.value}"
            )
        return recommendation

    async def approve(self, recommendation_id: str, reviewer: str, notes: Optional[str] = None) -> ThresholdRecommendation:
        """
        Одобряет рекомендацию и записывает порог в глобальную конфигурацию.

        Raises:
            RecommendationNotFound: Рекомендация не найдена
            InvalidRecommendationTransition: Рекомендация уже рассмотрена
        """
        recommendation = await self._get_pending(recommendation_id)

        if recommendation.algorithm in TUNABLE_THRESHOLDS:
            await self.config_service.apply_threshold(recommendation.algorithm, recommendation.recommended_threshold)
        else:
            logger.warning(f"⚠️ У алгоритма {recommendation.algorithm} нет настраиваемого порога, требуется ручная настройка")

        recommendation.status = RecommendationStatus.APPROVED
        recommendation.reviewed_by = reviewer
        recommendation.reviewed_at = utcnow()
        recommendation.review_notes = notes
        await self.recommendation_repository.update(recommendation)
        logger.success(f"✅ Рекомендация {recommendation_id} одобрена ({reviewer})")
        return recommendation

    async def reject(self, recommendation_id: str, reviewer: str, notes: Optional[str] = None) -> ThresholdRecommendation:
        recommendation = await self._get_pending(recommendation_id)
        recommendation.status = RecommendationStatus.REJECTED
        recommendation.reviewed_by = reviewer
        recommendation.reviewed_at = utcnow()
        recommendation.review_notes = notes
        await self.recommendation_repository.update(recommendation)
        logger.info(f"🚫 Рекомендация {recommendation_id} отклонена ({reviewer})")
        return recommendation

    async def list_pending(self) -> List[ThresholdRecommendation]:
        return await self.recommendation_repository.list_by_status(RecommendationStatus.PENDING)
