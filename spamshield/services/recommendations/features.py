# spamshield/services/recommendations/features.py
"""
Признаки записей проверок для модели вероятности veto.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from spamshield.config.models import TUNABLE_THRESHOLDS
from spamshield.models import AIResult, CheckName, DetectionRecord

# Порядок столбцов в матрице признаков
FEATURE_ALGORITHMS: Sequence[CheckName] = tuple(CheckName)
CONFIDENCE_MULTIPLIER = 20.0
HAM_VERDICT = "ham"


@dataclass(frozen=True)
class RecordFeatures:
    """Признаки одной записи и метка veto."""
    record_id: str
    message_id: Optional[int]
    confidences: Dict[CheckName, float]
    flagged: List[CheckName]
    message_length: int
    has_urls: bool
    was_vetoed: bool

    def confidence(self, algorithm: CheckName) -> float:
        return self.confidences.get(algorithm, 0.0)

    def to_vector(self) -> List[float]:
        values = [self.confidence(name) for name in FEATURE_ALGORITHMS]
        triggered = [v for v in values if v > 0]
        return values + [
            float(len(triggered)),
            float(np.mean(triggered)) if triggered else 0.0,
            max(triggered, default=0.0),
            float(self.message_length),
            1.0 if self.has_urls else 0.0,
        ]


def extract_features(record: DetectionRecord) -> RecordFeatures:
    """
    Извлекает признаки записи.

    Алгоритм "сработал", если не воздержался и дал оценку > 0.
    Для алгоритмов с настраиваемым порогом берется их собственная
    уверенность (в шкале порога), для остальных score × 20.
    Запись считается отмененной (vetoed), если AI вернул "clean" при
    сработавших остальных проверках или модератор пометил
    сработавшую запись как ham.
    """
    confidences: Dict[CheckName, float] = {}
    flagged: List[CheckName] = []
    ai_clean = False

    for item in record.check_results:
        try:
            name = CheckName(item.get("check_name"))
        except ValueError:
            continue
        if item.get("abstained"):
            continue
        score = float(item.get("score") or 0.0)
        confidences[name] = _confidence(name, item, score)
        if name is CheckName.AI_VETO:
            ai_clean = item.get("ai_result") == AIResult.CLEAN.value
        elif score > 0:
            flagged.append(name)

    was_vetoed = bool(flagged) and (ai_clean or record.human_verdict == HAM_VERDICT)
    return RecordFeatures(
        record_id=record.record_id,
        message_id=record.message_id,
        confidences=confidences,
        flagged=flagged,
        message_length=record.message_length,
        has_urls=record.has_urls,
        was_vetoed=was_vetoed,
    )


def _confidence(name: CheckName, item: dict, score: float) -> float:
    native = item.get("confidence")
    if name.value in TUNABLE_THRESHOLDS and native is not None:
        return float(native)
    return score * CONFIDENCE_MULTIPLIER


def build_matrix(features: Sequence[RecordFeatures]) -> np.ndarray:
    return np.array([f.to_vector() for f in features], dtype=float)


def build_labels(features: Sequence[RecordFeatures]) -> np.ndarray:
    return np.array([1 if f.was_vetoed else 0 for f in features], dtype=int)
