from spamshield.services.recommendations.features import RecordFeatures, extract_features
from spamshield.services.recommendations.service import ThresholdRecommendationService
from spamshield.services.recommendations.stop_words import (
    StopWordRecommendationBatch,
    StopWordRecommendationService,
)

__all__ = [
    "RecordFeatures",
    "StopWordRecommendationBatch",
    "StopWordRecommendationService",
    "ThresholdRecommendationService",
    "extract_features",
]
