# spamshield/storage/__init__.py
from spamshield.storage.base import (
    DetectionRepository,
    RecommendationRepository,
    ThresholdConfigStore,
    TrainingSampleRepository,
)
from spamshield.storage.redis_store import (
    RedisDetectionRepository,
    RedisRecommendationRepository,
    RedisThresholdConfigStore,
    RedisTrainingSampleRepository,
)

__all__ = [
    "DetectionRepository",
    "RecommendationRepository",
    "ThresholdConfigStore",
    "TrainingSampleRepository",
    "RedisDetectionRepository",
    "RedisRecommendationRepository",
    "RedisThresholdConfigStore",
    "RedisTrainingSampleRepository",
]
