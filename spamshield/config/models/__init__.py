# spamshield/config/models/__init__.py
from spamshield.config.models.ai import AIConfig
from spamshield.config.models.core import (
    LoggingConfig,
    PipelineConfig,
    RateLimitConfig,
    ServiceRateLimit,
)
from spamshield.config.models.detection import (
    TUNABLE_THRESHOLDS,
    AIVetoConfig,
    AlgorithmConfig,
    BlocklistConfig,
    ChannelReplyConfig,
    ClassifierConfig,
    InvisibleCharsConfig,
    SimilarityConfig,
    SpacingConfig,
    StopWordsConfig,
    ThreatIntelConfig,
    ThresholdConfig,
    UrlBlocklistConfig,
)

__all__ = [
    "AIConfig",
    "LoggingConfig",
    "PipelineConfig",
    "RateLimitConfig",
    "ServiceRateLimit",
    "TUNABLE_THRESHOLDS",
    "AIVetoConfig",
    "AlgorithmConfig",
    "BlocklistConfig",
    "ChannelReplyConfig",
    "ClassifierConfig",
    "InvisibleCharsConfig",
    "SimilarityConfig",
    "SpacingConfig",
    "StopWordsConfig",
    "ThreatIntelConfig",
    "ThresholdConfig",
    "UrlBlocklistConfig",
]
