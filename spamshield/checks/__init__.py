# spamshield/checks/__init__.py
"""
Реестр проверок.

Набор проверок фиксирован и собирается один раз при старте в build_checks.
"""
from typing import List

from spamshield.checks.ai_veto import AIVetoCheck
from spamshield.checks.base import BaseCheck
from spamshield.checks.blocklist import BlocklistCheck
from spamshield.checks.channel_reply import ChannelReplyCheck
from spamshield.checks.classifier import ClassifierCheck
from spamshield.checks.invisible_chars import InvisibleCharsCheck
from spamshield.checks.similarity import SimilarityCheck
from spamshield.checks.spacing import SpacingCheck
from spamshield.checks.stop_words import StopWordsCheck
from spamshield.checks.threat_intel import ThreatIntelCheck
from spamshield.checks.url_blocklist import UrlBlocklistCheck
from spamshield.services.ai import ChatCompletionProvider
from spamshield.services.classifier import SpamClassifierService
from spamshield.services.domain_blocklist import DomainBlocklistService
from spamshield.services.rate_limiter import RateLimiterRegistry
from spamshield.services.result_cache import CheckResultCache
from spamshield.services.similarity_index import SimilarityIndex
from spamshield.services.stop_word_service import StopWordService
from spamshield.utils.http_client import HTTPClient


def build_checks(
    *,
    stop_word_service: StopWordService,
    domain_blocklist: DomainBlocklistService,
    similarity_index: SimilarityIndex,
    classifier: SpamClassifierService,
    http_client: HTTPClient,
    rate_limiters: RateLimiterRegistry,
    cache: CheckResultCache,
    ai_provider: ChatCompletionProvider,
    virustotal_api_key: str = "",
) -> List[BaseCheck]:
    """Создает все проверки конвейера в порядке отчета."""
    return [
        UrlBlocklistCheck(domain_blocklist),
        StopWordsCheck(stop_word_service),
        InvisibleCharsCheck(),
        SpacingCheck(),
        SimilarityCheck(similarity_index),
        BlocklistCheck(http_client, rate_limiters, cache),
        ClassifierCheck(classifier),
        ChannelReplyCheck(),
        ThreatIntelCheck(http_client, rate_limiters, virustotal_api_key),
        AIVetoCheck(ai_provider, cache, rate_limiters),
    ]


__all__ = [
    "AIVetoCheck",
    "BaseCheck",
    "BlocklistCheck",
    "ChannelReplyCheck",
    "ClassifierCheck",
    "InvisibleCharsCheck",
    "SimilarityCheck",
    "SpacingCheck",
    "StopWordsCheck",
    "ThreatIntelCheck",
    "UrlBlocklistCheck",
    "build_checks",
]
