# spamshield/containers.py
from dependency_injector import containers, providers
from loguru import logger
from redis.asyncio import Redis

from spamshield.checks import build_checks
from spamshield.config.settings import get_settings
from spamshield.services.ai import OpenAIProvider
from spamshield.services.classifier import SpamClassifierService
from spamshield.services.config_service import ThresholdConfigService
from spamshield.services.coordinator import ContentCheckCoordinator
from spamshield.services.domain_blocklist import DomainBlocklistService
from spamshield.services.rate_limiter import RateLimiterRegistry
from spamshield.services.recommendations import StopWordRecommendationService, ThresholdRecommendationService
from spamshield.services.result_cache import CheckResultCache
from spamshield.services.similarity_index import SimilarityIndex
from spamshield.services.stop_word_service import StopWordService
from spamshield.services.verdict_calculator import VerdictCalculator
from spamshield.storage import (
    RedisDetectionRepository,
    RedisRecommendationRepository,
    RedisThresholdConfigStore,
    RedisTrainingSampleRepository,
)
from spamshield.utils.http_client import HTTPClient


class Container(containers.DeclarativeContainer):
    settings = providers.Singleton(get_settings)

    redis_client = providers.Singleton(
        Redis.from_url,
        url=settings.provided.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
        health_check_interval=30,
    )

    http_client = providers.Singleton(HTTPClient)

    # --- Хранилища ---
    threshold_store = providers.Singleton(RedisThresholdConfigStore, redis=redis_client)
    detection_repository = providers.Singleton(RedisDetectionRepository, redis=redis_client)
    training_repository = providers.Singleton(RedisTrainingSampleRepository, redis=redis_client)
    recommendation_repository = providers.Singleton(RedisRecommendationRepository, redis=redis_client)

    # --- Общие сервисы ---
    rate_limiters = providers.Singleton(RateLimiterRegistry.from_config, settings.provided.rate_limits)
    check_cache = providers.Singleton(CheckResultCache, redis=redis_client)
    stop_word_service = providers.Singleton(StopWordService, redis=redis_client)
    domain_blocklist = providers.Singleton(DomainBlocklistService, redis=redis_client, http_client=http_client)
    similarity_index = providers.Singleton(
        SimilarityIndex,
        window_size=settings.provided.detection.similarity.window_size,
    )
    classifier = providers.Singleton(
        SpamClassifierService,
        training_repository=training_repository,
        model_dir=settings.provided.pipeline.model_dir,
    )
    ai_provider = providers.Singleton(
        OpenAIProvider,
        api_key=settings.provided.openai_api_key,
        model=settings.provided.ai.openai_model,
        timeout=settings.provided.ai.request_timeout,
        max_prompt_chars=settings.provided.ai.max_prompt_chars,
        max_retries=settings.provided.ai.max_retries,
    )
    config_service = providers.Singleton(
        ThresholdConfigService,
        store=threshold_store,
        defaults=settings.provided.detection,
        ttl_seconds=settings.provided.pipeline.config_cache_ttl_seconds,
    )

    # --- Конвейер ---
    checks = providers.Singleton(
        build_checks,
        stop_word_service=stop_word_service,
        domain_blocklist=domain_blocklist,
        similarity_index=similarity_index,
        classifier=classifier,
        http_client=http_client,
        rate_limiters=rate_limiters,
        cache=check_cache,
        ai_provider=ai_provider,
        virustotal_api_key=settings.provided.virustotal_api_key,
    )
    verdict_calculator = providers.Singleton(VerdictCalculator)
    coordinator = providers.Singleton(
        ContentCheckCoordinator,
        checks=checks,
        config_service=config_service,
        verdict_calculator=verdict_calculator,
        detection_repository=detection_repository,
        check_timeout=settings.provided.pipeline.check_timeout_seconds,
        default_deadline=settings.provided.pipeline.evaluation_deadline_seconds,
    )
    recommendation_service = providers.Singleton(
        ThresholdRecommendationService,
        detection_repository=detection_repository,
        recommendation_repository=recommendation_repository,
        config_service=config_service,
    )
    stop_word_recommendations = providers.Singleton(
        StopWordRecommendationService,
        detection_repository=detection_repository,
        training_repository=training_repository,
        stop_word_service=stop_word_service,
    )


async def init_resources(container: Container) -> None:
    logger.info("🔧 Initializing container resources...")
    try:
        await container.redis_client().ping()
        logger.info("✅ Redis connected")
    except Exception as e:
        logger.error(f"❌ Redis connection failed: {e}")
        raise


async def shutdown_resources(container: Container) -> None:
    logger.info("🛑 Shutting down container resources...")
    try:
        await container.http_client().close()
        logger.info("✅ HTTP client closed")
    except Exception as e:
        logger.error(f"Error closing HTTP client: {e}")

    try:
        await container.redis_client().aclose()
        logger.info("✅ Redis client closed")
    except Exception as e:
        logger.error(f"Error closing Redis: {e}")
