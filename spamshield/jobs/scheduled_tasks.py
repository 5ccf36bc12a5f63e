# ======================================================================================
# Файл: spamshield/jobs/scheduled_tasks.py
# Описание:
#   Фоновые задачи на APScheduler (AsyncIOScheduler):
#     • retrain_classifier_job      : переобучает классификатор spam/ham
#     • generate_recommendations_job: формирует рекомендации по порогам
#     • stop_word_recommendations_job: предлагает изменения списка стоп-слов
#     • sync_blocklists_job         : обновляет блок-лист доменов из внешних списков
#   Задачи не меняют пороги сами: рекомендации ждут одобрения модератора.
# ======================================================================================
from datetime import timedelta
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from spamshield.config.models import PipelineConfig
from spamshield.models import utcnow
from spamshield.services.classifier import SpamClassifierService
from spamshield.services.domain_blocklist import DomainBlocklistService
from spamshield.services.recommendations import StopWordRecommendationService, ThresholdRecommendationService


async def retrain_classifier_job(classifier: SpamClassifierService) -> None:
    logger.info("🧠 Плановое переобучение классификатора...")
    handle = await classifier.retrain()
    if handle is None:
        logger.info("ℹ️ Переобучение пропущено, активна прежняя модель")


async def generate_recommendations_job(service: ThresholdRecommendationService, lookback_days: int) -> None:
    """Анализирует записи проверок за последние lookback_days дней."""
    since = utcnow() - timedelta(days=lookback_days)
    try:
        recommendations = await service.generate(since)
    except Exception as e:
        logger.exception(f"❌ Ошибка формирования рекомендаций: {e}")
        return
    if recommendations:
        logger.info(f"💡 Новых рекомендаций на ревью: {len(recommendations)}")


async def stop_word_recommendations_job(service: StopWordRecommendationService, lookback_days: int) -> None:
    since = utcnow() - timedelta(days=lookback_days)
    try:
        batch = await service.generate(since)
    except Exception as e:
        logger.exception(f"❌ Ошибка анализа стоп-слов: {e}")
        return
    for addition in batch.additions[:10]:
        logger.info(f"➕ Кандидат в стоп-слова: '{addition.word}' (спам {addition.spam_frequency:.1f}%, ham {addition.ham_frequency:.1f}%)")
    for removal in batch.removals[:10]:
        logger.info(f"➖ Кандидат на удаление: '{removal.word}': {removal.reason}")


async def sync_blocklists_job(blocklist: DomainBlocklistService, sources: List[str]) -> None:
    for url in sources:
        try:
            added = await blocklist.sync_from_url(url)
        except Exception as e:
            logger.error(f"❌ Не удалось обновить блок-лист из {url}: {e}")
            continue
        logger.info(f"🚫 Блок-лист {url}: новых доменов {added}")


def setup_scheduler(
    classifier: SpamClassifierService,
    recommendation_service: ThresholdRecommendationService,
    config: PipelineConfig,
    stop_word_recommendations: Optional[StopWordRecommendationService] = None,
    domain_blocklist: Optional[DomainBlocklistService] = None,
) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        retrain_classifier_job,
        "interval",
        hours=max(1, config.retrain_interval_hours),
        args=[classifier],
        id="classifier_retrain",
        replace_existing=True,
    )
    scheduler.add_job(
        generate_recommendations_job,
        "interval",
        hours=max(1, config.recommendations_interval_hours),
        args=[recommendation_service, config.recommendations_lookback_days],
        id="threshold_recommendations",
        replace_existing=True,
    )
    if stop_word_recommendations is not None:
        scheduler.add_job(
            stop_word_recommendations_job,
            "interval",
            hours=max(1, config.recommendations_interval_hours),
            args=[stop_word_recommendations, config.recommendations_lookback_days],
            id="stop_word_recommendations",
            replace_existing=True,
        )
    if domain_blocklist is not None and config.blocklist_sources:
        scheduler.add_job(
            sync_blocklists_job,
            "interval",
            hours=max(1, config.blocklist_sync_interval_hours),
            args=[domain_blocklist, list(config.blocklist_sources)],
            id="blocklist_sync",
            replace_existing=True,
        )
    logger.info(f"📅 Планировщик настроен. Задачи: {[job.id for job in scheduler.get_jobs()]}")
    return scheduler
