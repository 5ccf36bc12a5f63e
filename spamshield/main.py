# spamshield/main.py
import asyncio
import signal
import sys

from loguru import logger

from spamshield.config import get_settings
from spamshield.containers import Container, init_resources, shutdown_resources
from spamshield.jobs.scheduled_tasks import setup_scheduler
from spamshield.utils.logging_setup import setup_logging


async def prepare_models(container: Container) -> None:
    """Загружает или обучает классификатор и заполняет индекс похожих сообщений."""
    settings = container.settings()
    classifier = container.classifier()
    if classifier.load() is None:
        await classifier.retrain()

    spam_samples = await container.training_repository().list_spam(settings.pipeline.similarity_seed_limit)
    seeded = container.similarity_index().seed_spam(s.text for s in spam_samples)
    logger.info(f"📦 Индекс похожих сообщений: {seeded} примеров спама")


async def run_service() -> None:
    container = Container()
    settings = container.settings()

    await init_resources(container)
    scheduler = None
    try:
        await prepare_models(container)
        container.coordinator()

        scheduler = setup_scheduler(
            container.classifier(),
            container.recommendation_service(),
            settings.pipeline,
            stop_word_recommendations=container.stop_word_recommendations(),
            domain_blocklist=container.domain_blocklist(),
        )
        scheduler.start()

        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, shutdown_event.set)
            except NotImplementedError:
                logger.warning(f"⚠️ Cannot register handler for {sig.name}")

        logger.success("🛡️ SpamShield готов к проверке сообщений")
        await shutdown_event.wait()
        logger.info("🛑 Получен сигнал завершения")
    finally:
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)
        await shutdown_resources(container)


def main() -> None:
    settings = get_settings()
    setup_logging(
        level=settings.logging.level,
        format="json" if settings.logging.json_enabled else "text",
        debug_loggers=settings.logging.debug_loggers,
        service_name=settings.logging.service_name,
    )
    logger.info("=" * 60)
    logger.info(f"🛡️ {settings.logging.service_name}")
    logger.info(f"📝 Log level: {settings.logging.level}")
    logger.info("=" * 60)

    try:
        asyncio.run(run_service())
    except KeyboardInterrupt:
        logger.info("⚠️ Received KeyboardInterrupt")
    except Exception as e:
        logger.opt(exception=e).error(f"❌ Fatal error: {e}")
        sys.exit(1)
    finally:
        logger.info("👋 SpamShield stopped")


if __name__ == "__main__":
    main()
