# spamshield/storage/redis_store.py
"""
Реализации хранилищ на Redis.
"""
import json
import time
from datetime import datetime
from typing import List, Optional

from loguru import logger
from redis.asyncio import Redis

from spamshield.models import (
    DetectionRecord,
    RecommendationStatus,
    ThresholdRecommendation,
    TrainingSample,
)
from spamshield.utils.keys import KeyFactory
from spamshield.utils.text_utils import content_hash, normalize_whitespace


def _decode(value) -> Optional[str]:
    if value is None:
        return None
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class RedisThresholdConfigStore:
    """JSON конфигурации порогов по чатам."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def get_raw(self, chat_id: int) -> Optional[str]:
        return _decode(await self.redis.get(KeyFactory.threshold_config(chat_id)))

    async def save_raw(self, chat_id: int, payload: str) -> None:
        await self.redis.set(KeyFactory.threshold_config(chat_id), payload)


class RedisDetectionRepository:
    """
    Записи проверок: HASH на запись и ZSET по времени для выборок окна.
    """

    def __init__(self, redis: Redis, retention_days: int = 90):
        self.redis = redis
        self.retention_seconds = retention_days * 86400

    async def save(self, record: DetectionRecord) -> None:
        key = KeyFactory.detection_record(record.record_id)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(key, json.dumps(record.to_dict(), ensure_ascii=False), ex=self.retention_seconds)
            pipe.zadd(KeyFactory.detections_by_time(), {record.record_id: record.detected_at.timestamp()})
            # Индекс не держит id записей, у которых уже истек TTL
            pipe.zremrangebyscore(KeyFactory.detections_by_time(), "-inf", time.time() - self.retention_seconds)
            await pipe.execute()

    async def get(self, record_id: str) -> Optional[DetectionRecord]:
        raw = _decode(await self.redis.get(KeyFactory.detection_record(record_id)))
        return DetectionRecord.from_dict(json.loads(raw)) if raw else None

    async def list_since(self, since: datetime) -> List[DetectionRecord]:
        ids = await self.redis.zrangebyscore(KeyFactory.detections_by_time(), since.timestamp(), "+inf")
        if not ids:
            return []

        keys = [KeyFactory.detection_record(_decode(i)) for i in ids]
        records = []
        for raw in await self.redis.mget(keys):
            raw = _decode(raw)
            if raw is None:
                continue
            try:
                records.append(DetectionRecord.from_dict(json.loads(raw)))
            except (ValueError, KeyError) as e:
                logger.warning(f"⚠️ Поврежденная запись проверки: {e}")
        return records

    async def set_human_verdict(self, record_id: str, verdict: str) -> bool:
        record = await self.get(record_id)
        if record is None:
            return False
        record.human_verdict = verdict
        await self.save(record)
        return True


class RedisTrainingSampleRepository:
    """
    Обучающие примеры в HASH по хэшу нормализованного текста.
    Новый пример с тем же текстом заменяет старый.
    """

    def __init__(self, redis: Redis):
        self.redis = redis

    @staticmethod
    def _field(text: str) -> str:
        return content_hash(normalize_whitespace(text).lower())

    async def add(self, sample: TrainingSample) -> None:
        await self.redis.hset(
            KeyFactory.training_samples(),
            self._field(sample.text),
            json.dumps(sample.to_dict(), ensure_ascii=False),
        )

    async def list_all(self) -> List[TrainingSample]:
        raw = await self.redis.hvals(KeyFactory.training_samples())
        samples = [TrainingSample.from_dict(json.loads(_decode(v))) for v in raw]
        return sorted(samples, key=lambda s: s.created_at)

    async def list_spam(self, limit: Optional[int] = None) -> List[TrainingSample]:
        spam = [s for s in await self.list_all() if s.is_spam]
        spam.reverse()
        return spam[:limit] if limit else spam


class RedisRecommendationRepository:
    def __init__(self, redis: Redis):
        self.redis = redis

    async def add(self, recommendation: ThresholdRecommendation) -> None:
        await self._write(recommendation)

    async def get(self, recommendation_id: str) -> Optional[ThresholdRecommendation]:
        raw = _decode(await self.redis.get(KeyFactory.recommendation(recommendation_id)))
        return ThresholdRecommendation.from_dict(json.loads(raw)) if raw else None

    async def update(self, recommendation: ThresholdRecommendation) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            for status in RecommendationStatus:
                pipe.srem(KeyFactory.recommendations_by_status(status.value), recommendation.id)
            await pipe.execute()
        await self._write(recommendation)

    async def list_by_status(self, status: RecommendationStatus) -> List[ThresholdRecommendation]:
        ids = await self.redis.smembers(KeyFactory.recommendations_by_status(status.value))
        items = []
        for rid in ids:
            item = await self.get(_decode(rid))
            if item is not None:
                items.append(item)
        return sorted(items, key=lambda r: r.created_at)

    async def _write(self, recommendation: ThresholdRecommendation) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(KeyFactory.recommendation(recommendation.id), json.dumps(recommendation.to_dict(), ensure_ascii=False))
            pipe.sadd(KeyFactory.recommendations_by_status(recommendation.status.value), recommendation.id)
            await pipe.execute()
