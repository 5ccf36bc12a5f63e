# spamshield/services/classifier/service.py
"""
Обучение и применение классификатора spam/ham.
"""
import asyncio
import hashlib
import json
import pickle
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from loguru import logger
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.linear_model import LogisticRegression
from sklearn.pipeline import Pipeline

from spamshield.exceptions import InsufficientTrainingDataError, ModelIntegrityError
from spamshield.models import TrainingSample
from spamshield.services.classifier.models import (
    MIN_SAMPLES_PER_CLASS,
    ClassifierMetadata,
    ModelHandle,
)
from spamshield.storage.base import TrainingSampleRepository
from spamshield.utils.text_utils import normalize_whitespace


class SpamClassifierService:
    """
    Классификатор текста spam/ham (TF-IDF + логистическая регрессия).

    Архитектура:
    ┌───────────────────────────────┐
    │  retrain() (фон, без очереди) │
    └───────────────────────────────┘
               ↓
    ┌───────────────────────────────┐
    │  train(samples)               │  → fit в отдельном потоке
    └───────────────────────────────┘
               ↓
    ┌───────────────────────────────┐
    │  self._handle = ModelHandle   │  ← атомарная замена ссылки
    └───────────────────────────────┘
               ↓
    ┌───────────────────────────────┐
    │  score(text)                  │  ← всегда последняя готовая модель
    └───────────────────────────────┘
    """

    MODEL_FILE = "spam_classifier.pkl"
    METADATA_FILE = "spam_classifier.meta.json"

    def __init__(
        self,
        training_repository: Optional[TrainingSampleRepository] = None,
        model_dir: Optional[str] = None,
        min_samples_per_class: int = MIN_SAMPLES_PER_CLASS,
    ):
        """
        Args:
            training_repository: Источник размеченных примеров для retrain()
            model_dir: Каталог для сохранения модели (None - не сохранять)
            min_samples_per_class: Минимум примеров каждого класса
        """
        self.training_repository = training_repository
        self.model_dir = Path(model_dir) if model_dir else None
        self.min_samples_per_class = min_samples_per_class
        self._handle: Optional[ModelHandle] = None
        self._training_lock = asyncio.Lock()

    @property
    def handle(self) -> Optional[ModelHandle]:
        return self._handle

    @property
    def is_trained(self) -> bool:
        return self._handle is not None

    def score(self, text: str) -> Optional[float]:
        """
        Вероятность спама для текста.

        Returns:
            Вероятность 0..1 или None, если модель еще не обучена
        """
        handle = self._handle
        if handle is None:
            return None
        probabilities = handle.pipeline.predict_proba([text])[0]
        return float(probabilities[handle.spam_index])

    async def train(self, samples: Iterable[TrainingSample]) -> ModelHandle:
        """
        Обучает модель и атомарно делает ее активной.

        Raises:
            InsufficientTrainingDataError: Мало примеров одного из классов
        """
        deduplicated = self._deduplicate(samples)
        spam = [s.text for s in deduplicated if s.is_spam]
        ham = [s.text for s in deduplicated if not s.is_spam]

        if len(spam) < self.min_samples_per_class or len(ham) < self.min_samples_per_class:
            logger.warning(
                f"⚠️ Недостаточно данных для обучения (spam: {len(spam)}, ham: {len(ham)}, "
                f"минимум: {self.min_samples_per_class})"
            )
            raise InsufficientTrainingDataError(len(spam), len(ham), self.min_samples_per_class)

        metadata = ClassifierMetadata.from_counts(len(spam), len(ham))
        if not metadata.is_balanced:
            logger.warning(
                f"⚠️ Несбалансированные данные: {len(spam)} spam + {len(ham)} ham "
                f"(доля спама {metadata.spam_ratio:.1%}). Добавьте {metadata.spam_needed} spam "
                f"или уберите {metadata.ham_excess} ham"
            )

        texts = spam + ham
        labels = [1] * len(spam) + [0] * len(ham)
        pipeline = await asyncio.to_thread(self._fit, texts, labels)

        spam_index = list(pipeline.classes_).index(1)
        handle = ModelHandle(pipeline=pipeline, metadata=metadata, spam_index=spam_index)

        if self.model_dir is not None:
            try:
                handle = await asyncio.to_thread(self.save, handle)
            except OSError as e:
                logger.error(f"❌ Не удалось сохранить модель: {e}")

        self._handle = handle
        logger.success(
            f"✅ Модель развернута: {len(spam)} spam + {len(ham)} ham "
            f"(доля спама {metadata.spam_ratio:.1%}, balanced: {metadata.is_balanced})"
        )
        return handle

    async def retrain(self) -> Optional[ModelHandle]:
        """
        Переобучает модель по данным репозитория.

        Если обучение уже идет, сразу возвращает None. При ошибке
        остается предыдущая модель.
        """
        if self.training_repository is None:
            logger.warning("⚠️ Репозиторий обучающих данных не задан, переобучение пропущено")
            return None
        if self._training_lock.locked():
            logger.info("🔄 Обучение уже выполняется, повторный запуск пропущен")
            return None

        async with self._training_lock:
            try:
                samples = await self.training_repository.list_all()
                return await self.train(samples)
            except InsufficientTrainingDataError:
                return None
            except Exception as e:
                logger.exception(f"❌ Ошибка переобучения классификатора: {e}")
                return None

    @staticmethod
    def _deduplicate(samples: Iterable[TrainingSample]) -> List[TrainingSample]:
        latest: Dict[str, TrainingSample] = {}
        for sample in sorted(samples, key=lambda s: s.created_at):
            text = normalize_whitespace(sample.text)
            if text:
                latest[text.lower()] = sample
        return list(latest.values())

    @staticmethod
    def _fit(texts: List[str], labels: List[int]) -> Pipeline:
        pipeline = Pipeline([
            ("tfidf", TfidfVectorizer(ngram_range=(1, 2), sublinear_tf=True, min_df=1)),
            ("clf", LogisticRegression(class_weight="balanced", max_iter=1000)),
        ])
        pipeline.fit(texts, labels)
        return pipeline

    # --- Сохранение и загрузка ---

    def save(self, handle: ModelHandle) -> ModelHandle:
        """
        Сохраняет модель и метаданные с SHA256 модели.

        Returns:
            Handle с заполненным хэшем
        """
        if self.model_dir is None:
            raise ValueError("model_dir не задан")
        self.model_dir.mkdir(parents=True, exist_ok=True)

        payload = pickle.dumps({"pipeline": handle.pipeline, "spam_index": handle.spam_index})
        digest = hashlib.sha256(payload).hexdigest()
        metadata = replace(handle.metadata, sha256=digest)

        (self.model_dir / self.MODEL_FILE).write_bytes(payload)
        (self.model_dir / self.METADATA_FILE).write_text(json.dumps(metadata.to_dict()), encoding="utf-8")
        logger.info(f"📦 Модель сохранена ({digest[:12]})")
        return replace(handle, metadata=metadata)

    def _verify(self) -> ModelHandle:
        model_path = self.model_dir / self.MODEL_FILE
        metadata_path = self.model_dir / self.METADATA_FILE
        payload = model_path.read_bytes()
        metadata = ClassifierMetadata.from_dict(json.loads(metadata_path.read_text(encoding="utf-8")))

        if hashlib.sha256(payload).hexdigest() != metadata.sha256:
            raise ModelIntegrityError(f"SHA256 mismatch for {model_path}")

        data = pickle.loads(payload)
        return ModelHandle(pipeline=data["pipeline"], metadata=metadata, spam_index=data["spam_index"])

    def load(self) -> Optional[ModelHandle]:
        """
        Загружает сохраненную модель и делает ее активной.

        При несовпадении хэша или поврежденных метаданных файлы удаляются,
        чтобы при старте модель была обучена заново.

        Returns:
            Загруженный handle или None
        """
        if self.model_dir is None:
            return None
        model_path = self.model_dir / self.MODEL_FILE
        metadata_path = self.model_dir / self.METADATA_FILE
        if not model_path.exists() or not metadata_path.exists():
            logger.info("ℹ️ Сохраненная модель не найдена")
            return None

        try:
            handle = self._verify()
        except (ModelIntegrityError, ValueError, KeyError, TypeError, pickle.UnpicklingError) as e:
            logger.error(f"❌ Модель не прошла проверку ({type(e).__name__}: {e}); файлы модели удалены")
            model_path.unlink(missing_ok=True)
            metadata_path.unlink(missing_ok=True)
            return None

        self._handle = handle
        logger.success(f"✅ Модель загружена ({handle.metadata.spam_count} spam / {handle.metadata.ham_count} ham)")
        return handle

    def get_stats(self) -> dict:
        handle = self._handle
        if handle is None:
            return {"trained": False, "training": self._training_lock.locked()}
        return {
            "trained": True,
            "training": self._training_lock.locked(),
            **handle.metadata.to_dict(),
        }
