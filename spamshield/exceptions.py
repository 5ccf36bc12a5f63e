# spamshield/exceptions.py
"""
Иерархия исключений конвейера модерации.
"""


class SpamShieldError(Exception):
    """Базовое исключение пакета."""
    pass


class ConfigurationError(SpamShieldError):
    """Конфигурация порогов чата повреждена или не проходит валидацию."""
    pass


class PipelineStateError(SpamShieldError):
    """Недопустимый переход между стадиями оценки сообщения."""
    pass


class RateLimitedError(SpamShieldError):
    """Не удалось получить слот лимитера за отведенное время ожидания."""

    def __init__(self, service: str, waited: float):
        self.service = service
        self.waited = waited
        super().__init__(f"Rate limited: {service} (waited {waited:.2f}s)")


class InsufficientTrainingDataError(SpamShieldError):
    """Недостаточно размеченных примеров для обучения классификатора."""

    def __init__(self, spam_count: int, ham_count: int, minimum: int):
        self.spam_count = spam_count
        self.ham_count = ham_count
        self.minimum = minimum
        super().__init__(
            f"Insufficient training data (spam: {spam_count}, "
            f"ham: {ham_count}, minimum per class: {minimum})"
        )


class ModelIntegrityError(SpamShieldError):
    """Хэш сохраненной модели не совпадает с метаданными."""
    pass


class RecommendationNotFound(SpamShieldError):
    """Рекомендация с указанным ID не найдена."""
    pass


class InvalidRecommendationTransition(SpamShieldError):
    """Рекомендация уже находится в терминальном статусе."""
    pass
