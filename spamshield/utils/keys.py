# spamshield/utils/keys.py
class KeyFactory:
    """Генерирует стандартизированные ключи для Redis."""

    PREFIX = "spamshield"

    # --- Конфигурация ---
    @staticmethod
    def threshold_config(chat_id: int) -> str:
        return f"{KeyFactory.PREFIX}:config:{chat_id or 0}"

    # --- Кэш результатов проверок ---
    @staticmethod
    def check_result_cache(check_name: str, digest: str) -> str:
        return f"{KeyFactory.PREFIX}:cache:{check_name}:{digest}"

    # --- Стоп-слова ---
    @staticmethod
    def stop_words() -> str:
        """SET стоп-слов и фраз в нижнем регистре."""
        return f"{KeyFactory.PREFIX}:stop_words"

    # --- Блок-лист доменов ---
    @staticmethod
    def blocked_domains(chat_id: int = 0) -> str:
        """SET доменов с жесткой блокировкой; chat_id 0 - глобальный список."""
        return f"{KeyFactory.PREFIX}:blocklist:domains:{chat_id or 0}"

    # --- История проверок ---
    @staticmethod
    def detection_record(record_id: str) -> str:
        return f"{KeyFactory.PREFIX}:detection:{record_id}"

    @staticmethod
    def detections_by_time() -> str:
        """ZSET record_id -> timestamp."""
        return f"{KeyFactory.PREFIX}:detections:by_time"

    # --- Обучающие примеры ---
    @staticmethod
    def training_samples() -> str:
        """HASH sha256(текст) -> JSON примера."""
        return f"{KeyFactory.PREFIX}:training:samples"

    # --- Рекомендации порогов ---
    @staticmethod
    def recommendation(recommendation_id: str) -> str:
        return f"{KeyFactory.PREFIX}:recommendation:{recommendation_id}"

    @staticmethod
    def recommendations_by_status(status: str) -> str:
        return f"{KeyFactory.PREFIX}:recommendations:{status}"
