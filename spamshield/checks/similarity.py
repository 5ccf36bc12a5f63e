# spamshield/checks/similarity.py
"""
Поиск почти-дубликатов по SimHash.
"""
from spamshield.checks.base import BaseCheck
from spamshield.config.models import ThresholdConfig
from spamshield.models import CheckName, CheckRequest, CheckResult
from spamshield.services.similarity_index import SimilarityIndex


class SimilarityCheck(BaseCheck):
    """
    Сообщение похоже на известный спам или повторяет недавние сообщения чата.

    Текущее сообщение после сравнения попадает в окно чата.
    """

    name = CheckName.SIMILARITY
    config_section = "similarity"

    def __init__(self, index: SimilarityIndex):
        self.index = index

    async def _run(self, request: CheckRequest, config: ThresholdConfig) -> CheckResult:
        cfg = config.similarity
        text = request.combined_text
        if len(text) < cfg.min_message_length:
            return CheckResult.abstain(self.name, f"Message too short for similarity (< {cfg.min_message_length} chars)")

        match = self.index.match(request.chat_id, text, cfg.min_similarity)
        self.index.remember(request.chat_id, text, cfg.window_size)

        if match is None:
            return CheckResult.verdict(self.name, 0.0, "No similar messages")

        if match.is_known_spam:
            return CheckResult.verdict(
                self.name,
                cfg.spam_match_score,
                f"Similar to known spam ({match.similarity:.1f}%)",
                confidence=match.similarity,
            )

        if match.repeats >= cfg.min_repeats:
            return CheckResult.verdict(
                self.name,
                cfg.repeat_score,
                f"Repeated {match.repeats} times in recent messages ({match.similarity:.1f}%)",
                confidence=match.similarity,
            )

        return CheckResult.verdict(self.name, 0.0, f"Similar message seen {match.repeats} time(s), below repeat limit")
