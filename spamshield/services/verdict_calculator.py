# spamshield/services/verdict_calculator.py
"""
Сведение результатов проверок в итоговую классификацию.
"""
from typing import Iterable, Optional, Tuple

from spamshield.config.models import ThresholdConfig
from spamshield.models import AIResult, CheckName, CheckResult, Classification

NO_SIGNALS_REASON = "No spam signals detected"


class VerdictCalculator:
    """
    Правила классификации:

    1. Сумма оценок всех неабстейнувших проверок
    2. AI в режиме veto вернул "clean" при ненулевой оценке конвейера → clean (vetoed)
    3. Сумма ≥ auto_ban → auto_ban, если автобан не держится на одном вердикте AI "review"
    4. Сигнал AI "review" или review ≤ сумма < spam → review
    5. Уверенный вердикт AI "spam" поднимает review по порогу до spam
    6. Сумма ≥ spam → spam
    7. Иначе clean
    """

    def calculate(
        self, results: Iterable[CheckResult], config: ThresholdConfig
    ) -> Tuple[Classification, bool, str]:
        """
        Args:
            results: Результаты всех проверок (включая воздержавшиеся)
            config: Конфигурация чата

        Returns:
            (классификация, флаг veto, основная причина)
        """
        results = list(results)
        contributing = [r for r in results if not r.abstained]
        total = sum(r.score for r in contributing)
        ai = self._ai_result(contributing)

        if ai is not None and ai.ai_result is AIResult.CLEAN and config.ai_veto.veto_mode:
            pipeline_score = total - ai.score
            if pipeline_score > 0:
                return Classification.CLEAN, True, ai.details

        reason = self._primary_reason(contributing)
        review_signal = ai is not None and ai.is_review

        if total >= config.auto_ban_threshold:
            if review_signal and total - ai.score < config.auto_ban_threshold:
                return Classification.REVIEW, False, ai.details
            return Classification.AUTO_BAN, False, reason

        threshold_review = config.review_threshold <= total < config.spam_threshold
        if review_signal:
            return Classification.REVIEW, False, ai.details
        if threshold_review:
            if self._is_confident_spam(ai, config):
                return Classification.SPAM, False, ai.details
            return Classification.REVIEW, False, reason

        if total >= config.spam_threshold:
            return Classification.SPAM, False, reason

        return Classification.CLEAN, False, reason

    @staticmethod
    def _ai_result(contributing: Iterable[CheckResult]) -> Optional[CheckResult]:
        for result in contributing:
            if result.check_name is CheckName.AI_VETO and result.ai_result is not None:
                return result
        return None

    @staticmethod
    def _is_confident_spam(ai: Optional[CheckResult], config: ThresholdConfig) -> bool:
        if ai is None or ai.ai_result is not AIResult.SPAM:
            return False
        confidence = float(ai.metadata.get("confidence", 0.0))
        return confidence * 100 >= config.veto_threshold

    @staticmethod
    def _primary_reason(contributing: Iterable[CheckResult]) -> str:
        flagged = [r for r in contributing if r.score > 0]
        if not flagged:
            return NO_SIGNALS_REASON
        return max(flagged, key=lambda r: r.score).details
