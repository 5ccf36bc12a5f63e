# spamshield/checks/classifier.py
from spamshield.checks.base import BaseCheck
from spamshield.config.models import ThresholdConfig
from spamshield.models import CheckName, CheckRequest, CheckResult
from spamshield.services.classifier import SpamClassifierService

# (минимальная вероятность в %, оценка)
PROBABILITY_SCORES = (
    (99.0, 5.0),
    (95.0, 3.5),
    (80.0, 2.0),
    (70.0, 1.0),
)
FLOOR_SCORE = 0.5


def probability_to_score(probability_percent: float) -> float:
    for minimum, score in PROBABILITY_SCORES:
        if probability_percent >= minimum:
            return score
    return FLOOR_SCORE


class ClassifierCheck(BaseCheck):
    """Оценка обученным классификатором spam/ham."""

    name = CheckName.CLASSIFIER
    config_section = "classifier"

    def __init__(self, classifier: SpamClassifierService):
        self.classifier = classifier

    async def _run(self, request: CheckRequest, config: ThresholdConfig) -> CheckResult:
        cfg = config.classifier
        text = request.combined_text
        if len(text) < cfg.min_message_length:
            return CheckResult.abstain(self.name, f"Message too short for classifier (< {cfg.min_message_length} chars)")

        probability = self.classifier.score(text)
        if probability is None:
            return CheckResult.abstain(self.name, "Classifier not trained - insufficient data")

        percent = probability * 100
        if percent < cfg.min_spam_probability:
            return CheckResult.abstain(self.name, f"Likely ham ({percent:.1f}% spam probability)")

        return CheckResult.verdict(
            self.name,
            probability_to_score(percent),
            f"Classifier: {percent:.1f}% spam probability",
            confidence=percent,
        )
