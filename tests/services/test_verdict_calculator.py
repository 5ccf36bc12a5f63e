import pytest

from spamshield.config.models import ThresholdConfig
from spamshield.models import CheckName, CheckResult, Classification
from spamshield.services.verdict_calculator import NO_SIGNALS_REASON, VerdictCalculator


def heuristic(name, score, details=None):
    return CheckResult.verdict(name, score, details or f"{name.value} fired")


def ai(result, confidence, score=None):
    if score is None:
        score = 0.0 if result == "clean" else confidence * 5
    return CheckResult.verdict(CheckName.AI_VETO, score, f"AI: {result}", ai_result=result, confidence=confidence)


@pytest.fixture
def calculator():
    return VerdictCalculator()


@pytest.mark.parametrize(
    "results, expected",
    [
        ([], Classification.CLEAN),
        ([heuristic(CheckName.STOP_WORDS, 1.5)], Classification.CLEAN),
        ([heuristic(CheckName.STOP_WORDS, 3.0)], Classification.REVIEW),
        ([heuristic(CheckName.STOP_WORDS, 3.0), heuristic(CheckName.CAS, 2.5)], Classification.SPAM),
        ([heuristic(CheckName.STOP_WORDS, 3.0), ai("spam", 0.9)], Classification.AUTO_BAN),
    ],
)
def test_threshold_classification(calculator, results, expected):
    classification, vetoed, _ = calculator.calculate(results, ThresholdConfig())
    assert classification is expected
    assert vetoed is False


def test_veto_overrides_pipeline_flags(calculator):
    results = [heuristic(CheckName.STOP_WORDS, 3.0), heuristic(CheckName.SPACING, 2.0), ai("clean", 0.9)]
    classification, vetoed, reason = calculator.calculate(results, ThresholdConfig())
    assert classification is Classification.CLEAN
    assert vetoed is True
    assert reason == "AI: clean"


def test_clean_ai_without_flags_is_not_a_veto(calculator):
    classification, vetoed, reason = calculator.calculate([ai("clean", 0.9)], ThresholdConfig())
    assert classification is Classification.CLEAN
    assert vetoed is False
    assert reason == NO_SIGNALS_REASON


def test_clean_ai_outside_veto_mode_does_not_veto(calculator):
    config = ThresholdConfig(ai_veto={"veto_mode": False})
    results = [heuristic(CheckName.STOP_WORDS, 3.0), ai("clean", 0.9)]
    classification, vetoed, _ = calculator.calculate(results, config)
    assert classification is Classification.REVIEW
    assert vetoed is False


def test_ai_review_never_reaches_auto_ban_alone(calculator):
    results = [heuristic(CheckName.STOP_WORDS, 4.5), ai("review", 0.9, score=3.0)]
    classification, _, reason = calculator.calculate(results, ThresholdConfig())
    assert classification is Classification.REVIEW
    assert reason == "AI: review"


def test_auto_ban_with_review_when_other_checks_suffice(calculator):
    results = [heuristic(CheckName.CAS, 5.0), heuristic(CheckName.STOP_WORDS, 3.0), ai("review", 0.6, score=3.0)]
    classification, _, _ = calculator.calculate(results, ThresholdConfig())
    assert classification is Classification.AUTO_BAN


def test_ai_review_signal_forces_review(calculator):
    classification, _, _ = calculator.calculate([ai("review", 0.4, score=2.0)], ThresholdConfig())
    assert classification is Classification.REVIEW


def test_confident_ai_spam_upgrades_threshold_review(calculator):
    classification, _, _ = calculator.calculate([ai("spam", 0.96)], ThresholdConfig())
    assert classification is Classification.SPAM

    classification, _, _ = calculator.calculate([ai("spam", 0.8)], ThresholdConfig())
    assert classification is Classification.REVIEW


def test_primary_reason_is_highest_scorer(calculator):
    results = [
        heuristic(CheckName.STOP_WORDS, 1.5, "stop words"),
        heuristic(CheckName.CAS, 5.0, "listed in CAS"),
        CheckResult.abstain(CheckName.SPACING, "too short"),
    ]
    _, _, reason = calculator.calculate(results, ThresholdConfig())
    assert reason == "listed in CAS"
