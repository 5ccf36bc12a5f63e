import math

from spamshield.models import (
    OCR_SEPARATOR,
    AggregateVerdict,
    CheckName,
    CheckRequest,
    CheckResult,
    Classification,
    DetectionRecord,
    TrainingSample,
    TrainingSource,
)


def test_abstained_result_always_scores_zero():
    result = CheckResult(check_name=CheckName.SPACING, score=4.0, abstained=True)
    assert result.score == 0.0
    assert CheckResult.abstain(CheckName.CAS, "down").score == 0.0


def test_score_is_clamped():
    assert CheckResult.verdict(CheckName.STOP_WORDS, 9.0, "x").score == 5.0
    assert CheckResult.verdict(CheckName.STOP_WORDS, -1.0, "x").score == 0.0
    assert CheckResult.verdict(CheckName.STOP_WORDS, math.nan, "x").score == 0.0


def test_total_score_is_sum_of_contributing_results():
    verdict = AggregateVerdict(
        results=[
            CheckResult.verdict(CheckName.STOP_WORDS, 1.5, "a"),
            CheckResult.verdict(CheckName.SPACING, 2.25, "b"),
            CheckResult.abstain(CheckName.CAS, "skipped"),
        ],
        classification=Classification.REVIEW,
    )
    assert verdict.total_score == 3.75
    assert [r.check_name for r in verdict.contributing] == [CheckName.STOP_WORDS, CheckName.SPACING]
    assert verdict.get(CheckName.CAS).abstained


def test_combined_text_and_flags():
    request = CheckRequest(message=" hello ", ocr_text="image text", metadata={"source": "test"})
    assert request.combined_text == f"hello{OCR_SEPARATOR}image text"
    assert CheckRequest(ocr_text="only ocr").combined_text == "only ocr"
    assert not CheckRequest(message="   ").has_content

    flagged = request.with_spam_flags(True)
    assert flagged.has_spam_flags and not request.has_spam_flags
    assert flagged.metadata["source"] == "test"


def test_privileged_request():
    assert CheckRequest(is_trusted=True).is_privileged
    assert CheckRequest(is_admin=True).is_privileged
    assert not CheckRequest().is_privileged


def test_detection_record_from_verdict():
    request = CheckRequest(message="see https://spam.example/x now", user_id=5, chat_id=7, message_id=11)
    verdict = AggregateVerdict(
        results=[CheckResult.verdict(CheckName.AI_VETO, 0.0, "AI: Clean", ai_result="clean", confidence=0.9)],
        classification=Classification.CLEAN,
        vetoed=True,
    )
    record = DetectionRecord.from_verdict(verdict, request, training_eligible=True)
    assert record.has_urls
    assert record.check_results[0]["ai_result"] == "clean"
    assert record.check_results[0]["confidence"] == 0.9

    restored = DetectionRecord.from_dict(record.to_dict())
    assert restored.record_id == record.record_id
    assert restored.vetoed and restored.training_eligible
    assert restored.classification is Classification.CLEAN


def test_training_sample_from_dict_defaults():
    sample = TrainingSample.from_dict({"text": "hi", "is_spam": 1})
    assert sample.is_spam is True
    assert sample.source is TrainingSource.MANUAL
