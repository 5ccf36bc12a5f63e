from datetime import timedelta

import pytest

from spamshield.config.models import ThresholdConfig
from spamshield.exceptions import InvalidRecommendationTransition, RecommendationNotFound
from spamshield.models import CheckName, Classification, DetectionRecord, RecommendationStatus, utcnow
from spamshield.services.config_service import ThresholdConfigService
from spamshield.services.recommendations import ThresholdRecommendationService, extract_features
from spamshield.services.recommendations.service import calculate_confidence, estimate_veto_rate_after
from spamshield.storage import RedisRecommendationRepository, RedisThresholdConfigStore


class MemoryDetectionRepository:
    def __init__(self, records):
        self.records = records

    async def list_since(self, since):
        return [r for r in self.records if r.detected_at >= since]


def result(name, score, ai_result=None, confidence=None):
    return {
        "check_name": name,
        "score": score,
        "abstained": False,
        "details": "",
        "ai_result": ai_result,
        "confidence": confidence,
    }


def record(results, human_verdict=None, classification=Classification.SPAM, message_id=None):
    return DetectionRecord(
        chat_id=1,
        user_id=2,
        message_id=message_id,
        classification=classification,
        total_score=sum(r["score"] for r in results),
        check_results=results,
        message_length=40,
        human_verdict=human_verdict,
    )


def history():
    records = []
    # Слабое срабатывание spacing, AI отменяет
    for i in range(10):
        records.append(record(
            [result("spacing", 2.75, confidence=55), result("ai_veto", 0.0, "clean")],
            classification=Classification.CLEAN,
            message_id=1000 + i,
        ))
    # Сильное срабатывание spacing, AI подтверждает
    for i in range(10):
        records.append(record([result("spacing", 4.5, confidence=90), result("ai_veto", 4.5, "spam")], message_id=2000 + i))
    for _ in range(40):
        records.append(record([result("stop_words", 1.5)], classification=Classification.CLEAN))
    return records


@pytest.fixture
def config_service(redis):
    return ThresholdConfigService(RedisThresholdConfigStore(redis), ThresholdConfig())


@pytest.fixture
def service(redis, config_service):
    return ThresholdRecommendationService(
        MemoryDetectionRepository(history()),
        RedisRecommendationRepository(redis),
        config_service,
    )


def test_extract_features_marks_ai_veto():
    features = extract_features(record([result("spacing", 2.75), result("ai_veto", 0.0, "clean")]))
    assert features.was_vetoed
    assert features.flagged == [CheckName.SPACING]
    assert features.confidences[CheckName.SPACING] == pytest.approx(55.0)


def test_extract_features_uses_native_threshold_scale():
    features = extract_features(record([result("similarity", 3.0, confidence=97.0), result("stop_words", 3.0, confidence=40)]))
    assert features.confidence(CheckName.SIMILARITY) == 97.0
    # У stop_words нет настраиваемого порога
    assert features.confidence(CheckName.STOP_WORDS) == pytest.approx(60.0)


def test_sample_ids_fall_back_to_record_id():
    vetoed = record([result("spacing", 3.0), result("ai_veto", 0.0, "clean")])
    stats = ThresholdRecommendationService.analyze_veto_patterns([extract_features(vetoed)])
    assert stats[CheckName.SPACING].vetoed_message_ids == [vetoed.record_id]


def test_extract_features_human_ham_is_veto():
    features = extract_features(record([result("similarity", 3.0)], human_verdict="ham"))
    assert features.was_vetoed


def test_extract_features_ignores_abstained_and_unflagged():
    abstained = {"check_name": "spacing", "score": 0.0, "abstained": True, "details": "", "ai_result": None}
    features = extract_features(record([abstained, result("ai_veto", 0.0, "clean")]))
    assert features.flagged == []
    assert not features.was_vetoed
    assert len(features.to_vector()) == len(CheckName) + 5


def test_confidence_and_estimate_formulas():
    assert calculate_confidence(2) == 50.0
    assert calculate_confidence(3) == 70.0
    assert calculate_confidence(50) == 95.0
    assert calculate_confidence(10) == pytest.approx(70.0 + 7 / 47 * 25)
    assert estimate_veto_rate_after(50.0, 60.0, 50.0) == 35.0
    assert estimate_veto_rate_after(20.0, 95.0, 50.0) == 0.0


@pytest.mark.asyncio
async def test_not_enough_records(redis, config_service):
    service = ThresholdRecommendationService(
        MemoryDetectionRepository(history()[:49]),
        RedisRecommendationRepository(redis),
        config_service,
    )
    assert await service.generate(utcnow() - timedelta(days=7)) == []


@pytest.mark.asyncio
async def test_generate_recommends_higher_spacing_threshold(service):
    recommendations = await service.generate(utcnow() - timedelta(days=7))

    assert [r.algorithm for r in recommendations] == ["spacing"]
    spacing = recommendations[0]
    assert spacing.current_threshold == 50.0
    assert spacing.recommended_threshold == 60.0
    assert spacing.veto_rate_before == pytest.approx(50.0)
    assert spacing.estimated_veto_rate_after == 35.0
    assert spacing.spam_flags_count == 20
    assert spacing.vetoed_count == 10
    assert spacing.confidence_score == pytest.approx(calculate_confidence(10))
    assert spacing.sample_message_ids == [str(1000 + i) for i in range(10)]
    assert spacing.status is RecommendationStatus.PENDING

    pending = await service.list_pending()
    assert [p.id for p in pending] == [spacing.id]


@pytest.mark.asyncio
async def test_approve_applies_threshold(service, config_service):
    [spacing] = await service.generate(utcnow() - timedelta(days=7))

    approved = await service.approve(spacing.id, "admin", notes="looks right")
    assert approved.status is RecommendationStatus.APPROVED
    assert approved.reviewed_by == "admin"
    assert approved.reviewed_at is not None

    config = await config_service.get_config(None)
    assert config.spacing.min_confidence == 60
    assert await service.list_pending() == []

    with pytest.raises(InvalidRecommendationTransition):
        await service.approve(spacing.id, "admin")
    with pytest.raises(InvalidRecommendationTransition):
        await service.reject(spacing.id, "admin")


@pytest.mark.asyncio
async def test_reject_keeps_config(service, config_service):
    [spacing] = await service.generate(utcnow() - timedelta(days=7))

    rejected = await service.reject(spacing.id, "admin", notes="too aggressive")
    assert rejected.status is RecommendationStatus.REJECTED
    assert rejected.review_notes == "too aggressive"
    assert (await config_service.get_config(None)).spacing.min_confidence == 50


@pytest.mark.asyncio
async def test_unknown_recommendation(service):
    with pytest.raises(RecommendationNotFound):
        await service.approve("missing", "admin")


@pytest.mark.asyncio
async def test_generate_moves_similarity_threshold(redis, config_service):
    records = []
    # Совпадения на границе порога AI отменяет
    for i in range(20):
        records.append(record(
            [result("similarity", 3.0, confidence=87.0), result("ai_veto", 0.0, "clean")],
            classification=Classification.CLEAN,
            message_id=i,
        ))
    for i in range(40):
        records.append(record([result("similarity", 3.0, confidence=97.0), result("ai_veto", 4.5, "spam")], message_id=100 + i))
    service = ThresholdRecommendationService(
        MemoryDetectionRepository(records),
        RedisRecommendationRepository(redis),
        config_service,
    )

    [similarity] = await service.generate(utcnow() - timedelta(days=7))
    assert similarity.algorithm == "similarity"
    assert similarity.current_threshold == 85.0
    assert similarity.recommended_threshold == 90.0

    await service.approve(similarity.id, "admin")
    assert (await config_service.get_config(None)).similarity.min_similarity == 90
