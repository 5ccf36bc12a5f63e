import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from spamshield.checks import AIVetoCheck, BlocklistCheck, ChannelReplyCheck, InvisibleCharsCheck, StopWordsCheck
from spamshield.checks.base import BaseCheck
from spamshield.checks.url_blocklist import UrlBlocklistCheck
from spamshield.config.models import ThresholdConfig
from spamshield.exceptions import ConfigurationError, PipelineStateError
from spamshield.models import CheckName, CheckRequest, CheckResult, Classification
from spamshield.services.ai import ChatCompletionProvider, ChatResponse
from spamshield.services.config_service import ThresholdConfigService
from spamshield.services.coordinator import ContentCheckCoordinator, EvaluationRun, PipelineStage
from spamshield.services.domain_blocklist import DomainBlocklistService
from spamshield.services.rate_limiter import RateLimiterRegistry
from spamshield.services.result_cache import CheckResultCache
from spamshield.storage import RedisThresholdConfigStore
from spamshield.utils.keys import KeyFactory

SPAM_TEXT = "BUY CRYPTO NOW GUARANTEED RETURNS"


class FakeProvider(ChatCompletionProvider):
    def __init__(self, content):
        self.content = content
        self.requests = []

    def is_available(self) -> bool:
        return True

    def get_name(self) -> str:
        return "fake"

    async def complete(self, request):
        self.requests.append(request)
        return ChatResponse(content=self.content)


class SlowCheck(BaseCheck):
    name = CheckName.THREAT_INTEL
    config_section = "threat_intel"
    requires_text = False

    def __init__(self, delay):
        self.delay = delay
        self.finished = False

    async def _run(self, request, config) -> CheckResult:
        await asyncio.sleep(self.delay)
        self.finished = True
        return CheckResult.verdict(self.name, 3.0, "slow result")


class MemoryDetectionRepository:
    def __init__(self, fail=False):
        self.fail = fail
        self.records = []

    async def save(self, record):
        if self.fail:
            raise RuntimeError("storage down")
        self.records.append(record)


def ai_answer(result, confidence):
    return json.dumps({"result": result, "reason": "test", "confidence": confidence})


def build_coordinator(redis, provider, *, extra_checks=(), repository=None, cas_payload=None):
    limiters = RateLimiterRegistry({"ai_veto": (100, 1.0), "cas": (100, 1.0)})
    cache = CheckResultCache()
    stop_words = SimpleNamespace(get_stop_words_set=AsyncMock(return_value={"crypto", "guaranteed"}))
    http = SimpleNamespace(get=AsyncMock(return_value=cas_payload or {"ok": False}))
    checks = [
        StopWordsCheck(stop_words),
        InvisibleCharsCheck(),
        BlocklistCheck(http, limiters, cache),
        ChannelReplyCheck(),
        *extra_checks,
        AIVetoCheck(provider, cache, limiters),
    ]
    config_service = ThresholdConfigService(RedisThresholdConfigStore(redis), ThresholdConfig())
    return ContentCheckCoordinator(checks, config_service, detection_repository=repository)


@pytest.mark.asyncio
async def test_heuristics_plus_ai_spam_auto_bans(redis):
    provider = FakeProvider(ai_answer("spam", 0.9))
    repository = MemoryDetectionRepository()
    coordinator = build_coordinator(redis, provider, repository=repository)

    verdict = await coordinator.evaluate(CheckRequest(message=SPAM_TEXT, user_id=10, chat_id=1))
    assert verdict.get(CheckName.STOP_WORDS).score == 3.0
    assert verdict.get(CheckName.AI_VETO).score == pytest.approx(4.5)
    assert verdict.total_score == pytest.approx(7.5)
    assert verdict.classification is Classification.AUTO_BAN
    assert not verdict.vetoed

    assert len(repository.records) == 1
    assert repository.records[0].training_eligible is True


@pytest.mark.asyncio
async def test_trusted_author_is_clean(redis):
    provider = FakeProvider(ai_answer("spam", 0.9))
    coordinator = build_coordinator(redis, provider)

    verdict = await coordinator.evaluate(CheckRequest(message=SPAM_TEXT, user_id=10, chat_id=1, is_trusted=True))
    assert verdict.total_score == 0.0
    assert verdict.classification is Classification.CLEAN
    for name in (CheckName.STOP_WORDS, CheckName.INVISIBLE_CHARS, CheckName.AI_VETO):
        result = verdict.get(name)
        assert result.abstained
        assert result.details == "Skipped: trusted author"
    assert not verdict.get(CheckName.CAS).abstained
    assert provider.requests == []


@pytest.mark.asyncio
async def test_ai_clean_vetoes_pipeline_flags(redis):
    provider = FakeProvider(ai_answer("clean", 0.95))
    repository = MemoryDetectionRepository()
    coordinator = build_coordinator(redis, provider, repository=repository)

    verdict = await coordinator.evaluate(CheckRequest(message=SPAM_TEXT, user_id=10, chat_id=1))
    assert verdict.classification is Classification.CLEAN
    assert verdict.vetoed
    assert verdict.total_score == 3.0
    assert repository.records[0].training_eligible is True


@pytest.mark.asyncio
async def test_ai_skipped_without_pipeline_flags(redis):
    provider = FakeProvider(ai_answer("spam", 0.9))
    coordinator = build_coordinator(redis, provider)

    verdict = await coordinator.evaluate(CheckRequest(message="Lunch at noon tomorrow, everyone", user_id=10, chat_id=1))
    assert verdict.classification is Classification.CLEAN
    assert verdict.get(CheckName.AI_VETO).abstained
    assert provider.requests == []


@pytest.mark.asyncio
async def test_critical_blocklist_hit_runs_for_admins(redis):
    provider = FakeProvider(ai_answer("spam", 0.9))
    coordinator = build_coordinator(redis, provider, cas_payload={"ok": True, "result": {"offenses": 1}})

    verdict = await coordinator.evaluate(CheckRequest(message="hello", user_id=10, chat_id=1, is_admin=True))
    assert verdict.get(CheckName.CAS).score == 5.0
    assert verdict.classification is Classification.SPAM


@pytest.mark.asyncio
async def test_deadline_abstains_slow_checks(redis):
    provider = FakeProvider(ai_answer("spam", 0.9))
    coordinator = build_coordinator(redis, provider, extra_checks=[SlowCheck(delay=5)])

    verdict = await coordinator.evaluate(CheckRequest(message="hello there friends", user_id=10, chat_id=1), deadline=0.1)
    slow = verdict.get(CheckName.THREAT_INTEL)
    assert slow.abstained
    assert "timed out" in slow.details
    assert CheckName.THREAT_INTEL in verdict.timed_out
    assert verdict.classification is Classification.CLEAN


@pytest.mark.asyncio
async def test_per_check_timeout(redis):
    provider = FakeProvider(ai_answer("spam", 0.9))
    coordinator = build_coordinator(redis, provider, extra_checks=[SlowCheck(delay=5)])

    verdict = await coordinator.evaluate(CheckRequest(message="hello there friends", user_id=10, chat_id=1), timeout=0.05)
    assert verdict.get(CheckName.THREAT_INTEL).abstained
    assert CheckName.THREAT_INTEL in verdict.timed_out


@pytest.mark.asyncio
async def test_blocklisted_domain_short_circuits(redis):
    blocklist = DomainBlocklistService(redis)
    await blocklist.add_domains(["scam.example"])
    provider = FakeProvider(ai_answer("clean", 0.99))
    repository = MemoryDetectionRepository()
    slow = SlowCheck(delay=0.2)
    coordinator = build_coordinator(
        redis, provider, extra_checks=[slow, UrlBlocklistCheck(blocklist)], repository=repository
    )

    request = CheckRequest(message="Crypto drop at https://scam.example/claim", user_id=10, chat_id=1)
    verdict = await coordinator.evaluate(request)
    assert verdict.classification is Classification.AUTO_BAN
    assert verdict.hard_blocked
    assert not verdict.vetoed
    assert "scam.example" in verdict.primary_reason
    assert verdict.get(CheckName.STOP_WORDS) is None
    assert verdict.get(CheckName.AI_VETO) is None
    assert provider.requests == []
    assert slow.finished is False
    assert repository.records[0].classification is Classification.AUTO_BAN


@pytest.mark.asyncio
async def test_soft_blocklist_hit_joins_the_sum(redis):
    await redis.set(KeyFactory.threshold_config(0), json.dumps({"url_blocklist": {"hard_block": False, "score": 2.0}}))
    blocklist = DomainBlocklistService(redis)
    await blocklist.add_domains(["scam.example"])
    provider = FakeProvider(ai_answer("spam", 0.9))
    coordinator = build_coordinator(redis, provider, extra_checks=[UrlBlocklistCheck(blocklist)])

    verdict = await coordinator.evaluate(CheckRequest(message="Details at https://scam.example/claim", user_id=10, chat_id=1))
    assert not verdict.hard_blocked
    assert verdict.get(CheckName.URL_BLOCKLIST).score == 2.0
    assert verdict.get(CheckName.AI_VETO).score == pytest.approx(4.5)
    assert verdict.classification is Classification.SPAM


@pytest.mark.asyncio
async def test_cancelled_evaluation_cancels_running_checks(redis):
    slow = SlowCheck(delay=0.3)
    coordinator = build_coordinator(redis, FakeProvider(ai_answer("spam", 0.9)), extra_checks=[slow])

    task = asyncio.create_task(coordinator.evaluate(CheckRequest(message="hello there friends", user_id=10, chat_id=1)))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    await asyncio.sleep(0.4)
    assert slow.finished is False


@pytest.mark.asyncio
async def test_storage_failure_keeps_verdict(redis):
    provider = FakeProvider(ai_answer("spam", 0.9))
    coordinator = build_coordinator(redis, provider, repository=MemoryDetectionRepository(fail=True))

    verdict = await coordinator.evaluate(CheckRequest(message=SPAM_TEXT, user_id=10, chat_id=1))
    assert verdict.classification is Classification.AUTO_BAN


@pytest.mark.asyncio
async def test_broken_config_fails_closed(redis):
    await redis.set(KeyFactory.threshold_config(77), "{broken")
    coordinator = build_coordinator(redis, FakeProvider(ai_answer("spam", 0.9)))
    with pytest.raises(ConfigurationError):
        await coordinator.evaluate(CheckRequest(message=SPAM_TEXT, user_id=10, chat_id=77))


@pytest.mark.asyncio
async def test_disabled_checks_are_not_reported(redis):
    await redis.set(KeyFactory.threshold_config(0), json.dumps({"invisible_chars": {"enabled": False}}))
    coordinator = build_coordinator(redis, FakeProvider(ai_answer("spam", 0.9)))

    verdict = await coordinator.evaluate(CheckRequest(message="hello there friends", user_id=10, chat_id=1))
    assert verdict.get(CheckName.INVISIBLE_CHARS) is None


def test_pipeline_stage_transitions():
    run = EvaluationRun(request=CheckRequest())
    with pytest.raises(PipelineStateError):
        run.advance(PipelineStage.RUNNING)

    run.advance(PipelineStage.FILTERING)
    run.record(CheckResult.abstain(CheckName.CAS, "skipped"))
    run.advance(PipelineStage.RUNNING)
    run.advance(PipelineStage.AGGREGATING)
    with pytest.raises(PipelineStateError):
        run.record(CheckResult.abstain(CheckName.SPACING, "late"))
    run.advance(PipelineStage.VERDICTED)
    with pytest.raises(PipelineStateError):
        run.advance(PipelineStage.FILTERING)
