import asyncio
import json

import pytest

from spamshield.checks.ai_veto import AIVetoCheck
from spamshield.config.models import ThresholdConfig
from spamshield.models import AIResult, CheckRequest
from spamshield.services.ai import ChatCompletionProvider, ChatResponse
from spamshield.services.rate_limiter import RateLimiterRegistry
from spamshield.services.result_cache import CheckResultCache

SPAM_TEXT = "BUY CRYPTO NOW GUARANTEED RETURNS"


class FakeProvider(ChatCompletionProvider):
    def __init__(self, content=None, delay=0.0, available=True):
        self.content = content
        self.delay = delay
        self.available = available
        self.calls = 0
        self.requests = []

    def is_available(self) -> bool:
        return self.available

    def get_name(self) -> str:
        return "fake"

    async def complete(self, request):
        self.calls += 1
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.content is None:
            return None
        return ChatResponse(content=self.content, model="fake-model")


def answer(result, confidence=None, reason="test"):
    data = {"result": result, "reason": reason}
    if confidence is not None:
        data["confidence"] = confidence
    return json.dumps(data)


def make_check(provider):
    return AIVetoCheck(provider, CheckResultCache(), RateLimiterRegistry({"ai_veto": (100, 1.0)}))


def flagged(message=SPAM_TEXT, **kwargs):
    return CheckRequest(message=message, user_id=1, chat_id=1, has_spam_flags=True, **kwargs)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content, expected",
    [
        (answer("spam", 0.95), 4.75),
        (answer("spam", 0.6), 3.0),
        (answer("spam", 0.3), 1.5),
        (answer("review", 0.9), 3.0),
        (answer("spam"), 4.0),
        (answer("clean", 0.99), 0.0),
    ],
)
async def test_ai_scoring(content, expected):
    result = await make_check(FakeProvider(content)).check(flagged(), ThresholdConfig())
    assert not result.abstained
    assert result.score == pytest.approx(expected)


@pytest.mark.asyncio
async def test_clean_verdict_is_explicit():
    result = await make_check(FakeProvider(answer("clean", 0.9))).check(flagged(), ThresholdConfig())
    assert result.ai_result is AIResult.CLEAN
    assert result.metadata["confidence"] == 0.9
    assert result.details.startswith("AI: Clean")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content, details",
    [
        (answer("maybe", 0.9), "Invalid AI response: unknown result 'maybe'"),
        ("not json at all", "Failed to parse AI response"),
        ("", "Empty AI response"),
        (None, "AI returned no response"),
    ],
)
async def test_ai_bad_responses_abstain(content, details):
    result = await make_check(FakeProvider(content)).check(flagged(), ThresholdConfig())
    assert result.abstained
    assert result.score == 0.0
    assert result.details == details


@pytest.mark.asyncio
async def test_markdown_wrapped_json_is_accepted():
    content = "```json\n" + answer("spam", 0.8) + "\n```"
    result = await make_check(FakeProvider(content)).check(flagged(), ThresholdConfig())
    assert result.score == pytest.approx(4.0)


@pytest.mark.asyncio
async def test_veto_mode_requires_spam_flags():
    provider = FakeProvider(answer("spam", 0.9))
    check = make_check(provider)

    result = await check.check(CheckRequest(message=SPAM_TEXT, user_id=1), ThresholdConfig())
    assert result.abstained
    assert "No spam flags" in result.details
    assert provider.calls == 0

    result = await check.check(flagged(), ThresholdConfig())
    assert not result.abstained
    assert provider.calls == 1


@pytest.mark.asyncio
async def test_detection_mode_runs_without_flags():
    provider = FakeProvider(answer("spam", 0.9))
    config = ThresholdConfig(ai_veto={"veto_mode": False})
    result = await make_check(provider).check(CheckRequest(message=SPAM_TEXT, user_id=1), config)
    assert result.score == pytest.approx(4.5)
    assert "flagged by other spam filters" not in provider.requests[0].user_prompt


@pytest.mark.asyncio
async def test_identical_requests_hit_cache():
    provider = FakeProvider(answer("spam", 0.9))
    check = make_check(provider)
    config = ThresholdConfig()

    first = await check.check(flagged(), config)
    second = await check.check(flagged(), config)
    assert provider.calls == 1
    assert not first.details.endswith("(cached)")
    assert second.details.endswith("(cached)")
    assert second.score == first.score


@pytest.mark.asyncio
async def test_different_ocr_text_is_a_different_cache_entry():
    provider = FakeProvider(answer("spam", 0.9))
    check = make_check(provider)
    config = ThresholdConfig()

    await check.check(flagged(ocr_text="first image"), config)
    await check.check(flagged(ocr_text="second image"), config)
    assert provider.calls == 2


@pytest.mark.asyncio
async def test_concurrent_identical_requests_share_one_call():
    provider = FakeProvider(answer("spam", 0.9), delay=0.05)
    check = make_check(provider)
    config = ThresholdConfig()

    results = await asyncio.gather(*(check.check(flagged(), config) for _ in range(5)))
    assert provider.calls == 1
    assert all(r.score == pytest.approx(4.5) for r in results)


@pytest.mark.asyncio
async def test_short_messages_are_skipped_unless_requested():
    provider = FakeProvider(answer("spam", 0.9))
    check = make_check(provider)
    config = ThresholdConfig()

    result = await check.check(flagged(message="buy now"), config)
    assert result.abstained
    assert "too short" in result.details
    assert provider.calls == 0

    result = await check.check(flagged(message="buy now", check_short_messages=True), config)
    assert not result.abstained
    assert provider.calls == 1


@pytest.mark.asyncio
async def test_missing_provider_abstains():
    result = await make_check(FakeProvider(available=False)).check(flagged(), ThresholdConfig())
    assert result.abstained
    assert result.details == "AI provider not configured"


@pytest.mark.asyncio
async def test_timeout_abstains_and_is_not_cached():
    provider = FakeProvider(answer("spam", 0.9), delay=1.0)
    check = make_check(provider)
    config = ThresholdConfig(ai_veto={"timeout_seconds": 0.05})

    result = await check.check(flagged(), config)
    assert result.abstained
    assert result.error == "timeout"

    provider.delay = 0.0
    result = await check.check(flagged(), config)
    assert not result.abstained
    assert provider.calls == 2


@pytest.mark.asyncio
async def test_history_is_included_in_prompt():
    from spamshield.models import HistoryMessage

    provider = FakeProvider(answer("clean", 0.9))
    history = (HistoryMessage("alice", "hello all"), HistoryMessage("bob", "cheap pills", was_spam=True))
    await make_check(provider).check(flagged(history=history), ThresholdConfig())

    prompt = provider.requests[0].user_prompt
    assert "[OK] alice: hello all" in prompt
    assert "[SPAM] bob: cheap pills" in prompt
    assert provider.requests[0].json_mode is True
