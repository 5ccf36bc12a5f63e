import aiohttp
import pytest

from spamshield.checks.blocklist import BlocklistCheck
from spamshield.checks.threat_intel import ThreatIntelCheck, virustotal_url_id
from spamshield.checks.url_blocklist import UrlBlocklistCheck
from spamshield.config.models import ThresholdConfig
from spamshield.models import CheckRequest
from spamshield.services.rate_limiter import RateLimiterRegistry
from spamshield.services.domain_blocklist import DomainBlocklistService
from spamshield.services.result_cache import CheckResultCache


class FakeHTTPClient:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def get(self, url, params=None, headers=None, response_type="json", timeout=5.0):
        self.calls.append((url, params, headers))
        response = self.responses(url) if callable(self.responses) else self.responses
        if isinstance(response, Exception):
            raise response
        return response


def not_found(url):
    return aiohttp.ClientResponseError(request_info=None, history=(), status=404, message="Not Found")


def limiters():
    return RateLimiterRegistry({"cas": (100, 1.0), "threat_intel": (100, 1.0)})


@pytest.mark.asyncio
async def test_cas_listed_user():
    http = FakeHTTPClient({"ok": True, "result": {"offenses": 3}})
    check = BlocklistCheck(http, limiters(), CheckResultCache())
    result = await check.check(CheckRequest(user_id=42), ThresholdConfig())
    assert result.score == 5.0
    assert "offenses: 3" in result.details
    assert http.calls[0][0] == "https://api.cas.chat/check"
    assert http.calls[0][1] == {"user_id": "42"}


@pytest.mark.asyncio
async def test_cas_result_is_cached_per_user():
    http = FakeHTTPClient({"ok": False, "description": "Record not found."})
    check = BlocklistCheck(http, limiters(), CheckResultCache())
    config = ThresholdConfig()

    first = await check.check(CheckRequest(user_id=42), config)
    second = await check.check(CheckRequest(user_id=42, message="different text"), config)
    assert first.score == 0.0 and not first.abstained
    assert second.details.endswith("(cached)")
    assert len(http.calls) == 1


@pytest.mark.asyncio
async def test_cas_failures_abstain():
    config = ThresholdConfig()
    invalid = await BlocklistCheck(FakeHTTPClient(["nope"]), limiters(), CheckResultCache()).check(
        CheckRequest(user_id=1), config
    )
    assert invalid.abstained and invalid.details == "Invalid CAS response"

    down = FakeHTTPClient(aiohttp.ClientConnectionError("refused"))
    result = await BlocklistCheck(down, limiters(), CheckResultCache()).check(CheckRequest(user_id=1), config)
    assert result.abstained
    assert result.error == "network"


def test_cas_requires_a_real_user():
    check = BlocklistCheck(FakeHTTPClient({}), limiters(), CheckResultCache())
    config = ThresholdConfig()
    assert not check.should_execute(CheckRequest(user_id=0), config)
    assert check.should_execute(CheckRequest(user_id=7, is_trusted=True), config)


@pytest.mark.asyncio
async def test_cas_rate_limit_abstains():
    http = FakeHTTPClient({"ok": True})
    registry = RateLimiterRegistry({"cas": (1, 60.0)}, queue_timeout=0.01)
    check = BlocklistCheck(http, registry, CheckResultCache())
    config = ThresholdConfig()

    await check.check(CheckRequest(user_id=1), config)
    result = await check.check(CheckRequest(user_id=2), config)
    assert result.abstained
    assert result.details == "Rate limited: cas"
    assert len(http.calls) == 1


def test_virustotal_url_id_has_no_padding():
    assert virustotal_url_id("http://a.io/") == "aHR0cDovL2EuaW8v"
    assert "=" not in virustotal_url_id("https://example.com")


@pytest.mark.asyncio
async def test_threat_intel_flags_malicious_url():
    report = {"data": {"attributes": {"last_analysis_stats": {"malicious": 2, "harmless": 60}}}}
    http = FakeHTTPClient(report)
    check = ThreatIntelCheck(http, limiters(), api_key="vt-key")
    request = CheckRequest(message="claim at https://evil.example/prize now")

    assert check.should_execute(request, ThresholdConfig())
    result = await check.check(request, ThresholdConfig())
    assert result.score == 3.0
    assert http.calls[0][2] == {"x-apikey": "vt-key"}


@pytest.mark.asyncio
async def test_threat_intel_unknown_url_abstains():
    check = ThreatIntelCheck(FakeHTTPClient(not_found), limiters(), api_key="vt-key")
    result = await check.check(CheckRequest(message="see https://new.example/page"), ThresholdConfig())
    assert result.abstained
    assert result.details == "No threats detected for 1 URLs"


@pytest.mark.asyncio
async def test_threat_intel_without_key_or_urls():
    check = ThreatIntelCheck(FakeHTTPClient({}), limiters())
    config = ThresholdConfig()
    assert not check.should_execute(CheckRequest(message="no links in this message"), config)

    result = await check.check(CheckRequest(message="see https://new.example/page"), config)
    assert result.abstained
    assert result.error == "missing_credential"


@pytest.mark.asyncio
async def test_url_blocklist_hit_is_hard_block(redis):
    blocklist = DomainBlocklistService(redis)
    await blocklist.add_domains(["scam.example"])
    check = UrlBlocklistCheck(blocklist)
    request = CheckRequest(message="free tokens at https://drop.scam.example/claim", chat_id=3, is_admin=True)

    assert check.should_execute(request, ThresholdConfig())
    result = await check.check(request, ThresholdConfig())
    assert result.score == 5.0
    assert result.metadata["hard_block"] is True
    assert result.metadata["matches"] == ["scam.example"]
    assert "drop.scam.example" in result.details


@pytest.mark.asyncio
async def test_url_blocklist_clean_and_soft_mode(redis):
    blocklist = DomainBlocklistService(redis)
    await blocklist.add_domains(["scam.example"])
    check = UrlBlocklistCheck(blocklist)

    assert not check.should_execute(CheckRequest(message="no links in this message"), ThresholdConfig())
    clean = await check.check(CheckRequest(message="docs at https://docs.example/page"), ThresholdConfig())
    assert clean.score == 0.0
    assert clean.details == "No blocklist matches for 1 URLs"

    soft = ThresholdConfig(url_blocklist={"hard_block": False, "score": 2.5})
    result = await check.check(CheckRequest(message="see https://scam.example"), soft)
    assert result.score == 2.5
    assert result.metadata["hard_block"] is False
