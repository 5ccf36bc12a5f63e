import pytest

from spamshield.services.domain_blocklist import DomainBlocklistService, normalize_domain, parse_domain_list
from spamshield.utils.keys import KeyFactory


class FakeHTTPClient:
    def __init__(self, text):
        self.text = text
        self.calls = []

    async def get(self, url, params=None, headers=None, response_type="json", timeout=5.0):
        self.calls.append((url, response_type))
        return self.text


def test_parse_domain_list_formats():
    raw = "# Title: scam list\nscam.example\n0.0.0.0 phish.example # hosts\n\nSCAM.example\n*.wild.example\nnot a domain\n"
    assert parse_domain_list(raw) == ["scam.example", "phish.example", "wild.example"]


def test_normalize_domain():
    assert normalize_domain("https://Bad.Example/path?q=1") == "bad.example"
    assert normalize_domain("  bad.example. ") == "bad.example"
    assert normalize_domain("localhost") is None
    assert normalize_domain("# comment") is None


@pytest.mark.asyncio
async def test_match_exact_and_parent_domain(redis):
    service = DomainBlocklistService(redis)
    assert await service.add_domains(["scam.example", "https://phish.example/login"]) == 2

    match = await service.match(["https://promo.scam.example/offer"])
    assert match.domain == "promo.scam.example"
    assert match.entry == "scam.example"
    assert (await service.match(["phish.example/login"])).entry == "phish.example"
    assert await service.match(["https://notscam.example/"]) is None
    assert await service.match(["https://example.org/scam.example"]) is None


@pytest.mark.asyncio
async def test_chat_list_applies_only_to_its_chat(redis):
    service = DomainBlocklistService(redis)
    await service.add_domains(["local.example"], chat_id=5)

    assert await service.match(["https://local.example"], chat_id=5) is not None
    assert await service.match(["https://local.example"], chat_id=6) is None
    assert await service.match(["https://local.example"]) is None


@pytest.mark.asyncio
async def test_changes_invalidate_cache(redis):
    service = DomainBlocklistService(redis)
    await service.add_domains(["scam.example"])
    assert await service.match(["https://scam.example"]) is not None

    assert await service.remove_domain("scam.example") is True
    assert await service.match(["https://scam.example"]) is None
    assert await service.remove_domain("scam.example") is False


@pytest.mark.asyncio
async def test_sync_from_url(redis):
    http = FakeHTTPClient("# list\nscam.example\nphish.example\n")
    service = DomainBlocklistService(redis, http_client=http)

    assert await service.sync_from_url("https://lists.example/scam.txt") == 2
    assert http.calls == [("https://lists.example/scam.txt", "text")]
    assert await redis.smembers(KeyFactory.blocked_domains()) == {"scam.example", "phish.example"}
    assert await service.match(["https://phish.example/x"]) is not None
