# spamshield/checks/threat_intel.py
"""
Проверка ссылок по репутационной базе VirusTotal.
"""
import asyncio
import base64

import aiohttp
from loguru import logger

from spamshield.checks.base import BaseCheck
from spamshield.config.models import ThresholdConfig
from spamshield.models import CheckName, CheckRequest, CheckResult
from spamshield.services.rate_limiter import RateLimiterRegistry
from spamshield.utils.http_client import HTTPClient


def virustotal_url_id(url: str) -> str:
    """Идентификатор URL в API v3: base64url без паддинга."""
    return base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii").rstrip("=")


class ThreatIntelCheck(BaseCheck):
    name = CheckName.THREAT_INTEL
    config_section = "threat_intel"

    def __init__(self, http_client: HTTPClient, rate_limiters: RateLimiterRegistry, api_key: str = ""):
        self.http_client = http_client
        self.rate_limiters = rate_limiters
        self.api_key = api_key

    def _is_eligible(self, request: CheckRequest, config: ThresholdConfig) -> bool:
        return bool(request.urls)

    async def _run(self, request: CheckRequest, config: ThresholdConfig) -> CheckResult:
        cfg = config.threat_intel
        if not self.api_key:
            return CheckResult.abstain(self.name, "VirusTotal API key not configured", error="missing_credential")

        urls = request.urls[: cfg.max_urls]
        for url in urls:
            if await self._is_malicious(url, cfg):
                logger.info(f"🎯 ThreatIntel: VirusTotal пометил {url} (user {request.user_id})")
                return CheckResult.verdict(self.name, cfg.score, f"VirusTotal flagged URL as malicious: {url}", url=url)

        return CheckResult.abstain(self.name, f"No threats detected for {len(urls)} URLs")

    async def _is_malicious(self, url: str, cfg) -> bool:
        await self.rate_limiters.acquire("threat_intel")
        try:
            report = await asyncio.wait_for(
                self.http_client.get(
                    f"{cfg.api_url.rstrip('/')}/urls/{virustotal_url_id(url)}",
                    headers={"x-apikey": self.api_key},
                    timeout=cfg.timeout_seconds,
                ),
                timeout=cfg.timeout_seconds,
            )
        except aiohttp.ClientResponseError as e:
            if e.status == 404:
                # URL еще не сканировался, отправка на анализ не укладывается в бюджет задержки
                return False
            raise

        stats = (((report or {}).get("data") or {}).get("attributes") or {}).get("last_analysis_stats") or {}
        return int(stats.get("malicious", 0)) > 0
