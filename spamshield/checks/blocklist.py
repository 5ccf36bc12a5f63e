# spamshield/checks/blocklist.py
"""
Проверка автора по внешней базе банов CAS (Combot Anti-Spam).
"""
import asyncio

from loguru import logger

from spamshield.checks.base import BaseCheck
from spamshield.config.models import ThresholdConfig
from spamshield.models import CheckName, CheckRequest, CheckResult
from spamshield.services.rate_limiter import RateLimiterRegistry
from spamshield.services.result_cache import CheckResultCache, build_cache_key
from spamshield.utils.http_client import HTTPClient


class BlocklistCheck(BaseCheck):
    """
    Запрашивает CAS по ID пользователя.

    Ответ {"ok": true} означает, что пользователь в базе банов.
    Любой сбой приводит к воздержанию: недоступность CAS не может
    стать причиной бана.
    """

    name = CheckName.CAS
    config_section = "cas"
    critical = True
    requires_text = False

    def __init__(self, http_client: HTTPClient, rate_limiters: RateLimiterRegistry, cache: CheckResultCache):
        self.http_client = http_client
        self.rate_limiters = rate_limiters
        self.cache = cache

    def _is_eligible(self, request: CheckRequest, config: ThresholdConfig) -> bool:
        return request.user_id > 0

    async def _run(self, request: CheckRequest, config: ThresholdConfig) -> CheckResult:
        cfg = config.cas
        key = build_cache_key(self.name, "", None, {"user_id": request.user_id, "api": cfg.api_url})
        result, cached = await self.cache.get_or_compute(
            key,
            lambda: self._lookup(request.user_id, cfg),
            ttl=cfg.cache_ttl_seconds,
        )
        if cached:
            return result.with_details_suffix(" (cached)")
        return result

    async def _lookup(self, user_id: int, cfg) -> CheckResult:
        await self.rate_limiters.acquire("cas")
        payload = await asyncio.wait_for(
            self.http_client.get(
                f"{cfg.api_url.rstrip('/')}/check",
                params={"user_id": str(user_id)},
                timeout=cfg.timeout_seconds,
            ),
            timeout=cfg.timeout_seconds,
        )

        if not isinstance(payload, dict) or "ok" not in payload:
            return CheckResult.abstain(self.name, "Invalid CAS response", error="invalid_response")

        if payload["ok"] is True:
            offenses = (payload.get("result") or {}).get("offenses", 0)
            logger.info(f"🎯 CAS: пользователь {user_id} в базе банов (offenses: {offenses})")
            return CheckResult.verdict(self.name, cfg.score, f"User is listed in CAS (offenses: {offenses})", listed=True)

        return CheckResult.verdict(self.name, 0.0, "User not listed in CAS", listed=False)
