# spamshield/checks/url_blocklist.py
"""
Проверка ссылок сообщения по блок-листу доменов.
"""
from loguru import logger

from spamshield.checks.base import BaseCheck
from spamshield.config.models import ThresholdConfig
from spamshield.models import CheckName, CheckRequest, CheckResult
from spamshield.services.domain_blocklist import DomainBlocklistService


class UrlBlocklistCheck(BaseCheck):
    """
    Ищет домены ссылок в глобальном блок-листе и блок-листе чата.

    Выполняется до остальных проверок. При hard_block совпадение
    завершает оценку вердиктом auto_ban без запуска других проверок.
    """

    name = CheckName.URL_BLOCKLIST
    config_section = "url_blocklist"
    critical = True
    requires_text = False
    pre_filter = True

    def __init__(self, blocklist: DomainBlocklistService):
        self.blocklist = blocklist

    def _is_eligible(self, request: CheckRequest, config: ThresholdConfig) -> bool:
        return bool(request.urls)

    async def _run(self, request: CheckRequest, config: ThresholdConfig) -> CheckResult:
        cfg = config.url_blocklist
        urls = request.urls
        match = await self.blocklist.match(urls, request.chat_id)
        if match is None:
            return CheckResult.verdict(self.name, 0.0, f"No blocklist matches for {len(urls)} URLs")

        logger.info(f"🚫 Домен {match.domain} в блок-листе ({match.entry}), user {request.user_id}")
        return CheckResult.verdict(
            self.name,
            cfg.score,
            f"Domain '{match.domain}' is blocklisted (matched: {match.entry})",
            domain=match.domain,
            matches=[match.entry],
            confidence=100,
            hard_block=cfg.hard_block,
        )
