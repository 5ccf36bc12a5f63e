# spamshield/checks/channel_reply.py
from spamshield.checks.base import BaseCheck
from spamshield.config.models import ThresholdConfig
from spamshield.models import CheckName, CheckRequest, CheckResult


class ChannelReplyCheck(BaseCheck):
    """Ответ на пост канала: сигнал по структуре, текст не важен."""

    name = CheckName.CHANNEL_REPLY
    config_section = "channel_reply"
    critical = True
    requires_text = False

    async def _run(self, request: CheckRequest, config: ThresholdConfig) -> CheckResult:
        if not request.is_channel_reply:
            return CheckResult.verdict(self.name, 0.0, "Not a reply to a channel post")
        return CheckResult.verdict(self.name, config.channel_reply.score, "Reply to a channel post")
