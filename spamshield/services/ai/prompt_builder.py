# spamshield/services/ai/prompt_builder.py
"""
Построение промптов для AI-проверки сообщений.
"""
from spamshield.config.models import AIVetoConfig
from spamshield.models import CheckRequest

BASE_TECHNICAL_PROMPT = """You must respond with valid JSON in this exact format:
{
  "result": "spam" | "clean" | "review",
  "reason": "clear explanation of your decision",
  "confidence": 0.0-1.0
}

Result types:
- "spam": Message is definitely spam/scam/unwanted
- "clean": Message is legitimate conversation
- "review": Uncertain - requires human review"""

DEFAULT_RULES_PROMPT = """SPAM indicators (mark as "spam"):
- Personal testimonials promoting paid services/individuals
- Direct solicitation or selling of services
- Get-rich-quick schemes or unrealistic profit promises
- Requests to contact someone for trading/investment advice
- Scam signals: "fee-free", "guaranteed profits", "no tricks", success stories
- Unsolicited financial advice with calls-to-action
- Adult content, obvious scams, repetitive spam patterns

LEGITIMATE content (mark as "clean"):
- Genuine discussion about crypto, trading, AI, or technology topics
- Educational content, tutorials, news, research, or analysis
- Questions and answers about topics
- Sharing legitimate tools, resources, or links for discussion
- Normal conversation about markets, technology, or current events

Key distinction: Sharing knowledge/discussion = legitimate. Promoting services/testimonials = spam."""

VETO_MODE_PROMPT = """MODE: Spam Verification (Veto)
Other filters have flagged this message as potential spam. Verify whether it is actually spam or a false positive.

Return "spam" if the message clearly matches the spam indicators and you agree with the other filters.
Return "clean" if the message is educational, informational or conversational and the flag is a false positive.
Return "review" if you are uncertain or the case depends on context a human should judge.

Only override the filters when you are confident it is a false positive."""

DETECTION_MODE_PROMPT = """MODE: Spam Detection
Analyze this message and determine if it is spam.

Return "spam" for promotional, solicitation or scam content.
Return "clean" for legitimate conversation; when in doubt, lean toward "clean".
Return "review" for borderline cases that require human judgment.

False positives (blocking legitimate messages) are worse than false negatives."""

RESPONSE_INSTRUCTION = (
    'Respond with JSON: {"result": "spam" or "clean" or "review", '
    '"reason": "explanation", "confidence": 0.0-1.0}'
)

HISTORY_SNIPPET_LENGTH = 100


class PromptBuilder:
    """
    Собирает system/user промпты.

    System prompt = технический формат + правила (заменяются кастомным
    промптом чата) + указания режима (veto или detection).
    """

    @staticmethod
    def build_system_prompt(veto_mode: bool, custom_rules: str | None = None) -> str:
        rules = custom_rules or DEFAULT_RULES_PROMPT
        mode = VETO_MODE_PROMPT if veto_mode else DETECTION_MODE_PROMPT
        return (
            f"{BASE_TECHNICAL_PROMPT}\n\n{rules}\n\n{mode}\n\n"
            "Consider the message context, user history, and conversation flow when making your decision.\n"
            "Always respond with valid JSON format."
        )

    @staticmethod
    def build_user_prompt(request: CheckRequest, text: str, config: AIVetoConfig) -> str:
        lines = []
        if config.veto_mode:
            lines.append("Analyze this message that was flagged by other spam filters. Is it actually spam?")
        else:
            lines.append("Analyze this message for spam content.")

        history = request.history[: config.message_history_count]
        if history:
            lines.append("")
            lines.append("Recent message history for context:")
            for item in history:
                status = "[SPAM]" if item.was_spam else "[OK]"
                lines.append(f"{status} {item.user_name}: {item.message[:HISTORY_SNIPPET_LENGTH]}")

        author = request.user_name or "unknown"
        lines.append("")
        lines.append(f"Current message from user {author} (ID: {request.user_id}):")
        lines.append(f'"{text}"')
        lines.append("")
        lines.append(RESPONSE_INSTRUCTION)
        return "\n".join(lines)
