# spamshield/checks/ai_veto.py
"""
AI-проверка: подтверждение или отмена (veto) спам-флагов других проверок.
"""
import asyncio
import json
from dataclasses import replace
from typing import Any, Dict

import openai
from loguru import logger

from spamshield.checks.base import BaseCheck
from spamshield.config.models import AIVetoConfig, ThresholdConfig
from spamshield.models import AIResult, CheckName, CheckRequest, CheckResult
from spamshield.services.ai import ChatCompletionProvider, ChatRequest, PromptBuilder
from spamshield.services.rate_limiter import RateLimiterRegistry
from spamshield.services.result_cache import CheckResultCache, build_cache_key
from spamshield.utils.text_utils import clean_json_string, content_hash

DEFAULT_CONFIDENCE = 0.8
SCORE_MULTIPLIER = 5.0
CACHED_MARKER = " (cached)"


class AIVetoCheck(BaseCheck):
    """
    Проверка сообщения chat-completion моделью.

    Поток:
        1. Текст сообщения объединяется с OCR-текстом
        2. Короткие сообщения пропускаются (если не включено обратное)
        3. В режиме veto без спам-флагов модель не вызывается
        4. Результат ищется в кэше по хэшу контента и параметров
        5. Модель отвечает JSON {result, reason, confidence}

    Оценка:
        spam   → confidence × 5.0
        review → min(confidence × 5.0, review_cap)
        clean  → 0.0 без воздержания (явный вердикт)
    """

    name = CheckName.AI_VETO
    config_section = "ai_veto"
    runs_after_pipeline = True
    # Короткие сообщения отсеиваются в _run с явным воздержанием
    applies_min_length = False

    def __init__(
        self,
        provider: ChatCompletionProvider,
        cache: CheckResultCache,
        rate_limiters: RateLimiterRegistry,
        prompt_builder: PromptBuilder | None = None,
    ):
        self.provider = provider
        self.cache = cache
        self.rate_limiters = rate_limiters
        self.prompt_builder = prompt_builder or PromptBuilder()

    async def _run(self, request: CheckRequest, config: ThresholdConfig) -> CheckResult:
        cfg = config.ai_veto
        text = request.combined_text

        min_length = request.min_message_length if request.min_message_length is not None else cfg.min_message_length
        check_short = request.check_short_messages if request.check_short_messages is not None else cfg.check_short_messages
        if not check_short and len(text) < min_length:
            return CheckResult.abstain(self.name, f"Message too short (< {min_length} chars)")

        if cfg.veto_mode and not request.has_spam_flags:
            return CheckResult.abstain(self.name, "No spam flags to verify (veto mode)")

        if not self.provider.is_available():
            return CheckResult.abstain(self.name, "AI provider not configured", error="missing_credential")

        key = build_cache_key(self.name, request.message, request.ocr_text, self._cache_params(request, cfg, config))
        result, cached = await self.cache.get_or_compute(
            key,
            lambda: self._ask_model(request, text, cfg, config.review_cap),
            ttl=cfg.cache_ttl_hours * 3600,
        )
        if cached:
            logger.debug(f"📦 AI veto: результат из кэша для user {request.user_id}")
            return result.with_details_suffix(CACHED_MARKER)
        return replace(result, metadata=dict(result.metadata))

    def _cache_params(self, request: CheckRequest, cfg: AIVetoConfig, config: ThresholdConfig) -> Dict[str, Any]:
        return {
            "model": cfg.model,
            "veto_mode": cfg.veto_mode,
            "review_cap": config.review_cap,
            "prompt": content_hash(cfg.system_prompt or ""),
            "max_tokens": cfg.max_tokens,
            "history": [
                [h.user_name, h.message, h.was_spam]
                for h in request.history[: cfg.message_history_count]
            ],
        }

    async def _ask_model(self, request: CheckRequest, text: str, cfg: AIVetoConfig, review_cap: float) -> CheckResult:
        await self.rate_limiters.acquire("ai_veto")

        chat_request = ChatRequest(
            system_prompt=self.prompt_builder.build_system_prompt(cfg.veto_mode, cfg.system_prompt),
            user_prompt=self.prompt_builder.build_user_prompt(request, text, cfg),
            feature="spam_detection",
            json_mode=True,
            temperature=cfg.temperature,
            max_tokens=cfg.max_tokens,
            model=cfg.model,
        )

        try:
            response = await asyncio.wait_for(self.provider.complete(chat_request), timeout=cfg.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ AI veto: таймаут {cfg.timeout_seconds}s для user {request.user_id}")
            return CheckResult.abstain(self.name, "AI check timed out - abstaining", error="timeout")
        except openai.RateLimitError as e:
            logger.warning(f"⚠️ AI veto: rate limited: {e}")
            return CheckResult.abstain(self.name, "AI API rate limited - abstaining", error="rate_limited")
        except openai.APIError as e:
            logger.error(f"❌ AI veto: API error: {e}")
            return CheckResult.abstain(self.name, f"AI API error: {type(e).__name__}", error="api_error")

        if response is None:
            return CheckResult.abstain(self.name, "AI returned no response", error="empty_response")
        if not response.content:
            return CheckResult.abstain(self.name, "Empty AI response", error="empty_response")

        return self.parse_response(response.content, review_cap)

    def parse_response(self, content: str, review_cap: float) -> CheckResult:
        """
        Разбирает JSON-ответ модели в CheckResult.

        Args:
            content: Текст ответа модели
            review_cap: Максимальная оценка для вердикта "review"

        Returns:
            Результат проверки
        """
        try:
            data = json.loads(clean_json_string(content))
        except json.JSONDecodeError:
            logger.warning(f"⚠️ AI veto: невалидный JSON: {content[:200]!r}")
            return CheckResult.abstain(self.name, "Failed to parse AI response", error="parse")

        if not isinstance(data, dict):
            return CheckResult.abstain(self.name, "Invalid AI response: expected JSON object", error="invalid_response")

        raw_result = str(data.get("result", "")).strip().lower()
        reason = str(data.get("reason") or "no reason given")
        try:
            ai_result = AIResult(raw_result)
        except ValueError:
            return CheckResult.abstain(self.name, f"Invalid AI response: unknown result '{raw_result}'", error="invalid_response")

        try:
            confidence = float(data.get("confidence", DEFAULT_CONFIDENCE))
        except (TypeError, ValueError):
            confidence = DEFAULT_CONFIDENCE
        confidence = min(1.0, max(0.0, confidence))

        if ai_result is AIResult.CLEAN:
            return CheckResult.verdict(self.name, 0.0, f"AI: Clean - {reason}", ai_result=ai_result.value, confidence=confidence)

        score = confidence * SCORE_MULTIPLIER
        if ai_result is AIResult.REVIEW:
            return CheckResult.verdict(
                self.name,
                min(score, review_cap),
                f"AI: Review - {reason}",
                ai_result=ai_result.value,
                confidence=confidence,
            )

        return CheckResult.verdict(self.name, score, f"AI: Spam - {reason}", ai_result=ai_result.value, confidence=confidence)
