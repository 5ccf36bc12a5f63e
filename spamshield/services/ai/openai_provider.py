# spamshield/services/ai/openai_provider.py
import asyncio
from typing import Any, Dict, Optional

import backoff
from loguru import logger
from openai import APIConnectionError, OpenAI, RateLimitError

from spamshield.services.ai.base import ChatCompletionProvider, ChatRequest, ChatResponse
from spamshield.utils.text_utils import clip_text


class OpenAIProvider(ChatCompletionProvider):
    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: int = 30,
        max_prompt_chars: int = 8000,
        max_retries: int = 3,
    ):
        self.model = model
        self.timeout = timeout
        self.max_prompt_chars = max_prompt_chars
        self.client: Optional[OpenAI] = None
        self._request = backoff.on_exception(
            backoff.expo,
            (APIConnectionError, RateLimitError),
            max_tries=max(1, max_retries),
            on_backoff=lambda details: logger.warning(
                f"🔄 Retrying OpenAI request (attempt {details['tries']}/{max_retries})"
            ),
        )(self._send)

        if not api_key:
            logger.warning("⚠️ OPENAI_API_KEY не задан, AI-проверка будет воздерживаться")
            return

        self.client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        logger.info(f"✅ OpenAI initialized (model: {model})")

    def is_available(self) -> bool:
        return self.client is not None

    def get_name(self) -> str:
        return "OpenAI"

    async def _send(self, params: Dict[str, Any]):
        if not self.client:
            raise RuntimeError("OpenAI client not initialized")

        return await asyncio.to_thread(
            self.client.chat.completions.create,
            **params
        )

    async def complete(self, request: ChatRequest) -> Optional[ChatResponse]:
        params: Dict[str, Any] = {
            "model": request.model or self.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": clip_text(request.user_prompt, self.max_prompt_chars)},
            ],
        }
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.max_tokens is not None:
            params["max_tokens"] = request.max_tokens
        if request.json_mode:
            params["response_format"] = {"type": "json_object"}

        response = await self._request(params)
        if response is None or not response.choices:
            return None

        usage = getattr(response, "usage", None)
        logger.debug(
            f"📊 OpenAI [{request.feature}] tokens: "
            f"{getattr(usage, 'total_tokens', 0) if usage else 0}"
        )
        return ChatResponse(
            content=(response.choices[0].message.content or "").strip(),
            model=getattr(response, "model", params["model"]),
            prompt_tokens=getattr(usage, "prompt_tokens", 0) if usage else 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) if usage else 0,
        )
