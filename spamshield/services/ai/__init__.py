# spamshield/services/ai/__init__.py
from spamshield.services.ai.base import ChatCompletionProvider, ChatRequest, ChatResponse
from spamshield.services.ai.openai_provider import OpenAIProvider
from spamshield.services.ai.prompt_builder import PromptBuilder

__all__ = [
    "ChatCompletionProvider",
    "ChatRequest",
    "ChatResponse",
    "OpenAIProvider",
    "PromptBuilder",
]
