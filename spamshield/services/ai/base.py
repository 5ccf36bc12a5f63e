# spamshield/services/ai/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ChatRequest:
    """Запрос к chat-completion модели."""
    system_prompt: str
    user_prompt: str
    feature: str = "spam_detection"
    json_mode: bool = True
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    model: Optional[str] = None


@dataclass(frozen=True)
class ChatResponse:
    """Ответ модели с учетом токенов."""
    content: str
    model: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class ChatCompletionProvider(ABC):
    @abstractmethod
    def is_available(self) -> bool:
        """Провайдер настроен (есть ключ и клиент)."""
        pass

    @abstractmethod
    def get_name(self) -> str:
        pass

    @abstractmethod
    async def complete(self, request: ChatRequest) -> Optional[ChatResponse]:
        """
        Выполняет запрос к модели.

        Returns:
            Ответ модели или None, если модель ничего не вернула
        """
        pass
