# spamshield/config/models/ai.py
from pydantic import BaseModel, ConfigDict


class AIConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    openai_model: str = "gpt-4o-mini"

    request_timeout: int = 30
    max_retries: int = 3
    max_prompt_chars: int = 8000
