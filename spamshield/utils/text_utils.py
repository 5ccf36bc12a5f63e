# =================================================================================
# Файл: spamshield/utils/text_utils.py
# Описание: Утилиты для нормализации текста, извлечения URL и хэширования контента.
# =================================================================================

import hashlib
import json
import re
from typing import Any, List, Optional
from urllib.parse import urlparse

URL_REGEX = re.compile(
    r"(?:https?://|www\.)[^\s<>\"']+|\b[a-z0-9-]+(?:\.[a-z0-9-]+)*\.[a-z]{2,}/[^\s<>\"']*",
    re.IGNORECASE,
)
MENTION_REGEX = re.compile(r"@\w+")
WORD_REGEX = re.compile(r"\w+", re.UNICODE)
WHITESPACE_REGEX = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """
    Схлопывает пробельные символы и обрезает края.
    Регистр не меняется: для AI-проверки он значим.
    """
    if not text:
        return ""
    return WHITESPACE_REGEX.sub(" ", text).strip()


def extract_urls(text: str) -> List[str]:
    """Извлекает URL из текста в порядке появления, без дублей."""
    if not text:
        return []
    seen = []
    for match in URL_REGEX.findall(text):
        url = match.rstrip(".,;:!?)")
        if url not in seen:
            seen.append(url)
    return seen


def extract_domain(url: str) -> Optional[str]:
    """Хост URL в нижнем регистре; для ссылок без схемы подставляется http."""
    if "://" not in url:
        url = f"http://{url}"
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    return hostname.rstrip(".") if hostname else None


def strip_urls_and_mentions(text: str) -> str:
    """Удаляет URL и @упоминания."""
    if not text:
        return ""
    text = URL_REGEX.sub(" ", text)
    return MENTION_REGEX.sub(" ", text)


def tokenize(text: str) -> List[str]:
    """Слова в нижнем регистре без пунктуации."""
    if not text:
        return []
    return WORD_REGEX.findall(text.lower())


def content_hash(*parts: Any) -> str:
    """
    Детерминированный SHA256 по каноническому JSON-представлению частей.

    Args:
        *parts: Сериализуемые в JSON значения

    Returns:
        Hex-строка дайджеста
    """
    payload = json.dumps(parts, ensure_ascii=False, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def clean_json_string(raw_json: str) -> str:
    """
    Очищает строку, которая должна содержать JSON, от лишних символов
    и markdown-разметки, часто добавляемой LLM.
    """
    if not raw_json:
        return ""
    # Удаляем ```json ... ``` и аналогичные обертки
    cleaned = re.sub(r'```[a-zA-Z]*\n(.*?)\n```', r'\1', raw_json, flags=re.DOTALL)
    # Находим первую { или [ и последнюю } или ]
    start = -1
    end = -1
    for i, char in enumerate(cleaned):
        if char in '{[':
            start = i
            break
    for i, char in enumerate(reversed(cleaned)):
        if char in '}]':
            end = len(cleaned) - i
            break

    if start != -1 and end != -1 and start < end:
        return cleaned[start:end]
    return raw_json.strip()


def clip_text(text: str, max_length: int) -> str:
    """
    Обрезает текст до максимальной длины, стараясь не разрывать слова.
    """
    if len(text) <= max_length:
        return text

    clipped = text[:max_length]
    last_space = clipped.rfind(' ')
    if last_space != -1:
        return clipped[:last_space] + "..."
    return clipped + "..."
