# spamshield/services/domain_blocklist.py
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from async_lru import alru_cache
from loguru import logger
from redis.asyncio import Redis

from spamshield.utils.http_client import HTTPClient
from spamshield.utils.keys import KeyFactory
from spamshield.utils.text_utils import extract_domain

GLOBAL_CHAT_ID = 0


@dataclass(frozen=True)
class DomainMatch:
    domain: str
    entry: str


def normalize_domain(value: str) -> Optional[str]:
    """Домен в нижнем регистре; URL сводится к хосту, мусор отбрасывается."""
    value = value.strip().lower()
    if not value or value.startswith("#"):
        return None
    if "/" in value or ":" in value:
        value = extract_domain(value) or ""
    value = value.lstrip("*.").rstrip(".")
    if "." not in value or " " in value:
        return None
    return value


def parse_domain_list(raw: str) -> List[str]:
    """
    Разбирает текстовый список доменов.

    Поддерживаются строки вида "example.com" и hosts-формат
    "0.0.0.0 example.com"; строки с # пропускаются.
    """
    domains: List[str] = []
    seen: Set[str] = set()
    for line in raw.splitlines():
        line = line.split("#", 1)[0].strip()
        if not line:
            continue
        parts = line.split()
        domain = normalize_domain(parts[-1])
        if domain and domain not in seen:
            seen.add(domain)
            domains.append(domain)
    return domains


class DomainBlocklistService:
    """
    Блок-лист доменов для жесткой блокировки.

    Архитектура:
    - Redis SET на чат и глобальный SET как источник истины
    - In-memory LRU кэш наборов, инвалидация при любых изменениях
    - Совпадение по домену целиком или по родительскому домену
    """

    def __init__(self, redis: Redis, http_client: Optional[HTTPClient] = None):
        self.redis = redis
        self.http_client = http_client
        self.keys = KeyFactory

        logger.info("✅ Сервис DomainBlocklistService инициализирован.")

    @alru_cache(maxsize=128)
    async def get_domains(self, chat_id: int = GLOBAL_CHAT_ID) -> Set[str]:
        members = await self.redis.smembers(self.keys.blocked_domains(chat_id))
        return {m.decode("utf-8") if isinstance(m, bytes) else str(m) for m in members}

    def _invalidate_cache(self) -> None:
        self.get_domains.cache_clear()
        logger.debug("🔄 Кэш блок-листа доменов инвалидирован")

    async def add_domains(self, domains: Iterable[str], chat_id: int = GLOBAL_CHAT_ID) -> int:
        normalized = {d for d in (normalize_domain(x) for x in domains) if d}
        if not normalized:
            return 0
        added = await self.redis.sadd(self.keys.blocked_domains(chat_id), *normalized)
        if added:
            logger.success(f"✅ Добавлено доменов в блок-лист (chat {chat_id}): {added}")
            self._invalidate_cache()
        return int(added)

    async def remove_domain(self, domain: str, chat_id: int = GLOBAL_CHAT_ID) -> bool:
        normalized = normalize_domain(domain)
        if normalized is None:
            return False
        removed = await self.redis.srem(self.keys.blocked_domains(chat_id), normalized)
        if removed:
            logger.success(f"✅ Домен удален из блок-листа: '{normalized}'")
            self._invalidate_cache()
            return True
        logger.warning(f"⚠️ Домен не найден в блок-листе: '{normalized}'")
        return False

    async def match(self, urls: Iterable[str], chat_id: int = GLOBAL_CHAT_ID) -> Optional[DomainMatch]:
        """
        Ищет первый URL, домен которого заблокирован глобально или в чате.

        Returns:
            Совпадение или None
        """
        entries = set(await self.get_domains(GLOBAL_CHAT_ID))
        if chat_id:
            entries |= await self.get_domains(chat_id)
        if not entries:
            return None

        for url in urls:
            domain = extract_domain(url)
            if not domain:
                continue
            labels = domain.split(".")
            # example.com, затем родительские домены: a.b.example.com → b.example.com → example.com
            for i in range(len(labels) - 1):
                candidate = ".".join(labels[i:])
                if candidate in entries:
                    return DomainMatch(domain=domain, entry=candidate)
        return None

    async def sync_from_url(self, url: str, chat_id: int = GLOBAL_CHAT_ID) -> int:
        """
        Загружает внешний список доменов и добавляет его в блок-лист.

        Raises:
            RuntimeError: HTTP-клиент не передан
            aiohttp.ClientError: Ошибка загрузки списка
        """
        if self.http_client is None:
            raise RuntimeError("HTTP client is required to sync blocklists")
        raw = await self.http_client.get(url, response_type="text", timeout=30.0)
        domains = parse_domain_list(raw)
        logger.info(f"📥 Загружено {len(domains)} доменов из {url}")
        if not domains:
            return 0
        added = await self.redis.sadd(self.keys.blocked_domains(chat_id), *domains)
        self._invalidate_cache()
        return int(added)
