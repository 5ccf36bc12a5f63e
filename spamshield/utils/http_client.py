# spamshield/utils/http_client.py
import asyncio
from typing import Any, Literal, Optional

import aiohttp
import backoff
from loguru import logger


def backoff_hdlr(details):
    """Логирует информацию о повторных попытках запроса."""
    logger.warning(
        "🔄 Backing off {wait:0.1f}s after {tries} tries calling {target.__name__} due to {exception}".format(
            **details
        )
    )


def _is_permanent(error: Exception) -> bool:
    """4xx ответы не повторяем: повтор не изменит результат."""
    return isinstance(error, aiohttp.ClientResponseError) and 400 <= error.status < 500


class HTTPClient:
    """
    Обертка над aiohttp.ClientSession для внешних сервисов репутации.

    Сессия создается лениво. Ошибки сети и таймауты пробрасываются
    вызывающему коду: проверка сама решает, как воздержаться.
    """

    USER_AGENT = "spamshield/1.0 (+content-moderation)"

    def __init__(self, total_timeout: float = 10.0, connect_timeout: float = 3.0):
        self._session: Optional[aiohttp.ClientSession] = None
        self.total_timeout = total_timeout
        self.connect_timeout = connect_timeout

    async def _get_session(self) -> aiohttp.ClientSession:
        """Лениво создает и возвращает сессию aiohttp."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=100,
                limit_per_host=30,
                ttl_dns_cache=300,
            )
            timeout = aiohttp.ClientTimeout(total=self.total_timeout, connect=self.connect_timeout)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=timeout,
                headers={"User-Agent": self.USER_AGENT},
            )
        return self._session

    @backoff.on_exception(
        backoff.expo,
        (aiohttp.ClientError, asyncio.TimeoutError),
        max_tries=2,
        giveup=_is_permanent,
        on_backoff=backoff_hdlr,
    )
    async def get(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        response_type: Literal["json", "text"] = "json",
        timeout: float = 5.0,
    ) -> Any:
        """
        Выполняет GET-запрос с одной повторной попыткой.

        Raises:
            aiohttp.ClientResponseError: Ответ с кодом ошибки
            asyncio.TimeoutError: Превышен таймаут запроса
        """
        session = await self._get_session()
        aio_timeout = aiohttp.ClientTimeout(total=timeout)

        try:
            async with session.get(url, params=params, headers=headers, timeout=aio_timeout) as response:
                response.raise_for_status()
                if response_type == "json":
                    return await response.json(content_type=None)
                return await response.text()
        except aiohttp.ClientResponseError as e:
            logger.debug(f"⚠️ Request to {url} failed with status {e.status}")
            raise
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Request to {url} timed out after {timeout}s")
            raise

    async def close(self) -> None:
        """Корректно закрывает сессию при остановке приложения."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.info("HTTP client session closed.")
