import asyncio
import logging
from typing import Collection, Optional

import httpx

logger = logging.getLogger(__name__)

# Upstream hiccups worth another attempt; 429 is left to the caller
RETRY_STATUSES = (502, 503, 504)


class SharedHTTPClient:
    """Pooled async client used by every outbound service (Google Books, the LLM provider)."""

    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100, keepalive_expiry=30.0),
            timeout=httpx.Timeout(timeout, connect=5.0),
            follow_redirects=True,
            transport=transport,
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self._client.get(url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self._client.post(url, **kwargs)

    async def get_with_retry(self, url: str, retries: int = 3, backoff: float = 0.5,
                             retry_statuses: Collection[int] = RETRY_STATUSES,
                             **kwargs) -> Optional[httpx.Response]:
        """GET with exponential backoff.

        Transport errors and ``retry_statuses`` responses are retried. After the
        last attempt the final response is returned, or None if the request
        never got through.
        """
        response = None
        for attempt in range(1, retries + 1):
            try:
                response = await self.get(url, **kwargs)
            except httpx.RequestError as e:
                logger.debug("GET %s attempt %d/%d failed: %s", url, attempt, retries, e)
                response = None
            else:
                if response.status_code not in retry_statuses:
                    return response
                logger.debug("GET %s attempt %d/%d returned %d", url, attempt, retries, response.status_code)

            if attempt < retries:
                await asyncio.sleep(backoff * (2 ** (attempt - 1)))

        if response is None:
            logger.warning("GET %s failed after %d attempts", url, retries)
        return response

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


_global_client: Optional[SharedHTTPClient] = None


async def get_http_client() -> SharedHTTPClient:
    """Return the process-wide client, creating it again after cleanup."""
    global _global_client
    if _global_client is None or _global_client.is_closed:
        _global_client = SharedHTTPClient()
    return _global_client


async def cleanup_http_client():
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None
