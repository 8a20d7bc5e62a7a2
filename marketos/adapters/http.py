"""
Marketplace HTTP client.

httpx wrapper with a bounded timeout and bounded retries. Every transport
failure, timeout or non-success status surfaces as AdapterFetchError so the
sync orchestrator only has one error kind to isolate.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx
import structlog

from marketos.exceptions import AdapterFetchError

logger = structlog.get_logger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class MarketplaceHttpClient:
    """
    JSON client for one marketplace API.

    Example:
        async with MarketplaceHttpClient("https://api-seller.ozon.ru", headers, marketplace="OZON") as client:
            payload = await client.request_json("POST", "/v1/warehouse/list", json={})
    """

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 15.0,
        retries: int = 2,
        backoff_seconds: float = 0.5,
        marketplace: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.retries = retries
        self.backoff_seconds = backoff_seconds
        self.marketplace = marketplace
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "MarketplaceHttpClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Send a request and decode the JSON body.

        Retries transport errors and 429/5xx responses up to ``retries`` times
        after the first attempt.

        Raises:
            AdapterFetchError: on any failure once retries are exhausted
        """
        operation = f"{method} {path}"
        last_error: Optional[Exception] = None

        for attempt in range(self.retries + 1):
            try:
                response = await self._client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code not in _RETRYABLE_STATUS:
                    break
            except (httpx.TransportError, ValueError) as e:
                # ValueError covers undecodable JSON bodies
                last_error = e
                if isinstance(e, ValueError):
                    break

            if attempt < self.retries:
                delay = self.backoff_seconds * (2 ** attempt)
                logger.warning(
                    "Marketplace request failed, retrying",
                    marketplace=self.marketplace,
                    operation=operation,
                    attempt=attempt + 1,
                    delay_seconds=delay,
                    error=str(last_error),
                )
                await asyncio.sleep(delay)

        raise AdapterFetchError(
            f"{operation} failed: {last_error}",
            marketplace=self.marketplace,
            operation=operation,
        ) from last_error
