"""
Shared plumbing for outside HTTP APIs
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from cropgenius.core.errors import CropGeniusError, RateLimitError, classify_error
from cropgenius.core.retry import CircuitBreaker, RetryConfig, retry_async
from cropgenius.core.settings import settings

logger = logging.getLogger(__name__)

USER_AGENT = "CropGenius-Africa/1.0"


def transient(error: Exception) -> bool:
    """Worth another attempt: a retryable failure that is not the provider asking us to back off"""
    return classify_error(error).retryable and not isinstance(error, RateLimitError)


class APIClient:
    """
    Thin async wrapper around httpx.
    Every call goes through this client's circuit breaker; failures surface as CropGeniusError.
    Transient failures of the methods in `retry_methods` are retried with backoff.
    """

    service_name = "external-api"
    error_class = CropGeniusError
    retry_methods: Tuple[str, ...] = ("GET",)

    def __init__(
        self,
        base_url: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        breaker: Optional[CircuitBreaker] = None,
        retry: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self._http = http_client
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self.breaker = breaker or CircuitBreaker(name=self.service_name)
        self.retry = retry or RetryConfig(max_retries=settings.HTTP_MAX_RETRIES, retry_condition=transient)
        self._sleep = sleep

    @asynccontextmanager
    async def session(self) -> AsyncIterator[httpx.AsyncClient]:
        """The injected client when there is one, otherwise a client that lives for one call"""
        if self._http is not None:
            yield self._http
            return
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        ) as http:
            yield http

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _wrap(self, e: Exception, method: str, path: str) -> CropGeniusError:
        if isinstance(e, httpx.HTTPStatusError):
            body = e.response.text[:300]
            logger.error(f"❌ {self.service_name} {method} {path} -> {e.response.status_code}: {body}")
            status = e.response.status_code
            if status in (401, 403, 429):
                return classify_error(e, self.service_name)
            return self.error_class(
                f"{self.service_name}: HTTP {status}",
                status_code=502,
                retryable=status >= 500,
                original=e,
            )
        logger.error(f"❌ {self.service_name} {method} {path} failed: {e}")
        return classify_error(e, self.service_name)

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request and raise for non-2xx statuses"""
        url = self._url(path)

        async with self.session() as http:
            async def send():
                response = await http.request(method, url, **kwargs)
                response.raise_for_status()
                return response

            async def attempt():
                try:
                    return await self.breaker.call(send)
                except CropGeniusError:
                    raise
                except Exception as e:
                    raise self._wrap(e, method, path) from e

            if method.upper() not in self.retry_methods:
                return await attempt()
            return await retry_async(attempt, self.retry, f"{self.service_name} {method} {path}", sleep=self._sleep)

    async def get_json(self, path: str, **kwargs) -> Any:
        response = await self.request("GET", path, **kwargs)
        return self._json(response)

    async def post_json(self, path: str, payload: Dict, **kwargs) -> Any:
        response = await self.request("POST", path, json=payload, **kwargs)
        return self._json(response)

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise classify_error(ValueError(f"invalid JSON from {self.service_name}: {e}"))
