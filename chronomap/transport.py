"""
HTTP transport for the historical map API.

All three resources (areas, markers, metadata) are plain JSON GETs. Timeouts
and connection failures are retried with exponential backoff; anything that
still fails, including HTTP error statuses and undecodable bodies, surfaces
as a single TransportError.
"""

from typing import Any
from urllib.parse import urlencode

import httpx
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from chronomap.config import settings
from chronomap.errors import TransportError

TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.NetworkError)


class ApiClient:
    """
    Async JSON client for the map API.

    Cancellation is not handled here: callers run requests inside task
    handles (see chronomap.inflight) and cancel the task.
    """

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            base_url: API root, e.g. https://api.chronas.org/v1 (defaults to settings)
            headers: Headers added to (or overriding) the JSON defaults
            timeout: Per-request timeout in seconds (defaults to settings)
            http_client: Externally owned httpx client; never closed here
        """
        self.base_url = (base_url or settings.api.base_url).rstrip("/")
        self.timeout = settings.api.timeout if timeout is None else timeout
        self.headers = {
            "Accept": "application/json",
            "User-Agent": settings.api.user_agent,
        }
        self.headers.update(headers or {})

        self._http = http_client
        self._external = http_client is not None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @property
    def http(self) -> httpx.AsyncClient:
        """The underlying httpx client, created on first use."""
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
            self._external = False
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and not self._external:
            await self._http.aclose()
            self._http = None

    def build_url(self, path: str, params: dict[str, Any] | None = None) -> str:
        """
        Resolve `path` against the base URL and append the query string.

        Absolute URLs are used as given. Parameters set to None are left out;
        commas stay unescaped so field lists read as `f=a,b,c`.
        """
        absolute = path.startswith(("http://", "https://"))
        url = path if absolute else self.base_url + "/" + path.lstrip("/")

        query = {key: value for key, value in (params or {}).items() if value is not None}
        if not query:
            return url
        return url + "?" + urlencode(query, doseq=True, safe=",")

    @retry(
        stop=stop_after_attempt(settings.api.max_retries),
        wait=wait_exponential(multiplier=settings.api.retry_delay, min=settings.api.retry_delay, max=10),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )
    async def _send(self, url: str) -> httpx.Response:
        logger.debug(f"GET {url}")
        return await self.http.get(url, headers=self.headers)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET `path` and return the decoded JSON body.

        Raises:
            TransportError: on network failure (after retries), an HTTP
                status of 400 or above, or a body that is not JSON
        """
        url = self.build_url(path, params)

        try:
            response = await self._send(url)
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}", url=url) from e

        if response.is_error:
            raise TransportError(
                f"{url} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                url=url,
            )

        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON from {url}", status_code=response.status_code, url=url) from e
