"""Base HTTP client with URL joining, bearer auth and rate limiting."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterable

import httpx

from ..exceptions import HttpClientInitializationError, MalformedUrlError, PathJoinError
from .rate_limiter import TokenBucketRateLimiter

logger = logging.getLogger(__name__)


class HttpClient:
    """An HTTP client bound to one upstream.

    Holds a shared httpx.AsyncClient, the base URL every request path is
    joined onto, an optional bearer token and an optional rate limiter.
    Nothing is mutated after construction, so one instance can be shared by
    any number of concurrent operations.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float,
        *,
        bearer_auth_token: str | None = None,
        rate_limiter: TokenBucketRateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        try:
            parsed = httpx.URL(base_url)
        except (httpx.InvalidURL, TypeError) as exc:
            raise MalformedUrlError(base_url, exc) from exc
        if not parsed.is_absolute_url or not parsed.host:
            raise MalformedUrlError(base_url)

        try:
            # per-phase limits; RequestBuilder.send adds the overall deadline
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(timeout),
                transport=transport,
            )
        except (ValueError, TypeError, OSError) as exc:
            raise HttpClientInitializationError(exc) from exc

        self._base_url = parsed
        self._timeout = timeout
        self._bearer_auth_token = bearer_auth_token
        self._limiter = rate_limiter

    @property
    def base_url(self) -> httpx.URL:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def bearer_auth_token(self) -> str | None:
        return self._bearer_auth_token

    @property
    def rate_limiter(self) -> TokenBucketRateLimiter | None:
        return self._limiter

    def join(self, path: str) -> httpx.URL:
        """Resolve ``path`` against the base URL (RFC 3986)."""
        try:
            return self._base_url.join(path)
        except (httpx.InvalidURL, TypeError, ValueError) as exc:
            raise PathJoinError(str(self._base_url), path, exc) from exc

    async def request(self, method: str, path: str) -> RequestBuilder:
        """Prepare a rate-limited, authenticated request against ``path``.

        Suspends on the rate limiter when one is configured. Nothing is sent
        until the returned builder's ``send`` is awaited.
        """
        url = self.join(path)

        if self._limiter is not None:
            await self._limiter.until_ready()

        builder = RequestBuilder(self._client, method, url, self._timeout)
        if self._bearer_auth_token is not None:
            builder.header("Authorization", f"Bearer {self._bearer_auth_token}")
        return builder

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={str(self._base_url)!r})"


class RequestBuilder:
    """A prepared, not yet sent request.

    Setters return the builder so calls can be chained::

        builder = await client.request("POST", "/data/ipfs")
        response = await builder.json({"cid": cid}).send()
    """

    def __init__(
        self, client: httpx.AsyncClient, method: str, url: httpx.URL, timeout: float
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._deadline: float | None = None
        self.method = method.upper()
        self.url = url
        self.headers: dict[str, str] = {}
        self._json: Any = None
        self._content: bytes | AsyncIterable[bytes] | None = None

    def header(self, name: str, value: str) -> RequestBuilder:
        self.headers[name] = value
        return self

    def json(self, payload: Any) -> RequestBuilder:
        self._json = payload
        self._content = None
        return self

    def content(self, content: bytes | AsyncIterable[bytes]) -> RequestBuilder:
        self._content = content
        self._json = None
        return self

    def build(self) -> httpx.Request:
        kwargs: dict[str, Any] = {"headers": self.headers}
        if self._content is not None:
            kwargs["content"] = self._content
        elif self._json is not None:
            kwargs["json"] = self._json
        return self._client.build_request(self.method, self.url, **kwargs)

    async def send(self, *, stream: bool = False) -> httpx.Response:
        """Send the request within the client's timeout.

        The timeout bounds the whole attempt, not each phase separately:
        connect, upload and the response headers, plus the body unless
        ``stream=True``. Expiry raises httpx.ReadTimeout, so like any other
        transport failure it surfaces as httpx.RequestError. The HTTP status
        is not checked. With ``stream=True`` the body is left unread; use
        ``read`` or ``await response.aclose()``.
        """
        request = self.build()
        logger.debug("%s %s", request.method, request.url)
        self._deadline = asyncio.get_running_loop().time() + self._timeout
        try:
            return await asyncio.wait_for(
                self._client.send(request, stream=stream), self._timeout
            )
        except asyncio.TimeoutError as exc:
            raise httpx.ReadTimeout(
                f"no response within {self._timeout}s", request=request
            ) from exc

    async def read(self, response: httpx.Response) -> bytes:
        """Read a streamed response body and close the response.

        Reading shares the deadline started by ``send``. Failures while
        reading raise httpx.RequestError.
        """
        remaining = None
        if self._deadline is not None:
            remaining = max(self._deadline - asyncio.get_running_loop().time(), 0.0)
        try:
            return await asyncio.wait_for(response.aread(), remaining)
        except asyncio.TimeoutError as exc:
            raise httpx.ReadTimeout(
                f"response body not read within {self._timeout}s", request=response.request
            ) from exc
        finally:
            await response.aclose()
