"""Tests for HttpClient and RequestBuilder."""

import asyncio
import time
from contextlib import asynccontextmanager

import httpx
import pytest

from carrot_commons.clients.base import HttpClient
from carrot_commons.exceptions import HttpClientError, MalformedUrlError, PathJoinError
from upstreams import (
    MIRROR_BASE_URL,
    BrokenStream,
    SlowStream,
    Upstream,
    respond_json,
    respond_text,
)


class CountingLimiter:
    def __init__(self):
        self.calls = 0

    async def until_ready(self):
        self.calls += 1


class TestConstruction:
    @pytest.mark.parametrize("base_url", ["not a url", "/relative/path", "cdn.example"])
    def test_rejects_non_absolute_base(self, base_url):
        with pytest.raises(MalformedUrlError) as exc_info:
            HttpClient(base_url, 5.0)
        assert exc_info.value.base_url == base_url

    def test_rejects_unparseable_base(self):
        with pytest.raises(MalformedUrlError) as exc_info:
            HttpClient("https://cdn.example:port/", 5.0)
        assert isinstance(exc_info.value.cause, httpx.InvalidURL)

    def test_malformed_url_is_client_error(self):
        with pytest.raises(HttpClientError):
            HttpClient("nope", 5.0)

    def test_exposes_configuration(self):
        limiter = CountingLimiter()
        client = HttpClient(
            MIRROR_BASE_URL, 7.5, bearer_auth_token="secret", rate_limiter=limiter
        )
        assert str(client.base_url) == MIRROR_BASE_URL
        assert client.timeout == 7.5
        assert client.bearer_auth_token == "secret"
        assert client.rate_limiter is limiter


class TestJoin:
    @pytest.mark.parametrize(
        ("base_url", "path", "expected"),
        [
            ("https://cdn.example/", "bafy123", "https://cdn.example/bafy123"),
            ("https://cdn.example/bucket/", "bafy123", "https://cdn.example/bucket/bafy123"),
            ("https://cdn.example/bucket/index", "bafy123", "https://cdn.example/bucket/bafy123"),
            (
                "https://ipfs.example/prefix/",
                "/api/v0/cat?arg=bafy123",
                "https://ipfs.example/api/v0/cat?arg=bafy123",
            ),
        ],
    )
    def test_standard_resolution(self, base_url, path, expected):
        assert str(HttpClient(base_url, 5.0).join(path)) == expected

    def test_join_failure(self):
        client = HttpClient(MIRROR_BASE_URL, 5.0)
        with pytest.raises(PathJoinError) as exc_info:
            client.join("https://other.example:port/x")
        assert exc_info.value.base_url == MIRROR_BASE_URL
        assert exc_info.value.path == "https://other.example:port/x"
        assert exc_info.value.cause is not None


class TestRequest:
    @pytest.mark.asyncio
    async def test_attaches_bearer_token(self, make_client):
        upstream = Upstream(respond_json({"ok": True}))
        async with make_client(MIRROR_BASE_URL, upstream, bearer_auth_token="t0k") as client:
            builder = await client.request("GET", "bafy123")
            await builder.send()

        assert upstream.requests[0].headers["Authorization"] == "Bearer t0k"
        assert str(upstream.requests[0].url) == "https://cdn.example/bafy123"

    @pytest.mark.asyncio
    async def test_no_auth_header_without_token(self, make_client):
        upstream = Upstream(respond_json({}))
        async with make_client(MIRROR_BASE_URL, upstream) as client:
            await (await client.request("GET", "x")).send()

        assert "Authorization" not in upstream.requests[0].headers

    @pytest.mark.asyncio
    async def test_waits_on_rate_limiter_before_each_request(self, make_client):
        limiter = CountingLimiter()
        upstream = Upstream(respond_json({}))
        async with make_client(MIRROR_BASE_URL, upstream, rate_limiter=limiter) as client:
            for _ in range(3):
                await (await client.request("GET", "x")).send()

        assert limiter.calls == 3

    @pytest.mark.asyncio
    async def test_request_does_not_send(self, make_client):
        upstream = Upstream(respond_json({}))
        async with make_client(MIRROR_BASE_URL, upstream) as client:
            builder = await client.request("post", "/data/ipfs")

        assert upstream.calls == 0
        assert builder.method == "POST"
        assert str(builder.url) == "https://cdn.example/data/ipfs"

    @pytest.mark.asyncio
    async def test_path_join_failure_skips_rate_limiter(self, make_client):
        limiter = CountingLimiter()
        async with make_client(MIRROR_BASE_URL, Upstream(respond_json({})), rate_limiter=limiter) as client:
            with pytest.raises(PathJoinError):
                await client.request("GET", "http://bad.example:port/")

        assert limiter.calls == 0

    @pytest.mark.asyncio
    async def test_status_code_is_not_checked(self, make_client):
        upstream = Upstream(respond_text("missing", status_code=404))
        async with make_client(MIRROR_BASE_URL, upstream) as client:
            response = await (await client.request("GET", "x")).send()

        assert response.status_code == 404
        assert response.text == "missing"

    @pytest.mark.asyncio
    async def test_json_body(self, make_client):
        upstream = Upstream(respond_json({}))
        async with make_client(MIRROR_BASE_URL, upstream) as client:
            builder = await client.request("POST", "/data/ipfs")
            await builder.json({"cid": "abc"}).send()

        request = upstream.requests[0]
        assert request.headers["Content-Type"] == "application/json"
        assert httpx.Response(200, content=request.content).json() == {"cid": "abc"}

    @pytest.mark.asyncio
    async def test_streamed_content_body(self, make_client):
        async def chunks():
            yield b"ab"
            yield b"cd"

        upstream = Upstream(respond_json({}))
        async with make_client(MIRROR_BASE_URL, upstream) as client:
            builder = await client.request("POST", "/car")
            await builder.header("Content-Type", "application/octet-stream").content(chunks()).send()

        assert upstream.requests[0].content == b"abcd"
        assert upstream.requests[0].headers["Content-Type"] == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_transport_failure_raises_request_error(self, make_client):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with make_client(MIRROR_BASE_URL, Upstream(handler)) as client:
            builder = await client.request("GET", "x")
            with pytest.raises(httpx.RequestError):
                await builder.send()


@asynccontextmanager
async def trickling_server(body: bytes, delay: float):
    """A local HTTP server that sends ``body`` one byte every ``delay`` seconds."""

    async def handle(reader, writer):
        try:
            await reader.readuntil(b"\r\n\r\n")
            writer.write(
                b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n"
                + f"Content-Length: {len(body)}\r\n\r\n".encode()
            )
            for i in range(len(body)):
                writer.write(body[i : i + 1])
                await writer.drain()
                await asyncio.sleep(delay)
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}/"
    finally:
        server.close()
        await server.wait_closed()


class TestTimeout:
    @pytest.mark.asyncio
    async def test_slow_body_is_bounded_by_overall_timeout(self):
        # every gap between bytes is shorter than the timeout
        async with trickling_server(b'{"slow": 1} ', delay=0.2) as base_url:
            async with HttpClient(
                base_url, 0.5, transport=httpx.AsyncHTTPTransport()
            ) as client:
                builder = await client.request("GET", "bafy123")
                started = time.monotonic()
                with pytest.raises(httpx.TimeoutException) as exc_info:
                    await builder.send()
                elapsed = time.monotonic() - started

        assert elapsed < 1.5
        assert isinstance(exc_info.value, httpx.RequestError)

    @pytest.mark.asyncio
    async def test_streamed_read_shares_the_deadline(self):
        def handler(request):
            return httpx.Response(200, stream=SlowStream([b"x"] * 10, delay=0.1))

        async with HttpClient(
            MIRROR_BASE_URL, 0.3, transport=httpx.MockTransport(handler)
        ) as client:
            builder = await client.request("GET", "bafy123")
            response = await builder.send(stream=True)
            assert response.status_code == 200

            with pytest.raises(httpx.ReadTimeout):
                await builder.read(response)

        assert response.is_closed

    @pytest.mark.asyncio
    async def test_fast_response_within_timeout(self, make_client):
        async with make_client(MIRROR_BASE_URL, Upstream(respond_text("plain body"))) as client:
            builder = await client.request("GET", "bafy123")
            response = await builder.send(stream=True)

            assert await builder.read(response) == b"plain body"

        assert response.is_closed


class TestRead:
    @pytest.mark.asyncio
    async def test_broken_body_raises_request_error_and_closes(self):
        stream = BrokenStream(b"{")

        def handler(request):
            return httpx.Response(200, stream=stream)

        async with HttpClient(
            MIRROR_BASE_URL, 5.0, transport=httpx.MockTransport(handler)
        ) as client:
            builder = await client.request("GET", "bafy123")
            response = await builder.send(stream=True)

            with pytest.raises(httpx.ReadError):
                await builder.read(response)

        assert stream.closed
