"""Test the streaming relay"""

import asyncio

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer, unused_port

from ytm_stream.core.config import RetryConfig, StreamConfig
from ytm_stream.core.exceptions import NetworkError
from ytm_stream.stream.proxy import ByteRange, ProxySession, StreamProxy, parse_byte_range


FAST_RETRY = RetryConfig(max_attempts=3, base_delay=0.01, multiplier=1.0, max_delay=0.01)


class FakeTransport:
    def __init__(self):
        self.closing = False

    def is_closing(self):
        return self.closing

    def close(self):
        self.closing = True


class FakeRequest:
    def __init__(self):
        self.transport = FakeTransport()


class FakeContent:
    """Upstream body that records how many chunks were pulled"""

    def __init__(self, chunks):
        self.chunks = chunks
        self.reads = 0

    async def iter_chunked(self, size):
        for chunk in self.chunks:
            self.reads += 1
            yield chunk


class FakeUpstream:
    def __init__(self, chunks):
        self.content = FakeContent(chunks)
        self.closed = False

    def close(self):
        self.closed = True


class StallingContent:
    """Upstream body that delivers one chunk and then never another"""

    def __init__(self, first):
        self.first = first
        self.reads = 0

    async def iter_chunked(self, size):
        self.reads += 1
        yield self.first
        self.reads += 1
        await asyncio.Event().wait()
        yield b""


class RecordingDownstream:
    def __init__(self):
        self.written = []

    async def write(self, chunk):
        self.written.append(chunk)


class StallingHost:
    """Stream host that sends 64 bytes, then stalls until its client leaves"""

    def __init__(self):
        self.url = ""
        self.aborted = asyncio.Event()

    async def handle(self, request):
        response = web.StreamResponse(headers={"Content-Type": "audio/webm", "Content-Length": "1000"})
        await response.prepare(request)
        await response.write(b"x" * 64)
        try:
            for _ in range(300):
                if request.transport is None or request.transport.is_closing():
                    self.aborted.set()
                    break
                await asyncio.sleep(0.1)
        except asyncio.CancelledError:
            self.aborted.set()
            raise
        return response


class DisconnectingDownstream:
    """Consumer response whose client goes away after the first write"""

    def __init__(self, request):
        self.request = request
        self.written = []

    async def write(self, chunk):
        self.written.append(chunk)
        self.request.transport.closing = True


class BrokenDownstream:
    """Consumer response whose writes fail outright"""

    async def write(self, chunk):
        raise ConnectionResetError("peer reset")


@pytest_asyncio.fixture
async def proxy():
    stream_proxy = StreamProxy(stream=StreamConfig(chunk_size=64), retry=FAST_RETRY)
    yield stream_proxy
    await stream_proxy.close()


@pytest_asyncio.fixture
async def relay(proxy, media_host):
    """Local app relaying media_host through the proxy"""

    async def handle(request):
        target = request.query.get("target", media_host.url)
        try:
            return await proxy.proxy_stream(target, request)
        except NetworkError as e:
            return web.Response(status=502, text=e.message)

    app = web.Application()
    app.router.add_get("/relay", handle)

    test_client = TestClient(TestServer(app))
    await test_client.start_server()
    yield test_client
    await test_client.close()


@pytest_asyncio.fixture
async def stalling_host():
    host = StallingHost()
    app = web.Application()
    app.router.add_get("/videoplayback", host.handle)
    server = TestServer(app)
    await server.start_server()
    host.url = str(server.make_url("/videoplayback"))
    yield host
    await server.close()


@pytest_asyncio.fixture
async def production_relay(proxy, stalling_host):
    """Relay for stalling_host served with AppRunner defaults, as run_app does"""

    async def handle(request):
        return await proxy.proxy_stream(stalling_host.url, request)

    app = web.Application()
    app.router.add_get("/relay", handle)
    runner = web.AppRunner(app)
    await runner.setup()
    port = unused_port()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    yield f"http://127.0.0.1:{port}/relay"
    await runner.cleanup()


class TestProxyStream:
    """Test relaying through a real local server"""

    @pytest.mark.asyncio
    async def test_range_request(self, relay, media_host):
        """A Range request is forwarded and answered with 206"""
        response = await relay.get("/relay", headers={"Range": "bytes=100-199"})

        assert response.status == 206
        assert response.headers["Content-Range"] == "bytes 100-199/1000"
        assert response.headers["Content-Length"] == "100"
        assert response.headers["Content-Type"] == "audio/webm"
        assert await response.read() == media_host.payload[100:200]
        assert media_host.received_headers[0]["Range"] == "bytes=100-199"

    @pytest.mark.asyncio
    async def test_full_request(self, relay, media_host):
        """A plain GET relays the whole body with cache and CORS headers"""
        response = await relay.get("/relay")

        assert response.status == 200
        assert response.headers["Accept-Ranges"] == "bytes"
        assert response.headers["Cache-Control"] == "public, max-age=3600"
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert "Content-Range" not in response.headers
        assert await response.read() == media_host.payload

    @pytest.mark.asyncio
    async def test_browser_headers_sent_upstream(self, relay, media_host):
        await relay.get("/relay")

        sent = media_host.received_headers[0]
        assert sent["Origin"] == "https://www.youtube.com"
        assert sent["Referer"] == "https://www.youtube.com/"
        assert "Chrome" in sent["User-Agent"]

    @pytest.mark.asyncio
    async def test_range_ignored_upstream(self, relay, media_host):
        """An upstream 200 to a range request is cut to the requested window"""
        media_host.ignore_range = True

        response = await relay.get("/relay", headers={"Range": "bytes=100-199"})

        assert response.status == 206
        assert response.headers["Content-Range"] == "bytes 100-199/1000"
        assert response.headers["Content-Length"] == "100"
        assert await response.read() == media_host.payload[100:200]

    @pytest.mark.asyncio
    async def test_open_range_ignored_upstream(self, relay, media_host):
        media_host.ignore_range = True

        response = await relay.get("/relay", headers={"Range": "bytes=900-"})

        assert response.status == 206
        assert response.headers["Content-Range"] == "bytes 900-999/1000"
        assert await response.read() == media_host.payload[900:]

    @pytest.mark.asyncio
    async def test_multi_range_ignored_upstream(self, relay, media_host):
        """A range that cannot be cut locally falls back to the whole body"""
        media_host.ignore_range = True

        response = await relay.get("/relay", headers={"Range": "bytes=0-9,20-29"})

        assert response.status == 200
        assert "Content-Range" not in response.headers
        assert await response.read() == media_host.payload

    @pytest.mark.asyncio
    async def test_range_past_end_ignored_upstream(self, relay, media_host):
        media_host.ignore_range = True

        response = await relay.get("/relay", headers={"Range": "bytes=5000-"})

        assert response.status == 416
        assert response.headers["Content-Range"] == "bytes */1000"

    @pytest.mark.asyncio
    async def test_upstream_416_is_relayed_without_retry(self, relay, media_host):
        """A seek past the end is answered at once, not retried into a 502"""
        response = await relay.get("/relay", headers={"Range": "bytes=5000-"})

        assert response.status == 416
        assert response.headers["Content-Range"] == "bytes */1000"
        assert media_host.gets == 1

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, relay, media_host):
        media_host.fail_count = 2

        response = await relay.get("/relay")

        assert response.status == 200
        assert media_host.gets == 3
        assert len(await response.read()) == 1000

    @pytest.mark.asyncio
    async def test_retry_exhaustion(self, relay, media_host):
        """After max_attempts the proxy gives up with NetworkError"""
        media_host.fail_count = 100

        response = await relay.get("/relay")

        assert response.status == 502
        assert "HTTP 503" in await response.text()
        assert media_host.gets == FAST_RETRY.max_attempts

    @pytest.mark.asyncio
    async def test_unreachable_upstream(self, relay):
        target = f"http://127.0.0.1:{unused_port()}/videoplayback"
        response = await relay.get("/relay", params={"target": target})
        assert response.status == 502


class TestStreamMetadata:
    """Test the HEAD probe"""

    @pytest.mark.asyncio
    async def test_metadata(self, proxy, media_host):
        metadata = await proxy.stream_metadata(media_host.url)

        assert metadata.content_type == "audio/webm"
        assert metadata.content_length == 1000
        assert metadata.accepts_ranges

    @pytest.mark.asyncio
    async def test_error_status(self, proxy, media_host):
        assert await proxy.stream_metadata(f"{media_host.base_url}/gone") is None

    @pytest.mark.asyncio
    async def test_unreachable(self, proxy):
        assert await proxy.stream_metadata(f"http://127.0.0.1:{unused_port()}/x") is None


class TestCancellation:
    """Test that a departed consumer stops the upstream transfer"""

    @pytest.mark.asyncio
    async def test_disconnect_stops_reading(self):
        """No further chunk is read once the consumer's transport closes"""
        request = FakeRequest()
        upstream = FakeUpstream([b"a" * 10, b"b" * 10, b"c" * 10])
        downstream = DisconnectingDownstream(request)
        session = ProxySession(request)

        sent = await StreamProxy().relay_body(upstream, downstream, session)

        assert downstream.written == [b"a" * 10]
        assert sent == 10
        assert upstream.content.reads == 1
        assert upstream.closed
        assert session.cancelled

    @pytest.mark.asyncio
    async def test_write_failure_cancels(self):
        request = FakeRequest()
        upstream = FakeUpstream([b"a" * 10, b"b" * 10])
        session = ProxySession(request)

        sent = await StreamProxy().relay_body(upstream, BrokenDownstream(), session)

        assert sent == 0
        assert upstream.content.reads == 1
        assert upstream.closed
        assert session.cancelled

    @pytest.mark.asyncio
    async def test_already_closed_transport(self):
        """A consumer gone before the first chunk gets nothing"""
        request = FakeRequest()
        request.transport = None
        upstream = FakeUpstream([b"a" * 10])
        downstream = DisconnectingDownstream(FakeRequest())

        sent = await StreamProxy().relay_body(upstream, downstream, ProxySession(request))

        assert sent == 0
        assert downstream.written == []
        assert upstream.closed

    @pytest.mark.asyncio
    async def test_complete_transfer(self):
        request = FakeRequest()
        upstream = FakeUpstream([b"a" * 10, b"b" * 5])
        downstream = DisconnectingDownstream(FakeRequest())

        sent = await StreamProxy().relay_body(upstream, downstream, ProxySession(request))

        assert sent == 15
        assert upstream.content.reads == 2
        assert upstream.closed

    @pytest.mark.asyncio
    async def test_disconnect_while_upstream_stalls(self):
        """A consumer leaving during an upstream stall ends the relay at once"""
        request = FakeRequest()
        upstream = FakeUpstream([])
        upstream.content = StallingContent(b"a" * 10)
        downstream = RecordingDownstream()
        session = ProxySession(request, poll_interval=0.01)
        asyncio.get_running_loop().call_later(0.05, request.transport.close)

        sent = await asyncio.wait_for(
            StreamProxy().relay_body(upstream, downstream, session), timeout=2
        )

        assert sent == 10
        assert downstream.written == [b"a" * 10]
        assert upstream.closed
        assert session.cancelled

    @pytest.mark.asyncio
    async def test_window_is_cut_across_chunks(self):
        request = FakeRequest()
        upstream = FakeUpstream([b"0123456789", b"abcdefghij", b"KLMNOPQRST"])
        downstream = RecordingDownstream()
        session = ProxySession(request)

        sent = await StreamProxy().relay_body(upstream, downstream, session, ByteRange(8, 13, 30))

        assert b"".join(downstream.written) == b"89abcd"
        assert sent == 6
        assert upstream.content.reads == 2
        assert not session.cancelled

    @pytest.mark.asyncio
    async def test_disconnect_aborts_upstream_without_handler_cancellation(
        self, production_relay, stalling_host
    ):
        """The upstream is closed promptly even when the server does not cancel handlers"""
        async with aiohttp.ClientSession() as consumer:
            response = await consumer.get(production_relay)
            assert await response.content.readexactly(64) == b"x" * 64
            response.close()

        await asyncio.wait_for(stalling_host.aborted.wait(), timeout=3)


class TestParseByteRange:
    """Test resolving Range headers against a known body size"""

    @pytest.mark.parametrize("header, expected", [
        ("bytes=100-199", ByteRange(100, 199, 1000)),
        ("bytes=900-", ByteRange(900, 999, 1000)),
        ("bytes=-100", ByteRange(900, 999, 1000)),
        ("bytes=-5000", ByteRange(0, 999, 1000)),
        ("bytes=990-2000", ByteRange(990, 999, 1000)),
    ])
    def test_satisfiable(self, header, expected):
        window = parse_byte_range(header, 1000)
        assert window == expected
        assert window.satisfiable

    @pytest.mark.parametrize("header", ["bytes=1000-", "bytes=5000-6000", "bytes=-0"])
    def test_unsatisfiable(self, header):
        assert not parse_byte_range(header, 1000).satisfiable

    @pytest.mark.parametrize("header", ["bytes=0-9,20-29", "bytes=-", "items=0-9", "bytes=200-100"])
    def test_not_honoured(self, header):
        assert parse_byte_range(header, 1000) is None

    def test_window_headers(self):
        window = ByteRange(100, 199, 1000)
        assert window.length == 100
        assert window.content_range == "bytes 100-199/1000"
