"""
Streaming relay between the stream host and a local consumer.

The stream host only serves clients that look like a browser, and a
local audio element needs byte-range support to seek. StreamProxy sits
in between: it opens the upstream with browser-like headers, forwards
the consumer's Range header verbatim, and relays the body chunk by
chunk.

Full Requests (no Range):
    The upstream GET is retried with exponential backoff; any non-2xx
    status counts as a failed attempt. Exhaustion raises NetworkError.
    The consumer gets 200 with Content-Type/Content-Length passed
    through, plus Accept-Ranges, Cache-Control and a permissive CORS
    header.

Range Requests:
    Upstream 206 is passed through as 206. An upstream 200 means the
    host ignored the range; the requested window is then cut out of the
    full body locally and still answered with 206. An unsatisfiable
    range (from the host, or against the host's Content-Length) is
    answered with 416 without retrying.

Cancellation:
    Each consumer request gets a ProxySession bound to its transport.
    The body copy runs next to a watcher that polls the transport; once
    the consumer is gone (or a write fails), the copy is cancelled even
    if it is waiting on the upstream, and the upstream response is
    closed, which aborts the transfer. This is normal behaviour when a
    listener seeks or skips, so it is logged at DEBUG and never raised.
"""

import asyncio
import re
from dataclasses import dataclass

import aiohttp
from aiohttp import hdrs, web

from ytm_stream.core.config import RetryConfig, StreamConfig
from ytm_stream.core.exceptions import NetworkError
from ytm_stream.core.logger import get_logger
from ytm_stream.core.retry import retry_with_backoff


logger = get_logger(__name__)


# =============================================================================
# UPSTREAM HEADERS
# =============================================================================

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Origin": "https://www.youtube.com",
    "Referer": "https://www.youtube.com/",
}

DEFAULT_CONTENT_TYPE = "audio/mp4"

# Raised by a write to a consumer that has gone away
DISCONNECT_ERRORS = (ConnectionResetError, BrokenPipeError, aiohttp.ClientConnectionError)

# Seconds between checks of the consumer's transport while relaying
DISCONNECT_POLL_INTERVAL = 0.1

# Single range only: "bytes=100-199", "bytes=100-" or "bytes=-500"
RANGE_PATTERN = re.compile(r"bytes=(\d*)-(\d*)")


@dataclass(frozen=True)
class StreamMetadata:
    """
    Upstream headers reported by a HEAD probe.

    Attributes:
        content_type: MIME type (DEFAULT_CONTENT_TYPE when absent).
        content_length: Size in bytes, if the host reported one.
        accepts_ranges: Whether the host advertises byte ranges.
    """
    content_type: str
    content_length: int | None
    accepts_ranges: bool


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte window of a body of total bytes."""
    start: int
    end: int
    total: int

    @property
    def satisfiable(self) -> bool:
        return 0 <= self.start <= self.end

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"


def parse_byte_range(header: str, total: int) -> ByteRange | None:
    """
    Resolve a Range header against a body of total bytes.

    Args:
        header: Value of the consumer's Range header.
        total: Full size of the body.

    Returns:
        The requested window, clamped to the body. It is unsatisfiable
        when it starts at or past the end. None for headers that cannot
        be honoured (malformed, multiple ranges, end before start), in
        which case the whole body is served instead.
    """
    match = RANGE_PATTERN.fullmatch(header.strip())
    if match is None:
        return None
    first, last = match.groups()
    if not first and not last:
        return None

    if not first:
        suffix = int(last)
        start = max(total - suffix, 0) if suffix else total
        return ByteRange(start, total - 1, total)

    start = int(first)
    if last and int(last) < start:
        return None
    end = min(int(last), total - 1) if last else total - 1
    return ByteRange(start, end, total)


class ProxySession:
    """
    Cancellation signal for one consumer request.

    The session watches the consumer's transport; it becomes cancelled
    as soon as the transport is gone or closing, or when cancel() is
    called after a failed write.

    Attributes:
        request: The consumer's request.
        bytes_sent: Bytes delivered to the consumer so far.
    """

    def __init__(
        self,
        request: web.BaseRequest,
        poll_interval: float = DISCONNECT_POLL_INTERVAL
    ) -> None:
        self.request = request
        self.poll_interval = poll_interval
        self.bytes_sent = 0
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        if not self._cancelled:
            transport = self.request.transport
            if transport is None or transport.is_closing():
                self._cancelled = True
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    async def wait_disconnected(self) -> None:
        """
        Return once the session is cancelled.

        aiohttp only cancels a handler on disconnect when the server runs
        with handler_cancellation, so the transport is polled instead.
        """
        while not self.cancelled:
            await asyncio.sleep(self.poll_interval)

    async def forward(self, response: web.StreamResponse, chunk: bytes) -> bool:
        """
        Write one chunk to the consumer.

        Returns:
            True if the chunk was written, False if the session was
            already cancelled or the write failed.
        """
        if self.cancelled:
            return False
        try:
            await response.write(chunk)
        except DISCONNECT_ERRORS as e:
            logger.debug(f"Consumer write failed: {e}")
            self.cancel()
            return False
        return True


class StreamProxy:
    """
    Relays upstream media to consumers with Range and retry support.

    Attributes:
        stream: Chunk size, read timeout and cache directive.
        retry: Backoff parameters for opening the upstream.

    Example:
        async def handle(request):
            return await proxy.proxy_stream(stream_url, request)
    """

    def __init__(
        self,
        stream: StreamConfig | None = None,
        retry: RetryConfig | None = None,
        session: aiohttp.ClientSession | None = None
    ) -> None:
        self.stream = stream or StreamConfig()
        self.retry = retry or RetryConfig()
        self._session = session
        self._owns_session = session is None

    def use_session(self, session: aiohttp.ClientSession) -> None:
        self._session = session
        self._owns_session = False

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=None,
            sock_connect=self.stream.read_timeout,
            sock_read=self.stream.read_timeout,
        )

    async def proxy_stream(self, url: str, request: web.Request) -> web.StreamResponse:
        """
        Relay url to the consumer that sent request.

        Args:
            url: Resolved stream URL.
            request: The consumer's request (its Range header is honoured).

        Returns:
            The prepared and fully written (or abandoned) response, or a
            416 response for a range past the end of the stream.

        Raises:
            NetworkError: The upstream could not be opened after every
                          retry attempt. Nothing has been sent to the
                          consumer at that point.
        """
        range_header = request.headers.get(hdrs.RANGE) or None
        upstream = await self._open_upstream(url, range_header)

        if upstream.status == 416:
            upstream.close()
            return self._range_not_satisfiable(upstream.headers.get(hdrs.CONTENT_RANGE))

        partial = range_header is not None
        window = None
        if range_header is not None and upstream.status == 200:
            window = self._local_window(range_header, upstream)
            if window is None:
                logger.debug(f"Upstream ignored Range '{range_header}', relaying the whole body")
                partial = False
            elif not window.satisfiable:
                upstream.close()
                return self._range_not_satisfiable(f"bytes */{window.total}")
            else:
                logger.debug(f"Upstream ignored Range, cutting {window.content_range} locally")

        session = ProxySession(request)
        try:
            response = web.StreamResponse(
                status=206 if partial else 200,
                headers=self._response_headers(upstream, partial, window),
            )
            try:
                await response.prepare(request)
            except DISCONNECT_ERRORS as e:
                logger.debug(f"Consumer gone before response started: {e}")
                session.cancel()
                return response

            sent = await self.relay_body(upstream, response, session, window)
        finally:
            upstream.close()

        if session.cancelled:
            logger.debug(f"Relay cancelled by consumer after {sent} bytes")
            return response

        try:
            await response.write_eof()
        except DISCONNECT_ERRORS as e:
            logger.debug(f"Consumer gone before end of stream: {e}")
        return response

    async def relay_body(
        self,
        upstream: aiohttp.ClientResponse,
        response: web.StreamResponse,
        session: ProxySession,
        window: ByteRange | None = None
    ) -> int:
        """
        Copy the upstream body to the consumer in chunk_size pieces.

        The copy races the session's disconnect watcher: a consumer that
        goes away stops the copy even while it waits on the upstream.
        The upstream is always closed on return.

        Args:
            window: Part of the upstream body to deliver; None for all
                    of it.

        Returns:
            Number of bytes delivered.
        """
        copy = asyncio.ensure_future(self._copy_body(upstream, response, session, window))
        watcher = asyncio.ensure_future(session.wait_disconnected())
        try:
            await asyncio.wait((copy, watcher), return_when=asyncio.FIRST_COMPLETED)
            if not copy.done():
                logger.debug("Consumer disconnected, aborting upstream transfer")
                session.cancel()
                copy.cancel()
                await asyncio.wait((copy,))
        finally:
            watcher.cancel()
            if not copy.done():
                copy.cancel()
            upstream.close()

        if not copy.cancelled():
            copy.result()
        return session.bytes_sent

    async def _copy_body(
        self,
        upstream: aiohttp.ClientResponse,
        response: web.StreamResponse,
        session: ProxySession,
        window: ByteRange | None
    ) -> None:
        skip = window.start if window else 0
        remaining = window.length if window else None
        try:
            async for chunk in upstream.content.iter_chunked(self.stream.chunk_size):
                if skip:
                    if len(chunk) <= skip:
                        skip -= len(chunk)
                        continue
                    chunk, skip = chunk[skip:], 0
                if remaining is not None:
                    chunk = chunk[:remaining]
                    remaining -= len(chunk)

                if not await session.forward(response, chunk):
                    logger.debug("Consumer disconnected, aborting upstream transfer")
                    return
                session.bytes_sent += len(chunk)
                if remaining == 0:
                    return
                if session.cancelled:
                    logger.debug("Consumer disconnected, aborting upstream transfer")
                    return
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            # Headers are already sent; the consumer sees a short body
            logger.warning(
                f"Upstream transfer interrupted after {session.bytes_sent} bytes: "
                f"{e or type(e).__name__}"
            )
            session.cancel()

    def _local_window(self, range_header: str, upstream: aiohttp.ClientResponse) -> ByteRange | None:
        content_length = upstream.headers.get(hdrs.CONTENT_LENGTH, "")
        if not content_length.isdigit():
            return None
        return parse_byte_range(range_header, int(content_length))

    def _response_headers(
        self,
        upstream: aiohttp.ClientResponse,
        partial: bool,
        window: ByteRange | None
    ) -> dict[str, str]:
        headers = {
            hdrs.CONTENT_TYPE: upstream.headers.get(hdrs.CONTENT_TYPE, DEFAULT_CONTENT_TYPE),
            hdrs.ACCEPT_RANGES: "bytes",
            hdrs.ACCESS_CONTROL_ALLOW_ORIGIN: "*",
        }
        if window is not None:
            headers[hdrs.CONTENT_LENGTH] = str(window.length)
            headers[hdrs.CONTENT_RANGE] = window.content_range
            return headers

        content_length = upstream.headers.get(hdrs.CONTENT_LENGTH)
        if content_length is not None:
            headers[hdrs.CONTENT_LENGTH] = content_length
        if not partial:
            headers[hdrs.CACHE_CONTROL] = f"public, max-age={self.stream.cache_max_age}"
            return headers

        content_range = upstream.headers.get(hdrs.CONTENT_RANGE)
        if content_range is not None:
            headers[hdrs.CONTENT_RANGE] = content_range
        return headers

    def _range_not_satisfiable(self, content_range: str | None) -> web.Response:
        headers = {
            hdrs.ACCEPT_RANGES: "bytes",
            hdrs.ACCESS_CONTROL_ALLOW_ORIGIN: "*",
        }
        if content_range:
            headers[hdrs.CONTENT_RANGE] = content_range
        logger.debug(f"Range not satisfiable ({content_range or 'no Content-Range'})")
        return web.Response(status=416, headers=headers)

    async def _open_upstream(self, url: str, range_header: str | None) -> aiohttp.ClientResponse:
        headers = dict(BROWSER_HEADERS)
        if range_header:
            headers[hdrs.RANGE] = range_header
            # 416 is final: a seek past the end is relayed, not retried
            accepted = (200, 206, 416)
        else:
            accepted = tuple(range(200, 300))

        async def attempt() -> aiohttp.ClientResponse:
            try:
                upstream = await self._get_session().get(
                    url, headers=headers, timeout=self._timeout()
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise NetworkError(
                    f"Upstream request failed: {e or type(e).__name__}",
                    details={"url": url, "original_error": str(e)},
                ) from e

            if upstream.status not in accepted:
                upstream.release()
                raise NetworkError(
                    f"Upstream returned HTTP {upstream.status}",
                    details={"url": url, "status": upstream.status},
                )
            return upstream

        return await retry_with_backoff(
            attempt,
            max_attempts=self.retry.max_attempts,
            base_delay=self.retry.base_delay,
            multiplier=self.retry.multiplier,
            max_delay=self.retry.max_delay,
            retry_on=(NetworkError,),
            description="Upstream stream request",
        )

    async def stream_metadata(self, url: str) -> StreamMetadata | None:
        """
        Probe url with a HEAD request.

        Returns:
            StreamMetadata, or None if the probe failed for any reason.
        """
        try:
            async with self._get_session().head(
                url,
                headers=BROWSER_HEADERS,
                allow_redirects=True,
                timeout=aiohttp.ClientTimeout(total=self.stream.read_timeout),
            ) as response:
                if not 200 <= response.status < 300:
                    logger.debug(f"HEAD probe returned HTTP {response.status}")
                    return None
                length = response.headers.get(hdrs.CONTENT_LENGTH, "")
                return StreamMetadata(
                    content_type=response.headers.get(hdrs.CONTENT_TYPE, DEFAULT_CONTENT_TYPE),
                    content_length=int(length) if length.isdigit() else None,
                    accepts_ranges=response.headers.get(hdrs.ACCEPT_RANGES, "").lower() == "bytes",
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"HEAD probe failed: {e or type(e).__name__}")
            return None
