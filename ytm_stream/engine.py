"""
MediaEngine: the composition root of ytm-stream.

Builds every component from one Config and wires them together:

    ResponseCache ──┬── InnertubeClient (player responses)
                    └── CipherSolver    (cipher pipeline)
    CipherSolver ────── StreamResolver
    StreamProxy

All network components share a single aiohttp.ClientSession, created
on first use inside the running event loop and closed by close().

Usage:
    async with MediaEngine(load_config()) as engine:
        fmt = await engine.resolve_audio("dQw4w9WgXcQ")
        print(fmt.url)
"""

from typing import Any

import aiohttp
from aiohttp import web

from ytm_stream.core.cache import ResponseCache
from ytm_stream.core.config import Config
from ytm_stream.core.logger import get_logger
from ytm_stream.innertube.client import DEFAULT_BROWSE_ID, InnertubeClient
from ytm_stream.innertube.clients import SearchFilter
from ytm_stream.innertube.models import BrowseResult, CanonicalItem, Format, PlayerDetails
from ytm_stream.stream.cipher import CipherSolver
from ytm_stream.stream.proxy import StreamMetadata, StreamProxy
from ytm_stream.stream.resolver import StreamResolver


logger = get_logger(__name__)


class MediaEngine:
    """
    Facade over the client, resolver and proxy.

    Attributes:
        config: The configuration every component was built from.
        cache: The one shared ResponseCache.
        client: Innertube protocol client.
        cipher: Signature solver.
        resolver: Audio format selection and URL resolution.
        proxy: Streaming relay.
    """

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or Config()
        self.cache = ResponseCache(max_entries=self.config.cache.max_entries)
        self._session: aiohttp.ClientSession | None = None

        self.client = InnertubeClient(
            self.cache,
            api=self.config.api,
            player_ttl=self.config.cache.player_ttl,
        )
        self.cipher = CipherSolver(
            self.cache,
            watch_origin=self.config.api.watch_origin,
            cipher_ttl=self.config.cache.cipher_ttl,
            timeout=self.config.api.timeout,
        )
        self.resolver = StreamResolver(self.cipher)
        self.proxy = StreamProxy(stream=self.config.stream, retry=self.config.retry)

    async def __aenter__(self) -> "MediaEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        """
        Create the shared HTTP session and hand it to every component.

        Must be awaited inside the event loop that will use the engine.
        Calling it again while the session is open does nothing.
        """
        if self._session is not None and not self._session.closed:
            return

        self._session = aiohttp.ClientSession()
        for component in (self.client, self.cipher, self.proxy):
            component.use_session(self._session)
        logger.debug("Media engine started")

    async def close(self) -> None:
        """Close the shared session. Safe to call more than once."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        logger.debug("Media engine closed")

    async def search(
        self,
        query: str,
        filter: SearchFilter | str | None = None
    ) -> list[CanonicalItem]:
        return await self.client.search(query, filter)

    async def search_suggestions(self, query: str) -> list[str]:
        return await self.client.search_suggestions(query)

    async def browse(self, browse_id: str = DEFAULT_BROWSE_ID) -> BrowseResult:
        return await self.client.browse(browse_id)

    async def next(
        self,
        video_id: str,
        playlist_id: str | None = None,
        params: str | None = None
    ) -> dict[str, Any]:
        return await self.client.next(video_id, playlist_id, params)

    async def player(self, video_id: str) -> dict[str, Any]:
        return await self.client.player(video_id)

    async def player_details(self, video_id: str) -> PlayerDetails:
        return await self.client.player_details(video_id)

    async def resolve_audio(self, video_id: str) -> Format:
        """
        Resolve video_id to its best audio format with a usable URL.

        Raises:
            InvalidVideoIdError, PlayabilityError: From the player request.
            NoStreamFoundError: No audio format in the response.
            CipherError: The format's URL could not be deciphered.
        """
        response = await self.client.player(video_id)
        return await self.resolver.get_best_audio_format(response)

    async def audio_formats(self, video_id: str) -> list[Format]:
        """Every audio format for video_id, unresolved."""
        response = await self.client.player(video_id)
        return self.resolver.get_all_audio_formats(response)

    async def proxy_stream(self, url: str, request: web.Request) -> web.StreamResponse:
        return await self.proxy.proxy_stream(url, request)

    async def stream_metadata(self, url: str) -> StreamMetadata | None:
        return await self.proxy.stream_metadata(url)
