"""
Innertube protocol client.

Speaks YouTube Music's private JSON API. Every request is a POST to
{base_url}{endpoint}?key={api_key}&prettyPrint=false whose body carries
a 'context.client' object describing the device making the call.

Playback authorization differs per device identity, so player() walks
the identities in PLAYER_PRIORITY and returns the first response whose
playabilityStatus is "OK". Everything else (search, browse, next,
suggestions) is a single request with the primary desktop identity.

Error Handling:
    - Transport failures (connection, DNS, TLS, timeout) -> NetworkError
    - Non-2xx status or an undecodable body -> ApiError
    - Malformed video ID -> InvalidVideoIdError, before any request
    - Every identity rejected playback -> PlayabilityError

Session Lifecycle:
    The client uses an injected aiohttp.ClientSession when given one
    (and leaves closing it to the owner). Otherwise it creates its own
    on first use and closes it in close().

Usage:
    async with InnertubeClient(cache) as client:
        items = await client.search("never gonna give you up", SearchFilter.SONG)
        response = await client.player(items[0].content_id)
"""

import asyncio
from typing import Any

import aiohttp

from ytm_stream.core.cache import ResponseCache
from ytm_stream.core.config import ApiConfig, CacheConfig
from ytm_stream.core.exceptions import (
    ApiError,
    InvalidVideoIdError,
    NetworkError,
    PlayabilityError,
)
from ytm_stream.core.logger import get_logger, log_playability_failure
from ytm_stream.innertube.clients import (
    BROWSE_ENDPOINT,
    EMBED_URL_TEMPLATE,
    NEXT_ENDPOINT,
    PLAYABILITY_OK,
    PLAYER_ENDPOINT,
    PLAYER_PRIORITY,
    PRIMARY_IDENTITY,
    SEARCH_ENDPOINT,
    SEARCH_SUGGESTIONS_ENDPOINT,
    ClientIdentity,
    SearchFilter,
)
from ytm_stream.innertube.models import BrowseResult, CanonicalItem, PlayerDetails
from ytm_stream.innertube.parser import (
    parse_browse_response,
    parse_player_details,
    parse_search_results,
    parse_search_suggestions,
    safe_get,
)
from ytm_stream.utils import is_valid_video_id


logger = get_logger(__name__)

DEFAULT_BROWSE_ID = "FEmusic_home"
PLAYER_CACHE_PREFIX = "player:"


def player_cache_key(video_id: str) -> str:
    return f"{PLAYER_CACHE_PREFIX}{video_id}"


class InnertubeClient:
    """
    Async client for the Innertube API.

    Attributes:
        cache: Shared ResponseCache; authorized player responses are
               stored under 'player:{video_id}'.
        api: API settings (host, key, locale, timeout).
        player_ttl: Seconds a cached player response stays valid.
    """

    def __init__(
        self,
        cache: ResponseCache,
        api: ApiConfig | None = None,
        player_ttl: float = CacheConfig.player_ttl,
        session: aiohttp.ClientSession | None = None
    ) -> None:
        """
        Initialize the client.

        Args:
            cache: Cache owned by the caller and shared with other components.
            api: API configuration. Defaults to ApiConfig().
            player_ttl: TTL for cached player responses, in seconds.
            session: Optional externally owned aiohttp session.
        """
        self.cache = cache
        self.api = api or ApiConfig()
        self.player_ttl = player_ttl
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "InnertubeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def use_session(self, session: aiohttp.ClientSession) -> None:
        """Switch to an externally owned session (close() will not close it)."""
        self._session = session
        self._owns_session = False

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it. Safe to call twice."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # =========================================================================
    # REQUESTS
    # =========================================================================

    def _build_headers(self, identity: ClientIdentity) -> dict[str, str]:
        return {
            "User-Agent": identity.user_agent,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Accept-Language": "en-US,en;q=0.9",
            "Origin": self.api.base_url,
            "Referer": f"{self.api.base_url}/",
        }

    def _build_body(
        self,
        identity: ClientIdentity,
        params: dict[str, Any],
        embed_url: str | None = None
    ) -> dict[str, Any]:
        context: dict[str, Any] = {"client": identity.to_context(self.api.hl, self.api.gl)}
        if embed_url is not None:
            context["thirdParty"] = {"embedUrl": embed_url}
        return {"context": context, **params}

    async def _request(
        self,
        endpoint: str,
        params: dict[str, Any],
        identity: ClientIdentity = PRIMARY_IDENTITY,
        embed_url: str | None = None
    ) -> dict[str, Any]:
        """
        POST one request to an Innertube endpoint.

        Args:
            endpoint: Path such as '/youtubei/v1/player'.
            params: Endpoint-specific body fields (merged beside 'context').
            identity: Client identity to present.
            embed_url: Sets context.thirdParty.embedUrl when given.

        Returns:
            The decoded JSON object.

        Raises:
            NetworkError: The host could not be reached or timed out.
            ApiError: Non-2xx status, or a body that is not a JSON object.
        """
        url = f"{self.api.base_url}{endpoint}"
        query = {"key": self.api.api_key, "prettyPrint": "false"}
        details = {"endpoint": endpoint, "client": identity.key}

        try:
            async with self._get_session().post(
                url,
                params=query,
                json=self._build_body(identity, params, embed_url),
                headers=self._build_headers(identity),
                timeout=aiohttp.ClientTimeout(total=self.api.timeout),
            ) as response:
                if not 200 <= response.status < 300:
                    raise ApiError(
                        f"API error: {response.status} {response.reason or ''}".rstrip(),
                        details={**details, "status": response.status},
                        status=response.status,
                    )
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise ApiError(
                        f"Invalid JSON from {endpoint}: {e}",
                        details={**details, "original_error": str(e)},
                        status=response.status,
                    ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            message = str(e) or type(e).__name__
            raise NetworkError(
                f"Request to {endpoint} failed: {message}",
                details={**details, "original_error": message},
            ) from e

        if not isinstance(data, dict):
            raise ApiError(
                f"Unexpected response from {endpoint}: expected a JSON object",
                details=details,
                status=response.status,
            )
        return data

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    async def search(
        self,
        query: str,
        filter: SearchFilter | str | None = None
    ) -> list[CanonicalItem]:
        """
        Search YouTube Music.

        Args:
            query: Free-text query. Must be a non-empty string.
            filter: A SearchFilter, a raw 'params' string, or None for
                    the mixed top-results page.

        Returns:
            Parsed items in result order (empty if the response shape
            was not recognized).

        Raises:
            ValueError: If query is empty or not a string.
            NetworkError, ApiError: On request failure.
        """
        if not isinstance(query, str) or not query.strip():
            raise ValueError("Invalid search query")

        params: dict[str, Any] = {"query": query}
        if isinstance(filter, SearchFilter):
            params["params"] = filter.value
        elif filter:
            params["params"] = filter

        response = await self._request(SEARCH_ENDPOINT, params)
        results = parse_search_results(response)
        logger.debug(f"Search '{query}' returned {len(results)} items")
        return results

    async def search_suggestions(self, query: str) -> list[str]:
        """Return autocomplete suggestions for a partial query."""
        if not isinstance(query, str) or not query.strip():
            raise ValueError("Invalid search query")

        response = await self._request(SEARCH_SUGGESTIONS_ENDPOINT, {"input": query})
        return parse_search_suggestions(response)

    async def browse(self, browse_id: str = DEFAULT_BROWSE_ID) -> BrowseResult:
        """
        Fetch and parse a browse page (home by default).

        Args:
            browse_id: Page identifier, e.g. "FEmusic_home", "FEmusic_charts",
                       or a playlist's "VL..." browse ID.
        """
        response = await self._request(BROWSE_ENDPOINT, {"browseId": browse_id})
        return parse_browse_response(response)

    async def next(
        self,
        video_id: str,
        playlist_id: str | None = None,
        params: str | None = None
    ) -> dict[str, Any]:
        """
        Fetch the 'up next' payload for a video.

        The response is returned unparsed. No identity fallback.

        Raises:
            InvalidVideoIdError: If video_id is malformed (no request is made).
        """
        if not is_valid_video_id(video_id):
            raise InvalidVideoIdError(video_id)

        body: dict[str, Any] = {"videoId": video_id}
        if playlist_id:
            body["playlistId"] = playlist_id
        if params:
            body["params"] = params

        return await self._request(NEXT_ENDPOINT, body)

    async def player(self, video_id: str) -> dict[str, Any]:
        """
        Get an authorized player response for a video.

        Args:
            video_id: 11-character video ID.

        Returns:
            The full player response of the first identity whose
            playabilityStatus.status is "OK".

        Raises:
            InvalidVideoIdError: Malformed ID; no request is made.
            PlayabilityError: Every identity failed. Carries the last
                              rejection reason, the last status seen, and
                              the identities tried.

        Behavior:
            1. Validate the ID
            2. Return the cached response for 'player:{video_id}' if live
            3. Try each identity in PLAYER_PRIORITY, one at a time:
               - network/API failure: log, remember the error, next identity
               - status != OK: log, remember reason/status, next identity
               - status == OK: cache with player_ttl and return at once
            4. All failed: log to the playability report and raise
        """
        if not is_valid_video_id(video_id):
            raise InvalidVideoIdError(video_id)

        cache_key = player_cache_key(video_id)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Using cached player response for {video_id}")
            return cached

        attempts: list[str] = []
        last_reason: str | None = None
        last_status: str | None = None

        for identity in PLAYER_PRIORITY:
            attempts.append(identity.key)
            embed_url = (
                EMBED_URL_TEMPLATE.format(video_id=video_id)
                if identity.third_party_embed else None
            )
            logger.debug(f"Trying {identity.key} client for {video_id}")

            try:
                response = await self._request(
                    PLAYER_ENDPOINT, {"videoId": video_id}, identity, embed_url
                )
            except (NetworkError, ApiError) as e:
                logger.warning(f"{identity.key} client failed for {video_id}: {e.message}")
                last_reason = e.message
                continue

            status = safe_get(response, "playabilityStatus.status")
            if status == PLAYABILITY_OK:
                logger.info(f"{identity.key} client succeeded for {video_id}")
                self.cache.set(cache_key, response, ttl=self.player_ttl)
                return response

            last_status = status if isinstance(status, str) else None
            last_reason = safe_get(response, "playabilityStatus.reason") or "Playability error"
            logger.warning(
                f"{identity.key} client returned status {last_status} for {video_id}: {last_reason}"
            )

        reason = last_reason or "All clients failed to get player response"
        log_playability_failure(logger, video_id, reason, last_status, attempts)
        raise PlayabilityError(
            reason,
            details={"video_id": video_id},
            status=last_status,
            attempts=attempts,
        )

    async def player_details(self, video_id: str) -> PlayerDetails:
        """Authorized player response for video_id, summarized."""
        response = await self.player(video_id)
        details = parse_player_details(response)
        if details is None:
            raise ApiError("Malformed player response", details={"video_id": video_id})
        return details
