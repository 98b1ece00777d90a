"""Test configuration and fixtures"""

from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from ytm_stream.core.cache import ResponseCache
from ytm_stream.core.config import ApiConfig
from ytm_stream.innertube.client import InnertubeClient


VIDEO_ID = "dQw4w9WgXcQ"
OTHER_VIDEO_ID = "9bZkp7q19f0"

# Player code in the shape the asset resolver understands:
# swap(5), reverse, drop(2)
PLAYER_JS = (
    'var Xy={ab:function(a){a.reverse()},'
    'cd:function(a,b){a.splice(0,b)},'
    'ef:function(a,b){var c=a[0];a[0]=a[b%a.length];a[b%a.length]=c}};'
    'Gz=function(a){a=a.split("");Xy.ef(a,5);Xy.ab(a,12);Xy.cd(a,2);return a.join("")};'
)

# "abcdefghij" run through PLAYER_JS
PLAYER_JS_RESULT = "hgaedcbf"


class FakeClock:
    """Manually advanced clock for cache expiry tests"""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def responsive_item(
    video_id: str | None,
    title: str | None = "Test Song",
    artist: str | None = "Test Artist",
    album: str | None = "Test Album",
    duration: str | None = "3:33",
    thumbnails: list[dict[str, Any]] | None = None,
    playlist: bool = False
) -> dict[str, Any]:
    """Build a musicResponsiveListItemRenderer wrapper the way search returns it"""
    secondary = []
    if artist is not None:
        secondary.append({"text": artist})
    if album is not None:
        secondary.extend([{"text": " • "}, {"text": album}])

    renderer: dict[str, Any] = {
        "flexColumns": [
            {"musicResponsiveListItemFlexColumnRenderer": {
                "text": {"runs": [{"text": title}] if title is not None else []}
            }},
            {"musicResponsiveListItemFlexColumnRenderer": {"text": {"runs": secondary}}},
        ],
        "thumbnail": {"musicThumbnailRenderer": {"thumbnail": {
            "thumbnails": thumbnails if thumbnails is not None else []
        }}},
    }
    if duration is not None:
        renderer["fixedColumns"] = [
            {"musicResponsiveListItemFixedColumnRenderer": {"text": {"runs": [{"text": duration}]}}}
        ]
    if video_id is not None:
        if playlist:
            endpoint = {"watchPlaylistEndpoint": {"playlistId": video_id}}
        else:
            endpoint = {"watchEndpoint": {"videoId": video_id}}
            renderer["playlistItemData"] = {"videoId": video_id}
        renderer["overlay"] = {"musicItemThumbnailOverlayRenderer": {"content": {
            "musicPlayButtonRenderer": {"playNavigationEndpoint": endpoint}
        }}}
    return {"musicResponsiveListItemRenderer": renderer}


def two_row_item(content_id: str, title: str, subtitle_runs: list[str]) -> dict[str, Any]:
    """Build a musicTwoRowItemRenderer wrapper the way home carousels return it"""
    return {"musicTwoRowItemRenderer": {
        "title": {"runs": [{"text": title}]},
        "subtitle": {"runs": [{"text": text} for text in subtitle_runs]},
        "navigationEndpoint": {"watchEndpoint": {"videoId": content_id}},
        "thumbnailRenderer": {"musicThumbnailRenderer": {"thumbnail": {"thumbnails": [
            {"url": "https://i.ytimg.com/small.jpg", "width": 60, "height": 60},
            {"url": "https://i.ytimg.com/large.jpg", "width": 226, "height": 226},
        ]}}},
        "thumbnailOverlay": {"musicItemThumbnailOverlayRenderer": {"content": {
            "musicPlayButtonRenderer": {"playNavigationEndpoint": {
                "watchEndpoint": {"videoId": content_id}
            }}
        }}},
    }}


def search_response(items: list[dict[str, Any]]) -> dict[str, Any]:
    return {"contents": {"tabbedSearchResultsRenderer": {"tabs": [{"tabRenderer": {"content": {
        "sectionListRenderer": {"contents": [{"musicShelfRenderer": {"contents": items}}]}
    }}}]}}}


def player_response(
    status: str = "OK",
    reason: str | None = None,
    video_id: str = VIDEO_ID,
    adaptive_formats: list[dict[str, Any]] | None = None,
    formats: list[dict[str, Any]] | None = None
) -> dict[str, Any]:
    playability: dict[str, Any] = {"status": status}
    if reason is not None:
        playability["reason"] = reason

    response: dict[str, Any] = {
        "playabilityStatus": playability,
        "videoDetails": {
            "videoId": video_id,
            "title": "Never Gonna Give You Up",
            "author": "Rick Astley",
            "lengthSeconds": "213",
        },
    }
    if status == "OK":
        response["streamingData"] = {
            "expiresInSeconds": "21540",
            "adaptiveFormats": adaptive_formats if adaptive_formats is not None else [
                {"itag": 140, "mimeType": 'audio/mp4; codecs="mp4a.40.2"', "bitrate": 128000,
                 "url": "https://rr1.example/videoplayback?itag=140"},
                {"itag": 251, "mimeType": 'audio/webm; codecs="opus"', "bitrate": 256000,
                 "url": "https://rr1.example/videoplayback?itag=251"},
                {"itag": 137, "mimeType": 'video/mp4; codecs="avc1"', "bitrate": 4000000,
                 "url": "https://rr1.example/videoplayback?itag=137"},
            ],
            "formats": formats if formats is not None else [],
        }
    return response


@pytest.fixture
def clock():
    """Fake monotonic clock"""
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Shared response cache driven by the fake clock"""
    return ResponseCache(max_entries=10, clock=clock)


@pytest.fixture
def sample_search_response():
    """Search response with two usable items and one without any ID"""
    return search_response([
        responsive_item(
            VIDEO_ID,
            title="Never Gonna Give You Up",
            artist="Rick Astley",
            album="Whenever You Need Somebody",
            thumbnails=[
                {"url": "https://i.ytimg.com/60.jpg", "width": 60, "height": 60},
                {"url": "https://i.ytimg.com/120.jpg", "width": 120, "height": 120},
            ],
        ),
        responsive_item(None, title="Broken Entry"),
        responsive_item(OTHER_VIDEO_ID, title="Gangnam Style", artist="PSY", album=None),
    ])


class FakeInnertube:
    """
    In-process stand-in for the Innertube host.

    Player responses are keyed by clientName; identities without an
    entry get UNPLAYABLE. Every request is recorded.
    """

    def __init__(self) -> None:
        self.base_url = ""
        self.requests: list[dict[str, Any]] = []
        self.player_by_client: dict[str, Any] = {}
        self.http_status_by_client: dict[str, int] = {}
        self.responses: dict[str, Any] = {}
        self.status = 200

    def player_clients(self) -> list[str]:
        return [
            request["body"]["context"]["client"]["clientName"]
            for request in self.requests
            if request["path"].endswith("/player")
        ]

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.requests.append({
            "path": request.path,
            "query": dict(request.query),
            "headers": dict(request.headers),
            "body": body,
        })

        if self.status != 200:
            return web.Response(status=self.status, text="upstream failure")

        if request.path.endswith("/player"):
            client = body["context"]["client"]["clientName"]
            if client in self.http_status_by_client:
                return web.Response(status=self.http_status_by_client[client])
            return web.json_response(self.player_by_client.get(
                client,
                player_response("UNPLAYABLE", reason=f"Not playable for {client}"),
            ))

        endpoint = request.path.rsplit("/", 1)[-1]
        if endpoint not in self.responses:
            return web.json_response({})
        payload = self.responses[endpoint]
        if isinstance(payload, str):
            return web.Response(text=payload, content_type="application/json")
        return web.json_response(payload)


@pytest_asyncio.fixture
async def innertube():
    """Running fake Innertube host"""
    fake = FakeInnertube()
    app = web.Application()
    app.router.add_post("/youtubei/v1/{tail:.*}", fake.handle)

    server = TestServer(app)
    await server.start_server()
    fake.base_url = str(server.make_url("")).rstrip("/")
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def client(innertube, cache):
    """InnertubeClient pointed at the fake host"""
    api = ApiConfig(base_url=innertube.base_url)
    async with InnertubeClient(cache, api=api, player_ttl=60) as innertube_client:
        yield innertube_client


class FakeMediaHost:
    """
    In-process stand-in for the stream host.

    Serves PAYLOAD with byte-range support; the first fail_count GETs
    are answered with fail_status. A range starting past the end gets 416.
    """

    PAYLOAD = bytes(range(256)) * 4  # 1024 bytes

    def __init__(self) -> None:
        self.base_url = ""
        self.gets = 0
        self.fail_count = 0
        self.fail_status = 503
        self.ignore_range = False
        self.received_headers: list[dict[str, str]] = []
        self.payload = self.PAYLOAD[:1000]

    @property
    def url(self) -> str:
        return f"{self.base_url}/videoplayback?itag=251"

    async def handle_get(self, request: web.Request) -> web.Response:
        self.gets += 1
        self.received_headers.append(dict(request.headers))
        if self.gets <= self.fail_count:
            return web.Response(status=self.fail_status)

        range_header = request.headers.get("Range")
        if range_header and not self.ignore_range:
            start_text, end_text = range_header.removeprefix("bytes=").split("-")
            start = int(start_text)
            end = int(end_text) if end_text else len(self.payload) - 1
            if start >= len(self.payload):
                return web.Response(
                    status=416,
                    headers={"Content-Range": f"bytes */{len(self.payload)}"},
                )
            return web.Response(
                status=206,
                body=self.payload[start:end + 1],
                headers={
                    "Content-Type": "audio/webm",
                    "Content-Range": f"bytes {start}-{end}/{len(self.payload)}",
                },
            )
        return web.Response(body=self.payload, headers={"Content-Type": "audio/webm"})

    async def handle_head(self, request: web.Request) -> web.Response:
        return web.Response(headers={
            "Content-Type": "audio/webm",
            "Content-Length": str(len(self.payload)),
            "Accept-Ranges": "bytes",
        })

    async def handle_missing(self, request: web.Request) -> web.Response:
        return web.Response(status=404)


@pytest_asyncio.fixture
async def media_host():
    """Running fake stream host"""
    fake = FakeMediaHost()
    app = web.Application()
    app.router.add_get("/videoplayback", fake.handle_get, allow_head=False)
    app.router.add_route("HEAD", "/videoplayback", fake.handle_head)
    app.router.add_route("*", "/gone", fake.handle_missing)

    server = TestServer(app)
    await server.start_server()
    fake.base_url = str(server.make_url("")).rstrip("/")
    yield fake
    await server.close()


class FakeWatchHost:
    """Serves a watch page referencing a player asset, and the asset itself"""

    def __init__(self) -> None:
        self.base_url = ""
        self.watch_requests = 0
        self.asset_requests = 0
        self.player_js = PLAYER_JS
        self.js_url = "/s/player/abc123/player_ias.vflset/en_US/base.js"
        self.asset_status = 200

    async def handle_watch(self, request: web.Request) -> web.Response:
        self.watch_requests += 1
        if self.js_url is None:
            return web.Response(text="<html><body>no player here</body></html>", content_type="text/html")
        escaped = self.js_url.replace("/", "\\/")
        return web.Response(
            text=f'<html><script>ytcfg.set({{"jsUrl":"{escaped}"}});</script></html>',
            content_type="text/html",
        )

    async def handle_asset(self, request: web.Request) -> web.Response:
        self.asset_requests += 1
        if self.asset_status != 200:
            return web.Response(status=self.asset_status)
        return web.Response(text=self.player_js, content_type="text/javascript")


@pytest_asyncio.fixture
async def watch_host():
    """Running fake watch page + player asset host"""
    fake = FakeWatchHost()
    app = web.Application()
    app.router.add_get("/watch", fake.handle_watch)
    app.router.add_get("/s/player/{tail:.*}", fake.handle_asset)

    server = TestServer(app)
    await server.start_server()
    fake.base_url = str(server.make_url("")).rstrip("/")
    yield fake
    await server.close()
