"""
Local HTTP relay server.

Exposes the media engine to local consumers (an audio element, a
desktop shell, curl) over plain HTTP on the loopback interface.

Routes:
    GET  /stream/{video_id}   Resolve the best audio format and relay it
                              (Range requests supported for seeking)
    HEAD /stream/{video_id}   Resolve and report upstream headers only
    GET  /search?q=&filter=   Search results as JSON ('filter' is a
                              SearchFilter name such as 'song')
    GET  /suggestions?q=      Search suggestions as JSON
    GET  /browse?id=          Browse sections as JSON (home by default)
    GET  /next?videoId=&playlistId=&params=
                              Raw 'up next' payload
    GET  /health              {"status": "ok"}

Errors:
    Every failure is answered with JSON {"error": code, "message": text}:
        400  missing/invalid parameter, InvalidVideoIdError
        403  PlayabilityError
        404  NoStreamFoundError
        502  CipherError, ApiError, NetworkError
"""

from typing import Any, Awaitable, Callable

from aiohttp import hdrs, web

from ytm_stream.core.config import Config
from ytm_stream.core.exceptions import (
    ApiError,
    CipherError,
    InvalidVideoIdError,
    NetworkError,
    NoStreamFoundError,
    PlayabilityError,
    YtmStreamError,
)
from ytm_stream.core.logger import get_logger
from ytm_stream.engine import MediaEngine
from ytm_stream.innertube.client import DEFAULT_BROWSE_ID
from ytm_stream.innertube.clients import SearchFilter


logger = get_logger(__name__)

ENGINE_KEY = web.AppKey("engine", MediaEngine)

# First matching class wins
ERROR_RESPONSES: tuple[tuple[type[YtmStreamError], int, str], ...] = (
    (InvalidVideoIdError, 400, "invalid_video_id"),
    (PlayabilityError, 403, "playability_error"),
    (NoStreamFoundError, 404, "no_stream_found"),
    (CipherError, 502, "cipher_error"),
    (ApiError, 502, "api_error"),
    (NetworkError, 502, "network_error"),
)


def json_error(status: int, code: str, message: str) -> web.Response:
    return web.json_response({"error": code, "message": message}, status=status)


@web.middleware
async def error_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]]
) -> web.StreamResponse:
    """Translate ytm-stream errors into JSON error responses."""
    try:
        return await handler(request)
    except YtmStreamError as e:
        for error_class, status, code in ERROR_RESPONSES:
            if isinstance(e, error_class):
                break
        else:
            status, code = 500, "internal_error"

        log = logger.warning if status < 500 else logger.error
        log(f"{request.method} {request.path} -> {status}: {e.message}")
        return json_error(status, code, e.message)


def _engine(request: web.Request) -> MediaEngine:
    return request.app[ENGINE_KEY]


async def handle_stream(request: web.Request) -> web.StreamResponse:
    video_id = request.match_info["video_id"]
    engine = _engine(request)

    fmt = await engine.resolve_audio(video_id)
    logger.info(f"Streaming {video_id} (itag {fmt.itag}, range: {request.headers.get(hdrs.RANGE, 'none')})")
    return await engine.proxy_stream(fmt.url, request)


async def handle_stream_head(request: web.Request) -> web.StreamResponse:
    video_id = request.match_info["video_id"]
    engine = _engine(request)

    fmt = await engine.resolve_audio(video_id)
    metadata = await engine.stream_metadata(fmt.url)
    if metadata is None:
        return json_error(502, "upstream_unavailable", f"Could not probe stream for {video_id}")

    headers = {
        hdrs.CONTENT_TYPE: metadata.content_type,
        hdrs.ACCESS_CONTROL_ALLOW_ORIGIN: "*",
    }
    if metadata.content_length is not None:
        headers[hdrs.CONTENT_LENGTH] = str(metadata.content_length)
    if metadata.accepts_ranges:
        headers[hdrs.ACCEPT_RANGES] = "bytes"
    return web.Response(status=200, headers=headers)


async def handle_search(request: web.Request) -> web.Response:
    query = request.query.get("q", "").strip()
    if not query:
        return json_error(400, "missing_parameter", "Query parameter 'q' is required")

    search_filter = None
    filter_name = request.query.get("filter")
    if filter_name:
        try:
            search_filter = SearchFilter.from_name(filter_name)
        except ValueError as e:
            return json_error(400, "invalid_parameter", str(e))

    items = await _engine(request).search(query, search_filter)
    return web.json_response([item.to_dict() for item in items])


async def handle_suggestions(request: web.Request) -> web.Response:
    query = request.query.get("q", "").strip()
    if not query:
        return json_error(400, "missing_parameter", "Query parameter 'q' is required")

    return web.json_response(await _engine(request).search_suggestions(query))


async def handle_browse(request: web.Request) -> web.Response:
    browse_id = request.query.get("id", "").strip() or DEFAULT_BROWSE_ID
    result = await _engine(request).browse(browse_id)
    return web.json_response(result.to_dict())


async def handle_next(request: web.Request) -> web.Response:
    video_id = request.query.get("videoId", "").strip()
    if not video_id:
        return json_error(400, "missing_parameter", "Query parameter 'videoId' is required")

    response = await _engine(request).next(
        video_id,
        playlist_id=request.query.get("playlistId") or None,
        params=request.query.get("params") or None,
    )
    return web.json_response(response)


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


def create_app(config: Config | None = None, engine: Any = None) -> web.Application:
    """
    Build the relay application.

    Args:
        config: Configuration for the engine. Defaults to Config().
        engine: Optional pre-built engine (tests inject fakes). It must
                provide start()/close() and the MediaEngine operations.

    Returns:
        An aiohttp Application. The engine is started on startup and
        closed on cleanup.
    """
    config = config or Config()
    app = web.Application(middlewares=[error_middleware])

    async def engine_context(app: web.Application):
        active = engine if engine is not None else MediaEngine(config)
        await active.start()
        app[ENGINE_KEY] = active
        yield
        await active.close()

    app.cleanup_ctx.append(engine_context)

    app.router.add_get("/stream/{video_id}", handle_stream, allow_head=False)
    app.router.add_route(hdrs.METH_HEAD, "/stream/{video_id}", handle_stream_head)
    app.router.add_get("/search", handle_search)
    app.router.add_get("/suggestions", handle_suggestions)
    app.router.add_get("/browse", handle_browse)
    app.router.add_get("/next", handle_next)
    app.router.add_get("/health", handle_health)
    return app


def run_server(config: Config, host: str | None = None, port: int | None = None) -> None:
    """
    Run the relay server until interrupted.

    Args:
        config: Application configuration.
        host: Overrides config.server.host.
        port: Overrides config.server.port.
    """
    host = host or config.server.host
    port = port or config.server.port
    logger.info(f"Relay server listening on http://{host}:{port}")
    web.run_app(
        create_app(config),
        host=host,
        port=port,
        print=None,
        handler_cancellation=True,
    )
