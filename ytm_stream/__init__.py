"""
ytm-stream: Resolve and relay YouTube Music audio streams.

This package turns a YouTube Music video ID into a playable audio
stream using the platform's private Innertube API, and relays that
stream to local consumers with seek (HTTP Range) support.

Architecture:
    innertube/: Protocol client
        - Speak the Innertube JSON API as several device identities
        - Fall back across identities until playback is authorized
        - Parse unstable, deeply nested responses without raising

    stream/: Stream resolution and relay
        - Pick the best audio-only format
        - Recover the signature cipher from the player JavaScript
        - Relay bytes with Range support, retries and cancellation
        - Serve everything over a local aiohttp application

    engine.py: Composition root wiring one shared cache and session
               into every component

Modules:
    core/       - Configuration, logging, exceptions, cache, retry
    innertube/  - Client identities, models, parser, protocol client
    stream/     - Cipher, resolver, proxy, relay server
    utils/      - Video ID helpers and formatting
    cli.py      - Command-line interface

Usage:
    Command Line:
        ytm-stream search "query" --filter song
        ytm-stream resolve dQw4w9WgXcQ
        ytm-stream serve

    Python API:
        from ytm_stream import MediaEngine, load_config

        async with MediaEngine(load_config()) as engine:
            items = await engine.search("query")
            fmt = await engine.resolve_audio(items[0].content_id)

Configuration:
    Optional config.yaml in the current directory (see config.example.yaml).
    YTM_STREAM_API_KEY (environment or .env) overrides the API key.

Dependencies:
    - aiohttp: HTTP client, relay server and test servers
    - pyyaml: Configuration file parsing
    - python-dotenv: .env loading
    - click / rich-click: CLI and colors
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Public API re-exports
from ytm_stream.core import (
    CipherError,
    Config,
    ConfigError,
    InvalidVideoIdError,
    NetworkError,
    NoStreamFoundError,
    PlayabilityError,
    ResponseCache,
    YtmStreamError,
    get_logger,
    load_config,
    setup_logging,
)
from ytm_stream.engine import MediaEngine
from ytm_stream.innertube import CanonicalItem, Format, InnertubeClient, SearchFilter

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "ResponseCache",
    "setup_logging",
    "get_logger",
    # Engine
    "MediaEngine",
    "InnertubeClient",
    "SearchFilter",
    "CanonicalItem",
    "Format",
    # Exceptions
    "YtmStreamError",
    "ConfigError",
    "NetworkError",
    "NoStreamFoundError",
    "CipherError",
    "InvalidVideoIdError",
    "PlayabilityError",
]
