"""
Command-line interface for ytm-stream.

This module implements the CLI using Click, with rich-click for the
help output colors.

Commands:
    ytm-stream search <query> [--filter song]   Search YouTube Music
    ytm-stream suggest <query>                  Autocomplete suggestions
    ytm-stream browse [<browse-id>]             Browse sections (home by default)
    ytm-stream next <video>                     Raw 'up next' payload
    ytm-stream resolve <video> [--all]          Resolve the best audio stream URL
    ytm-stream probe <video>                    HEAD-probe the resolved stream
    ytm-stream serve [--host] [--port]          Run the local relay server

Options:
    --config <path>                             Path to config.yaml
    --verbose                                   DEBUG output on the console

<video> may be a bare video ID or any YouTube / YouTube Music URL.

Exit Codes:
    0    success
    1    configuration error or any ytm-stream error
    130  interrupted
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

import rich_click as click

# rich-click help styling
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "yellow italic"
click.rich_click.MAX_WIDTH = 96

from ytm_stream import __version__
from ytm_stream.core import (
    Config,
    ConfigError,
    YtmStreamError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from ytm_stream.engine import MediaEngine
from ytm_stream.innertube import SearchFilter
from ytm_stream.stream.server import run_server
from ytm_stream.utils import extract_video_id, format_bytes

logger = get_logger(__name__)

FILTER_CHOICES = [member.name.lower() for member in SearchFilter]


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<path>",
    help="Path to config.yaml (default: ./config.yaml if present)."
)
@click.option("--verbose", "-v", is_flag=True, help="Show DEBUG output on the console.")
@click.version_option(__version__, prog_name="ytm-stream")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """
    ytm-stream: Resolve and relay YouTube Music audio streams.

    \b
    EXAMPLES:
        ytm-stream search "never gonna give you up" --filter song
        ytm-stream resolve https://music.youtube.com/watch?v=dQw4w9WgXcQ
        ytm-stream serve --port 45678
    """
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    level = "DEBUG" if verbose else config.logging.level
    setup_logging(config.logging.directory, level)
    ctx.call_on_close(shutdown_logging)
    ctx.obj = config


def _video_id(value: str) -> str:
    video_id = extract_video_id(value)
    if video_id is None:
        raise click.BadParameter(f"'{value}' is not a video ID or YouTube URL")
    return video_id


def _run(config: Config, operation: Callable[[MediaEngine], Awaitable[Any]]) -> Any:
    """
    Run one async operation against a fresh engine.

    Known errors print a message and exit with status 1.
    """
    async def main() -> Any:
        async with MediaEngine(config) as engine:
            return await operation(engine)

    try:
        return asyncio.run(main())
    except YtmStreamError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.debug(f"{type(e).__name__}: {e.message} {e.details}")
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted", err=True)
        sys.exit(130)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


@cli.command()
@click.argument("query")
@click.option(
    "--filter", "filter_name",
    type=click.Choice(FILTER_CHOICES, case_sensitive=False),
    default=None,
    help="Restrict results to one kind."
)
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON.")
@click.pass_obj
def search(config: Config, query: str, filter_name: str | None, as_json: bool) -> None:
    """Search YouTube Music."""
    search_filter = SearchFilter.from_name(filter_name) if filter_name else None
    if not query.strip():
        raise click.BadParameter("query must not be empty")

    items = _run(config, lambda engine: engine.search(query, search_filter))

    if as_json:
        _echo_json([item.to_dict() for item in items])
        return
    if not items:
        click.echo("No results.")
        return
    for item in items:
        duration = f" ({item.duration_label})" if item.duration_label else ""
        click.echo(f"{item.content_id}  {item.artist} - {item.title}{duration}  [{item.item_type.value}]")


@cli.command()
@click.argument("query")
@click.pass_obj
def suggest(config: Config, query: str) -> None:
    """Show search suggestions for a partial query."""
    if not query.strip():
        raise click.BadParameter("query must not be empty")

    for suggestion in _run(config, lambda engine: engine.search_suggestions(query)):
        click.echo(suggestion)


@cli.command()
@click.argument("browse_id", required=False, default="FEmusic_home")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON.")
@click.pass_obj
def browse(config: Config, browse_id: str, as_json: bool) -> None:
    """Show the sections of a browse page (home by default)."""
    result = _run(config, lambda engine: engine.browse(browse_id))

    if as_json:
        _echo_json(result.to_dict())
        return
    for section in result.sections:
        click.echo(f"[{section.kind.value}] {section.title}")
        for item in section.items:
            click.echo(f"  {item.content_id}  {item.artist} - {item.title}")


@cli.command("next")
@click.argument("video")
@click.option("--playlist", "playlist_id", default=None, help="Playlist context ID.")
@click.pass_obj
def next_command(config: Config, video: str, playlist_id: str | None) -> None:
    """Print the raw 'up next' payload for a video."""
    video_id = _video_id(video)
    _echo_json(_run(config, lambda engine: engine.next(video_id, playlist_id)))


@cli.command()
@click.argument("video")
@click.option("--all", "show_all", is_flag=True, help="List every audio format instead.")
@click.pass_obj
def resolve(config: Config, video: str, show_all: bool) -> None:
    """Resolve the best audio stream URL for a video."""
    video_id = _video_id(video)

    if show_all:
        formats = _run(config, lambda engine: engine.audio_formats(video_id))
        for fmt in sorted(formats, key=lambda f: f.bitrate, reverse=True):
            cipher = "  (ciphered)" if fmt.needs_decipher else ""
            click.echo(
                f"itag {fmt.itag:>4}  {fmt.bitrate:>7} bps  "
                f"{format_bytes(fmt.content_length):>10}  {fmt.mime_type}{cipher}"
            )
        return

    fmt = _run(config, lambda engine: engine.resolve_audio(video_id))
    click.echo(f"itag {fmt.itag} | {fmt.mime_type} | {fmt.bitrate} bps | {format_bytes(fmt.content_length)}", err=True)
    click.echo(fmt.url)


@cli.command()
@click.argument("video")
@click.pass_obj
def probe(config: Config, video: str) -> None:
    """Resolve a video's stream and report the upstream headers."""
    video_id = _video_id(video)

    async def operation(engine: MediaEngine):
        fmt = await engine.resolve_audio(video_id)
        return await engine.stream_metadata(fmt.url)

    metadata = _run(config, operation)
    if metadata is None:
        click.echo("Error: stream probe failed", err=True)
        sys.exit(1)

    click.echo(f"Content-Type:   {metadata.content_type}")
    click.echo(f"Content-Length: {format_bytes(metadata.content_length)}")
    click.echo(f"Accepts ranges: {'yes' if metadata.accepts_ranges else 'no'}")


@cli.command()
@click.option("--host", default=None, help="Interface to bind (default from config).")
@click.option("--port", type=click.IntRange(1, 65535), default=None, help="Port (default from config).")
@click.pass_obj
def serve(config: Config, host: str | None, port: int | None) -> None:
    """Run the local relay server."""
    try:
        run_server(config, host=host, port=port)
    except KeyboardInterrupt:
        logger.info("Relay server stopped")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
