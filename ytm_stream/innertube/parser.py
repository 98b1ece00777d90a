"""
Fault-tolerant parsing of Innertube responses.

Innertube responses are deeply nested, undocumented, and change shape
without notice. Every public function in this module therefore follows
one rule: it NEVER raises because of an unexpected shape. Missing
branches yield defaults, malformed entries are dropped, and a broken
item never takes its siblings down with it.

Internally, helpers raise ParseError when an entry cannot be used; the
public functions absorb it (and the usual TypeError/ValueError family
that odd data produces) at their boundary and log at DEBUG.

Paths:
    safe_get() walks dotted paths like
    "contents.tabbedSearchResultsRenderer.tabs.0.tabRenderer" where
    numeric segments index into lists.
"""

from typing import Any, Iterable, Sequence

from ytm_stream.core.exceptions import ParseError
from ytm_stream.core.logger import get_logger
from ytm_stream.innertube.models import (
    BrowseResult,
    CanonicalItem,
    Format,
    ItemType,
    PlayerDetails,
    Section,
    SectionKind,
    Thumbnail,
)


logger = get_logger(__name__)

# Errors odd data can produce inside a helper; absorbed at public boundaries
_ABSORBED = (ParseError, TypeError, ValueError, AttributeError, KeyError, IndexError)


# =============================================================================
# RESPONSE PATHS
# =============================================================================

SEARCH_SECTIONS_PATH = (
    "contents.tabbedSearchResultsRenderer.tabs.0.tabRenderer.content"
    ".sectionListRenderer.contents"
)
BROWSE_SECTIONS_PATH = (
    "contents.singleColumnBrowseResultsRenderer.tabs.0.tabRenderer.content"
    ".sectionListRenderer.contents"
)
PLAY_ENDPOINT_PATH = "musicItemThumbnailOverlayRenderer.content.musicPlayButtonRenderer.playNavigationEndpoint"
FLEX_COLUMN_RUNS = "flexColumns.{index}.musicResponsiveListItemFlexColumnRenderer.text.runs"
FIXED_COLUMN_TEXT = "fixedColumns.0.musicResponsiveListItemFixedColumnRenderer.text.runs.0.text"

DEFAULT_TITLE = "Unknown"
DEFAULT_ARTIST = "Unknown Artist"


def safe_get(obj: Any, path: str | Sequence[Any], default: Any = None) -> Any:
    """
    Walk a nested dict/list structure without raising.

    Args:
        obj: Root object (typically a decoded JSON response).
        path: Dotted string ("a.b.0.c") or a sequence of keys/indices.
              Numeric segments index lists; ints in a sequence do too.
        default: Returned when any step is missing, of the wrong type,
                 or out of range, and when the final value is None.

    Returns:
        The value at path, or default.

    Examples:
        safe_get({"a": [{"b": 1}]}, "a.0.b")        # 1
        safe_get({"a": []}, "a.0.b", "x")            # "x"
        safe_get({"a": {"b": 1}}, ["a", "b"])        # 1
    """
    if obj is None or path is None:
        return default

    segments = path.split(".") if isinstance(path, str) else list(path)
    current = obj

    for segment in segments:
        if isinstance(current, dict):
            if segment not in current:
                return default
            current = current[segment]
        elif isinstance(current, list):
            index = _as_index(segment)
            if index is None or index >= len(current):
                return default
            current = current[index]
        else:
            return default

        if current is None:
            return default

    return current


def _as_index(segment: Any) -> int | None:
    if isinstance(segment, bool):
        return None
    if isinstance(segment, int):
        return segment if segment >= 0 else None
    if isinstance(segment, str) and segment.isdigit():
        return int(segment)
    return None


def _as_int(value: Any, default: int = 0) -> int:
    """Coerce ints and numeric strings ("213", "1234567"); anything else -> default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default


def _optional_int(value: Any) -> int | None:
    result = _as_int(value, -1)
    return None if result < 0 else result


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _first_text(obj: Any, paths: Iterable[str]) -> str | None:
    for path in paths:
        value = _text(safe_get(obj, path))
        if value is not None:
            return value
    return None


def _join_runs(runs: Any) -> str | None:
    if not isinstance(runs, list):
        return None
    text = "".join(run["text"] for run in runs if isinstance(run, dict) and isinstance(run.get("text"), str))
    return text or None


# =============================================================================
# ITEMS
# =============================================================================

def detect_item_type(renderer: Any) -> ItemType:
    """
    Classify an item by what its thumbnail-overlay play button starts.

    Args:
        renderer: An item renderer (responsive list item or two-row item).

    Returns:
        SONG for a watchEndpoint, PLAYLIST for a watchPlaylistEndpoint,
        UNKNOWN otherwise (including malformed input).
    """
    endpoint = safe_get(renderer, f"overlay.{PLAY_ENDPOINT_PATH}")
    if endpoint is None:
        endpoint = safe_get(renderer, f"thumbnailOverlay.{PLAY_ENDPOINT_PATH}")
    if not isinstance(endpoint, dict):
        return ItemType.UNKNOWN

    if "watchEndpoint" in endpoint:
        return ItemType.SONG
    if "watchPlaylistEndpoint" in endpoint:
        return ItemType.PLAYLIST
    return ItemType.UNKNOWN


def extract_thumbnails(raw: Any) -> tuple[Thumbnail, ...]:
    """
    Normalize a raw thumbnail list, largest first.

    Entries that are not objects or have no URL are dropped. Missing
    dimensions count as 0. Ordering among equal areas is preserved.
    """
    if not isinstance(raw, list):
        return ()

    thumbnails = [
        Thumbnail(
            url=entry["url"],
            width=_as_int(entry.get("width")),
            height=_as_int(entry.get("height")),
        )
        for entry in raw
        if isinstance(entry, dict) and _text(entry.get("url"))
    ]
    return tuple(sorted(thumbnails, key=lambda t: t.area, reverse=True))


def parse_music_item(item: Any) -> CanonicalItem | None:
    """
    Parse one search/browse item into a CanonicalItem.

    Args:
        item: A wrapper object holding either a
              'musicResponsiveListItemRenderer' (search results, shelves)
              or a 'musicTwoRowItemRenderer' (carousels).

    Returns:
        The parsed item, or None if the item is not a known renderer,
        has no content ID, or is otherwise malformed.
    """
    if not isinstance(item, dict):
        return None

    try:
        if "musicResponsiveListItemRenderer" in item:
            return _parse_responsive_item(item["musicResponsiveListItemRenderer"])
        if "musicTwoRowItemRenderer" in item:
            return _parse_two_row_item(item["musicTwoRowItemRenderer"])
        return None
    except _ABSORBED as e:
        logger.debug(f"Skipping music item: {e}")
        return None


def _parse_responsive_item(renderer: dict[str, Any]) -> CanonicalItem:
    if not isinstance(renderer, dict):
        raise ParseError("renderer is not an object")

    play_endpoint = f"overlay.{PLAY_ENDPOINT_PATH}"
    content_id = _first_text(renderer, (
        "playlistItemData.videoId",
        f"{play_endpoint}.watchEndpoint.videoId",
        f"{play_endpoint}.watchPlaylistEndpoint.playlistId",
        FLEX_COLUMN_RUNS.format(index=0) + ".0.navigationEndpoint.watchEndpoint.videoId",
        "navigationEndpoint.watchEndpoint.videoId",
        "navigationEndpoint.browseEndpoint.browseId",
    ))
    if content_id is None:
        raise ParseError("item has no content ID")

    title = _text(safe_get(renderer, FLEX_COLUMN_RUNS.format(index=0) + ".0.text")) or DEFAULT_TITLE

    secondary = safe_get(renderer, FLEX_COLUMN_RUNS.format(index=1), [])
    if not isinstance(secondary, list):
        secondary = []
    artist = _text(safe_get(secondary, "0.text")) or DEFAULT_ARTIST
    album = _text(safe_get(secondary, "2.text"))

    return CanonicalItem(
        content_id=content_id,
        title=title,
        artist=artist,
        album=album,
        duration_label=_text(safe_get(renderer, FIXED_COLUMN_TEXT)),
        thumbnails=extract_thumbnails(
            safe_get(renderer, "thumbnail.musicThumbnailRenderer.thumbnail.thumbnails")
        ),
        item_type=detect_item_type(renderer),
    )


def _parse_two_row_item(renderer: dict[str, Any]) -> CanonicalItem:
    if not isinstance(renderer, dict):
        raise ParseError("renderer is not an object")

    content_id = _first_text(renderer, (
        "navigationEndpoint.watchEndpoint.videoId",
        "navigationEndpoint.watchPlaylistEndpoint.playlistId",
        f"thumbnailOverlay.{PLAY_ENDPOINT_PATH}.watchEndpoint.videoId",
        f"thumbnailOverlay.{PLAY_ENDPOINT_PATH}.watchPlaylistEndpoint.playlistId",
        "navigationEndpoint.browseEndpoint.browseId",
    ))
    if content_id is None:
        raise ParseError("item has no content ID")

    return CanonicalItem(
        content_id=content_id,
        title=_text(safe_get(renderer, "title.runs.0.text")) or DEFAULT_TITLE,
        artist=_join_runs(safe_get(renderer, "subtitle.runs")) or DEFAULT_ARTIST,
        thumbnails=extract_thumbnails(
            safe_get(renderer, "thumbnailRenderer.musicThumbnailRenderer.thumbnail.thumbnails")
        ),
        item_type=detect_item_type(renderer),
    )


def _parse_items(raw_items: Any) -> list[CanonicalItem]:
    if not isinstance(raw_items, list):
        return []
    items = []
    for raw in raw_items:
        parsed = parse_music_item(raw)
        if parsed is not None:
            items.append(parsed)
    return items


# =============================================================================
# SEARCH / BROWSE
# =============================================================================

def parse_search_results(response: Any) -> list[CanonicalItem]:
    """
    Extract items from a search response.

    Walks every music shelf in the first tab and parses each item
    independently. Order is preserved; unusable items are skipped.

    Returns:
        A list, possibly empty. Never None.
    """
    sections = safe_get(response, SEARCH_SECTIONS_PATH, [])
    if not isinstance(sections, list):
        return []

    results: list[CanonicalItem] = []
    for section in sections:
        results.extend(_parse_items(safe_get(section, "musicShelfRenderer.contents")))
    return results


def parse_browse_response(response: Any) -> BrowseResult:
    """
    Extract sections from a browse response (home page, playlists, charts).

    Carousel shelves and music shelves become sections; every other
    section renderer is ignored. Each section parses independently.
    """
    raw_sections = safe_get(response, BROWSE_SECTIONS_PATH, [])
    if not isinstance(raw_sections, list):
        return BrowseResult()

    sections = []
    for raw in raw_sections:
        try:
            section = _parse_section(raw)
        except _ABSORBED as e:
            logger.debug(f"Skipping browse section: {e}")
            continue
        if section is not None:
            sections.append(section)

    return BrowseResult(sections=tuple(sections))


def _parse_section(raw: Any) -> Section | None:
    if not isinstance(raw, dict):
        return None

    if "musicCarouselShelfRenderer" in raw:
        shelf = raw["musicCarouselShelfRenderer"]
        return Section(
            kind=SectionKind.CAROUSEL,
            title=_text(safe_get(
                shelf, "header.musicCarouselShelfBasicHeaderRenderer.title.runs.0.text"
            )) or DEFAULT_TITLE,
            items=tuple(_parse_items(safe_get(shelf, "contents"))),
        )

    if "musicShelfRenderer" in raw:
        shelf = raw["musicShelfRenderer"]
        return Section(
            kind=SectionKind.SHELF,
            title=_text(safe_get(shelf, "title.runs.0.text")) or DEFAULT_TITLE,
            items=tuple(_parse_items(safe_get(shelf, "contents"))),
        )

    return None


def parse_search_suggestions(response: Any) -> list[str]:
    """
    Extract suggestion strings from a get_search_suggestions response.

    Each suggestion's text runs are concatenated ("never gonna" + " give
    you up"). Empty suggestions are skipped.
    """
    sections = safe_get(response, "contents", [])
    if not isinstance(sections, list):
        return []

    suggestions = []
    for section in sections:
        entries = safe_get(section, "searchSuggestionsSectionRenderer.contents", [])
        if not isinstance(entries, list):
            continue
        for entry in entries:
            text = _join_runs(safe_get(entry, "searchSuggestionRenderer.suggestion.runs"))
            if text:
                suggestions.append(text)
    return suggestions


# =============================================================================
# PLAYER
# =============================================================================

def parse_player_details(response: Any) -> PlayerDetails | None:
    """
    Summarize a player response.

    Returns:
        PlayerDetails, or None if response is not an object.
    """
    if not isinstance(response, dict):
        return None

    streaming = safe_get(response, "streamingData", {})
    format_count = 0
    for key in ("formats", "adaptiveFormats"):
        entries = safe_get(streaming, key, [])
        if isinstance(entries, list):
            format_count += len(entries)

    embed = safe_get(response, "playabilityStatus.playableInEmbed")

    return PlayerDetails(
        video_id=_text(safe_get(response, "videoDetails.videoId")),
        title=_text(safe_get(response, "videoDetails.title")),
        author=_text(safe_get(response, "videoDetails.author")),
        length_seconds=_as_int(safe_get(response, "videoDetails.lengthSeconds")),
        thumbnails=extract_thumbnails(safe_get(response, "videoDetails.thumbnail.thumbnails")),
        playability_status=_text(safe_get(response, "playabilityStatus.status")),
        playability_reason=_text(safe_get(response, "playabilityStatus.reason")),
        playable_in_embed=embed if isinstance(embed, bool) else None,
        expires_in_seconds=_optional_int(safe_get(streaming, "expiresInSeconds")),
        format_count=format_count,
    )


def parse_formats(response: Any) -> list[Format]:
    """
    Extract stream formats from a player response.

    Adaptive formats come first, then static (muxed) formats. Entries
    that are malformed or carry both/neither of url and signatureCipher
    are dropped.
    """
    raw_formats: list[Any] = []
    for key in ("adaptiveFormats", "formats"):
        entries = safe_get(response, f"streamingData.{key}", [])
        if isinstance(entries, list):
            raw_formats.extend(entries)

    formats = []
    for raw in raw_formats:
        try:
            formats.append(_parse_format(raw))
        except _ABSORBED as e:
            logger.debug(f"Dropping stream format: {e}")
    return formats


def _parse_format(raw: Any) -> Format:
    if not isinstance(raw, dict):
        raise ParseError("format entry is not an object")

    itag = raw.get("itag")
    if isinstance(itag, bool) or not isinstance(itag, int):
        raise ParseError(f"format has no integer itag: {itag!r}")

    return Format(
        itag=itag,
        mime_type=_text(raw.get("mimeType")) or "",
        bitrate=_as_int(raw.get("bitrate")),
        url=_text(raw.get("url")),
        cipher_blob=_text(raw.get("signatureCipher")) or _text(raw.get("cipher")),
        content_length=_optional_int(raw.get("contentLength")),
        audio_quality=_text(raw.get("audioQuality")),
        approx_duration_ms=_optional_int(raw.get("approxDurationMs")),
    )
