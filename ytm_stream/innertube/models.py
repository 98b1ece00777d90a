"""
Data models for parsed Innertube responses.

These dataclasses are the normalized output of innertube.parser. Raw
responses are deeply nested and unstable; nothing outside the parser
should have to know their shape.

Models:
    Thumbnail: One image variant.
    CanonicalItem: A normalized search/browse result.
    Section / BrowseResult: Browse page structure.
    PlayerDetails: Summary of a player response.
    Format: One stream format from streamingData.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ItemType(str, Enum):
    """Kind of content an item's play button leads to."""
    SONG = "song"
    PLAYLIST = "playlist"
    UNKNOWN = "unknown"


class SectionKind(str, Enum):
    """Renderer family a browse section came from."""
    SHELF = "shelf"
    CAROUSEL = "carousel"


@dataclass(frozen=True)
class Thumbnail:
    """
    One thumbnail variant.

    Attributes:
        url: Image URL.
        width: Width in pixels (0 if unknown).
        height: Height in pixels (0 if unknown).
    """
    url: str
    width: int = 0
    height: int = 0

    @property
    def area(self) -> int:
        """Pixel area, used to rank variants (largest first)."""
        return self.width * self.height

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class CanonicalItem:
    """
    Immutable, normalized representation of a music item.

    Produced only by the parser, from either a responsive list item
    (search results, shelves) or a two-row item (carousels).

    Attributes:
        content_id: Video ID for songs, playlist ID for playlists.
                    Never empty; items without one are dropped.
        title: Display title. "Unknown" when absent.
        artist: First artist run. "Unknown Artist" when absent.
        album: Album name when the secondary column carries one.
        duration_label: Duration as displayed, e.g. "3:33".
        thumbnails: Variants sorted by pixel area, largest first.
        item_type: What the play button leads to.

    Example:
        item = parse_music_item(raw)
        if item and item.item_type is ItemType.SONG:
            print(f"{item.artist} - {item.title} ({item.content_id})")
    """
    content_id: str
    title: str
    artist: str
    album: str | None = None
    duration_label: str | None = None
    thumbnails: tuple[Thumbnail, ...] = ()
    item_type: ItemType = ItemType.UNKNOWN

    @property
    def best_thumbnail(self) -> Thumbnail | None:
        return self.thumbnails[0] if self.thumbnails else None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output (CLI, relay API)."""
        return {
            "contentId": self.content_id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration": self.duration_label,
            "thumbnails": [thumbnail.to_dict() for thumbnail in self.thumbnails],
            "type": self.item_type.value,
        }


@dataclass(frozen=True)
class Section:
    """
    One section of a browse page.

    Attributes:
        kind: SHELF or CAROUSEL.
        title: Section heading ("Unknown" when absent).
        items: Parsed items, in page order.
    """
    kind: SectionKind
    title: str
    items: tuple[CanonicalItem, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "title": self.title,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass(frozen=True)
class BrowseResult:
    """Parsed browse page: sections in page order."""
    sections: tuple[Section, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"sections": [section.to_dict() for section in self.sections]}


@dataclass(frozen=True)
class PlayerDetails:
    """
    Summary of a player response, for display and diagnostics.

    Attributes:
        video_id: From videoDetails.
        title: Video title.
        author: Channel/artist name.
        length_seconds: Duration in seconds (0 if unknown).
        thumbnails: Sorted largest first.
        playability_status: playabilityStatus.status, e.g. "OK".
        playability_reason: Human-readable rejection reason, if any.
        playable_in_embed: Whether embed playback is allowed.
        expires_in_seconds: Lifetime of the stream URLs.
        format_count: Number of entries across formats + adaptiveFormats.
    """
    video_id: str | None
    title: str | None
    author: str | None
    length_seconds: int = 0
    thumbnails: tuple[Thumbnail, ...] = ()
    playability_status: str | None = None
    playability_reason: str | None = None
    playable_in_embed: bool | None = None
    expires_in_seconds: int | None = None
    format_count: int = 0

    @property
    def is_playable(self) -> bool:
        return self.playability_status == "OK"


@dataclass(frozen=True)
class Format:
    """
    One stream format from a player response's streamingData.

    Exactly one of url / cipher_blob is set: either the platform handed
    out a directly usable URL, or a signed blob that must be deciphered
    before use.

    Attributes:
        itag: Platform format identifier.
        mime_type: e.g. 'audio/webm; codecs="opus"'.
        bitrate: Bits per second (0 when the response omits it).
        url: Directly usable stream URL.
        cipher_blob: URL-encoded blob with 'url', 's' and 'sp' components.
        content_length: Size in bytes, when known.
        audio_quality: e.g. "AUDIO_QUALITY_MEDIUM".
        approx_duration_ms: Duration in milliseconds, when known.

    Raises:
        ValueError: On construction with both or neither of url/cipher_blob.
    """
    itag: int
    mime_type: str
    bitrate: int = 0
    url: str | None = None
    cipher_blob: str | None = None
    content_length: int | None = None
    audio_quality: str | None = None
    approx_duration_ms: int | None = None

    def __post_init__(self) -> None:
        if (self.url is None) == (self.cipher_blob is None):
            raise ValueError(
                f"Format {self.itag} must carry exactly one of url or cipher_blob"
            )

    @property
    def is_audio(self) -> bool:
        """True for audio-only formats."""
        return self.mime_type.startswith("audio")

    @property
    def needs_decipher(self) -> bool:
        return self.url is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "itag": self.itag,
            "mimeType": self.mime_type,
            "bitrate": self.bitrate,
            "url": self.url,
            "contentLength": self.content_length,
            "audioQuality": self.audio_quality,
            "approxDurationMs": self.approx_duration_ms,
        }
