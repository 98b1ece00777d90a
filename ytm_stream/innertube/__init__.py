"""
Innertube module for ytm-stream.

This module handles all communication with YouTube Music's private API:
    - clients: Device identities, endpoints and search filters
    - models: Normalized response data (items, sections, formats)
    - parser: Fault-tolerant extraction from nested responses
    - client: The async protocol client with identity fallback

Usage:
    from ytm_stream.innertube import InnertubeClient, SearchFilter

    async with InnertubeClient(cache) as client:
        songs = await client.search("query", SearchFilter.SONG)
"""

from ytm_stream.innertube.client import InnertubeClient
from ytm_stream.innertube.clients import (
    CLIENT_IDENTITIES,
    PLAYER_PRIORITY,
    PRIMARY_IDENTITY,
    ClientIdentity,
    SearchFilter,
)
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
from ytm_stream.innertube.parser import (
    detect_item_type,
    extract_thumbnails,
    parse_browse_response,
    parse_formats,
    parse_music_item,
    parse_player_details,
    parse_search_results,
    parse_search_suggestions,
    safe_get,
)

__all__ = [
    # Client
    "InnertubeClient",
    # Identities
    "ClientIdentity",
    "CLIENT_IDENTITIES",
    "PLAYER_PRIORITY",
    "PRIMARY_IDENTITY",
    "SearchFilter",
    # Models
    "BrowseResult",
    "CanonicalItem",
    "Format",
    "ItemType",
    "PlayerDetails",
    "Section",
    "SectionKind",
    "Thumbnail",
    # Parser
    "safe_get",
    "detect_item_type",
    "extract_thumbnails",
    "parse_music_item",
    "parse_search_results",
    "parse_browse_response",
    "parse_player_details",
    "parse_formats",
    "parse_search_suggestions",
]
