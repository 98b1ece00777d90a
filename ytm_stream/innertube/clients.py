"""
Client identities and protocol constants for the Innertube API.

Innertube authorizes playback per client identity: a video that the
desktop web client refuses may play fine for the embedded TV player or
a mobile app. This module enumerates the identities the client can
impersonate and the fixed order in which they are tried for player
requests.

All values here are platform constants. They drift as the platform
ships new client versions; when playback starts failing across the
board, the client versions are the first thing to bump.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


# =============================================================================
# ENDPOINTS
# =============================================================================

SEARCH_ENDPOINT = "/youtubei/v1/search"
BROWSE_ENDPOINT = "/youtubei/v1/browse"
NEXT_ENDPOINT = "/youtubei/v1/next"
PLAYER_ENDPOINT = "/youtubei/v1/player"
SEARCH_SUGGESTIONS_ENDPOINT = "/youtubei/v1/music/get_search_suggestions"


# =============================================================================
# PLAYABILITY
# =============================================================================

PLAYABILITY_OK = "OK"
PLAYABILITY_UNPLAYABLE = "UNPLAYABLE"
PLAYABILITY_LOGIN_REQUIRED = "LOGIN_REQUIRED"
PLAYABILITY_ERROR = "ERROR"
PLAYABILITY_LIVE_STREAM_OFFLINE = "LIVE_STREAM_OFFLINE"


# =============================================================================
# USER AGENTS
# =============================================================================

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Embed URL sent as context.thirdParty for identities that impersonate an embed
EMBED_URL_TEMPLATE = "https://www.youtube.com/watch?v={video_id}"


class SearchFilter(Enum):
    """
    Search result filters.

    Values are the opaque 'params' strings the search endpoint expects.
    """
    SONG = "EgWKAQIIAWoKEAkQBRAKEAMQBA%3D%3D"
    VIDEO = "EgWKAQIQAWoKEAkQChAFEAMQBA%3D%3D"
    ALBUM = "EgWKAQIYAWoKEAkQChAFEAMQBA%3D%3D"
    ARTIST = "EgWKAQIgAWoKEAkQChAFEAMQBA%3D%3D"
    COMMUNITY_PLAYLIST = "EgeKAQQoAEABagoQAxAEEAoQCRAF"
    FEATURED_PLAYLIST = "EgeKAQQoADgBagwQDhAKEAMQBRAJEAQ%3D"

    @classmethod
    def from_name(cls, name: str) -> "SearchFilter":
        """
        Look up a filter by case-insensitive name ("song", "featured_playlist").

        Raises:
            ValueError: If no filter has that name.
        """
        try:
            return cls[name.strip().upper()]
        except KeyError:
            valid = ", ".join(member.name.lower() for member in cls)
            raise ValueError(f"Unknown search filter '{name}' (expected one of: {valid})") from None


@dataclass(frozen=True)
class ClientIdentity:
    """
    One device/client profile the Innertube protocol can be spoken as.

    Attributes:
        key: Stable identifier used in logs and errors (e.g. "TV_EMBEDDED").
        client_name: Value of context.client.clientName.
        client_version: Value of context.client.clientVersion.
        platform: Value of context.client.platform (DESKTOP, MOBILE, TV).
        user_agent: Sent both as the HTTP User-Agent and in the context.
        extra_context: Additional context.client fields as (name, value)
                       pairs, e.g. (("androidSdkVersion", 33),).
        third_party_embed: Whether player requests with this identity carry
                           context.thirdParty.embedUrl.
    """
    key: str
    client_name: str
    client_version: str
    platform: str
    user_agent: str
    extra_context: tuple[tuple[str, Any], ...] = ()
    third_party_embed: bool = False

    def to_context(self, hl: str = "en", gl: str = "US") -> dict[str, Any]:
        """
        Render the context.client object for a request body.

        Args:
            hl: Interface language.
            gl: Content region.

        Returns:
            A new dictionary; callers may mutate it freely.
        """
        context: dict[str, Any] = {
            "clientName": self.client_name,
            "clientVersion": self.client_version,
            "platform": self.platform,
            "hl": hl,
            "gl": gl,
            "userAgent": self.user_agent,
        }
        context.update(dict(self.extra_context))
        return context


WEB_REMIX = ClientIdentity(
    key="WEB_REMIX",
    client_name="WEB_REMIX",
    client_version="1.20231122.01.00",
    platform="DESKTOP",
    user_agent=DESKTOP_USER_AGENT,
    extra_context=(("visitorData", "CgtEUlRINDFjdm1YayjX1pSaBg%3D%3D"),),
)

ANDROID_MUSIC = ClientIdentity(
    key="ANDROID_MUSIC",
    client_name="ANDROID_MUSIC",
    client_version="6.42.52",
    platform="MOBILE",
    user_agent="com.google.android.apps.youtube.music/6.42.52 (Linux; U; Android 13) gzip",
    extra_context=(("androidSdkVersion", 33),),
)

TV_EMBEDDED = ClientIdentity(
    key="TV_EMBEDDED",
    client_name="TVHTML5_SIMPLY_EMBEDDED_PLAYER",
    client_version="2.0",
    platform="TV",
    user_agent=DESKTOP_USER_AGENT,
    third_party_embed=True,
)

IOS = ClientIdentity(
    key="IOS",
    client_name="IOS",
    client_version="19.29.1",
    platform="MOBILE",
    user_agent="com.google.ios.youtube/19.29.1 (iPhone16,2; U; CPU iOS 17_5_1 like Mac OS X)",
    extra_context=(("deviceMake", "Apple"), ("deviceModel", "iPhone16,2")),
)

ANDROID = ClientIdentity(
    key="ANDROID",
    client_name="ANDROID",
    client_version="19.29.37",
    platform="MOBILE",
    user_agent="com.google.android.youtube/19.29.37 (Linux; U; Android 13) gzip",
    extra_context=(("androidSdkVersion", 33),),
)

# Identity used for search, browse, next and suggestions
PRIMARY_IDENTITY = WEB_REMIX

CLIENT_IDENTITIES: dict[str, ClientIdentity] = {
    identity.key: identity
    for identity in (WEB_REMIX, ANDROID_MUSIC, TV_EMBEDDED, IOS, ANDROID)
}

# Order in which identities are tried for player requests
PLAYER_PRIORITY: tuple[ClientIdentity, ...] = (
    TV_EMBEDDED,
    ANDROID,
    IOS,
    ANDROID_MUSIC,
    WEB_REMIX,
)
