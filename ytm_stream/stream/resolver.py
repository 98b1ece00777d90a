"""
Audio format selection and stream URL resolution.

Given an authorized player response, picks the best audio-only format
and turns it into a URL the stream host will serve. Formats either
carry a direct URL or a cipher blob; the latter is resolved through
the CipherSolver.

Selection:
    formats = adaptiveFormats + formats
    keep mime types starting with "audio"
    highest bitrate wins (missing bitrate counts as 0, ties keep order)
"""

from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from ytm_stream.core.exceptions import CipherError, NoStreamFoundError
from ytm_stream.core.logger import get_logger
from ytm_stream.innertube.models import Format
from ytm_stream.innertube.parser import parse_formats, safe_get
from ytm_stream.stream.cipher import CipherSolver


logger = get_logger(__name__)

DEFAULT_SIGNATURE_PARAM = "signature"


@dataclass(frozen=True)
class CipherBlob:
    """
    Decoded components of a 'signatureCipher' value.

    Attributes:
        url: Base stream URL (without the signature).
        signature: Scrambled signature ('s'), if any.
        signature_param: Query parameter to carry the result ('sp').
    """
    url: str | None
    signature: str | None
    signature_param: str = DEFAULT_SIGNATURE_PARAM


def parse_cipher_blob(blob: str) -> CipherBlob:
    """
    Decode a URL-encoded cipher blob such as 's=AB..&sp=sig&url=https%3A...'.

    Missing components come back as None ('sp' defaults to 'signature').
    """
    params = parse_qs(blob or "", keep_blank_values=False)

    def first(name: str) -> str | None:
        values = params.get(name)
        return values[0] if values else None

    return CipherBlob(
        url=first("url"),
        signature=first("s"),
        signature_param=first("sp") or DEFAULT_SIGNATURE_PARAM,
    )


def set_query_param(url: str, name: str, value: str) -> str:
    """Return url with query parameter name set to value (replacing any existing one)."""
    parts = urlsplit(url)
    query = [
        (key, item)
        for key, values in parse_qs(parts.query, keep_blank_values=True).items()
        for item in values
        if key != name
    ]
    query.append((name, value))
    return urlunsplit(parts._replace(query=urlencode(query)))


class StreamResolver:
    """
    Chooses audio formats and resolves their URLs.

    Attributes:
        cipher: Solver used for cipher-only formats.

    Example:
        resolver = StreamResolver(cipher_solver)
        best = await resolver.get_best_audio_format(player_response)
        print(best.url, best.bitrate)
    """

    def __init__(self, cipher: CipherSolver) -> None:
        self.cipher = cipher

    async def get_best_audio_format(self, player_response: dict[str, Any]) -> Format:
        """
        Select the highest-bitrate audio format and resolve its URL.

        Returns:
            The chosen Format with 'url' set and 'cipher_blob' cleared.

        Raises:
            NoStreamFoundError: No formats at all, or none audio-only.
            CipherError: The chosen format's URL could not be resolved.
        """
        video_id = safe_get(player_response, "videoDetails.videoId")
        formats = parse_formats(player_response)
        if not formats:
            raise NoStreamFoundError(
                "No formats found in streaming data",
                details={"video_id": video_id},
            )

        audio_formats = [fmt for fmt in formats if fmt.is_audio]
        if not audio_formats:
            raise NoStreamFoundError(
                "No audio formats found",
                details={"video_id": video_id, "format_count": len(formats)},
            )

        best = sorted(audio_formats, key=lambda fmt: fmt.bitrate, reverse=True)[0]
        logger.debug(f"Selected itag {best.itag} ({best.mime_type}, {best.bitrate} bps) for {video_id}")

        url = await self.resolve_url(best, video_id)
        return replace(best, url=url, cipher_blob=None)

    async def resolve_url(self, fmt: Format, video_id: str | None) -> str:
        """
        Produce a usable URL for a format.

        A direct URL is returned unchanged. A cipher blob is decoded; its
        signature (if any) is deciphered and written to the query
        parameter named by 'sp'.

        Raises:
            CipherError: Blob without 'url', or deciphering failed.
        """
        if fmt.url is not None:
            return fmt.url

        blob = parse_cipher_blob(fmt.cipher_blob or "")
        if not blob.url:
            raise CipherError("No URL found in cipher data", details={"itag": fmt.itag})

        if not blob.signature:
            return blob.url

        try:
            signature = await self.cipher.decipher(blob.signature, video_id)
        except CipherError:
            raise
        except Exception as e:
            raise CipherError(
                f"Failed to decipher signature: {e}",
                details={"itag": fmt.itag, "video_id": video_id},
            ) from e

        return set_query_param(blob.url, blob.signature_param, signature)

    def get_all_audio_formats(self, player_response: dict[str, Any]) -> list[Format]:
        """Every audio-only format, in response order. No resolution."""
        return [fmt for fmt in parse_formats(player_response) if fmt.is_audio]

    def get_format_by_itag(self, player_response: dict[str, Any], itag: int) -> Format | None:
        """The first format (audio or not) with the given itag, or None."""
        for fmt in parse_formats(player_response):
            if fmt.itag == itag:
                return fmt
        return None
