"""
Exception classes for ytm-stream.

Every error raised by the package carries a human-readable message plus
an optional details dictionary, so callers can log context without
parsing message strings.

Exception Hierarchy:
    YtmStreamError (base)
        ConfigError          invalid or missing configuration
        NetworkError         transport-level failure reaching a host
        ApiError             non-2xx (or undecodable) Innertube reply
        ParseError           unexpected response shape (absorbed by the parser)
        NoStreamFoundError   no audio format in an otherwise valid response
        CipherError          signature pipeline fetch/application failure
        InvalidVideoIdError  malformed video ID, rejected before any I/O
        PlayabilityError     every client identity rejected playback

Propagation:
    ParseError never leaves innertube.parser; public parser functions
    degrade to None/empty instead. Resolution errors (NoStreamFoundError,
    CipherError, PlayabilityError, InvalidVideoIdError) propagate to the
    caller, which decides user-facing messaging.
"""


class YtmStreamError(Exception):
    """
    Root of the ytm-stream error tree; catch it to handle any of them.

    Attributes:
        message: Text suitable for showing to a user.
        details: Context for logs, e.g. {'video_id': ..., 'url': ...}.

    Example:
        try:
            response = await client.player(video_id)
        except YtmStreamError as e:
            logger.error(f"Player request failed: {e.message}")
            logger.debug(f"Context: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Args:
            message: Text suitable for showing to a user.
            details: Extra context. Keys used across the package:
                     'video_id', 'url', 'endpoint', 'status' and
                     'original_error' (text of a wrapped exception).
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ConfigError(YtmStreamError):
    """
    Raised when config.yaml cannot be used; the CLI exits on it.

    Typical triggers:
        - An explicitly given config file does not exist
        - The file is not valid YAML
        - A section is not a mapping
        - A value is out of range (negative TTL, unknown log level)

    Example:
        raise ConfigError(
            "'cache.max_entries' must be a positive integer",
            details={'field': 'cache.max_entries', 'value': -1}
        )
    """
    pass


class NetworkError(YtmStreamError):
    """
    Raised when a host cannot be reached or the transfer breaks.

    Covers connection refusal, DNS failure, TLS errors and timeouts.
    The stream proxy also uses it for an upstream that keeps answering
    with an unusable status after every retry attempt.

    Example:
        raise NetworkError(
            "Request to /youtubei/v1/player failed: Connection reset",
            details={'url': url, 'original_error': str(e)}
        )
    """
    pass


class ApiError(YtmStreamError):
    """
    Raised when an Innertube endpoint answers with a non-2xx status.

    Also raised when the body of a 2xx answer is not valid JSON, since
    nothing downstream can work with it.

    Attributes:
        status: HTTP status code of the reply, or None for a decode failure.

    Example:
        raise ApiError(
            "API error: 403 Forbidden",
            details={'endpoint': '/youtubei/v1/search'},
            status=403
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        status: int | None = None
    ) -> None:
        """
        Initialize API error with the HTTP status.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional context.
            status: HTTP status returned by the endpoint.
        """
        super().__init__(message, details)
        self.status = status


class ParseError(YtmStreamError):
    """
    Raised internally when a response does not have the expected shape.

    This error is NEVER surfaced to callers. The parser raises it from
    small helpers and absorbs it at every public function boundary,
    returning None or an empty collection instead.
    """
    pass


class NoStreamFoundError(YtmStreamError):
    """
    Raised when a valid player response contains no usable audio format.

    Typical triggers:
        - streamingData missing (live/premiere content)
        - Only video formats present

    Example:
        raise NoStreamFoundError(
            "No audio formats found",
            details={'video_id': 'dQw4w9WgXcQ', 'format_count': 3}
        )
    """
    pass


class CipherError(YtmStreamError):
    """
    Raised when a signed stream URL cannot be turned into a usable one.

    Typical triggers:
        - Cipher blob carries no 'url' component
        - The watch page or player asset could not be fetched
        - The watch page does not reference a player asset
        - The pipeline produced no output for the signature

    Note:
        A pipeline that cannot be *derived* from the player asset does
        not raise this error; the static fallback pipeline is used
        instead (degraded mode).
    """
    pass


class InvalidVideoIdError(YtmStreamError):
    """
    Raised when a video ID is not exactly 11 URL-safe characters.

    Checked before any network request is made.

    Attributes:
        video_id: The rejected value.
    """

    def __init__(self, video_id: object, details: dict | None = None) -> None:
        """
        Initialize with the rejected value.

        Args:
            video_id: Whatever the caller passed as a video ID.
            details: Optional dictionary with additional context.
        """
        super().__init__(f"Invalid video ID: {video_id!r}", details)
        self.video_id = video_id


class PlayabilityError(YtmStreamError):
    """
    Raised when every client identity failed to obtain an "OK" player response.

    Attributes:
        reason: The last rejection reason seen (the platform's human-readable
                reason string, or the text of the last transport error).
        status: The last playabilityStatus.status seen, if any.
        attempts: Keys of the identities that were tried, in order.

    Example:
        raise PlayabilityError(
            "Video unavailable",
            status="UNPLAYABLE",
            attempts=["TV_EMBEDDED", "ANDROID", "IOS", "ANDROID_MUSIC", "WEB_REMIX"]
        )
    """

    def __init__(
        self,
        reason: str,
        details: dict | None = None,
        status: str | None = None,
        attempts: list[str] | None = None
    ) -> None:
        """
        Initialize playability error.

        Args:
            reason: Last rejection reason; also used as the message.
            details: Optional dictionary with additional context.
            status: Last playability status string.
            attempts: Identity keys tried, in priority order.
        """
        super().__init__(reason, details)
        self.reason = reason
        self.status = status
        self.attempts = list(attempts or [])
