"""
Core module for ytm-stream.

Shared building blocks for the innertube and stream packages:
    - exceptions: Error hierarchy rooted at YtmStreamError
    - config: config.yaml loading into frozen dataclasses
    - logger: Logging system with console, file and report outputs
    - cache: Shared TTL response cache
    - retry: Bounded exponential-backoff retry for async operations

Usage:
    from ytm_stream.core import (
        Config, load_config,
        ResponseCache,
        setup_logging, get_logger,
        YtmStreamError, ConfigError
    )
"""

from ytm_stream.core.cache import CacheEntry, ResponseCache
from ytm_stream.core.config import (
    ApiConfig,
    CacheConfig,
    Config,
    LoggingConfig,
    RetryConfig,
    ServerConfig,
    StreamConfig,
    load_config,
)
from ytm_stream.core.exceptions import (
    ApiError,
    CipherError,
    ConfigError,
    InvalidVideoIdError,
    NetworkError,
    NoStreamFoundError,
    ParseError,
    PlayabilityError,
    YtmStreamError,
)
from ytm_stream.core.logger import (
    get_logger,
    log_cipher_fallback,
    log_playability_failure,
    setup_logging,
    shutdown_logging,
)
from ytm_stream.core.retry import backoff_delay, retry_with_backoff

__all__ = [
    # Cache
    "CacheEntry",
    "ResponseCache",
    # Config
    "Config",
    "ApiConfig",
    "CacheConfig",
    "RetryConfig",
    "StreamConfig",
    "ServerConfig",
    "LoggingConfig",
    "load_config",
    # Exceptions
    "YtmStreamError",
    "ConfigError",
    "NetworkError",
    "ApiError",
    "ParseError",
    "NoStreamFoundError",
    "CipherError",
    "InvalidVideoIdError",
    "PlayabilityError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_playability_failure",
    "log_cipher_fallback",
    "shutdown_logging",
    # Retry
    "backoff_delay",
    "retry_with_backoff",
]
