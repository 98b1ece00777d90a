"""
Stream module for ytm-stream.

Turns an authorized player response into bytes on a local socket:
    - cipher: Signature pipeline recovery and application
    - resolver: Audio format selection and URL resolution
    - proxy: Range-aware streaming relay with retry and cancellation
    - server: aiohttp application exposing the relay and JSON routes

The server module is not imported here because it depends on the
engine, which itself depends on this package.
"""

from ytm_stream.stream.cipher import (
    AssetPipelineResolver,
    CipherOperation,
    CipherPipeline,
    CipherSolver,
    OperationKind,
    PipelineResolver,
    StaticPipelineResolver,
)
from ytm_stream.stream.proxy import (
    ByteRange,
    ProxySession,
    StreamMetadata,
    StreamProxy,
    parse_byte_range,
)
from ytm_stream.stream.resolver import CipherBlob, StreamResolver, parse_cipher_blob

__all__ = [
    # Cipher
    "CipherOperation",
    "CipherPipeline",
    "CipherSolver",
    "OperationKind",
    "PipelineResolver",
    "AssetPipelineResolver",
    "StaticPipelineResolver",
    # Resolver
    "CipherBlob",
    "StreamResolver",
    "parse_cipher_blob",
    # Proxy
    "ByteRange",
    "parse_byte_range",
    "ProxySession",
    "StreamMetadata",
    "StreamProxy",
]
