"""
Signature deciphering for protected stream URLs.

Some formats in a player response carry no usable URL. Instead they
hold a 'signatureCipher' blob whose 's' component must be transformed
by a short sequence of character operations before the stream host
accepts it. The sequence lives in the platform's player JavaScript and
rotates whenever a new player build ships.

Pipeline:
    A CipherPipeline is an ordered list of three kinds of operation:
        reverse  - reverse the character list
        swap(n)  - swap element 0 with element n % len
        drop(n)  - remove the first n characters
    Applying it is deterministic; the hard part is recovering it.

Recovery (CipherSolver.decipher):
    1. Use the cached pipeline ('cipher:pipeline') if one is live.
       If applying it fails, invalidate it and re-derive.
    2. Fetch the watch page, extract "jsUrl", fetch the player asset.
    3. Run the resolver chain, newest strategy first. The asset resolver
       parses the transform out of the player code; the static resolver
       returns a fixed pipeline and marks it degraded.
    4. Cache the pipeline for cipher_ttl and apply it.

Degraded Mode:
    When the transform cannot be derived, signatures are computed with
    the static pipeline and may be rejected by the stream host. This is
    logged at WARNING (captured in the cipher_fallbacks report) and
    counted in CipherSolver.stats['fallback'].
"""

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import aiohttp

from ytm_stream.core.cache import ResponseCache
from ytm_stream.core.config import ApiConfig, CacheConfig
from ytm_stream.core.exceptions import CipherError
from ytm_stream.core.logger import get_logger, log_cipher_fallback
from ytm_stream.innertube.clients import DESKTOP_USER_AGENT


logger = get_logger(__name__)


# =============================================================================
# PLAYER ASSET PATTERNS
# =============================================================================

PIPELINE_CACHE_KEY = "cipher:pipeline"

JS_URL_PATTERN = re.compile(r'"jsUrl":"([^"]+)"')

# xy=function(a){a=a.split("");...;return a.join("")}
SIGNATURE_FUNCTION_PATTERN = re.compile(
    r'([\w$]+)=function\(([\w$]+)\)\{\2=\2\.split\(""\);(.*?)return \2\.join\(""\)\}',
    re.DOTALL,
)

# Ab.cd(a,3) or Ab["cd"](a,3)
HELPER_CALL_PATTERN = re.compile(
    r'([\w$]+)(?:\.([\w$]+)|\["([\w$]+)"\])\([\w$]+,(\d+)\)'
)

# cd:function(a,b){a.splice(0,b)}
HELPER_METHOD_PATTERN = re.compile(
    r'([\w$]+):function\([\w$]+(?:,[\w$]+)?\)\{([^}]*)\}'
)


class OperationKind(str, Enum):
    REVERSE = "reverse"
    SWAP = "swap"
    DROP = "drop"


@dataclass(frozen=True)
class CipherOperation:
    """
    One step of a cipher pipeline.

    Attributes:
        kind: reverse, swap or drop.
        argument: Index for swap, count for drop. Ignored by reverse.
    """
    kind: OperationKind
    argument: int = 0

    def apply(self, chars: list[str]) -> list[str]:
        if self.kind is OperationKind.REVERSE:
            return chars[::-1]
        if self.kind is OperationKind.SWAP:
            if not chars:
                return chars
            index = self.argument % len(chars)
            swapped = list(chars)
            swapped[0], swapped[index] = swapped[index], swapped[0]
            return swapped
        return chars[self.argument:]


@dataclass(frozen=True)
class CipherPipeline:
    """
    An ordered list of operations recovered from a player build.

    Attributes:
        operations: Steps, applied in order.
        source: Version tag of the resolver that produced it.
        degraded: True for the static fallback pipeline.
    """
    operations: tuple[CipherOperation, ...]
    source: str
    degraded: bool = False

    def apply(self, signature: str) -> str:
        """
        Transform a scrambled signature.

        Raises:
            CipherError: If the signature is empty or the pipeline leaves
                         nothing of it (an application failure).
        """
        if not signature:
            raise CipherError("Cannot apply cipher pipeline to an empty signature")

        chars = list(signature)
        for operation in self.operations:
            chars = operation.apply(chars)

        result = "".join(chars)
        if not result:
            raise CipherError(
                "Cipher pipeline produced an empty signature",
                details={"source": self.source, "signature_length": len(signature)},
            )
        return result


FALLBACK_OPERATIONS = (
    CipherOperation(OperationKind.REVERSE),
    CipherOperation(OperationKind.SWAP, 2),
    CipherOperation(OperationKind.DROP, 3),
)


# =============================================================================
# RESOLVERS
# =============================================================================

class PipelineResolver(ABC):
    """
    One strategy for turning player code into a CipherPipeline.

    Strategies are tried in order by CipherSolver. A strategy signals
    that it cannot handle the code by raising CipherError.
    """

    version = ""

    @abstractmethod
    def resolve(self, player_code: str) -> CipherPipeline:
        raise NotImplementedError


class AssetPipelineResolver(PipelineResolver):
    """
    Derives the pipeline from the player JavaScript.

    Locates the function that splits the signature into characters,
    reads the helper-object calls it makes, and classifies each helper
    method by its body:
        a.reverse()                       -> reverse
        a.splice(0,b)                     -> drop
        var c=a[0];a[0]=a[b%a.length];... -> swap
    """

    version = "asset-v1"

    def resolve(self, player_code: str) -> CipherPipeline:
        function_match = SIGNATURE_FUNCTION_PATTERN.search(player_code)
        if function_match is None:
            raise CipherError("signature function not found in player asset")

        calls = list(HELPER_CALL_PATTERN.finditer(function_match.group(3)))
        if not calls:
            raise CipherError("signature function makes no helper calls")

        helper_name = calls[0].group(1)
        methods = self._helper_methods(player_code, helper_name)

        operations = []
        for call in calls:
            if call.group(1) != helper_name:
                raise CipherError(f"signature function calls unknown object '{call.group(1)}'")
            method = call.group(2) or call.group(3)
            if method not in methods:
                raise CipherError(f"helper method '{method}' not found on '{helper_name}'")
            operations.append(CipherOperation(methods[method], int(call.group(4))))

        return CipherPipeline(tuple(operations), source=self.version)

    def _helper_methods(self, player_code: str, helper_name: str) -> dict[str, OperationKind]:
        object_pattern = re.compile(
            r"var " + re.escape(helper_name) + r"=\{(.*?)\};", re.DOTALL
        )
        object_match = object_pattern.search(player_code)
        if object_match is None:
            raise CipherError(f"helper object '{helper_name}' not found in player asset")

        methods = {}
        for name, body in HELPER_METHOD_PATTERN.findall(object_match.group(1)):
            methods[name] = self._classify(name, body)
        return methods

    @staticmethod
    def _classify(name: str, body: str) -> OperationKind:
        if "reverse(" in body:
            return OperationKind.REVERSE
        if "splice(" in body:
            return OperationKind.DROP
        if "%" in body or "[0]" in body:
            return OperationKind.SWAP
        raise CipherError(f"cannot classify helper method '{name}'")


class StaticPipelineResolver(PipelineResolver):
    """Returns the fixed fallback pipeline. Always succeeds; always degraded."""

    version = "static-v1"

    def resolve(self, player_code: str) -> CipherPipeline:
        return CipherPipeline(FALLBACK_OPERATIONS, source=self.version, degraded=True)


DEFAULT_RESOLVERS: tuple[PipelineResolver, ...] = (
    AssetPipelineResolver(),
    StaticPipelineResolver(),
)


# =============================================================================
# SOLVER
# =============================================================================

class CipherSolver:
    """
    Recovers, caches and applies the current cipher pipeline.

    Attributes:
        cache: Shared ResponseCache (pipeline stored under 'cipher:pipeline').
        watch_origin: Origin of the watch page and relative player URLs.
        cipher_ttl: Seconds a derived pipeline stays cached.
        stats: Counters: 'derived', 'fallback', 'cache_hits', 'invalidated'.

    Concurrency:
        Concurrent calls on a cold cache may each derive the pipeline;
        the last cache write wins. Derivation is idempotent for a given
        player build, so this only costs redundant fetches.
    """

    def __init__(
        self,
        cache: ResponseCache,
        watch_origin: str = ApiConfig.watch_origin,
        cipher_ttl: float = CacheConfig.cipher_ttl,
        timeout: float = ApiConfig.timeout,
        session: aiohttp.ClientSession | None = None,
        resolvers: tuple[PipelineResolver, ...] = DEFAULT_RESOLVERS
    ) -> None:
        self.cache = cache
        self.watch_origin = watch_origin.rstrip("/")
        self.cipher_ttl = cipher_ttl
        self.timeout = timeout
        self.resolvers = resolvers
        self.stats = {"derived": 0, "fallback": 0, "cache_hits": 0, "invalidated": 0}
        self._session = session
        self._owns_session = session is None

    def use_session(self, session: aiohttp.ClientSession) -> None:
        self._session = session
        self._owns_session = False

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def decipher(self, signature: str, video_id: str | None = None) -> str:
        """
        Unscramble a signature.

        Args:
            signature: The 's' component of a cipher blob.
            video_id: Needed only when the pipeline must be (re)derived;
                      its watch page names the current player build.

        Returns:
            The signature to send as the 'sp' query parameter.

        Raises:
            CipherError: Empty signature, missing video_id when derivation
                         is needed, watch page/player fetch failure, no
                         jsUrl on the watch page, or a pipeline that
                         leaves nothing of the signature.
        """
        if not signature:
            raise CipherError("No signature provided")

        cached = self.cache.get(PIPELINE_CACHE_KEY)
        if isinstance(cached, CipherPipeline):
            try:
                result = cached.apply(signature)
            except CipherError as e:
                logger.warning(f"Cached cipher pipeline failed ({e.message}), re-deriving")
                self.cache.delete(PIPELINE_CACHE_KEY)
                self.stats["invalidated"] += 1
            else:
                self.stats["cache_hits"] += 1
                return result

        pipeline = await self.load_pipeline(video_id)
        return pipeline.apply(signature)

    async def load_pipeline(self, video_id: str | None) -> CipherPipeline:
        """
        Derive the pipeline for the current player build and cache it.

        Raises:
            CipherError: See decipher().
        """
        if not video_id:
            raise CipherError("A video ID is required to locate the player code")

        asset_url, player_code = await self._fetch_player_code(video_id)
        pipeline = self._resolve(asset_url, player_code)
        self.cache.set(PIPELINE_CACHE_KEY, pipeline, ttl=self.cipher_ttl)
        return pipeline

    def _resolve(self, asset_url: str, player_code: str) -> CipherPipeline:
        errors = []
        for resolver in self.resolvers:
            try:
                pipeline = resolver.resolve(player_code)
            except CipherError as e:
                errors.append(f"{resolver.version}: {e.message}")
                continue

            if pipeline.degraded:
                self.stats["fallback"] += 1
                log_cipher_fallback(logger, asset_url, "; ".join(errors) or "no derivation attempted")
            else:
                self.stats["derived"] += 1
                logger.debug(
                    f"Derived cipher pipeline ({len(pipeline.operations)} operations) "
                    f"from {asset_url}"
                )
            return pipeline

        raise CipherError(
            "No cipher pipeline could be resolved",
            details={"asset_url": asset_url, "errors": errors},
        )

    async def _fetch_player_code(self, video_id: str) -> tuple[str, str]:
        watch_html = await self._fetch_text(f"{self.watch_origin}/watch?v={video_id}")

        match = JS_URL_PATTERN.search(watch_html)
        if match is None:
            raise CipherError(
                "Could not find player URL in watch page",
                details={"video_id": video_id},
            )

        asset_url = match.group(1).replace("\\/", "/")
        if asset_url.startswith("//"):
            asset_url = f"https:{asset_url}"
        elif asset_url.startswith("/"):
            asset_url = f"{self.watch_origin}{asset_url}"

        return asset_url, await self._fetch_text(asset_url)

    async def _fetch_text(self, url: str) -> str:
        headers = {"User-Agent": DESKTOP_USER_AGENT, "Accept-Language": "en-US,en;q=0.9"}
        try:
            async with self._get_session().get(
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if not 200 <= response.status < 300:
                    raise CipherError(
                        f"Failed to fetch player code: HTTP {response.status}",
                        details={"url": url, "status": response.status},
                    )
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CipherError(
                f"Failed to fetch player code: {e or type(e).__name__}",
                details={"url": url, "original_error": str(e)},
            ) from e
