"""
Backend contract shared by all providers.

Every provider exposes the same five operations (get, get_size,
upload_file, upload_car, clear) and a ``kind``. BaseProvider holds the
defaults: anything a provider does not override raises NotSupportedError.
The only thing a provider instance keeps is its bound configuration and
the HTTP client it talks through.
"""

from typing import (
    Any,
    AsyncIterator,
    List,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)

import httpx

from ..config import BackendKind
from ..exceptions import NotSupportedError
from ..signals import AbortSignal
from ..uri import ContentURI

URILike = Union[str, ContentURI]

# Uploads can take a while; only connecting is expected to be quick.
DEFAULT_HTTP_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


@runtime_checkable
class BackendClient(Protocol):
    """Uniform client interface every provider implements."""

    kind: BackendKind

    def get(
        self,
        uri: URILike,
        start: Optional[int] = None,
        end: Optional[int] = None,
        signal: Optional[AbortSignal] = None,
        format: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        ...

    async def get_size(self, uri: URILike, signal: Optional[AbortSignal] = None) -> int:
        ...

    async def upload_file(
        self,
        content: Any,
        file_name: Optional[str] = None,
        signal: Optional[AbortSignal] = None
    ) -> ContentURI:
        ...

    async def upload_car(self, content: Any, signal: Optional[AbortSignal] = None) -> List[ContentURI]:
        ...

    async def clear(self, uri: URILike, signal: Optional[AbortSignal] = None) -> None:
        ...


class BaseProvider:
    """Default implementations: every operation is unsupported until overridden."""

    kind: BackendKind

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT)

    async def get(
        self,
        uri: URILike,
        start: Optional[int] = None,
        end: Optional[int] = None,
        signal: Optional[AbortSignal] = None,
        format: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        """
        Stream the bytes behind a content URI.

        Args:
            uri: ipfs:// or ipns:// URI
            start: First byte offset, inclusive
            end: Last byte offset, inclusive
            signal: Optional abort signal
            format: IPLD format to negotiate (e.g. ``car``) instead of file bytes

        Yields:
            Byte chunks
        """
        raise NotSupportedError(self.kind.value, "get")
        yield b""  # pragma: no cover

    async def get_size(self, uri: URILike, signal: Optional[AbortSignal] = None) -> int:
        """Return the size in bytes of the content behind a URI."""
        raise NotSupportedError(self.kind.value, "get_size")

    async def upload_file(
        self,
        content: Any,
        file_name: Optional[str] = None,
        signal: Optional[AbortSignal] = None
    ) -> ContentURI:
        """
        Upload a single file.

        Args:
            content: bytes, str, Blob, file object or (async) iterator of chunks
            file_name: Name to store the file under, when the backend supports it
            signal: Optional abort signal

        Returns:
            URI of the uploaded content
        """
        raise NotSupportedError(self.kind.value, "upload_file")

    async def upload_car(self, content: Any, signal: Optional[AbortSignal] = None) -> List[ContentURI]:
        """
        Upload a CAR archive.

        Returns:
            One URI per root declared by the archive
        """
        raise NotSupportedError(self.kind.value, "upload_car")

    async def clear(self, uri: URILike, signal: Optional[AbortSignal] = None) -> None:
        """Unpin or remove previously uploaded content."""
        raise NotSupportedError(self.kind.value, "clear")

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind.value!r})"
