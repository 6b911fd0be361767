"""
Byte source normalisation.

Uploads accept several shapes of content (bytes, text, blobs, file objects,
sync or async chunk iterators). This module turns them into the two shapes
the transport needs:

- ``to_stream``: a pull-based ByteStream (or the value itself when it is
  already materialised) for raw request bodies
- ``to_buffer``: a sized in-memory Blob for multipart form fields

ByteStream is the canonical streaming representation. Reading it requires
the exclusive reader lock, which ``drain_stream`` takes and always releases.
"""

import os
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Iterable,
    Optional,
    Union,
)

from loguru import logger

from .signals import AbortSignal, abortable

ByteChunk = Union[bytes, bytearray, memoryview, str]
CloseCallback = Callable[[], Awaitable[None]]

FILE_CHUNK_SIZE = 64 * 1024


class Blob:
    """Sized in-memory bytes with an optional file name and content type."""

    def __init__(
        self,
        data: ByteChunk = b"",
        name: Optional[str] = None,
        content_type: str = "application/octet-stream"
    ):
        self.data = _encode(data)
        self.name = name
        self.content_type = content_type

    @property
    def size(self) -> int:
        return len(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"Blob(size={self.size}, name={self.name!r})"


class ByteStream:
    """
    Pull-based async byte stream with an exclusive reader lock.

    Chunks are pulled from the wrapped iterator one at a time; text chunks
    are UTF-8 encoded and chunk order is preserved. ``aclose`` runs the
    optional close callback once, e.g. to close the HTTP response the
    stream was built from.
    """

    def __init__(
        self,
        source: AsyncIterable[ByteChunk],
        on_close: Optional[CloseCallback] = None
    ):
        self._iterator: AsyncIterator[ByteChunk] = source.__aiter__()
        self._on_close = on_close
        self._locked = False
        self._closed = False

    @property
    def locked(self) -> bool:
        """True while a reader holds the stream."""
        return self._locked

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def reader(self) -> AsyncIterator["StreamReader"]:
        """Acquire the exclusive reader lock for the duration of the block."""
        if self._locked:
            raise RuntimeError("ByteStream is already locked by another reader")
        self._locked = True
        try:
            yield StreamReader(self)
        finally:
            self._locked = False

    async def pull(self) -> Optional[bytes]:
        """Return the next chunk, or None once the stream is exhausted."""
        if self._closed:
            return None
        try:
            value = await self._iterator.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            return None
        return _encode(value)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._iterator, "aclose", None)
        if aclose is not None:
            await aclose()
        if self._on_close is not None:
            await self._on_close()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return drain_stream(self)


class StreamReader:
    """Handle returned by ``ByteStream.reader``; only valid inside that block."""

    def __init__(self, stream: ByteStream):
        self._stream = stream

    async def read(self) -> Optional[bytes]:
        return await self._stream.pull()


async def drain_stream(
    stream: ByteStream,
    signal: Optional[AbortSignal] = None
) -> AsyncIterator[bytes]:
    """
    Yield the chunks of a stream until it is exhausted.

    The reader lock is held while iterating and released on every exit path,
    including the consumer closing the generator early or the signal firing.

    Args:
        stream: Stream to read
        signal: Optional cancellation signal; when set, iteration raises
            OperationCancelledError

    Yields:
        Byte chunks in order
    """
    async with stream.reader() as reader:
        while True:
            chunk = await abortable(reader.read(), signal)
            if chunk is None:
                return
            yield chunk


def is_stream(content: Any) -> bool:
    return isinstance(content, ByteStream)


def is_async_iterable(content: Any) -> bool:
    return hasattr(content, "__aiter__")


def is_file_like(content: Any) -> bool:
    return callable(getattr(content, "read", None))


def is_chunk_iterable(content: Any) -> bool:
    """Sync iterables of chunks, but not bytes/str themselves."""
    if isinstance(content, (bytes, bytearray, memoryview, str, Blob)):
        return False
    return hasattr(content, "__iter__")


def source_name(content: Any) -> Optional[str]:
    """Return the file name a source carries (Blob or open file), if any."""
    name = getattr(content, "name", None)
    if isinstance(name, str) and name:
        return os.path.basename(name)
    return None


def iterator_to_stream(iterable: Union[AsyncIterable[ByteChunk], Iterable[ByteChunk]]) -> ByteStream:
    """Wrap a sync or async iterable of chunks in a ByteStream."""
    if is_async_iterable(iterable):
        return ByteStream(iterable)
    return ByteStream(_aiter_sync(iterable))


def file_to_stream(fileobj: Any, chunk_size: int = FILE_CHUNK_SIZE) -> ByteStream:
    """Wrap a readable file object in a ByteStream reading fixed-size chunks."""
    return ByteStream(_aiter_file(fileobj, chunk_size))


def to_stream(content: Any) -> Any:
    """
    Normalise content for use as a raw request body.

    Streams are returned unchanged; async/sync iterators and file objects
    are wrapped in a ByteStream; Blobs give their bytes; bytes and text are
    returned as-is for transports that accept a materialised body.
    """
    if is_stream(content):
        return content
    if isinstance(content, Blob):
        return content.data
    if isinstance(content, (bytes, str)):
        return content
    if isinstance(content, (bytearray, memoryview)):
        return bytes(content)
    if is_file_like(content):
        return file_to_stream(content)
    if is_async_iterable(content) or is_chunk_iterable(content):
        return iterator_to_stream(content)
    return content


async def to_buffer(content: Any, name: Optional[str] = None) -> Blob:
    """
    Normalise content into a sized in-memory Blob.

    Args:
        content: Any supported byte source
        name: File name to attach when the source carries none

    Returns:
        A Blob holding all of the content
    """
    if isinstance(content, Blob):
        return content
    name = name or source_name(content)
    if is_stream(content):
        return await stream_to_blob(content, name=name)
    if isinstance(content, (bytes, bytearray, memoryview, str)):
        return Blob(content, name=name)
    if is_file_like(content):
        return Blob(content.read(), name=name)
    if is_async_iterable(content) or is_chunk_iterable(content):
        return await stream_to_blob(iterator_to_stream(content), name=name)
    raise TypeError(f"Unsupported byte source: {type(content).__name__}")


async def stream_to_blob(stream: ByteStream, name: Optional[str] = None) -> Blob:
    """Drain a stream into a Blob."""
    data = await collect(drain_stream(stream))
    logger.debug(f"Buffered {len(data)} bytes from stream")
    return Blob(data, name=name)


async def collect(iterable: AsyncIterable[ByteChunk]) -> bytes:
    """Join every chunk of an async iterable into one bytes value."""
    chunks = []
    async for chunk in iterable:
        chunks.append(_encode(chunk))
    return b"".join(chunks)


def _encode(value: ByteChunk) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"Expected bytes or str chunk, got {type(value).__name__}")


async def _aiter_sync(iterable: Iterable[ByteChunk]) -> AsyncIterator[ByteChunk]:
    for chunk in iterable:
        yield chunk


async def _aiter_file(fileobj: Any, chunk_size: int) -> AsyncIterator[bytes]:
    while True:
        chunk = fileobj.read(chunk_size)
        if not chunk:
            return
        yield chunk
