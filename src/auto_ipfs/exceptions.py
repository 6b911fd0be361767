"""
Exceptions raised by auto-ipfs.

Every error the library raises on purpose derives from AutoIPFSError so
callers can catch the whole family at once. Transport failures coming from
httpx (connection refused, timeouts) are not wrapped.
"""

from typing import Optional


class AutoIPFSError(Exception):
    """Base class for all auto-ipfs errors."""


class MalformedURIError(AutoIPFSError, ValueError):
    """The string is not a usable ipfs:// or ipns:// identifier."""

    def __init__(self, uri: str, reason: str = "not a valid content URI"):
        self.uri = uri
        self.reason = reason
        super().__init__(f"Malformed URI {uri!r}: {reason}")


class HTTPError(AutoIPFSError):
    """
    A backend answered with a non-success status.

    Attributes:
        status: HTTP status code of the response
        body: Raw response text, no particular shape is assumed
    """

    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"HTTP Error {status}: {body}")


class SizeUnavailableError(AutoIPFSError):
    """The backend did not report a usable content length."""

    def __init__(self, url: str, value: Optional[str] = None):
        self.url = url
        self.value = value
        super().__init__(f"No usable size for {url} (got {value!r})")


class NotSupportedError(AutoIPFSError, NotImplementedError):
    """The operation has no meaning for this kind of backend."""

    def __init__(self, kind: str, operation: str):
        self.kind = kind
        self.operation = operation
        super().__init__(f"{operation} is not supported by the {kind} backend")


class NoBackendAvailableError(AutoIPFSError):
    """Selection found no detected backend matching the priority order."""


class UnknownBackendKindError(AutoIPFSError):
    """A backend descriptor names a kind that has no provider."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown backend kind: {kind!r}")


class OperationCancelledError(AutoIPFSError):
    """The operation was aborted through its cancellation signal."""
