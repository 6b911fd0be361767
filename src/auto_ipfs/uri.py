"""
Content URI model for ipfs:// and ipns:// identifiers.

Both the authority form (``ipfs://<cid>/path``) and the path form
(``ipfs:/<cid>/path``) are accepted and parse to the same ContentURI.
A query string or fragment is not part of the content address and is
dropped; the scheme, cid and path round-trip through the string form.
"""

from dataclasses import dataclass
from typing import Union
from urllib.parse import urlsplit

from .exceptions import MalformedURIError

W3S_LINK_URL = "https://w3s.link/"
DEFAULT_GATEWAY = W3S_LINK_URL


@dataclass(frozen=True)
class ContentURI:
    """
    Immutable (scheme, cid, path) triple addressing content-addressed data.

    The path always starts with ``/``; an empty path is stored as ``/``.
    """

    scheme: str
    cid: str
    path: str = "/"

    def __post_init__(self):
        if not self.path.startswith("/"):
            object.__setattr__(self, "path", "/" + self.path)

    @classmethod
    def parse(cls, uri: Union[str, "ContentURI"]) -> "ContentURI":
        """Parse a URI string. ContentURI instances are returned unchanged."""
        if isinstance(uri, ContentURI):
            return uri
        return parse_uri(uri)

    def __str__(self) -> str:
        return f"{self.scheme}://{self.cid}{self.path}"


def parse_uri(uri: str) -> ContentURI:
    """
    Split a content URI into scheme, cid and path.

    Args:
        uri: ``scheme://cid/path`` or ``scheme:/cid/path``

    Returns:
        The parsed ContentURI

    Raises:
        MalformedURIError: If the string has no scheme or no usable cid
    """
    if not isinstance(uri, str) or not uri.strip():
        raise MalformedURIError(str(uri), "empty identifier")

    try:
        parts = urlsplit(uri.strip())
    except ValueError as e:
        raise MalformedURIError(uri, str(e)) from e

    scheme = parts.scheme.lower()
    if not scheme:
        raise MalformedURIError(uri, "missing scheme")

    # query and fragment are dropped
    # netloc keeps the case of CIDv0 identifiers, hostname would lowercase it
    authority = parts.netloc.rpartition("@")[2]
    if authority:
        return ContentURI(scheme=scheme, cid=authority, path=parts.path or "/")

    cid, _, rest = parts.path.lstrip("/").partition("/")
    if not cid:
        raise MalformedURIError(uri, "no authority and no cid segment")
    return ContentURI(scheme=scheme, cid=cid, path="/" + rest)


def to_gateway_url(uri: Union[str, ContentURI], gateway_url: str = DEFAULT_GATEWAY) -> str:
    """
    Build the HTTP gateway URL for a content URI.

    Args:
        uri: Content URI or its string form
        gateway_url: Gateway base URL, e.g. ``https://w3s.link/``

    Returns:
        ``<gateway>/<scheme>/<cid><path>``
    """
    content = ContentURI.parse(uri)
    return f"{gateway_url.rstrip('/')}/{content.scheme}/{content.cid}{content.path}"
