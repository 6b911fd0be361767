"""
HTTP helpers shared by the providers.

Credentials embedded in a URL's user-info are turned into an Authorization
header and stripped from the URL before it is sent or logged. Non-success
responses become HTTPError. Every helper takes the httpx.AsyncClient to use
and an optional abort signal.
"""

import base64
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote, unquote, urlsplit, urlunsplit

import httpx
from loguru import logger

from .exceptions import HTTPError, SizeUnavailableError
from .signals import AbortSignal, abortable
from .streams import ByteStream, to_buffer, to_stream

DEFAULT_FIELD_NAME = "file"
# What browsers name an unnamed blob in a multipart form
DEFAULT_PART_FILENAME = "blob"


def build_auth_header(url: Any) -> Tuple[str, Dict[str, str]]:
    """
    Move credentials from a URL's user-info into an Authorization header.

    ``user:pass@`` becomes Basic auth; a password with no username
    (``:token@``) becomes a Bearer token. The returned URL no longer
    carries the credential. URLs without a password are returned unchanged
    with no headers.

    Args:
        url: URL string or httpx.URL

    Returns:
        Tuple of (url without credentials, headers to add)
    """
    url = str(url)
    parts = urlsplit(url)
    if not parts.password:
        return url, {}

    host = parts.netloc.rpartition("@")[2]
    stripped = urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))
    password = unquote(parts.password)

    if parts.username:
        username = unquote(parts.username)
        encoded = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
        return stripped, {"Authorization": f"Basic {encoded}"}

    return stripped, {"Authorization": f"Bearer {password}"}


def with_password(url: str, password: Optional[str]) -> str:
    """Return ``url`` with ``password`` set as its user-info password."""
    if not password:
        return url
    parts = urlsplit(url)
    host = parts.netloc.rpartition("@")[2]
    userinfo = quote(password, safe="")
    return urlunsplit((parts.scheme, f":{userinfo}@{host}", parts.path, parts.query, parts.fragment))


async def check_error(response: httpx.Response) -> None:
    """
    Raise HTTPError unless the response status is 2xx.

    The body is read as raw text; no particular error shape is assumed.
    """
    if response.is_success:
        return
    try:
        await response.aread()
        body = response.text
    finally:
        await response.aclose()
    logger.debug(f"{response.request.method} {response.request.url} failed with {response.status_code}")
    raise HTTPError(response.status_code, body)


async def post_multipart(
    client: httpx.AsyncClient,
    url: Any,
    content: Any,
    file_name: Optional[str] = None,
    field_name: str = DEFAULT_FIELD_NAME,
    signal: Optional[AbortSignal] = None
) -> httpx.Response:
    """
    POST content as a single multipart/form-data file field.

    Args:
        client: HTTP client to use
        url: Target URL, may carry credentials in its user-info
        content: Any supported byte source, buffered to a Blob first
        file_name: File name for the form part
        field_name: Form field name
        signal: Optional abort signal

    Returns:
        The successful response
    """
    url, headers = build_auth_header(url)
    blob = await to_buffer(content, name=file_name)
    part_name = file_name or blob.name or DEFAULT_PART_FILENAME
    files = {field_name: (part_name, blob.data, blob.content_type)}

    logger.debug(f"POST multipart {url} ({blob.size} bytes as {field_name}={part_name!r})")
    response = await abortable(client.post(url, files=files, headers=headers), signal)
    await check_error(response)
    return response


async def post_raw_body(
    client: httpx.AsyncClient,
    url: Any,
    content: Any,
    content_type: str = "application/octet-stream",
    signal: Optional[AbortSignal] = None
) -> httpx.Response:
    """
    POST content as the raw request body, streaming it when possible.

    Args:
        client: HTTP client to use
        url: Target URL, may carry credentials in its user-info
        content: Any supported byte source
        content_type: Content-Type header for the body
        signal: Optional abort signal

    Returns:
        The successful response
    """
    url, headers = build_auth_header(url)
    headers["Content-Type"] = content_type
    body = to_stream(content)

    logger.debug(f"POST raw body {url} ({content_type})")
    response = await abortable(client.post(url, content=body, headers=headers), signal)
    await check_error(response)
    return response


def range_headers(start: Optional[int] = None, end: Optional[int] = None) -> Dict[str, str]:
    """Range header for an inclusive byte range; empty unless start is an int."""
    if not is_integer(start):
        return {}
    if is_integer(end):
        return {"Range": f"bytes={start}-{end}"}
    return {"Range": f"bytes={start}-"}


def format_headers(format: Optional[str] = None) -> Dict[str, str]:
    """Accept headers asking a gateway for an IPLD format such as ``car``."""
    if not format:
        return {}
    return {
        "Accept": f"application/vnd.ipld.{format}",
        "Cache-Control": "no-cache",
    }


async def ranged_get(
    client: httpx.AsyncClient,
    url: Any,
    start: Optional[int] = None,
    end: Optional[int] = None,
    format: Optional[str] = None,
    signal: Optional[AbortSignal] = None,
    headers: Optional[Dict[str, str]] = None
) -> ByteStream:
    """
    GET a URL, optionally restricted to a byte range, as a ByteStream.

    The Range header is set only when ``start`` is an integer; ``end`` is
    inclusive and optional. Extra ``headers`` are sent as given.

    Returns:
        A stream over the response body; closing it closes the response
    """
    url, auth_headers = build_auth_header(url)
    headers = {**(headers or {}), **auth_headers}
    headers.update(range_headers(start, end))
    headers.update(format_headers(format))

    logger.debug(f"GET {url} {headers.get('Range', '')}".rstrip())
    request = client.build_request("GET", url, headers=headers)
    return await send_streaming(client, request, signal=signal)


async def send_streaming(
    client: httpx.AsyncClient,
    request: httpx.Request,
    signal: Optional[AbortSignal] = None
) -> ByteStream:
    """Send a request without reading the body and wrap the body in a ByteStream."""
    response = await abortable(client.send(request, stream=True), signal)
    await check_error(response)
    return ByteStream(response.aiter_bytes(), on_close=response.aclose)


async def head_size(
    client: httpx.AsyncClient,
    url: Any,
    signal: Optional[AbortSignal] = None
) -> int:
    """
    Read the size of a resource from a HEAD request's Content-Length.

    Raises:
        SizeUnavailableError: If the header is missing or not a number
    """
    url, headers = build_auth_header(url)
    logger.debug(f"HEAD {url}")
    response = await abortable(client.head(url, headers=headers), signal)
    await check_error(response)

    length = response.headers.get("Content-Length")
    try:
        return int(length)
    except (TypeError, ValueError):
        raise SizeUnavailableError(url, length) from None


def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
