"""
Agregore provider: the ``ipfs://`` scheme is fetched natively.

The caller hands in an httpx.AsyncClient whose transport serves
``ipfs://`` URLs (for example one mounted with
``mounts={"ipfs://": transport}``); every operation is a plain request on
that scheme.
"""

from typing import Any, AsyncIterator, List, Optional

import httpx
from loguru import logger

from ..config import AGREGORE_URL, BackendKind
from ..exceptions import HTTPError
from ..signals import AbortSignal
from ..streams import drain_stream
from ..transport import head_size, post_raw_body, ranged_get
from ..uri import ContentURI, parse_uri
from .base import BaseProvider, URILike
from .web3_storage import CAR_CONTENT_TYPE


class AgregoreProvider(BaseProvider):
    """
    Uploads POST to the sentinel ``ipfs://localhost`` address.

    A file upload answers with the new URL in its ``Location`` header; a
    CAR upload answers with one root URL per line in the body.
    """

    kind = BackendKind.AGREGORE

    def __init__(self, client: Optional[httpx.AsyncClient] = None, url: str = AGREGORE_URL):
        super().__init__(client)
        self.url = url

    async def get(
        self,
        uri: URILike,
        start: Optional[int] = None,
        end: Optional[int] = None,
        signal: Optional[AbortSignal] = None,
        format: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        content = ContentURI.parse(uri)
        stream = await ranged_get(self.client, str(content), start=start, end=end, format=format, signal=signal)
        try:
            async for chunk in drain_stream(stream, signal=signal):
                yield chunk
        finally:
            await stream.aclose()

    async def get_size(self, uri: URILike, signal: Optional[AbortSignal] = None) -> int:
        return await head_size(self.client, str(ContentURI.parse(uri)), signal=signal)

    async def upload_car(self, content: Any, signal: Optional[AbortSignal] = None) -> List[ContentURI]:
        response = await post_raw_body(
            self.client,
            self.url,
            content,
            content_type=CAR_CONTENT_TYPE,
            signal=signal
        )
        roots = [parse_uri(line.strip()) for line in response.text.split("\n") if line.strip()]
        logger.info(f"Uploaded CAR through Agregore with {len(roots)} root(s)")
        return roots

    async def upload_file(
        self,
        content: Any,
        file_name: Optional[str] = None,
        signal: Optional[AbortSignal] = None
    ) -> ContentURI:
        """
        Agregore stores the bytes unnamed; ``file_name`` is ignored and the
        returned URI is the one named by the Location header.
        """
        response = await post_raw_body(self.client, self.url, content, signal=signal)
        location = response.headers.get("Location")
        if not location:
            raise HTTPError(response.status_code, f"No Location header in upload response: {response.text}")
        logger.info(f"Uploaded file through Agregore: {location}")
        return parse_uri(location)
