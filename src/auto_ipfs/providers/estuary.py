"""Estuary provider: file uploads only, reads through a gateway."""

from typing import Any, AsyncIterator, Optional

import httpx
from loguru import logger

from ..config import ESTUARY_URL, BackendKind
from ..signals import AbortSignal
from ..transport import post_multipart, with_password
from ..uri import W3S_LINK_URL, ContentURI
from .base import BaseProvider, URILike
from .gateway import GatewayProvider

# Estuary expects the file under "data" rather than "file"
ESTUARY_FIELD_NAME = "data"


class EstuaryProvider(BaseProvider):
    """
    Remote pinning service at api.estuary.tech.

    ``POST /content/add`` takes a multipart file and answers with a JSON
    object holding the new ``cid``. CAR uploads are not supported.
    """

    kind = BackendKind.ESTUARY

    def __init__(
        self,
        authorization: str,
        url: str = ESTUARY_URL,
        gateway_url: str = W3S_LINK_URL,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(client)
        self.authorization = authorization
        self.url = url
        self.gateway_url = gateway_url
        self.gateway = GatewayProvider(gateway_url, client=self.client)

    def get(
        self,
        uri: URILike,
        start: Optional[int] = None,
        end: Optional[int] = None,
        signal: Optional[AbortSignal] = None,
        format: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        return self.gateway.get(uri, start=start, end=end, signal=signal, format=format)

    async def get_size(self, uri: URILike, signal: Optional[AbortSignal] = None) -> int:
        return await self.gateway.get_size(uri, signal=signal)

    async def upload_file(
        self,
        content: Any,
        file_name: Optional[str] = None,
        signal: Optional[AbortSignal] = None
    ) -> ContentURI:
        url = with_password(f"{self.url.rstrip('/')}/content/add", self.authorization)
        response = await post_multipart(
            self.client,
            url,
            content,
            file_name=file_name,
            field_name=ESTUARY_FIELD_NAME,
            signal=signal
        )
        cid = response.json()["cid"]
        logger.info(f"Uploaded file to Estuary: {cid}")
        return ContentURI("ipfs", cid, "/")
