"""
web3.storage provider.

Writes go to the private HTTP API with the token as a Bearer credential;
reads go through a public gateway.
"""

import json
from typing import Any, AsyncIterator, List, Optional

import httpx
from loguru import logger

from ..config import WEB3_STORAGE_URL, BackendKind
from ..signals import AbortSignal
from ..transport import post_multipart, post_raw_body, with_password
from ..uri import W3S_LINK_URL, ContentURI
from .base import BaseProvider, URILike
from .gateway import GatewayProvider

CAR_CONTENT_TYPE = "application/vnd.ipld.car"


def roots_from_ndjson(text: str, key: str = "cid") -> List[ContentURI]:
    """Turn newline-delimited ``{"cid": ...}`` records into root URIs."""
    roots = []
    for line in text.split("\n"):
        if not line.strip():
            continue
        record = json.loads(line)
        roots.append(ContentURI("ipfs", record[key], "/"))
    return roots


class Web3StorageProvider(BaseProvider):
    """
    Remote pinning service at api.web3.storage.

    - ``POST /car``: raw CAR body, answers with one JSON record per root
    - ``POST /upload``: multipart file, answers with ``{"cid": ...}``
    """

    kind = BackendKind.WEB3_STORAGE

    def __init__(
        self,
        authorization: str,
        url: str = WEB3_STORAGE_URL,
        gateway_url: str = W3S_LINK_URL,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(client)
        self.authorization = authorization
        self.url = url
        self.gateway_url = gateway_url
        # Shares our client, so closing it is our job, not the gateway's
        self.gateway = GatewayProvider(gateway_url, client=self.client)

    def _endpoint(self, path: str) -> str:
        return with_password(f"{self.url.rstrip('/')}/{path.lstrip('/')}", self.authorization)

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

    async def upload_car(self, content: Any, signal: Optional[AbortSignal] = None) -> List[ContentURI]:
        response = await post_raw_body(
            self.client,
            self._endpoint("/car"),
            content,
            content_type=CAR_CONTENT_TYPE,
            signal=signal
        )
        roots = roots_from_ndjson(response.text)
        logger.info(f"Uploaded CAR to web3.storage with {len(roots)} root(s)")
        return roots

    async def upload_file(
        self,
        content: Any,
        file_name: Optional[str] = None,
        signal: Optional[AbortSignal] = None
    ) -> ContentURI:
        response = await post_multipart(
            self.client,
            self._endpoint("/upload"),
            content,
            file_name=file_name,
            signal=signal
        )
        cid = response.json()["cid"]
        logger.info(f"Uploaded file to web3.storage: {cid}")
        return ContentURI("ipfs", cid, "/")
