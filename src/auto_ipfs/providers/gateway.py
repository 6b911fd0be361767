"""Read-only provider backed by a public HTTP gateway."""

from typing import AsyncIterator, Optional

import httpx
from loguru import logger

from ..config import BackendKind
from ..signals import AbortSignal
from ..streams import drain_stream
from ..transport import head_size, ranged_get
from ..uri import DEFAULT_GATEWAY, to_gateway_url
from .base import BaseProvider, URILike


class GatewayProvider(BaseProvider):
    """
    Reads content through ``<gateway>/<scheme>/<cid><path>``.

    Uploads and clear are not supported. The remote pinning services reuse
    this provider for their read path.
    """

    kind = BackendKind.READONLY

    def __init__(self, gateway_url: str = DEFAULT_GATEWAY, client: Optional[httpx.AsyncClient] = None):
        super().__init__(client)
        self.gateway_url = gateway_url

    async def get(
        self,
        uri: URILike,
        start: Optional[int] = None,
        end: Optional[int] = None,
        signal: Optional[AbortSignal] = None,
        format: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        url = to_gateway_url(uri, self.gateway_url)
        stream = await ranged_get(self.client, url, start=start, end=end, format=format, signal=signal)
        try:
            async for chunk in drain_stream(stream, signal=signal):
                yield chunk
        finally:
            await stream.aclose()

    async def get_size(self, uri: URILike, signal: Optional[AbortSignal] = None) -> int:
        url = to_gateway_url(uri, self.gateway_url)
        size = await head_size(self.client, url, signal=signal)
        logger.debug(f"Gateway size of {uri}: {size}")
        return size
