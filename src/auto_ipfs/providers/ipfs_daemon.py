"""
Local Kubo daemon provider.

Talks to the daemon's RPC API: every call is a POST to ``/api/v0/<command>``
with its arguments in the query string. Responses are either a single JSON
object or newline-delimited JSON records.
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote, unquote

import httpx
from loguru import logger

from ..config import DEFAULT_DAEMON_API_URL, BackendKind
from ..exceptions import HTTPError, NotSupportedError, SizeUnavailableError
from ..signals import AbortSignal, abortable
from ..streams import drain_stream, source_name
from ..transport import build_auth_header, check_error, is_integer, post_multipart, send_streaming
from ..uri import ContentURI
from .base import BaseProvider, URILike

ADD_PARAMS = {
    "cid-version": "1",
    "inline": "true",
    "raw-leaves": "true",
    "pin": "true",
}
IMPORT_PARAMS = {
    "allow-big-block": "true",
    "pin-roots": "true",
}
# format -> RPC command returning the raw encoded form of a CID
FORMAT_COMMANDS = {
    "car": "dag/export",
    "raw": "block/get",
}


def parse_ndjson(text: str) -> List[Dict[str, Any]]:
    """Parse newline-delimited JSON, skipping blank lines."""
    return [json.loads(line) for line in text.split("\n") if line.strip()]


class DaemonProvider(BaseProvider):
    """
    Provider for a Kubo (go-ipfs) daemon reachable over HTTP.

    Uploads are pinned. A file with a known name is wrapped in a directory
    so the returned URI addresses ``ipfs://<dir>/<name>``. Nothing is
    unpinned automatically when an upload fails; call ``clear``.
    """

    kind = BackendKind.DAEMON

    def __init__(self, url: str = DEFAULT_DAEMON_API_URL, client: Optional[httpx.AsyncClient] = None):
        super().__init__(client)
        self.url = url

    def _api_url(self, command: str, params: Optional[Dict[str, Any]] = None) -> str:
        return str(httpx.URL(f"{self.url.rstrip('/')}/api/v0/{command}", params=params or {}))

    async def _call(
        self,
        command: str,
        params: Dict[str, Any],
        signal: Optional[AbortSignal] = None
    ) -> httpx.Response:
        url, headers = build_auth_header(self._api_url(command, params))
        logger.debug(f"Daemon RPC {command} {params}")
        response = await abortable(self.client.post(url, headers=headers), signal)
        await check_error(response)
        return response

    @staticmethod
    def _ipfs_path(uri: ContentURI) -> str:
        return f"/{uri.scheme}/{uri.cid}{unquote(uri.path)}"

    async def get(
        self,
        uri: URILike,
        start: Optional[int] = None,
        end: Optional[int] = None,
        signal: Optional[AbortSignal] = None,
        format: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        content = ContentURI.parse(uri)

        if format:
            command = FORMAT_COMMANDS.get(format)
            if command is None:
                raise NotSupportedError(self.kind.value, f"get(format={format!r})")
            params: Dict[str, Any] = {"arg": content.cid}
        else:
            command = "cat"
            params = {"arg": self._ipfs_path(content)}
            if is_integer(start):
                params["offset"] = start
                # end is inclusive, like a Range header; without a start there is no range
                if is_integer(end):
                    params["length"] = end - start + 1

        url, headers = build_auth_header(self._api_url(command, params))
        request = self.client.build_request("POST", url, headers=headers)
        stream = await send_streaming(self.client, request, signal=signal)
        try:
            async for chunk in drain_stream(stream, signal=signal):
                yield chunk
        finally:
            await stream.aclose()

    async def get_size(self, uri: URILike, signal: Optional[AbortSignal] = None) -> int:
        content = ContentURI.parse(uri)
        path = self._ipfs_path(content)

        try:
            response = await self._call("files/stat", {"arg": path}, signal=signal)
            size = response.json().get("Size")
            if not is_integer(size):
                raise SizeUnavailableError(path, size)
            return size
        except (HTTPError, SizeUnavailableError) as e:
            # Raw blocks and other non-UnixFS nodes have no file stat
            logger.warning(f"files/stat failed for {content} ({e}), falling back to dag/stat")

        response = await self._call("dag/stat", {"arg": path, "progress": "false"}, signal=signal)
        records = parse_ndjson(response.text)
        stats = records[-1] if records else {}
        size = stats.get("TotalSize", stats.get("Size"))
        if not is_integer(size):
            raise SizeUnavailableError(path, size)
        return size

    async def upload_file(
        self,
        content: Any,
        file_name: Optional[str] = None,
        signal: Optional[AbortSignal] = None
    ) -> ContentURI:
        name = file_name or source_name(content)
        params = dict(ADD_PARAMS)
        if name:
            params["wrap-with-directory"] = "true"

        response = await post_multipart(
            self.client,
            self._api_url("add", params),
            content,
            file_name=name,
            signal=signal
        )
        entries = parse_ndjson(response.text)
        if not entries:
            raise HTTPError(response.status_code, "Empty add response")

        if name:
            # The wrapping directory is the entry without a name
            wrapper = next((entry for entry in entries if entry.get("Name") == ""), entries[-1])
            uri = ContentURI("ipfs", wrapper["Hash"], "/" + quote(name))
        else:
            uri = ContentURI("ipfs", entries[0]["Hash"], "/")

        logger.info(f"Added file to daemon: {uri}")
        return uri

    async def upload_car(self, content: Any, signal: Optional[AbortSignal] = None) -> List[ContentURI]:
        response = await post_multipart(
            self.client,
            self._api_url("dag/import", IMPORT_PARAMS),
            content,
            signal=signal
        )
        roots = [
            ContentURI("ipfs", record["Root"]["Cid"]["/"], "/")
            for record in parse_ndjson(response.text)
            if "Root" in record
        ]
        logger.info(f"Imported CAR into daemon with {len(roots)} root(s)")
        return roots

    async def clear(self, uri: URILike, signal: Optional[AbortSignal] = None) -> None:
        content = ContentURI.parse(uri)
        await self._call("pin/rm", {"arg": f"/{content.scheme}/{content.cid}"}, signal=signal)
        logger.info(f"Unpinned {content.cid} from daemon")
