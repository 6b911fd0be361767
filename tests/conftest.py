"""
Test fixtures for auto-ipfs.

Every backend is faked in memory behind one httpx.MockTransport handler,
so no test touches the network:

- Kubo daemon RPC API on localhost:9090 (and optionally an embedded daemon
  on one of the well-known local ports)
- web3.storage and Estuary APIs
- the w3s.link gateway
- native ``ipfs://`` requests (Agregore)

All services share one content store, so content uploaded to a pinning
service can be read back through the gateway.
"""

import hashlib
import json
import re
from typing import Dict, Optional, Set, Tuple
from urllib.parse import unquote

import httpx
import pytest

EXAMPLE_DATA = "Hello World"

# CARv1 with a single raw block holding "Hello World"
EXAMPLE_CAR = bytes([
    58, 162, 101, 114, 111, 111, 116, 115, 129, 216, 42, 88, 37, 0, 1, 85, 18, 32, 165, 145, 166,
    212, 11, 244, 32, 64, 74, 1, 23, 51, 207, 183, 177, 144, 214, 44, 101, 191, 11, 205, 163, 43,
    87, 178, 119, 217, 173, 159, 20, 110, 103, 118, 101, 114, 115, 105, 111, 110, 1, 47, 1, 85, 18,
    32, 165, 145, 166, 212, 11, 244, 32, 64, 74, 1, 23, 51, 207, 183, 177, 144, 214, 44, 101, 191,
    11, 205, 163, 43, 87, 178, 119, 217, 173, 159, 20, 110, 72, 101, 108, 108, 111, 32, 87, 111,
    114, 108, 100,
])
EXAMPLE_ROOT_CID = "bafkreiffsgtnic7uebaeuaixgph3pmmq2ywglpylzwrswv5so7m23hyuny"
EXAMPLE_URL = f"ipfs://{EXAMPLE_ROOT_CID}/"

DAEMON_URL = "http://localhost:9090/"
WEB3_TOKEN = "web3-secret"
ESTUARY_TOKEN = "estuary-secret"


def fake_cid(data: bytes, prefix: str = "bafkrei") -> str:
    return prefix + hashlib.sha256(data).hexdigest()[:40]


def parse_multipart(request: httpx.Request) -> Tuple[str, Optional[str], bytes]:
    """Return (field name, file name, data) of the single part in a form body."""
    boundary = request.headers["Content-Type"].split("boundary=")[1].strip('"').encode()
    part = request.content.split(b"--" + boundary)[1]
    head, _, data = part.partition(b"\r\n\r\n")
    head_text = head.decode("utf-8")
    field = re.search(r'; name="([^"]*)"', head_text).group(1)
    filename = re.search(r'filename="([^"]*)"', head_text)
    return field, filename.group(1) if filename else None, data[:-2]


def rpc_error(message: str) -> httpx.Response:
    return httpx.Response(500, json={"Message": message, "Code": 0, "Type": "error"})


def ndjson(*records: Dict) -> str:
    return "".join(json.dumps(record) + "\n" for record in records)


class FakeIPFSNetwork:
    """
    In-memory stand-in for every backend auto-ipfs talks to.

    Attributes:
        files: ``/ipfs/<cid>[/<name>]`` -> file bytes
        cars: root cid -> CAR bytes it was imported from
        raw_blocks: cids imported from CARs (no UnixFS file stat)
        pins: pinned cids on the daemon
        requests: every request seen, in order
    """

    def __init__(
        self,
        daemon_hosts: Optional[Set[str]] = None,
        agregore: bool = False,
        embedded_port: Optional[int] = None,
    ):
        self.daemon_hosts = {"localhost:9090"} if daemon_hosts is None else set(daemon_hosts)
        if embedded_port is not None:
            self.daemon_hosts.add(f"localhost:{embedded_port}")
        self.agregore = agregore

        self.files: Dict[str, bytes] = {}
        self.cars: Dict[str, bytes] = {}
        self.raw_blocks: Set[str] = set()
        self.pins: Set[str] = set()
        self.requests = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport())

    # -- shared store --

    def add_file(self, data: bytes) -> str:
        cid = fake_cid(data)
        self.files[f"/ipfs/{cid}"] = data
        return cid

    def import_car(self, data: bytes) -> str:
        assert data == EXAMPLE_CAR, "only the example CAR is understood"
        self.files[f"/ipfs/{EXAMPLE_ROOT_CID}"] = EXAMPLE_DATA.encode()
        self.cars[EXAMPLE_ROOT_CID] = data
        self.raw_blocks.add(EXAMPLE_ROOT_CID)
        return EXAMPLE_ROOT_CID

    def lookup(self, path: str) -> Optional[bytes]:
        return self.files.get(unquote(path).rstrip("/"))

    # -- dispatch --

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.netloc.decode("ascii")

        if request.url.scheme == "ipfs":
            if not self.agregore:
                raise httpx.UnsupportedProtocol("ipfs:// is not supported", request=request)
            return self.handle_agregore(request)
        if host in self.daemon_hosts:
            return self.handle_daemon(request)
        if host == "api.web3.storage":
            return self.handle_web3_storage(request)
        if host == "api.estuary.tech":
            return self.handle_estuary(request)
        if host == "w3s.link":
            return self.handle_gateway(request)
        raise httpx.ConnectError(f"Connection refused: {host}", request=request)

    # -- Kubo RPC --

    def handle_daemon(self, request: httpx.Request) -> httpx.Response:
        command = request.url.path[len("/api/v0/"):]
        params = request.url.params

        if command == "version":
            if request.method != "POST":
                return httpx.Response(405, text="405 - Method Not Allowed")
            return httpx.Response(200, json={"Version": "0.20.0"})

        if command == "add":
            _, filename, data = parse_multipart(request)
            cid = self.add_file(data)
            self.pins.add(cid)
            entry = {"Name": filename or cid, "Hash": cid, "Size": str(len(data))}
            if params.get("wrap-with-directory") != "true":
                return httpx.Response(200, text=ndjson(entry))
            dir_cid = fake_cid(f"{filename}:{cid}".encode(), prefix="bafybei")
            self.files[f"/ipfs/{dir_cid}/{filename}"] = data
            self.pins.add(dir_cid)
            return httpx.Response(200, text=ndjson(entry, {"Name": "", "Hash": dir_cid, "Size": "70"}))

        if command == "cat":
            data = self.lookup(params["arg"])
            if data is None:
                return rpc_error(f"no link named {params['arg']!r}")
            offset = int(params.get("offset", 0))
            length = params.get("length")
            end = offset + int(length) if length is not None else len(data)
            return httpx.Response(200, content=data[offset:end])

        if command == "files/stat":
            cid = params["arg"].split("/")[2]
            data = self.lookup(params["arg"])
            if data is None or cid in self.raw_blocks:
                return rpc_error("cid is not a UnixFS node")
            return httpx.Response(200, json={"Hash": cid, "Size": len(data), "Type": "file"})

        if command == "dag/stat":
            data = self.lookup(params["arg"])
            if data is None:
                return rpc_error("block not found")
            return httpx.Response(200, json={"TotalSize": len(data), "DagStats": []})

        if command == "dag/import":
            _, _, data = parse_multipart(request)
            root = self.import_car(data)
            self.pins.add(root)
            return httpx.Response(200, text=ndjson({"Root": {"Cid": {"/": root}, "PinErrorMsg": ""}}))

        if command == "dag/export":
            car = self.cars.get(params["arg"])
            if car is None:
                return rpc_error("block not found")
            return httpx.Response(200, content=car)

        if command == "block/get":
            data = self.lookup(f"/ipfs/{params['arg']}")
            if data is None:
                return rpc_error("block not found")
            return httpx.Response(200, content=data)

        if command == "pin/rm":
            cid = params["arg"].split("/")[2]
            if cid not in self.pins:
                return rpc_error("not pinned or pinned indirectly")
            self.pins.discard(cid)
            return httpx.Response(200, json={"Pins": [cid]})

        return httpx.Response(404, text=f"404 page not found: {command}")

    # -- remote pinning services --

    def handle_web3_storage(self, request: httpx.Request) -> httpx.Response:
        if request.headers.get("Authorization") != f"Bearer {WEB3_TOKEN}":
            return httpx.Response(401, json={"name": "Unauthorized", "message": "bad token"})
        if request.url.path == "/car":
            root = self.import_car(request.content)
            return httpx.Response(200, json={"cid": root})
        if request.url.path == "/upload":
            _, _, data = parse_multipart(request)
            return httpx.Response(200, json={"cid": self.add_file(data)})
        return httpx.Response(404)

    def handle_estuary(self, request: httpx.Request) -> httpx.Response:
        if request.headers.get("Authorization") != f"Bearer {ESTUARY_TOKEN}":
            return httpx.Response(401, json={"error": "ERR_INVALID_TOKEN"})
        if request.url.path == "/content/add":
            field, _, data = parse_multipart(request)
            if field != "data":
                return httpx.Response(400, json={"error": "missing data field"})
            cid = self.add_file(data)
            return httpx.Response(200, json={"cid": cid, "estuaryId": 1, "providers": []})
        return httpx.Response(404)

    # -- gateways --

    def serve_content(self, request: httpx.Request, path: str) -> httpx.Response:
        cid = path.split("/")[2]
        if request.headers.get("Accept") == "application/vnd.ipld.car":
            car = self.cars.get(cid)
            if car is None:
                return httpx.Response(404)
            return httpx.Response(200, content=car)

        data = self.lookup(path)
        if data is None:
            return httpx.Response(404, text="not found")
        if request.method == "HEAD":
            return httpx.Response(200, headers={"Content-Length": str(len(data))})

        match = re.fullmatch(r"bytes=(\d+)-(\d*)", request.headers.get("Range", ""))
        if match:
            start = int(match.group(1))
            end = int(match.group(2)) + 1 if match.group(2) else len(data)
            return httpx.Response(206, content=data[start:end])
        return httpx.Response(200, content=data)

    def handle_gateway(self, request: httpx.Request) -> httpx.Response:
        return self.serve_content(request, request.url.path)

    def handle_agregore(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if request.method == "POST":
            if request.headers.get("Content-Type") == "application/vnd.ipld.car":
                root = self.import_car(request.content)
                return httpx.Response(200, text=f"ipfs://{root}/")
            cid = self.add_file(request.content)
            return httpx.Response(201, headers={"Location": f"ipfs://{cid}/"})
        if host == "localhost":
            return httpx.Response(200, text="ok")
        return self.serve_content(request, f"/ipfs/{host}{request.url.path}")


@pytest.fixture
def network() -> FakeIPFSNetwork:
    """Fake network with a daemon on localhost:9090 only."""
    return FakeIPFSNetwork()


@pytest.fixture
def client(network: FakeIPFSNetwork) -> httpx.AsyncClient:
    return network.client()


@pytest.fixture
def example_sources():
    """Every shape of byte source an upload accepts, each holding EXAMPLE_DATA."""

    def make():
        async def async_chunks():
            yield b"Hello "
            yield "World"

        return [
            EXAMPLE_DATA.encode(),
            EXAMPLE_DATA,
            bytearray(EXAMPLE_DATA.encode()),
            async_chunks(),
            iter([b"Hello", b" ", b"World"]),
        ]

    return make
