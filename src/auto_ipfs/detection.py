"""
Backend capability detection.

``CapabilityDetector.detect`` probes every transport concurrently, each
probe bounded by its own timeout, and returns a descriptor for every
backend that answered or is configured. Unreachable backends are simply
absent from the result; detection only raises for invalid configuration.
"""

import asyncio
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlsplit

import httpx
from loguru import logger

from .config import (
    AGREGORE_URL,
    DEFAULT_TIMEOUT_MS,
    BackendDescriptor,
    BackendKind,
    DetectionConfig,
)
from .providers.base import DEFAULT_HTTP_TIMEOUT
from .transport import build_auth_header

ConfigLike = Union[DetectionConfig, Dict[str, Any], None]

DEFAULT_TIMEOUT = DEFAULT_TIMEOUT_MS / 1000


def _origin(url: str) -> str:
    parts = urlsplit(url)
    host = parts.netloc.rpartition("@")[2]
    return f"{parts.scheme}://{host}".lower()


class CapabilityDetector:
    """
    Finds which IPFS backends are usable from this process.

    The detector owns the HTTP client its probes go through, and the
    one-time Origin rewrite hook for an embedded daemon is installed on
    that client. Providers built by ``auto_ipfs.create`` share the client so
    the hook applies to them too.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the detector.

        Args:
            client: HTTP client to probe with. Give it an ``ipfs://`` transport
                mount to make the Agregore backend detectable.
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT)
        self._origin_rewrite_url: Optional[str] = None

    @property
    def origin_rewrite_installed(self) -> bool:
        return self._origin_rewrite_url is not None

    async def detect(self, config: ConfigLike = None) -> List[BackendDescriptor]:
        """
        Probe all backends and list the usable ones.

        Order of the result: agregore, embedded daemon, configured daemon,
        web3.storage, estuary, readonly gateway.

        Args:
            config: DetectionConfig or a dict of its fields (defaults when None)

        Returns:
            Descriptors of the detected backends, possibly empty

        Raises:
            pydantic.ValidationError: If the configuration is invalid
        """
        if config is None:
            config = DetectionConfig()
        elif isinstance(config, dict):
            config = DetectionConfig(**config)

        timeout = config.timeout_seconds
        has_agregore, embedded_url, has_daemon = await asyncio.gather(
            self.detect_agregore(timeout=timeout),
            self.detect_embedded_daemon(
                config.embedded_ports,
                timeout=timeout,
                rewrite_origin=config.rewrite_origin
            ),
            self.detect_daemon(config.daemon_url, timeout=timeout),
        )

        options: List[BackendDescriptor] = []

        if has_agregore:
            options.append(BackendDescriptor(kind=BackendKind.AGREGORE, url=AGREGORE_URL))

        if embedded_url:
            options.append(BackendDescriptor(kind=BackendKind.DAEMON, url=embedded_url))

        if has_daemon and _origin(config.daemon_url) != _origin(embedded_url or ""):
            options.append(BackendDescriptor(kind=BackendKind.DAEMON, url=config.daemon_url))

        # A configured credential is enough, these services are not probed
        if config.web3_storage_token:
            options.append(BackendDescriptor(
                kind=BackendKind.WEB3_STORAGE,
                url=config.web3_storage_url,
                authorization=config.web3_storage_token,
                gateway_url=config.gateway_url
            ))

        if config.estuary_token:
            options.append(BackendDescriptor(
                kind=BackendKind.ESTUARY,
                url=config.estuary_url,
                authorization=config.estuary_token,
                gateway_url=config.gateway_url
            ))

        if config.readonly:
            options.append(BackendDescriptor(
                kind=BackendKind.READONLY,
                url=config.gateway_url,
                gateway_url=config.gateway_url
            ))

        logger.info(f"Detected backends: {[str(option) for option in options]}")
        return options

    async def detect_agregore(self, timeout: float = DEFAULT_TIMEOUT) -> bool:
        """
        Check whether ``ipfs://`` URLs can be fetched natively.

        Any response counts; only a transport error (including an
        unsupported scheme) or a timeout means absent.
        """
        try:
            await asyncio.wait_for(self.client.get(AGREGORE_URL), timeout)
            return True
        except Exception as e:
            logger.debug(f"Agregore fetch unavailable: {e!r}")
            return False

    async def detect_daemon(self, url: str, timeout: float = DEFAULT_TIMEOUT) -> bool:
        """
        Check for a Kubo daemon by asking for its version.

        A 405 (Method Not Allowed) also means a daemon is listening: Kubo
        only accepts POST on its RPC API.

        Args:
            url: Daemon API base URL
            timeout: Seconds to wait for an answer

        Returns:
            True if a daemon answered
        """
        version_url, headers = build_auth_header(f"{url.rstrip('/')}/api/v0/version")
        try:
            response = await asyncio.wait_for(self.client.get(version_url, headers=headers), timeout)
        except Exception as e:
            logger.debug(f"No daemon at {version_url}: {e!r}")
            return False

        if response.is_success or response.status_code == 405:
            logger.debug(f"Found daemon at {url} (status {response.status_code})")
            return True
        logger.debug(f"Daemon probe at {url} answered {response.status_code}")
        return False

    async def detect_embedded_daemon(
        self,
        ports: List[int],
        timeout: float = DEFAULT_TIMEOUT,
        rewrite_origin: bool = True
    ) -> Optional[str]:
        """
        Race version checks against the well-known local ports.

        The first port that answers wins and the remaining probes are
        cancelled. On success the Origin rewrite hook is installed (once)
        when ``rewrite_origin`` is set.

        Args:
            ports: Local ports to try
            timeout: Seconds each port probe may take
            rewrite_origin: Install the Origin rewrite hook for the winner

        Returns:
            Base URL of the embedded daemon, or None
        """
        candidates = [f"http://localhost:{port}/" for port in ports]
        if not candidates:
            return None

        async def probe(candidate: str) -> Optional[str]:
            if await self.detect_daemon(candidate, timeout=timeout):
                return candidate
            return None

        tasks = [asyncio.ensure_future(probe(candidate)) for candidate in candidates]
        found = None
        try:
            for next_done in asyncio.as_completed(tasks):
                found = await next_done
                if found:
                    break
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        if not found:
            return None

        logger.info(f"Found embedded daemon at {found}")
        if rewrite_origin:
            self.install_origin_rewrite(found)
        return found

    def install_origin_rewrite(self, api_url: str) -> bool:
        """
        Make requests to ``api_url`` carry that URL's own origin.

        Installed at most once per detector; later calls do nothing.

        Returns:
            True if the hook was installed by this call
        """
        if self._origin_rewrite_url is not None:
            return False

        origin = _origin(api_url)

        async def rewrite_origin(request: httpx.Request) -> None:
            if _origin(str(request.url)) == origin:
                request.headers["Origin"] = origin

        self.client.event_hooks["request"].append(rewrite_origin)
        self._origin_rewrite_url = api_url
        logger.debug(f"Rewriting Origin header for requests to {origin}")
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()


_DETECTOR: Optional[CapabilityDetector] = None


def get_default_detector() -> CapabilityDetector:
    """Return the process-wide detector, creating it on first use."""
    global _DETECTOR
    if _DETECTOR is None:
        _DETECTOR = CapabilityDetector()
    return _DETECTOR


async def detect(config: ConfigLike = None) -> List[BackendDescriptor]:
    """Detect backends with the process-wide detector."""
    return await get_default_detector().detect(config)
