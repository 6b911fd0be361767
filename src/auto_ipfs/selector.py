"""
Backend selection: pick a detected backend and build its provider.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import httpx
from loguru import logger

from .config import DEFAULT_PRIORITY, BackendDescriptor, BackendKind
from .detection import CapabilityDetector, ConfigLike, get_default_detector
from .exceptions import NoBackendAvailableError, UnknownBackendKindError
from .providers import (
    AgregoreProvider,
    BaseProvider,
    DaemonProvider,
    EstuaryProvider,
    GatewayProvider,
    Web3StorageProvider,
)
from .uri import W3S_LINK_URL

KindLike = Union[BackendKind, str]
Factory = Callable[[BackendDescriptor, Optional[httpx.AsyncClient]], BaseProvider]

_FACTORIES: Dict[BackendKind, Factory] = {
    BackendKind.AGREGORE: lambda d, client: AgregoreProvider(client=client, url=d.url),
    BackendKind.DAEMON: lambda d, client: DaemonProvider(url=d.url, client=client),
    BackendKind.WEB3_STORAGE: lambda d, client: Web3StorageProvider(
        d.authorization or "",
        url=d.url,
        gateway_url=d.gateway_url or W3S_LINK_URL,
        client=client
    ),
    BackendKind.ESTUARY: lambda d, client: EstuaryProvider(
        d.authorization or "",
        url=d.url,
        gateway_url=d.gateway_url or W3S_LINK_URL,
        client=client
    ),
    BackendKind.READONLY: lambda d, client: GatewayProvider(d.gateway_url or d.url, client=client),
}


def choose_default(
    candidates: Sequence[BackendDescriptor],
    priority: Sequence[KindLike] = DEFAULT_PRIORITY
) -> BackendDescriptor:
    """
    Pick the highest-priority candidate.

    Candidates whose kind is not in ``priority`` are ignored. Ties keep the
    detection order.

    Args:
        candidates: Descriptors as returned by detection
        priority: Backend kinds, most preferred first

    Returns:
        The chosen descriptor

    Raises:
        NoBackendAvailableError: If no candidate matches the priority order
    """
    order: List[str] = [BackendKind(kind).value for kind in priority]
    ranked = sorted(
        (candidate for candidate in candidates if candidate.kind.value in order),
        key=lambda candidate: order.index(candidate.kind.value)
    )
    if not ranked:
        raise NoBackendAvailableError(
            f"No backend among {[str(c) for c in candidates]} matches priority {order}"
        )
    return ranked[0]


def instantiate(descriptor: BackendDescriptor, client: Optional[httpx.AsyncClient] = None) -> BaseProvider:
    """
    Build the provider a descriptor points at.

    Args:
        descriptor: Backend descriptor
        client: HTTP client to share; each provider creates its own when None

    Returns:
        A provider implementing the BackendClient operations

    Raises:
        UnknownBackendKindError: If the kind has no provider
    """
    factory = _FACTORIES.get(descriptor.kind)
    if factory is None:
        raise UnknownBackendKindError(str(descriptor.kind))
    return factory(descriptor, client)


def choose(
    selection: Union[BackendDescriptor, Dict[str, Any], str],
    client: Optional[httpx.AsyncClient] = None
) -> BaseProvider:
    """
    Instantiate a backend handed back by a UI or CLI.

    Args:
        selection: A descriptor, a dict of its fields or its JSON form
        client: HTTP client to share

    Returns:
        The provider for that backend
    """
    if isinstance(selection, BackendDescriptor):
        return instantiate(selection, client=client)

    data = json.loads(selection) if isinstance(selection, str) else dict(selection)
    kind = data.get("kind")
    if kind not in {member.value for member in BackendKind}:
        raise UnknownBackendKindError(str(kind))
    return instantiate(BackendDescriptor.model_validate(data), client=client)


async def create(
    config: ConfigLike = None,
    priority: Optional[Sequence[KindLike]] = None,
    detector: Optional[CapabilityDetector] = None
) -> BaseProvider:
    """
    Detect backends and return a provider for the preferred one.

    The provider shares the detector's HTTP client, so it must not outlive
    the detector.

    Args:
        config: Detection configuration (defaults when None)
        priority: Backend kinds, most preferred first
        detector: Detector to use; the process-wide one when None

    Returns:
        Provider for the chosen backend

    Raises:
        NoBackendAvailableError: If nothing usable was detected
    """
    detector = detector or get_default_detector()
    candidates = await detector.detect(config)
    descriptor = choose_default(candidates, priority or DEFAULT_PRIORITY)
    logger.info(f"Using backend: {descriptor}")
    return instantiate(descriptor, client=detector.client)


__all__ = [
    'choose_default',
    'instantiate',
    'choose',
    'create',
]
