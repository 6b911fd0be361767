"""
auto-ipfs: one IPFS client over whichever backend is available.

Detect the usable backends (native ``ipfs://`` fetch, a Kubo daemon,
web3.storage, Estuary or a public gateway), pick one by priority and use it
through the same five operations: get, get_size, upload_file, upload_car
and clear.
"""

from .config import (
    DEFAULT_PRIORITY,
    BackendDescriptor,
    BackendKind,
    DetectionConfig,
)
from .detection import CapabilityDetector, detect, get_default_detector
from .exceptions import (
    AutoIPFSError,
    HTTPError,
    MalformedURIError,
    NoBackendAvailableError,
    NotSupportedError,
    OperationCancelledError,
    SizeUnavailableError,
    UnknownBackendKindError,
)
from .providers import (
    AgregoreProvider,
    BackendClient,
    BaseProvider,
    DaemonProvider,
    EstuaryProvider,
    GatewayProvider,
    Web3StorageProvider,
)
from .selector import choose, choose_default, create, instantiate
from .signals import AbortSignal
from .streams import Blob, ByteStream, collect, drain_stream, to_buffer, to_stream
from .uri import ContentURI, parse_uri, to_gateway_url

__version__ = "0.1.0"
__all__ = [
    # Identifiers
    'ContentURI',
    'parse_uri',
    'to_gateway_url',

    # Streams
    'AbortSignal',
    'Blob',
    'ByteStream',
    'collect',
    'drain_stream',
    'to_buffer',
    'to_stream',

    # Configuration
    'BackendDescriptor',
    'BackendKind',
    'DetectionConfig',
    'DEFAULT_PRIORITY',

    # Providers
    'BackendClient',
    'BaseProvider',
    'AgregoreProvider',
    'DaemonProvider',
    'Web3StorageProvider',
    'EstuaryProvider',
    'GatewayProvider',

    # Detection and selection
    'CapabilityDetector',
    'detect',
    'get_default_detector',
    'choose',
    'choose_default',
    'create',
    'instantiate',

    # Errors
    'AutoIPFSError',
    'HTTPError',
    'MalformedURIError',
    'NoBackendAvailableError',
    'NotSupportedError',
    'OperationCancelledError',
    'SizeUnavailableError',
    'UnknownBackendKindError',
]
