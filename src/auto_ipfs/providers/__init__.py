"""
Backend providers.

One provider per backend kind, all implementing the BackendClient protocol:
- Agregore (native ``ipfs://`` fetch)
- Kubo daemon (HTTP RPC API)
- web3.storage and Estuary (remote pinning services, reads via gateway)
- Public gateway (read-only)
"""

from .base import BackendClient, BaseProvider
from .agregore import AgregoreProvider
from .ipfs_daemon import DaemonProvider
from .web3_storage import Web3StorageProvider
from .estuary import EstuaryProvider
from .gateway import GatewayProvider

__all__ = [
    # Base Protocol
    'BackendClient',
    'BaseProvider',

    # Providers
    'AgregoreProvider',
    'DaemonProvider',
    'Web3StorageProvider',
    'EstuaryProvider',
    'GatewayProvider',
]
