"""
Configuration for backend detection and the backend descriptor model.

DetectionConfig lists what the detector should look for: a local daemon
endpoint, credentials for the remote pinning services, a public gateway and
whether to offer it as a read-only fallback. Every field has a default, so
``DetectionConfig()`` is a valid configuration.
"""

import os
from enum import Enum
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .uri import W3S_LINK_URL

BRAVE_PORTS = [45001, 45002, 45003, 45004, 45005]
WEB3_STORAGE_URL = "https://api.web3.storage/"
ESTUARY_URL = "https://api.estuary.tech/"
DEFAULT_DAEMON_API_URL = "http://localhost:9090/"
DEFAULT_TIMEOUT_MS = 1000
AGREGORE_URL = "ipfs://localhost"

ENV_PREFIX = "AUTO_IPFS_"


class BackendKind(str, Enum):
    """Kinds of backend a descriptor can point at."""
    AGREGORE = "agregore"
    DAEMON = "daemon"
    WEB3_STORAGE = "web3.storage"
    ESTUARY = "estuary"
    READONLY = "readonly"


DEFAULT_PRIORITY: List[BackendKind] = [
    BackendKind.AGREGORE,
    BackendKind.DAEMON,
    BackendKind.WEB3_STORAGE,
    BackendKind.ESTUARY,
    BackendKind.READONLY,
]


class BackendDescriptor(BaseModel):
    """
    Configuration for one detected backend.

    Holds no connection, only what is needed to build a provider for it.
    Descriptors serialise to JSON so a UI or CLI can hand a choice back.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    kind: BackendKind = Field(..., description="Which provider serves this backend")
    url: str = Field(..., description="API endpoint of the backend")
    authorization: Optional[str] = Field(
        default=None,
        description="Credential for remote pinning services"
    )
    gateway_url: Optional[str] = Field(
        default=None,
        description="Gateway used for reads by write-only services"
    )

    def __str__(self) -> str:
        return f"{self.kind.value} ({self.url})"


class DetectionConfig(BaseModel):
    """Options for CapabilityDetector.detect."""

    model_config = ConfigDict(validate_assignment=True)

    daemon_url: str = Field(
        default=DEFAULT_DAEMON_API_URL,
        description="Kubo daemon RPC API endpoint"
    )
    web3_storage_token: Optional[str] = Field(
        default=None,
        description="web3.storage API token; the service is offered when set"
    )
    web3_storage_url: str = Field(
        default=WEB3_STORAGE_URL,
        description="web3.storage API endpoint"
    )
    estuary_token: Optional[str] = Field(
        default=None,
        description="Estuary API token; the service is offered when set"
    )
    estuary_url: str = Field(
        default=ESTUARY_URL,
        description="Estuary API endpoint"
    )
    gateway_url: str = Field(
        default=W3S_LINK_URL,
        description="Public gateway for reads"
    )
    readonly: bool = Field(
        default=True,
        description="Offer the public gateway as a read-only fallback"
    )
    timeout: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        gt=0,
        description="Per-probe timeout in milliseconds"
    )
    embedded_ports: List[int] = Field(
        default_factory=lambda: list(BRAVE_PORTS),
        description="Local ports probed for an embedded (browser-bundled) daemon"
    )
    rewrite_origin: bool = Field(
        default=True,
        description="Rewrite the Origin header for requests to an embedded daemon"
    )

    @field_validator('daemon_url', 'web3_storage_url', 'estuary_url', 'gateway_url')
    @classmethod
    def validate_http_url(cls, v):
        """Endpoints must be http(s) URLs."""
        if not (v.startswith('http://') or v.startswith('https://')):
            raise ValueError(f"Expected an http(s) URL, got: {v}")
        return v

    @field_validator('embedded_ports')
    @classmethod
    def validate_ports(cls, v):
        for port in v:
            if not 0 < port < 65536:
                raise ValueError(f"Invalid port: {port}")
        return v

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000

    @classmethod
    def from_env(cls, **overrides: Any) -> "DetectionConfig":
        """
        Build a configuration from ``AUTO_IPFS_*`` environment variables.

        A ``.env`` file is loaded first if present. Keyword overrides that are
        not None win over the environment.

        Args:
            **overrides: Field values to use instead of the environment

        Returns:
            DetectionConfig built from environment and overrides
        """
        load_dotenv()

        values: Dict[str, Any] = {}
        for field in ("daemon_url", "web3_storage_token", "estuary_token", "gateway_url",
                      "readonly", "timeout"):
            raw = os.getenv(ENV_PREFIX + field.upper())
            if raw:
                values[field] = raw

        if "readonly" in values:
            values["readonly"] = values["readonly"].strip().lower() not in ("0", "false", "no", "off")

        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)
