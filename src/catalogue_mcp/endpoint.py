"""Server endpoints and the transport security gate."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Set
from urllib.parse import urlsplit

from .exceptions import InvalidEndpointError, SecurityPolicyError

logger = logging.getLogger(__name__)


class TransportType(str, Enum):
    """Supported transports."""
    HTTP = "http"            # request/response
    WEBSOCKET = "websocket"  # persistent socket


# scheme -> transport
SECURE_SCHEMES: Dict[str, TransportType] = {
    "https": TransportType.HTTP,
    "wss": TransportType.WEBSOCKET,
}

# insecure scheme -> secure variant
INSECURE_SCHEMES: Dict[str, str] = {
    "http": "https",
    "ws": "wss",
}

DEFAULT_PORTS = {"http": 80, "ws": 80, "https": 443, "wss": 443}

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}

_SCHEME_LABELS = {"http": "HTTP", "https": "HTTPS", "ws": "WebSocket", "wss": "WSS"}


@dataclass(frozen=True)
class ServerEndpoint:
    """An address (scheme + host + port, optional path and query) identifying a server."""
    scheme: str
    host: str
    port: Optional[int]
    path: str = ""
    query: str = ""

    @classmethod
    def parse(cls, url: str) -> "ServerEndpoint":
        """Parse a URL, raising InvalidEndpointError when it is malformed."""
        if not isinstance(url, str) or not url.strip():
            raise InvalidEndpointError("Endpoint URL must be a non-empty string", endpoint=str(url))

        parts = urlsplit(url.strip())
        if not parts.scheme or "://" not in url:
            raise InvalidEndpointError(f"Endpoint URL has no scheme: {url}", endpoint=url)
        if not parts.hostname:
            raise InvalidEndpointError(f"Endpoint URL has no host: {url}", endpoint=url)
        try:
            port = parts.port
        except ValueError as e:
            raise InvalidEndpointError(f"Invalid port in endpoint URL {url}: {e}", endpoint=url) from e

        return cls(
            scheme=parts.scheme.lower(),
            host=parts.hostname.lower(),
            port=port,
            path=parts.path.rstrip("/"),
            query=parts.query,
        )

    @property
    def effective_port(self) -> Optional[int]:
        return self.port if self.port is not None else DEFAULT_PORTS.get(self.scheme)

    @property
    def origin(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port is None:
            return f"{self.scheme}://{host}"
        return f"{self.scheme}://{host}:{self.port}"

    @property
    def canonical_origin(self) -> str:
        """Origin with the scheme default port made explicit."""
        if self.effective_port is None:
            return self.origin
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.scheme}://{host}:{self.effective_port}"

    @property
    def url(self) -> str:
        return f"{self.origin}{self.path}{self._query_suffix}"

    @property
    def _query_suffix(self) -> str:
        return f"?{self.query}" if self.query else ""

    @property
    def is_secure(self) -> bool:
        return self.scheme in SECURE_SCHEMES

    @property
    def transport(self) -> Optional[TransportType]:
        if self.scheme in SECURE_SCHEMES:
            return SECURE_SCHEMES[self.scheme]
        secure_variant = INSECURE_SCHEMES.get(self.scheme)
        if secure_variant:
            return SECURE_SCHEMES[secure_variant]
        return None

    @property
    def display_name(self) -> str:
        """Name derived from the address when the server does not report one."""
        if self.host in LOOPBACK_HOSTS:
            return f"MCP Server :{self.effective_port}"
        if self.host.startswith("www."):
            return self.host[4:]
        return self.host

    def join(self, path: str) -> str:
        base = f"{self.origin}{self.path}"
        if not path or path == "/":
            return f"{base}/{self._query_suffix}"
        return f"{base}/{path.lstrip('/')}{self._query_suffix}"

    def __str__(self) -> str:
        return self.url


class EndpointPolicy:
    """Security gate: only HTTPS and WSS, plus an explicit insecure allow-list."""

    def __init__(self, allowed_insecure_urls: Optional[Iterable[str]] = None):
        self._allowed_origins: Set[str] = set()
        for url in allowed_insecure_urls or []:
            try:
                self._allowed_origins.add(ServerEndpoint.parse(url).canonical_origin)
            except InvalidEndpointError:
                logger.warning(f"Ignoring malformed entry in insecure allow-list: {url}")

    def is_allowed_insecure(self, endpoint: ServerEndpoint) -> bool:
        return endpoint.canonical_origin in self._allowed_origins

    def check(self, endpoint: ServerEndpoint) -> None:
        """Raise SecurityPolicyError unless the endpoint may be contacted."""
        if endpoint.is_secure:
            return

        secure_variant = INSECURE_SCHEMES.get(endpoint.scheme)
        if secure_variant is None:
            raise SecurityPolicyError(
                f"Unsupported protocol: {endpoint.scheme}. Only HTTPS and WSS are allowed.",
                endpoint=endpoint.url,
                scheme=endpoint.scheme
            )

        if self.is_allowed_insecure(endpoint):
            logger.warning(f"Insecure protocol {endpoint.scheme} allowed by configuration for {endpoint.origin}")
            return

        raise SecurityPolicyError(
            f"Insecure {_SCHEME_LABELS[endpoint.scheme]} protocol not allowed. "
            f"Use {_SCHEME_LABELS[secure_variant]} instead.",
            endpoint=endpoint.url,
            scheme=endpoint.scheme
        )
