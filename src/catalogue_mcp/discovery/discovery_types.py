"""Discovery data types."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..config import DEFAULT_PORT_CANDIDATES, DiscoveryConfig
from ..exceptions import ConfigurationError
from ..models import ServerInfo


class ServerCategory(str, Enum):
    """Closed set of categories a discovered server is classified into."""
    DOCUMENTATION = "documentation"
    CODE_ANALYSIS = "code-analysis"
    PROJECT_MANAGEMENT = "project-management"
    FILESYSTEM = "filesystem"
    DATABASE = "database"
    WEB = "web"
    AI = "ai"
    OTHER = "other"


@dataclass
class DiscoveryOptions:
    """Options for a single discovery run."""
    timeout: float = 10.0
    concurrency: int = 3
    include_loopback: bool = True
    port_candidates: List[int] = field(default_factory=lambda: list(DEFAULT_PORT_CANDIDATES))

    @classmethod
    def from_config(cls, config: DiscoveryConfig) -> "DiscoveryOptions":
        return cls(
            timeout=config.timeout,
            concurrency=config.concurrency,
            include_loopback=config.include_loopback,
            port_candidates=list(config.port_candidates)
        )

    def validate(self) -> None:
        if self.concurrency < 1:
            raise ConfigurationError("concurrency must be at least 1", "concurrency", self.concurrency)
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive", "timeout", self.timeout)
        for port in self.port_candidates:
            if not isinstance(port, int) or not 1 <= port <= 65535:
                raise ConfigurationError(f"Invalid port candidate: {port}", "port_candidates", port)


@dataclass
class DiscoveredServer:
    """A server that answered a discovery probe."""
    url: str
    server_info: ServerInfo
    response_time: float  # milliseconds
    discovered_at: datetime
    category: ServerCategory

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "server_info": self.server_info.model_dump(by_alias=True, exclude_none=True),
            "response_time": self.response_time,
            "discovered_at": self.discovered_at.isoformat(),
            "category": self.category.value,
        }


@dataclass
class FailedDiscovery:
    """A candidate that did not answer."""
    url: str
    error: str
    response_time: float  # milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "error": self.error, "response_time": self.response_time}


@dataclass
class DiscoveryResult:
    """Report of one discovery run."""
    discovered: List[DiscoveredServer] = field(default_factory=list)
    failed: List[FailedDiscovery] = field(default_factory=list)
    total_time: float = 0.0  # milliseconds
    tested_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "discovered": [server.to_dict() for server in self.discovered],
            "failed": [failure.to_dict() for failure in self.failed],
            "total_time": self.total_time,
            "tested_count": self.tested_count,
        }


@dataclass
class CatalogueEntry:
    """Catalogue record stub for an auto-discovered server."""
    id: str
    name: str
    description: str
    version: str
    author: str
    category: ServerCategory
    tags: List[str]
    repository_url: str
    endpoint: str
    protocol_version: str
    health_status: str
    popularity_score: int
    quality_score: int
    review_count: int
    rating: float
    is_verified: bool
    is_deprecated: bool
    created_at: datetime
    updated_at: datetime
    tools: List[str] = field(default_factory=list)
    resources: List[str] = field(default_factory=list)
    last_health_check: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "author": self.author,
            "category": self.category.value,
            "tags": list(self.tags),
            "repository_url": self.repository_url,
            "endpoint": self.endpoint,
            "protocol_version": self.protocol_version,
            "health_status": self.health_status,
            "popularity_score": self.popularity_score,
            "quality_score": self.quality_score,
            "review_count": self.review_count,
            "rating": self.rating,
            "is_verified": self.is_verified,
            "is_deprecated": self.is_deprecated,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "last_health_check": self.last_health_check.isoformat() if self.last_health_check else None,
            "tools": list(self.tools),
            "resources": list(self.resources),
        }
