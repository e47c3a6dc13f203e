"""Conversion of discovered servers into catalogue records."""

import re

from .discovery_types import CatalogueEntry, DiscoveredServer

DEFAULT_AUTHOR = "Unknown"
DEFAULT_PROTOCOL_VERSION = "0.1.0"
DEFAULT_POPULARITY_SCORE = 50
DEFAULT_QUALITY_SCORE = 60
AUTO_DISCOVERED_TAG = "auto-discovered"


def _slugify(name: str) -> str:
    return re.sub(r"\s+", "-", name.lower())


def to_catalogue_entry(discovered: DiscoveredServer) -> CatalogueEntry:
    """Build an unverified catalogue record for a discovered server."""
    info = discovered.server_info
    return CatalogueEntry(
        id=info.id,
        name=info.name,
        description=f"Auto-discovered MCP server: {info.name}",
        version=info.version,
        author=DEFAULT_AUTHOR,
        category=discovered.category,
        tags=[discovered.category.value, AUTO_DISCOVERED_TAG],
        repository_url=f"https://github.com/unknown/{_slugify(info.name)}",
        endpoint=discovered.url,
        protocol_version=DEFAULT_PROTOCOL_VERSION,
        health_status="healthy",
        popularity_score=DEFAULT_POPULARITY_SCORE,
        quality_score=DEFAULT_QUALITY_SCORE,
        review_count=0,
        rating=0.0,
        is_verified=False,
        is_deprecated=False,
        created_at=discovered.discovered_at,
        updated_at=discovered.discovered_at,
        last_health_check=discovered.discovered_at,
        tools=info.tool_names,
        resources=info.resource_names,
    )
