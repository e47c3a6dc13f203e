"""
MCP server discovery.

Candidate generation, bounded-concurrency probing, keyword classification
and conversion into catalogue records.
"""

from .catalogue import to_catalogue_entry
from .classifier import CATEGORY_RULES, categorize_server
from .discovery_service import DiscoveryService
from .discovery_types import (
    CatalogueEntry,
    DiscoveredServer,
    DiscoveryOptions,
    DiscoveryResult,
    FailedDiscovery,
    ServerCategory,
)

__all__ = [
    "CATEGORY_RULES",
    "CatalogueEntry",
    "DiscoveredServer",
    "DiscoveryOptions",
    "DiscoveryResult",
    "DiscoveryService",
    "FailedDiscovery",
    "ServerCategory",
    "categorize_server",
    "to_catalogue_entry",
]
