"""Catalogue MCP - protocol data models.

Pydantic models for the information an MCP server declares about itself.
Payloads coming off the wire are validated here rather than passed around
as opaque dictionaries.
"""

import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .endpoint import ServerEndpoint

DEFAULT_SERVER_VERSION = "1.0.0"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class ToolsCapability(_WireModel):
    list_changed: Optional[bool] = Field(default=None, alias="listChanged")


class ResourcesCapability(_WireModel):
    subscribe: Optional[bool] = None
    list_changed: Optional[bool] = Field(default=None, alias="listChanged")


class PromptsCapability(_WireModel):
    list_changed: Optional[bool] = Field(default=None, alias="listChanged")


class LoggingCapability(_WireModel):
    level: Optional[str] = None


class ServerCapabilities(_WireModel):
    """Capabilities declared by an MCP server."""

    tools: Optional[ToolsCapability] = None
    resources: Optional[ResourcesCapability] = None
    prompts: Optional[PromptsCapability] = None
    logging: Optional[LoggingCapability] = None
    experimental: Optional[Dict[str, Any]] = None


class ToolInfo(_WireModel):
    name: str
    description: str = ""
    input_schema: Optional[Dict[str, Any]] = Field(default=None, alias="inputSchema")


class ResourceInfo(_WireModel):
    name: str
    uri: str = ""
    description: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, alias="mimeType")


class ServerInfo(_WireModel):
    """Server identity produced by a successful handshake. Immutable."""

    id: str
    name: str
    version: str = DEFAULT_SERVER_VERSION
    capabilities: ServerCapabilities = Field(default_factory=ServerCapabilities)
    tools: List[ToolInfo] = Field(default_factory=list)
    resources: List[ResourceInfo] = Field(default_factory=list)

    @field_validator("tools", mode="before")
    @classmethod
    def normalize_tools(cls, v):
        """Accept bare tool names as well as tool objects."""
        if not isinstance(v, list):
            return [] if v is None else v
        return [{"name": item} if isinstance(item, str) else item for item in v]

    @field_validator("resources", mode="before")
    @classmethod
    def normalize_resources(cls, v):
        """Accept bare names, and resources that only carry a URI."""
        if not isinstance(v, list):
            return [] if v is None else v
        normalized = []
        for item in v:
            if isinstance(item, str):
                normalized.append({"name": item})
            elif isinstance(item, dict) and "name" not in item and "uri" in item:
                normalized.append({**item, "name": item["uri"]})
            else:
                normalized.append(item)
        return normalized

    @property
    def tool_names(self) -> List[str]:
        return [tool.name for tool in self.tools]

    @property
    def resource_names(self) -> List[str]:
        return [resource.name for resource in self.resources]

    @classmethod
    def from_info_payload(cls, data: Dict[str, Any], endpoint: ServerEndpoint) -> "ServerInfo":
        """Build from an HTTP info document, filling gaps from the endpoint.

        Raises:
            pydantic.ValidationError: If the payload is not an info document
        """
        if not isinstance(data, dict):
            return cls.model_validate(data)
        payload = {
            **data,
            "id": str(data["id"]) if data.get("id") else _generate_id("http"),
            "name": data.get("name") or endpoint.display_name,
            "version": str(data.get("version") or DEFAULT_SERVER_VERSION),
            "capabilities": data.get("capabilities") or {},
        }
        return cls.model_validate(payload)

    @classmethod
    def from_initialize_result(cls, result: Dict[str, Any], endpoint: ServerEndpoint) -> "ServerInfo":
        """Build from the result of a JSON-RPC ``initialize`` call."""
        server_info = result.get("serverInfo")
        if not isinstance(server_info, dict):
            server_info = {}
        return cls.model_validate({
            "id": _generate_id("ws"),
            "name": server_info.get("name") or endpoint.display_name,
            "version": str(server_info.get("version") or DEFAULT_SERVER_VERSION),
            "capabilities": result.get("capabilities") or {},
            # tools/resources need separate list calls
            "tools": [],
            "resources": [],
        })

    @classmethod
    def fallback(cls, endpoint: ServerEndpoint) -> "ServerInfo":
        """Minimal info when no info location answers."""
        return cls(id=_generate_id("http"), name=endpoint.display_name)


def _generate_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"
