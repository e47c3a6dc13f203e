"""
Catalogue MCP exceptions.

Defines the error taxonomy used by the connectivity and health-monitoring
subsystem and a classifier that maps library exceptions onto it.
"""

import asyncio
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import aiohttp
from pydantic import ValidationError
from websockets import exceptions as ws_exceptions


class ErrorCategory(Enum):
    """Error categories."""
    SECURITY_POLICY = "security_policy"    # scheme not in the allowed set
    TRANSPORT = "transport"                # timeout, refused, DNS failure
    PROTOCOL = "protocol"                  # malformed handshake or info payload
    DISCOVERY = "discovery"                # per-candidate discovery failure
    CONFIGURATION = "configuration"        # invalid options or endpoint
    UNKNOWN = "unknown"


class CatalogueMCPError(Exception):
    """Base exception for the catalogue connectivity subsystem."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.endpoint = endpoint
        self.details = details or {}
        self.timestamp = timestamp or datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "category": self.category.value,
            "endpoint": self.endpoint,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class SecurityPolicyError(CatalogueMCPError):
    """Endpoint scheme rejected by the security gate. Never retried."""

    def __init__(self, message: str, endpoint: Optional[str] = None, scheme: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.SECURITY_POLICY,
            endpoint=endpoint,
            details={"scheme": scheme}
        )


class TransportError(CatalogueMCPError):
    """Network level failure (refused, reset, HTTP error status)."""

    def __init__(self, message: str, endpoint: Optional[str] = None, **kwargs):
        super().__init__(message, category=ErrorCategory.TRANSPORT, endpoint=endpoint, **kwargs)


class ProtocolError(CatalogueMCPError):
    """The server answered, but not with a valid MCP response."""

    def __init__(self, message: str, endpoint: Optional[str] = None, **kwargs):
        super().__init__(message, category=ErrorCategory.PROTOCOL, endpoint=endpoint, **kwargs)


class InvalidEndpointError(CatalogueMCPError):
    """Malformed endpoint URL. Raised to the caller."""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(message, category=ErrorCategory.CONFIGURATION, endpoint=endpoint)


class ConfigurationError(CatalogueMCPError):
    """Invalid configuration or call options. Raised to the caller."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            details={"field": field, "value": value}
        )


def classify_error(error: BaseException) -> ErrorCategory:
    """Map an exception raised during a probe onto an error category."""
    if isinstance(error, CatalogueMCPError):
        return error.category

    if isinstance(error, asyncio.TimeoutError):
        return ErrorCategory.TRANSPORT

    # Decode and validation errors are ValueErrors, so check them first
    if isinstance(error, (json.JSONDecodeError, ValidationError, aiohttp.ContentTypeError)):
        return ErrorCategory.PROTOCOL

    if isinstance(error, (aiohttp.ClientError, OSError)):
        return ErrorCategory.TRANSPORT

    if isinstance(error, ws_exceptions.WebSocketException):
        if isinstance(error, (ws_exceptions.InvalidHandshake, ws_exceptions.InvalidMessage,
                              ws_exceptions.ProtocolError, ws_exceptions.PayloadTooBig)):
            return ErrorCategory.PROTOCOL
        return ErrorCategory.TRANSPORT

    return ErrorCategory.UNKNOWN


def describe_error(error: BaseException) -> str:
    """Human readable message for an exception, falling back to its type name."""
    if isinstance(error, CatalogueMCPError):
        return error.message
    if isinstance(error, asyncio.TimeoutError):
        return "Connection timed out"
    message = str(error)
    return message if message else type(error).__name__
