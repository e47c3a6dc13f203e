"""Catalogue MCP - Connection Management.

This module opens connections to MCP servers over HTTPS (request/response)
or WSS (persistent socket), retries failed attempts with linear backoff,
discovers server info, and performs single non-retried health probes.
"""

import asyncio
import json
import logging
import ssl
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import aiohttp
import websockets
from pydantic import ValidationError
from websockets import exceptions as ws_exceptions

from .config import ConnectionConfig, SecurityConfig
from .endpoint import EndpointPolicy, ServerEndpoint, TransportType
from .exceptions import (
    CatalogueMCPError,
    ConfigurationError,
    ErrorCategory,
    ProtocolError,
    SecurityPolicyError,
    TransportError,
    classify_error,
    describe_error,
)
from .health_models import HealthCheck, HealthCheckDetails, HealthStatus
from .models import ServerInfo

logger = logging.getLogger(__name__)

MCP_PROTOCOL_VERSION = "2024-11-05"
CLIENT_INFO = {"name": "Catalogue-MCP", "version": "1.0.0"}
INITIALIZE_REQUEST_ID = 1

# Failures that count as a failed attempt rather than a bug
RECOVERABLE_ERRORS = (
    asyncio.TimeoutError,
    aiohttp.ClientError,
    OSError,
    ws_exceptions.WebSocketException,
    CatalogueMCPError,
)


@dataclass
class ConnectOptions:
    """Per-call connection options (seconds)."""
    timeout: float = 30.0
    retries: int = 3
    retry_delay: float = 1.0

    @classmethod
    def from_config(cls, config: ConnectionConfig) -> "ConnectOptions":
        return cls(timeout=config.timeout, retries=config.retries, retry_delay=config.retry_delay)

    def validate(self) -> None:
        if self.retries < 1:
            raise ConfigurationError("retries must be at least 1", "retries", self.retries)
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive", "timeout", self.timeout)
        if self.retry_delay < 0:
            raise ConfigurationError("retry_delay must not be negative", "retry_delay", self.retry_delay)


@dataclass
class ConnectionResult:
    """Outcome of a connect call."""
    success: bool
    server_info: Optional[ServerInfo] = None
    error: Optional[str] = None
    response_time: float = 0.0  # milliseconds, all attempts included
    attempts: int = 0
    error_category: Optional[ErrorCategory] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "server_info": self.server_info.model_dump(by_alias=True, exclude_none=True) if self.server_info else None,
            "error": self.error,
            "response_time": self.response_time,
            "attempts": self.attempts,
            "error_category": self.error_category.value if self.error_category else None,
        }


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 2)


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class ConnectionManager:
    """Connects to MCP servers and probes their health."""

    def __init__(
        self,
        config: Optional[ConnectionConfig] = None,
        security: Optional[SecurityConfig] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """Initialize connection manager.

        Args:
            config: Timeouts, retries and probe paths
            security: Transport security settings
            session: Externally owned HTTP session; one is created lazily otherwise
        """
        self.config = config or ConnectionConfig()
        self.security = security or SecurityConfig()
        self.policy = EndpointPolicy(self.security.allowed_insecure_urls)
        self._session = session
        self._owns_session = session is None

        self.stats = {
            "connect_calls": 0,
            "connect_attempts": 0,
            "successful_connections": 0,
            "failed_connections": 0,
            "health_checks": 0,
        }

    async def __aenter__(self) -> "ConnectionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={
                "Accept": "application/json",
                "User-Agent": self.security.user_agent,
            })
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Release the HTTP session if this manager created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
            logger.debug("Closed HTTP session")
        self._session = None

    def _http_ssl(self) -> bool:
        return self.security.verify_tls

    def _websocket_kwargs(self, endpoint: ServerEndpoint) -> Dict[str, Any]:
        if not endpoint.is_secure or self.security.verify_tls:
            return {}
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return {"ssl": context}

    async def connect(self, url: str, options: Optional[ConnectOptions] = None) -> ConnectionResult:
        """Connect to an MCP server, retrying with linear backoff.

        Args:
            url: Server URL (https:// or wss://)
            options: Timeout, retries and retry delay; defaults from config

        Returns:
            ConnectionResult carrying either the server info or the last error

        Raises:
            InvalidEndpointError: If the URL is malformed
            ConfigurationError: If the options are invalid
        """
        options = options or ConnectOptions.from_config(self.config)
        options.validate()
        endpoint = ServerEndpoint.parse(url)

        self.stats["connect_calls"] += 1
        start = time.monotonic()

        # Security gate: rejected endpoints are never retried
        try:
            self.policy.check(endpoint)
        except SecurityPolicyError as e:
            logger.warning(f"Connection to {endpoint.url} rejected: {e.message}")
            self.stats["failed_connections"] += 1
            return ConnectionResult(
                success=False,
                error=e.message,
                response_time=_elapsed_ms(start),
                attempts=1,
                error_category=ErrorCategory.SECURITY_POLICY
            )

        last_error = "Unknown connection error"
        last_category = ErrorCategory.UNKNOWN

        for attempt in range(1, options.retries + 1):
            self.stats["connect_attempts"] += 1
            logger.debug(f"MCP connection attempt {attempt}/{options.retries} to {endpoint.url}")

            try:
                server_info = await self._attempt_connection(endpoint, options.timeout)
                response_time = _elapsed_ms(start)
                self.stats["successful_connections"] += 1
                logger.info(f"Connected to {endpoint.url} ({server_info.name}) in {response_time:.0f}ms")
                return ConnectionResult(
                    success=True,
                    server_info=server_info,
                    response_time=response_time,
                    attempts=attempt
                )
            except asyncio.TimeoutError:
                last_error = f"Connection timed out after {options.timeout}s"
                last_category = ErrorCategory.TRANSPORT
            except RECOVERABLE_ERRORS as e:
                last_error = describe_error(e)
                last_category = classify_error(e)

            logger.warning(f"MCP connection attempt {attempt}/{options.retries} to {endpoint.url} failed: {last_error}")

            if attempt < options.retries:
                await asyncio.sleep(options.retry_delay * attempt)

        self.stats["failed_connections"] += 1
        return ConnectionResult(
            success=False,
            error=f"Failed after {options.retries} attempts: {last_error}",
            response_time=_elapsed_ms(start),
            attempts=options.retries,
            error_category=last_category
        )

    async def _attempt_connection(self, endpoint: ServerEndpoint, timeout: float) -> ServerInfo:
        if endpoint.transport == TransportType.HTTP:
            return await self._connect_http(endpoint, timeout)
        return await self._connect_websocket(endpoint, timeout)

    async def _connect_http(self, endpoint: ServerEndpoint, timeout: float) -> ServerInfo:
        """Liveness probe on the health path, then info discovery."""
        session = await self._get_session()
        async with session.get(
            endpoint.join(self.config.health_path),
            timeout=aiohttp.ClientTimeout(total=timeout),
            ssl=self._http_ssl()
        ) as response:
            if not response.ok:
                raise TransportError(
                    f"HTTP {response.status}: {response.reason}",
                    endpoint=endpoint.url,
                    details={"status": response.status}
                )

        return await self._discover_server_info(endpoint, timeout)

    async def _discover_server_info(self, endpoint: ServerEndpoint, timeout: float) -> ServerInfo:
        """Try the well-known info locations in order, then fall back."""
        session = await self._get_session()
        paths = self.config.info_paths
        per_path_timeout = timeout / max(len(paths), 1)

        for path in paths:
            url = endpoint.join(path)
            try:
                async with session.get(
                    url,
                    timeout=aiohttp.ClientTimeout(total=per_path_timeout),
                    ssl=self._http_ssl()
                ) as response:
                    if not response.ok:
                        logger.debug(f"No server info at {url}: HTTP {response.status}")
                        continue
                    data = await response.json(content_type=None)
                return ServerInfo.from_info_payload(data, endpoint)
            except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
                # ValueError covers JSON decode and validation failures
                logger.debug(f"No server info at {url}: {describe_error(e)}")

        logger.debug(f"Using fallback server info for {endpoint.url}")
        return ServerInfo.fallback(endpoint)

    async def _connect_websocket(self, endpoint: ServerEndpoint, timeout: float) -> ServerInfo:
        return await asyncio.wait_for(self._initialize_handshake(endpoint, timeout), timeout=timeout)

    async def _initialize_handshake(self, endpoint: ServerEndpoint, timeout: float) -> ServerInfo:
        """Send ``initialize`` and wait for the one correlated response."""
        request = {
            "jsonrpc": "2.0",
            "id": INITIALIZE_REQUEST_ID,
            "method": "initialize",
            "params": {
                "protocolVersion": MCP_PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": CLIENT_INFO,
            },
        }

        async with websockets.connect(endpoint.url, open_timeout=timeout,
                                      **self._websocket_kwargs(endpoint)) as websocket:
            await websocket.send(json.dumps(request))

            while True:
                message = self._parse_message(await websocket.recv(), endpoint)

                if message.get("id") != INITIALIZE_REQUEST_ID:
                    logger.debug(f"Ignoring uncorrelated message from {endpoint.url}")
                    continue

                if "error" in message:
                    raise ProtocolError(f"Initialize failed: {message['error']}", endpoint=endpoint.url)

                result = message.get("result")
                if not isinstance(result, dict):
                    raise ProtocolError("Invalid WebSocket response", endpoint=endpoint.url)

                try:
                    return ServerInfo.from_initialize_result(result, endpoint)
                except ValidationError as e:
                    raise ProtocolError(
                        f"Invalid server info in initialize response ({e.error_count()} errors)",
                        endpoint=endpoint.url
                    ) from e

    @staticmethod
    def _parse_message(raw: Any, endpoint: ServerEndpoint) -> Dict[str, Any]:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise ProtocolError("Invalid WebSocket response", endpoint=endpoint.url) from e
        if not isinstance(message, dict):
            raise ProtocolError("Invalid WebSocket response", endpoint=endpoint.url)
        return message

    async def health_check(self, url: str, timeout: Optional[float] = None) -> HealthCheck:
        """Single non-retried probe. Never raises.

        Args:
            url: Server URL
            timeout: Probe timeout in seconds (default: config.health_check_timeout)

        Returns:
            HealthCheck classified healthy or unhealthy
        """
        timeout = timeout or self.config.health_check_timeout
        timestamp = datetime.now()
        start = time.monotonic()
        server_id = url
        self.stats["health_checks"] += 1

        try:
            endpoint = ServerEndpoint.parse(url)
            server_id = endpoint.display_name
            self.policy.check(endpoint)

            payload: Dict[str, Any] = {}
            if endpoint.transport == TransportType.HTTP:
                payload = await self._probe_http(endpoint, timeout)
            else:
                await self._connect_websocket(endpoint, timeout)

            response_time = _elapsed_ms(start)
            return HealthCheck(
                server_id=server_id,
                timestamp=timestamp,
                status=HealthStatus.HEALTHY,
                response_time=response_time,
                details=HealthCheckDetails(
                    connection_time=response_time,
                    memory_usage=_as_float(payload.get("memoryUsage")),
                    cpu_usage=_as_float(payload.get("cpuUsage"))
                )
            )
        except asyncio.TimeoutError:
            error = f"Health check timed out after {timeout}s"
        except Exception as e:
            error = describe_error(e)

        response_time = _elapsed_ms(start)
        logger.debug(f"Health check for {url} failed: {error}")
        return HealthCheck(
            server_id=server_id,
            timestamp=timestamp,
            status=HealthStatus.UNHEALTHY,
            response_time=response_time,
            error=error,
            details=HealthCheckDetails(connection_time=response_time)
        )

    async def _probe_http(self, endpoint: ServerEndpoint, timeout: float) -> Dict[str, Any]:
        session = await self._get_session()
        async with session.get(
            endpoint.join(self.config.health_path),
            timeout=aiohttp.ClientTimeout(total=timeout),
            ssl=self._http_ssl()
        ) as response:
            if not response.ok:
                raise TransportError(f"HTTP {response.status}", endpoint=endpoint.url,
                                     details={"status": response.status})
            try:
                payload = await response.json(content_type=None)
            except ValueError:
                payload = None
        return payload if isinstance(payload, dict) else {}

    def get_stats(self) -> Dict[str, int]:
        return dict(self.stats)
