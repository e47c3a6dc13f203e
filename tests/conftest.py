import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Union

import pytest
import websockets
from aiohttp import web
from aiohttp.test_utils import TestServer

from catalogue_mcp.config import ConnectionConfig, SecurityConfig
from catalogue_mcp.connection_manager import ConnectionManager, ConnectionResult
from catalogue_mcp.health_models import HealthCheck, HealthCheckDetails, HealthStatus
from catalogue_mcp.models import ServerInfo


@pytest.fixture
async def start_http_server():
    """Factory starting an aiohttp application on a free loopback port."""
    servers: List[TestServer] = []

    async def _start(app: web.Application) -> str:
        server = TestServer(app, host="127.0.0.1")
        await server.start_server()
        servers.append(server)
        return f"http://127.0.0.1:{server.port}"

    yield _start

    for server in servers:
        await server.close()


@pytest.fixture
async def start_ws_server():
    """Factory starting a websocket server; returns its ws:// URL."""
    servers = []

    async def _start(handler) -> str:
        server = await websockets.serve(handler, "127.0.0.1", 0)
        servers.append(server)
        port = list(server.sockets)[0].getsockname()[1]
        return f"ws://127.0.0.1:{port}"

    yield _start

    for server in servers:
        server.close()
        await server.wait_closed()


@pytest.fixture
async def blackhole_url():
    """TCP server that accepts connections and never answers."""
    writers = []

    async def handle(reader, writer):
        writers.append(writer)
        await reader.read()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]

    yield f"127.0.0.1:{port}"

    for writer in writers:
        writer.close()
    server.close()
    await server.wait_closed()


def make_manager(*allowed_urls: str, **connection_kwargs) -> ConnectionManager:
    """Connection manager letting the given insecure test origins through."""
    return ConnectionManager(
        ConnectionConfig(**connection_kwargs),
        SecurityConfig(allowed_insecure_urls=list(allowed_urls))
    )


class FakeClock:
    """Settable time source."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 6, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def make_check(
    server_id: str,
    timestamp: datetime,
    status: HealthStatus = HealthStatus.HEALTHY,
    response_time: float = 100.0,
    error: Optional[str] = None
) -> HealthCheck:
    return HealthCheck(
        server_id=server_id,
        timestamp=timestamp,
        status=status,
        response_time=response_time,
        error=error,
        details=HealthCheckDetails(connection_time=response_time)
    )


class FakeConnectionManager:
    """Stands in for ConnectionManager and counts concurrent calls.

    ``responses`` maps a URL to a ServerInfo (success), an exception (raised)
    or an error string (failed result). ``health`` maps a URL to a list of
    statuses returned in order by health_check.
    """

    def __init__(
        self,
        responses: Optional[Dict[str, Union[ServerInfo, Exception, str]]] = None,
        health: Optional[Dict[str, List[HealthStatus]]] = None,
        delay: float = 0.02,
        clock=None
    ):
        self.responses = responses or {}
        self.health = health or {}
        self.delay = delay
        self.clock = clock or datetime.now

        self.calls = []
        self.health_calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _enter(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    async def connect(self, url, options=None):
        self.calls.append((url, options))
        await self._enter()

        response = self.responses.get(url)
        if isinstance(response, ServerInfo):
            return ConnectionResult(success=True, server_info=response, response_time=12.5, attempts=1)
        if isinstance(response, Exception):
            raise response
        return ConnectionResult(success=False, error=response or "Connection refused",
                                response_time=3.0, attempts=1)

    async def health_check(self, url, timeout=None):
        self.health_calls.append((url, timeout))
        await self._enter()

        statuses = self.health.get(url) or [HealthStatus.HEALTHY]
        status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
        return make_check(
            url,
            self.clock(),
            status=status,
            error=None if status == HealthStatus.HEALTHY else "Connection refused"
        )
