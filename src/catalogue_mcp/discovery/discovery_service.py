"""
Catalogue MCP - discovery service.

Probes a candidate address space for MCP servers with bounded concurrency
and classifies every server that answers.
"""

import asyncio
import inspect
import logging
import time
from datetime import datetime
from typing import Any, Callable, List, Optional, Union

from ..config import DiscoveryConfig
from ..connection_manager import ConnectionManager, ConnectOptions
from ..exceptions import CatalogueMCPError, describe_error
from ..scheduler import TickScheduler
from .classifier import categorize_server
from .discovery_types import DiscoveredServer, DiscoveryOptions, DiscoveryResult, FailedDiscovery

logger = logging.getLogger(__name__)

ResultCallback = Callable[[DiscoveryResult], Any]


class DiscoveryService:
    """Finds live MCP servers on known and loopback addresses."""

    def __init__(self, connection_manager: ConnectionManager, config: Optional[DiscoveryConfig] = None):
        self.connection_manager = connection_manager
        self.config = config or DiscoveryConfig()

        self.last_result: Optional[DiscoveryResult] = None
        self._continuous: Optional[TickScheduler] = None
        self._on_result: Optional[ResultCallback] = None

    def build_candidate_urls(self, options: DiscoveryOptions) -> List[str]:
        """Known servers first, then generated loopback addresses.

        Duplicates are removed while preserving order.
        """
        urls: List[str] = []

        def add(url: str) -> None:
            if url not in urls:
                urls.append(url)

        for url in self.config.known_servers:
            add(url)

        if options.include_loopback:
            for port in options.port_candidates:
                add(f"https://localhost:{port}")
            for port in options.port_candidates[:self.config.alternate_loopback_ports]:
                add(f"https://127.0.0.1:{port}")

        return urls

    async def discover_servers(self, options: Optional[DiscoveryOptions] = None) -> DiscoveryResult:
        """Probe every candidate and classify the servers that answer.

        Args:
            options: Timeout, concurrency, loopback and port settings

        Returns:
            DiscoveryResult with discovered and failed candidates

        Raises:
            ConfigurationError: If the options are invalid
        """
        options = options or DiscoveryOptions.from_config(self.config)
        options.validate()

        start = time.monotonic()
        urls = self.build_candidate_urls(options)
        logger.info(f"Starting MCP server discovery: {len(urls)} candidates, concurrency {options.concurrency}")

        discovered, failed = await self._discover_concurrent(urls, options)

        result = DiscoveryResult(
            discovered=discovered,
            failed=failed,
            total_time=round((time.monotonic() - start) * 1000, 2),
            tested_count=len(urls)
        )
        self.last_result = result
        logger.info(f"Discovery completed in {result.total_time:.0f}ms: "
                    f"found {len(discovered)}/{len(urls)} servers")
        return result

    async def _discover_concurrent(self, urls: List[str], options: DiscoveryOptions):
        discovered: List[DiscoveredServer] = []
        failed: List[FailedDiscovery] = []
        size = options.concurrency

        for i in range(0, len(urls), size):
            chunk = urls[i:i + size]
            results = await asyncio.gather(
                *[self._probe_candidate(url, options.timeout) for url in chunk],
                return_exceptions=True
            )

            for url, result in zip(chunk, results):
                if isinstance(result, DiscoveredServer):
                    discovered.append(result)
                elif isinstance(result, FailedDiscovery):
                    failed.append(result)
                elif isinstance(result, Exception):
                    logger.error(f"Discovery probe for {url} raised: {result}")
                    failed.append(FailedDiscovery(url=url, error=describe_error(result), response_time=0.0))
                else:
                    raise result

            # Throttle between chunks
            if i + size < len(urls) and self.config.chunk_delay > 0:
                await asyncio.sleep(self.config.chunk_delay)

        return discovered, failed

    async def _probe_candidate(self, url: str, timeout: float) -> Union[DiscoveredServer, FailedDiscovery]:
        """Single-attempt connect to one candidate."""
        try:
            result = await self.connection_manager.connect(
                url, ConnectOptions(timeout=timeout, retries=1, retry_delay=0.0))
        except CatalogueMCPError as e:
            return FailedDiscovery(url=url, error=e.message, response_time=0.0)

        if not result.success or result.server_info is None:
            return FailedDiscovery(
                url=url,
                error=result.error or "Connection failed",
                response_time=result.response_time
            )

        info = result.server_info
        logger.info(f"Discovered {info.name} at {url}")
        return DiscoveredServer(
            url=url,
            server_info=info,
            response_time=result.response_time,
            discovered_at=datetime.now(),
            category=categorize_server(info.name, info.tool_names)
        )

    @property
    def is_continuous_running(self) -> bool:
        return self._continuous is not None and self._continuous.is_running

    def start_continuous_discovery(
        self,
        interval: Optional[float] = None,
        on_result: Optional[ResultCallback] = None
    ) -> None:
        """Run discovery periodically with the lighter continuous settings.

        Args:
            interval: Seconds between runs (default: config.continuous_interval)
            on_result: Sync or async callable receiving each DiscoveryResult
        """
        if self.is_continuous_running:
            logger.warning("Continuous discovery already running")
            return

        self._on_result = on_result
        self._continuous = TickScheduler(
            self._continuous_tick,
            interval or self.config.continuous_interval,
            name="continuous-discovery"
        )
        self._continuous.start()

    async def stop_continuous_discovery(self) -> None:
        if self._continuous is None:
            return
        await self._continuous.stop()
        self._continuous = None

    async def _continuous_tick(self) -> None:
        options = DiscoveryOptions.from_config(self.config)
        options.timeout = self.config.continuous_timeout
        options.concurrency = self.config.continuous_concurrency

        result = await self.discover_servers(options)
        if result.discovered:
            logger.info(f"Continuous discovery found {len(result.discovered)} servers")

        if self._on_result is not None:
            outcome = self._on_result(result)
            if inspect.isawaitable(outcome):
                await outcome
