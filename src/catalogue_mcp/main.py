#!/usr/bin/env python3
"""Catalogue MCP - command line entry point.

Runs the connectivity, discovery and health-monitoring services from a
shell and prints their results as JSON.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from .config import Config
from .connection_manager import ConnectionManager, ConnectOptions
from .discovery import DiscoveryOptions, DiscoveryService, to_catalogue_entry
from .exceptions import CatalogueMCPError
from .health_monitor import HealthMonitor, MetricsPeriod, MonitorOptions
from .logging_config import setup_logging

logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="catalogue-mcp",
        description="Catalogue MCP - discover, connect to and monitor MCP servers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  MCP_ALLOWED_INSECURE_URLS   Comma separated http:// or ws:// origins to allow
  MCP_CONNECT_TIMEOUT         Connection timeout in seconds (default: 30)
  MCP_DISCOVERY_PORTS         Comma separated candidate ports
  MCP_MONITOR_INTERVAL        Health check interval in seconds (default: 300)
  LOG_LEVEL                   Log level (default: INFO)

Examples:
  catalogue-mcp connect https://localhost:8051
  catalogue-mcp discover --ports 8051,8052 --catalogue
  catalogue-mcp monitor https://localhost:8051 --interval 30 --duration 300
        """
    )

    parser.add_argument("--config", type=Path, help="Configuration file (YAML or JSON)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: from config)"
    )
    parser.add_argument("--log-file", type=Path, help="Log file path (default: stdout only)")
    parser.add_argument(
        "--allow-insecure",
        action="append",
        default=[],
        metavar="URL",
        help="Allow an http:// or ws:// origin (repeatable)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    connect_parser = subparsers.add_parser("connect", help="Connect to a server and print its info")
    connect_parser.add_argument("url")
    connect_parser.add_argument("--timeout", type=float, help="Per-attempt timeout in seconds")
    connect_parser.add_argument("--retries", type=int, help="Number of attempts")

    check_parser = subparsers.add_parser("check", help="Run a single health check")
    check_parser.add_argument("url")
    check_parser.add_argument("--timeout", type=float, help="Probe timeout in seconds")

    discover_parser = subparsers.add_parser("discover", help="Discover servers on known and loopback addresses")
    discover_parser.add_argument("--timeout", type=float, help="Per-candidate timeout in seconds")
    discover_parser.add_argument("--concurrency", type=int, help="Candidates probed at once")
    discover_parser.add_argument("--ports", help="Comma separated candidate ports")
    discover_parser.add_argument("--no-loopback", action="store_true", help="Skip generated loopback candidates")
    discover_parser.add_argument("--catalogue", action="store_true", help="Print catalogue records instead")

    monitor_parser = subparsers.add_parser("monitor", help="Monitor servers and print a summary")
    monitor_parser.add_argument("urls", nargs="+", metavar="URL")
    monitor_parser.add_argument("--interval", type=float, help="Seconds between checks")
    monitor_parser.add_argument("--duration", type=float, help="Seconds to run (default: until interrupted)")

    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> Config:
    if args.config:
        config = Config.load_from_file(args.config)
    else:
        config = Config.load_from_env()
    return apply_cli_overrides(config, args).validate()


def apply_cli_overrides(config: Config, args: argparse.Namespace) -> Config:
    if args.log_level:
        config.logging.level = args.log_level

    if args.log_file:
        config.logging.file_path = str(args.log_file)

    if args.allow_insecure:
        config.security.allowed_insecure_urls = list(config.security.allowed_insecure_urls) + args.allow_insecure

    return config


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def run_connect(args: argparse.Namespace, config: Config) -> int:
    options = ConnectOptions.from_config(config.connection)
    if args.timeout:
        options.timeout = args.timeout
    if args.retries:
        options.retries = args.retries

    async with ConnectionManager(config.connection, config.security) as manager:
        result = await manager.connect(args.url, options)

    print_json(result.to_dict())
    return 0 if result.success else 1


async def run_check(args: argparse.Namespace, config: Config) -> int:
    async with ConnectionManager(config.connection, config.security) as manager:
        check = await manager.health_check(args.url, timeout=args.timeout)

    print_json(check.to_dict())
    return 0 if check.is_healthy else 1


async def run_discover(args: argparse.Namespace, config: Config) -> int:
    options = DiscoveryOptions.from_config(config.discovery)
    if args.timeout:
        options.timeout = args.timeout
    if args.concurrency:
        options.concurrency = args.concurrency
    if args.ports:
        options.port_candidates = [int(port) for port in args.ports.split(",") if port.strip()]
    if args.no_loopback:
        options.include_loopback = False

    async with ConnectionManager(config.connection, config.security) as manager:
        service = DiscoveryService(manager, config.discovery)
        result = await service.discover_servers(options)

    if args.catalogue:
        print_json([to_catalogue_entry(server).to_dict() for server in result.discovered])
    else:
        print_json(result.to_dict())
    return 0


async def run_monitor(args: argparse.Namespace, config: Config) -> int:
    options = MonitorOptions.from_config(config.monitor)
    if args.interval:
        options.interval = args.interval

    async with ConnectionManager(config.connection, config.security) as manager:
        monitor = HealthMonitor(manager, config.monitor)
        for url in args.urls:
            monitor.add_server(url, url, url)

        await monitor.start(options)
        try:
            if args.duration:
                await asyncio.sleep(args.duration)
            else:
                await asyncio.Event().wait()
        finally:
            await monitor.stop()

        metrics = {}
        for url in args.urls:
            server_metrics = monitor.calculate_metrics(url, MetricsPeriod.DAY)
            metrics[url] = server_metrics.to_dict() if server_metrics else None

        print_json({
            "summary": monitor.get_monitoring_summary().to_dict(),
            "servers": [server.to_dict() for server in monitor.get_servers()],
            "metrics": metrics,
            "alerts": [alert.to_dict() for alert in monitor.get_active_alerts()],
        })
    return 0


COMMANDS = {
    "connect": run_connect,
    "check": run_check,
    "discover": run_discover,
    "monitor": run_monitor,
}


async def main_async(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)

    try:
        config = load_config(args)
    except CatalogueMCPError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 2

    setup_logging(config.logging)

    try:
        return await COMMANDS[args.command](args, config)
    except CatalogueMCPError as e:
        logger.error(f"{args.command} failed: {e.message}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 2


def main(argv: Optional[List[str]] = None) -> int:
    try:
        return asyncio.run(main_async(argv))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
