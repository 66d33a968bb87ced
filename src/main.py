# src/main.py — v2
"""CLI entry point — run, definitions, feedback commands.

Usage:
    titlerbridge run [--host H] [--port P]
    titlerbridge definitions <kind>
    titlerbridge feedback <actor~feedback> [-o key=value ...] [--timeout s]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from titlerbridge.api.models import StatusLevel
from titlerbridge.config.settings import ConfigurationError, Settings, load_settings
from titlerbridge.logging.logger import setup_logging
from titlerbridge.rpc.gateway import DEFINITION_KINDS
from titlerbridge.version import __version__

logger = logging.getLogger(__name__)


class ConsoleHost:
    """Host stand-in for the CLI: logs status and wakes feedback waiters."""

    def __init__(self) -> None:
        self.repoll = asyncio.Event()

    def status(self, level: StatusLevel, message: str) -> None:
        log = logger.info if level == "ok" else logger.warning
        log("Status: %s", message)

    def check_feedbacks(self, *feedback_keys: str) -> None:
        logger.debug("Re-poll requested for %s", ", ".join(feedback_keys) or "all feedbacks")
        self.repoll.set()

    def refresh_integrations(self, bridge: Any) -> None:
        logger.debug("Catalog refresh requested")


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_cli_settings(args)
    except (ConfigurationError, ValueError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="titlerbridge",
        description=f"titlerbridge v{__version__} — Titler Live feedback bridge",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument("--host", default=None, help="Titler host (default: localhost)")
    parser.add_argument("--port", type=int, default=None, help="Titler port (default: 9023)")
    parser.add_argument(
        "--log-format", choices=["json", "text"], default=None,
        help="Log output format",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser("run", help="Stay connected and keep the cache warm")
    p_run.set_defaults(func=_cmd_run)

    # --- definitions ---
    p_defs = subparsers.add_parser("definitions", help="Print Titler definitions as JSON")
    p_defs.add_argument("kind", choices=DEFINITION_KINDS, help="Definition kind")
    p_defs.add_argument(
        "--timeout", type=float, default=10.0,
        help="Seconds to wait for the connection (default: 10)",
    )
    p_defs.set_defaults(func=_cmd_definitions)

    # --- feedback ---
    p_fb = subparsers.add_parser("feedback", help="Print one feedback value as JSON")
    p_fb.add_argument("key", help="Feedback key, e.g. actor1~fb1")
    p_fb.add_argument(
        "-o", "--option", dest="options", action="append", default=[],
        metavar="KEY=VALUE", help="Feedback option (repeatable)",
    )
    p_fb.add_argument(
        "--timeout", type=float, default=10.0,
        help="Seconds to wait for a value (default: 10)",
    )
    p_fb.set_defaults(func=_cmd_feedback)

    return parser


def _load_cli_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, object] = {}
    if args.host:
        overrides["titler_host"] = args.host
    if args.port is not None:
        overrides["titler_port"] = args.port
    if args.log_format:
        overrides["log_format"] = args.log_format
    return load_settings(**overrides)


def _parse_options(pairs: list[str]) -> dict[str, Any]:
    """Turn ``key=value`` pairs into options; values are JSON when they parse."""
    options: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Option must look like KEY=VALUE: {pair!r}")
        try:
            options[key] = json.loads(raw)
        except ValueError:
            options[key] = raw
    return options


async def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    """Keep the bridge connected until interrupted."""
    from titlerbridge.api.facade import TitlerBridge

    bridge = TitlerBridge(ConsoleHost(), settings)
    bridge.start()
    try:
        await asyncio.Event().wait()
    finally:
        await bridge.stop()
    return 0


async def _cmd_definitions(args: argparse.Namespace, settings: Settings) -> int:
    """Connect once and print the requested definitions."""
    from titlerbridge.api.facade import TitlerBridge

    bridge = TitlerBridge(ConsoleHost(), settings)
    bridge.start()
    try:
        await bridge.connection.wait_connected(args.timeout)
        result = await bridge.query_definitions(args.kind)
    except asyncio.TimeoutError:
        logger.error("No connection to %s within %.1fs", settings.websocket_url, args.timeout)
        return 1
    finally:
        await bridge.stop()

    print(json.dumps(result, indent=2, default=str))
    return 0


async def _cmd_feedback(args: argparse.Namespace, settings: Settings) -> int:
    """Poll one feedback the way a host would until it has a value."""
    from titlerbridge.api.facade import TitlerBridge

    options = _parse_options(args.options)
    host = ConsoleHost()
    bridge = TitlerBridge(host, settings)
    bridge.start()
    try:
        value = await asyncio.wait_for(
            _poll_until_value(bridge, host, args.key, options), args.timeout
        )
    except asyncio.TimeoutError:
        logger.error("No value for %s within %.1fs", args.key, args.timeout)
        return 1
    finally:
        await bridge.stop()

    print(json.dumps(value, indent=2, default=str))
    return 0


async def _poll_until_value(
    bridge: Any, host: ConsoleHost, key: str, options: dict[str, Any]
) -> dict[str, Any]:
    await bridge.connection.wait_connected()
    while True:
        host.repoll.clear()
        value = bridge.feedback(key, options)
        if value is not None:
            return value
        await host.repoll.wait()


if __name__ == "__main__":
    sys.exit(main())
