from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Any, Dict, List

from .config.config_parser import (
    build_upstream_client,
    build_zone_store,
    normalize_listen_config,
    parse_config_file,
)
from .config.logging_config import init_logging
from .servers.resolver import QueryResolver
from .servers.tcp_server import serve_tcp
from .servers.udp_server import serve_udp


async def run_listeners(
    resolver: QueryResolver, listen: Dict[str, Dict[str, Any]]
) -> None:
    """Brief: Run the enabled UDP/TCP listeners on the current event loop.

    Inputs:
      - resolver: QueryResolver shared by all listeners.
      - listen: Output of normalize_listen_config().

    Outputs:
      - None; returns when every listener task has finished (normally never).

    Raises:
      - ValueError when no listener is enabled.
      - OSError when a listener cannot bind.
    """
    logger = logging.getLogger("dohgate.main")
    tasks: List[asyncio.Task] = []

    udp_cfg = listen["udp"]
    if udp_cfg.get("enabled", True):
        uhost, uport = str(udp_cfg["host"]), int(udp_cfg["port"])
        logger.info("Starting UDP listener on %s:%d", uhost, uport)
        tasks.append(
            asyncio.create_task(
                serve_udp(uhost, uport, resolver.handle), name="dohgate-udp"
            )
        )

    tcp_cfg = listen["tcp"]
    if tcp_cfg.get("enabled", False):
        thost, tport = str(tcp_cfg["host"]), int(tcp_cfg["port"])
        logger.info("Starting TCP listener on %s:%d", thost, tport)
        tasks.append(
            asyncio.create_task(
                serve_tcp(thost, tport, resolver.handle), name="dohgate-tcp"
            )
        )

    if not tasks:
        raise ValueError("no listeners enabled; enable listen.udp or listen.tcp")

    try:
        await asyncio.gather(*tasks)
    finally:
        for t in tasks:
            t.cancel()


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the gateway.
    Parses arguments, loads configuration, builds the zone store and upstream
    client, and serves until interrupted.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code.

    Example use:
        CLI:
            dohgate --config config.yaml -v DOH_URL=https://dns.google/resolve
    """
    parser = argparse.ArgumentParser(
        description="DNS to JSON DNS-over-HTTPS gateway with a local zone"
    )
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config")
    parser.add_argument(
        "-v",
        "--var",
        action="append",
        default=[],
        metavar="KEY=YAML",
        help="Set or override a config variable (repeatable)",
    )
    args = parser.parse_args(argv)

    try:
        cfg = parse_config_file(args.config, cli_vars=args.var)
    except (OSError, ValueError) as exc:
        print(str(exc))
        return 1

    init_logging(cfg.get("logging"))
    logger = logging.getLogger("dohgate.main")
    logger.info("Loaded config from %s", args.config)

    try:
        store = build_zone_store(cfg)
        upstream = build_upstream_client(cfg)
    except (OSError, ValueError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1
    logger.info("Upstream: %s", upstream.url)

    resolver = QueryResolver(store, upstream)
    listen = normalize_listen_config(cfg)

    try:
        asyncio.run(run_listeners(resolver, listen))
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
    except (OSError, ValueError) as exc:
        logger.error("Listener failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover
