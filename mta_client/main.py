"""Entry point for the MTA client (Alice).

Usage: mta-client [host|default] [port] [share]

Probes the peer, then runs the protocol with exponential backoff between
attempts. Exits 0 once a run completes, 1 otherwise.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import random
import secrets
import signal
import sys

import structlog

from mta_client import __version__
from mta_client.logging import configure_logging

configure_logging()

from mta_client.config import Config
from mta_client.errors import ProtocolError
from mta_client.metrics import serve_metrics
from mta_client.protocol.client import AliceMTAClient

log = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mta-client",
        description="Alice side of the secp256k1 OT multiplication-to-addition protocol",
    )
    parser.add_argument("host", nargs="?", default=None, help="Bob's host ('default' keeps MTA_HOST)")
    parser.add_argument("port", nargs="?", type=int, default=None, help="Bob's port")
    parser.add_argument("share", nargs="?", type=int, default=None, help="Alice's multiplicative share")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def apply_args(config: Config, args: argparse.Namespace) -> Config:
    """Command-line values override the environment."""
    overrides: dict[str, object] = {}
    if args.host and args.host != "default":
        overrides["host"] = args.host
    if args.port is not None:
        if 0 < args.port <= 65535:
            overrides["port"] = args.port
        else:
            log.warning("invalid_port_argument", port=args.port, using=config.port)
    if args.share is not None:
        if 0 < args.share <= 0xFFFFFFFF:
            overrides["x_share"] = args.share
        else:
            log.warning("invalid_share_argument", msg="a random share will be drawn")
    return dataclasses.replace(config, **overrides) if overrides else config


def random_share(upper: int = 1_000_000) -> int:
    return secrets.randbelow(upper) + 1


async def probe_peer(host: str, port: int, timeout: float) -> bool:
    """True if a TCP connection to the peer can be opened within ``timeout``."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (OSError, TimeoutError, asyncio.TimeoutError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


def backoff_delay(base: float, attempt: int) -> float:
    """base · 2^(attempt−1), jittered to 50-150%."""
    return base * (2 ** (attempt - 1)) * (0.5 + random.random())


async def run_with_retry(config: Config, x_share: int) -> int | None:
    """Run the protocol up to ``max_retries`` times; the share on success."""
    loop = asyncio.get_running_loop()
    last_error: BaseException | None = None

    for attempt in range(1, config.max_retries + 1):
        client = AliceMTAClient(config.host, config.port, max_frame_size=config.max_frame_size)

        def _shutdown(sig: signal.Signals, client: AliceMTAClient = client) -> None:
            log.info("shutdown_signal", signal=sig.name)
            client.abort()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, _shutdown, sig)
            except (NotImplementedError, RuntimeError):
                pass

        log.info("mta_attempt", attempt=attempt, max_retries=config.max_retries)
        try:
            return await client.start_run(x_share)
        except (ProtocolError, OSError) as e:
            last_error = e
            log.error(
                "mta_attempt_failed",
                attempt=attempt,
                err=str(e),
                error_type=type(e).__name__,
            )
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                try:
                    loop.remove_signal_handler(sig)
                except (NotImplementedError, RuntimeError):
                    pass

        if attempt < config.max_retries:
            delay = backoff_delay(config.retry_delay, attempt)
            log.info("mta_retrying", delay_s=round(delay, 2))
            await asyncio.sleep(delay)

    log.error(
        "mta_failed",
        attempts=config.max_retries,
        last_error=str(last_error) if last_error else "unknown",
    )
    return None


async def async_main(argv: list[str] | None = None) -> int:
    config = apply_args(Config(), parse_args(argv))
    warnings = config.validate()
    for w in warnings:
        log.warning("config_warning", msg=w)

    x_share = config.x_share or random_share(config.random_share_max)

    if config.metrics_port:
        serve_metrics(config.metrics_port)

    log.info(
        "mta_client_starting",
        version=__version__,
        host=config.host,
        port=config.port,
        max_retries=config.max_retries,
        retry_delay_s=config.retry_delay,
        metrics_port=config.metrics_port or None,
    )

    if not await probe_peer(config.host, config.port, config.connect_timeout):
        log.error("peer_unreachable", host=config.host, port=config.port)
        return 1
    log.info("peer_reachable", host=config.host, port=config.port)

    share = await run_with_retry(config, x_share)
    if share is None:
        return 1
    log.info("mta_succeeded", additive_share=share)
    return 0


def main() -> None:
    """Start the MTA client."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
