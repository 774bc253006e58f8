"""
Readiness service - waits for the upstream proxy port to accept TCP connections.
"""
from __future__ import annotations

import asyncio

from i2a.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 60
DEFAULT_INTERVAL = 1.0


class ReadinessTimeout(RuntimeError):
    """The upstream proxy did not become reachable within the readiness window."""


async def _try_connect(host: str, port: int) -> bool:
    """Try a single TCP connect and close it straight away."""
    try:
        _, writer = await asyncio.open_connection(host, port)
    except OSError:
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass  # Peer hung up first, the connect itself succeeded
    return True


async def wait_for_upstream(
    port: int,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    interval: float = DEFAULT_INTERVAL,
    host: str = "127.0.0.1",
) -> bool:
    """
    Poll the upstream proxy until it accepts a TCP connection.

    Sleeps between attempts are cooperative, so the router task keeps
    running on the same loop while this waits.

    Args:
        port: Upstream proxy port
        max_attempts: Number of connection attempts before giving up
        interval: Seconds to sleep after each failed attempt
        host: Upstream proxy host

    Returns:
        True as soon as a connection succeeds, False after max_attempts failures
    """
    logger.info(f"Connecting to upstream proxy at {host}:{port}...")
    for attempt in range(1, max_attempts + 1):
        if await _try_connect(host, port):
            logger.info(f"Connected to upstream proxy after {attempt} attempt(s)")
            return True
        logger.debug(f"Upstream proxy not ready (attempt {attempt}/{max_attempts})")
        if attempt < max_attempts:
            await asyncio.sleep(interval)
    logger.error(f"Timed out waiting for upstream proxy at {host}:{port}")
    return False


async def ensure_upstream_ready(
    port: int,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    interval: float = DEFAULT_INTERVAL,
) -> None:
    """
    Like wait_for_upstream, but raise instead of returning False.

    Raises:
        ReadinessTimeout: If the upstream never became reachable
    """
    if not await wait_for_upstream(port, max_attempts=max_attempts, interval=interval):
        raise ReadinessTimeout(
            f"Could not connect to upstream proxy on port {port} "
            f"after {max_attempts} attempts"
        )
