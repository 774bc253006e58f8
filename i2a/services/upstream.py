"""
Upstream client - the shared HTTP client that tunnels every request through the I2P HTTP proxy.
"""
from __future__ import annotations

from typing import Optional

import httpx

from i2a.config import ConfigurationError
from i2a.logging import get_logger

logger = get_logger(__name__)

# No cap on open connections: I2P requests can stall for minutes and must not queue the rest
UPSTREAM_LIMITS = httpx.Limits(max_connections=None, max_keepalive_connections=20)


def upstream_proxy_url(port: int, host: str = "127.0.0.1") -> str:
    return f"http://{host}:{port}"


def build_upstream_client(
    upstream_port: int,
    timeout: Optional[float] = None,
    host: str = "127.0.0.1",
) -> httpx.AsyncClient:
    """
    Create the shared upstream client.

    Args:
        upstream_port: Port of the upstream HTTP proxy
        timeout: Optional timeout in seconds; None waits indefinitely
        host: Host of the upstream HTTP proxy

    Raises:
        ConfigurationError: If the proxy URL is malformed
    """
    proxy_url = upstream_proxy_url(upstream_port, host)
    try:
        if not isinstance(upstream_port, int) or not 0 < upstream_port < 65536:
            raise ValueError(f"port out of range: {upstream_port!r}")
        proxy = httpx.Proxy(proxy_url)
    except (httpx.InvalidURL, ValueError) as e:
        raise ConfigurationError(f"Invalid upstream proxy URL {proxy_url!r}: {e}") from e

    client = httpx.AsyncClient(
        proxy=proxy,
        timeout=httpx.Timeout(timeout),
        limits=UPSTREAM_LIMITS,
        follow_redirects=False,
    )
    logger.info(f"Upstream client routed through {proxy_url}")
    return client
