"""
Application state - shared state initialized at startup.
"""
from __future__ import annotations

import httpx

from i2a.config import BridgeConfig
from i2a.services.router import RouterManager


class AppState:
    """
    Application state container.
    Initialized at startup via lifespan, read by the bridge route.
    Nothing here is mutated while requests are in flight.
    """

    def __init__(self):
        self.config: BridgeConfig | None = None
        self.http_client: httpx.AsyncClient | None = None
        self.router: RouterManager | None = None


app_state = AppState()
