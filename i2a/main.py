"""
i2a - I2P to API Bridge

Entry point for the FastAPI application.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from functools import partial
from typing import Optional

from fastapi import FastAPI
from dotenv import load_dotenv

from i2a.config import BridgeConfig, get_config
from i2a.logging import configure_logging, get_logger
from i2a.routers import bridge
from i2a.services.readiness import ReadinessTimeout, ensure_upstream_ready
from i2a.services.router import RouterManager, RouterRunner, run_router_process
from i2a.services.upstream import build_upstream_client
from i2a.state import app_state

load_dotenv()

logger = get_logger(__name__)


def _init_router(config: BridgeConfig, runner: Optional[RouterRunner]) -> None:
    """Launch the embedded router in the background, if enabled."""
    if not config.router_enabled:
        logger.info(f"Embedded router disabled, expecting an upstream proxy on port {config.upstream}")
        app_state.router = None
        return
    if runner is None:
        runner = partial(run_router_process, command=config.router_command)
    app_state.router = RouterManager(runner)
    app_state.router.start(config.upstream)


def _init_http_client(config: BridgeConfig) -> None:
    """Initialize shared HTTP client for upstream requests."""
    app_state.http_client = build_upstream_client(config.upstream, timeout=config.upstream_timeout)


async def _shutdown() -> None:
    if app_state.http_client:
        await app_state.http_client.aclose()
        app_state.http_client = None
        logger.info("HTTP client closed")
    if app_state.router:
        await app_state.router.stop()
        app_state.router = None


def create_app(
    config: Optional[BridgeConfig] = None,
    router_runner: Optional[RouterRunner] = None,
) -> FastAPI:
    """
    Build the bridge application.

    Args:
        config: Bridge settings, read from the environment when omitted
        router_runner: Replaces the router executable, mainly for tests
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the router, gate on upstream readiness, then serve."""
        settings = config or get_config()
        configure_logging(settings.log_level)
        app_state.config = settings
        logger.info(f"Target -> {settings.target}")
        logger.info(f"Local API -> 127.0.0.1:{settings.port}")

        try:
            _init_router(settings, router_runner)
            await ensure_upstream_ready(
                settings.upstream,
                max_attempts=settings.readiness_attempts,
                interval=settings.readiness_interval,
            )
            _init_http_client(settings)
        except Exception as e:
            if isinstance(e, ReadinessTimeout):
                logger.critical("Could not connect to I2P router, not serving")
            else:
                logger.critical(f"Startup failed: {e}")
            await _shutdown()
            app_state.config = None
            raise

        logger.success(f"Bridge is active. Access your API at http://127.0.0.1:{settings.port}")

        yield

        await _shutdown()
        app_state.config = None

    # Every path belongs to the target, so no docs routes
    app = FastAPI(
        title="i2a",
        description="I2P to API Bridge",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.include_router(bridge.router)
    return app


app = create_app()
