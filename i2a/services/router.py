"""
Router service - runs the I2P router the bridge depends on as a supervised background task.
"""
from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from i2a.logging import get_logger

logger = get_logger(__name__)


class RouterError(RuntimeError):
    """The router process exited with an error."""


class RouterHealth(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class RouterOptions:
    """Feature toggles handed to the router. Everything else is left at the router's defaults."""
    http_proxy_port: int
    http_proxy_host: str = "127.0.0.1"
    disable_ui: bool = True

    def to_args(self) -> List[str]:
        args = [
            "--http-proxy-port", str(self.http_proxy_port),
            "--http-proxy-host", self.http_proxy_host,
        ]
        if self.disable_ui:
            args.append("--disable-ui")
        return args


RouterRunner = Callable[[RouterOptions], Awaitable[None]]

# Grace period for the router to exit on SIGTERM before it is killed
ROUTER_STOP_TIMEOUT = 10.0


async def _relay_output(stream: asyncio.StreamReader) -> None:
    """Forward router output lines into the log."""
    async for line in stream:
        text = line.decode(errors="replace").rstrip()
        if text:
            logger.debug(f"[router] {text}")


async def _stop_process(process: asyncio.subprocess.Process, timeout: float) -> None:
    if process.returncode is not None:
        return
    process.terminate()
    try:
        await asyncio.wait_for(process.wait(), timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Router (pid {process.pid}) ignored SIGTERM for {timeout}s, killing it")
        process.kill()
        await process.wait()


async def run_router_process(
    options: RouterOptions,
    command: str = "emissary-cli",
    stop_timeout: float = ROUTER_STOP_TIMEOUT,
) -> None:
    """
    Run the router executable until it exits.

    If the surrounding task is cancelled the child is sent SIGTERM, then
    SIGKILL once `stop_timeout` seconds pass without it exiting.

    Raises:
        RouterError: If the executable is missing or exits with a non-zero status
    """
    try:
        process = await asyncio.create_subprocess_exec(
            command,
            *options.to_args(),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        raise RouterError(f"Failed to launch router {command!r}: {e}") from e

    logger.debug(f"Router process started (pid {process.pid})")
    relay = asyncio.create_task(_relay_output(process.stdout))
    try:
        returncode = await process.wait()
    except asyncio.CancelledError:
        await _stop_process(process, stop_timeout)
        raise
    finally:
        # A leftover grandchild can hold the output pipe open after the router is gone
        try:
            await asyncio.wait_for(relay, stop_timeout)
        except asyncio.TimeoutError:
            logger.warning("Router output still open after exit, no longer relaying it")

    if returncode != 0:
        raise RouterError(f"Router exited with status {returncode}")


class RouterManager:
    """
    Owns the background router task.

    start() returns immediately; router failures are logged and recorded
    in `health` but never raised to the caller.
    """

    def __init__(self, runner: RouterRunner):
        self._runner = runner
        self._task: Optional[asyncio.Task] = None
        self.health = RouterHealth.IDLE
        self.last_error: Optional[BaseException] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, port: int) -> None:
        """Schedule the router on the running event loop, exposing its HTTP proxy on `port`."""
        if self.running:
            logger.warning("Router already running, ignoring start request")
            return
        logger.info("Starting embedded I2P router...")
        self.health = RouterHealth.RUNNING
        self.last_error = None
        self._task = asyncio.get_running_loop().create_task(
            self._supervise(RouterOptions(http_proxy_port=port)),
            name="i2a-router",
        )
        logger.info("Router background task started")

    async def _supervise(self, options: RouterOptions) -> None:
        try:
            await self._runner(options)
        except asyncio.CancelledError:
            self.health = RouterHealth.STOPPED
            raise
        except Exception as e:
            self.health = RouterHealth.FAILED
            self.last_error = e
            logger.error(f"Router error: {e!r}")
        else:
            self.health = RouterHealth.STOPPED
            logger.warning("Router exited")

    async def stop(self) -> None:
        """Cancel the router task and wait for it to finish."""
        if not self.running:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.info("Router stopped")
