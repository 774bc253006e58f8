"""
Shared test fixtures and helpers.
"""
from __future__ import annotations

import asyncio
import socket
from dataclasses import dataclass, field
from typing import Generator, List

import httpx
import pytest
from fastapi import FastAPI

from i2a.config import BridgeConfig
from i2a.routers import bridge
from i2a.state import AppState, app_state


TEST_TARGET = "http://example.i2p"
TEST_PORT = 8790
TEST_UPSTREAM = 4444


def free_port() -> int:
    """Return a local port that nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def make_config(**overrides) -> BridgeConfig:
    """Build a config that ignores the environment-provided values."""
    values = dict(
        target=TEST_TARGET,
        port=TEST_PORT,
        upstream=TEST_UPSTREAM,
        router_enabled=False,
        readiness_attempts=3,
        readiness_interval=0.01,
    )
    values.update(overrides)
    return BridgeConfig(**values)


@pytest.fixture
def bridge_config() -> BridgeConfig:
    return make_config()


@pytest.fixture
def bridge_app(bridge_config) -> Generator[FastAPI, None, None]:
    """
    A FastAPI app with only the bridge route and app_state set up by hand.
    The http_client is left to each test so it can be created after httpx_mock.
    """
    original_config = app_state.config
    original_client = app_state.http_client
    original_router = app_state.router

    app_state.config = bridge_config

    test_app = FastAPI()
    test_app.include_router(bridge.router)

    yield test_app

    app_state.config = original_config
    app_state.http_client = original_client
    app_state.router = original_router


@pytest.fixture
def restore_app_state() -> Generator[AppState, None, None]:
    """Put app_state back the way it was after a lifespan test."""
    original_config = app_state.config
    original_client = app_state.http_client
    original_router = app_state.router

    yield app_state

    app_state.config = original_config
    app_state.http_client = original_client
    app_state.router = original_router


@dataclass
class ProxiedRequest:
    """A request as seen by the fake upstream proxy."""
    request_line: str
    headers: dict
    body: bytes

    @property
    def method(self) -> str:
        return self.request_line.split(" ")[0]

    @property
    def target(self) -> str:
        return self.request_line.split(" ")[1]


@dataclass
class FakeUpstreamProxy:
    """
    Minimal HTTP proxy stand-in: records each request and answers with a
    fixed status and body without contacting anything.

    Requests whose target contains `hang_marker` are recorded but never
    answered until the proxy closes.
    """
    status: int = 200
    body: bytes = b"ok"
    headers: dict = field(default_factory=dict)
    hang_marker: str | None = None
    requests: List[ProxiedRequest] = field(default_factory=list)
    server: asyncio.AbstractServer | None = None

    @property
    def port(self) -> int:
        return self.server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._released = asyncio.Event()
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)

    async def close(self) -> None:
        self._released.set()
        self.server.close()
        await self.server.wait_closed()

    async def _read_body(self, reader: asyncio.StreamReader, headers: dict) -> bytes:
        if headers.get("transfer-encoding", "").lower() == "chunked":
            body = b""
            while True:
                size = int((await reader.readline()).strip().split(b";")[0], 16)
                if size == 0:
                    await reader.readline()
                    return body
                body += await reader.readexactly(size)
                await reader.readline()
        length = int(headers.get("content-length", "0"))
        return await reader.readexactly(length) if length else b""

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            while True:
                request_line = (await reader.readline()).decode("latin-1").strip()
                if not request_line:
                    return
                headers = {}
                while True:
                    line = (await reader.readline()).decode("latin-1").strip()
                    if not line:
                        break
                    key, _, value = line.partition(":")
                    headers[key.strip().lower()] = value.strip()
                try:
                    body = await self._read_body(reader, headers)
                except (asyncio.IncompleteReadError, ValueError):
                    # Sender gave up mid-body
                    return
                request = ProxiedRequest(request_line, headers, body)
                self.requests.append(request)
                if self.hang_marker and self.hang_marker in request.target:
                    await self._released.wait()
                    return

                extra = "".join(f"{k}: {v}\r\n" for k, v in self.headers.items())
                writer.write(
                    f"HTTP/1.1 {self.status} Status\r\n{extra}"
                    f"Content-Length: {len(self.body)}\r\n\r\n".encode() + self.body
                )
                await writer.drain()
        finally:
            writer.close()


@pytest.fixture
async def fake_upstream_proxy() -> FakeUpstreamProxy:
    proxy = FakeUpstreamProxy()
    await proxy.start()
    yield proxy
    await proxy.close()


@pytest.fixture
def closed_port() -> int:
    return free_port()
