"""
Bridge router - catch-all route that relays every request to the target through the upstream proxy.
"""
from __future__ import annotations

from typing import AsyncIterator, Tuple

import httpx
from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import HTMLResponse, StreamingResponse
from starlette.requests import ClientDisconnect

from i2a.config import BridgeConfig
from i2a.logging import get_logger
from i2a.services.proxy import build_target_url, filter_response_headers, forward_request
from i2a.state import app_state

logger = get_logger(__name__)

router = APIRouter(tags=["bridge"])

BAD_GATEWAY_BODY = "<h1>i2a Error</h1><p>Upstream I2P connection failed.</p>"


def path_and_query(request: Request) -> str:
    """
    Return the inbound path and query string exactly as the client sent them.

    The raw path is used so percent-encoding survives the round trip.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.url.path
    query = request.scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


def bad_gateway() -> Response:
    return HTMLResponse(content=BAD_GATEWAY_BODY, status_code=502)


def _require_state() -> Tuple[BridgeConfig, httpx.AsyncClient]:
    if app_state.config is None or app_state.http_client is None:
        logger.error("Bridge used before startup completed")
        raise HTTPException(status_code=500, detail="Internal server error")
    return app_state.config, app_state.http_client


async def _relay_body(upstream: httpx.Response, url: str) -> AsyncIterator[bytes]:
    """Yield upstream body bytes as received, still encoded, and release the connection afterwards."""
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    except httpx.RequestError as e:
        # Status line is already sent; aborting the connection is all that is left
        logger.warning(f"Upstream body from {url} broke off: {e!r}")
        raise
    finally:
        await upstream.aclose()


async def bridge(request: Request) -> Response:
    """
    Relay the request to `<target><path>?<query>` through the upstream proxy.

    **Flow:**
    1. Rewrite the URL onto the configured target
    2. Stream the request body upstream
    3. Stream the upstream status and body back
    4. Answer 502 on any transport failure
    """
    config, client = _require_state()
    url = build_target_url(config.target, path_and_query(request))

    # Inbound headers are only passed on when explicitly enabled
    headers = request.headers.items() if config.forward_headers else None

    try:
        upstream = await forward_request(
            client=client,
            method=request.method,
            url=url,
            body=request.stream(),
            headers=headers,
        )
    except (httpx.RequestError, httpx.InvalidURL) as e:
        logger.warning(f"Upstream connection failed for {request.method} {url}: {e!r}")
        return bad_gateway()
    except ClientDisconnect:
        logger.info(f"Client went away while uploading {request.method} {url}")
        return Response(status_code=400)

    logger.debug(f"{request.method} {url} -> {upstream.status_code}")

    response = StreamingResponse(_relay_body(upstream, url), status_code=upstream.status_code)
    if config.forward_headers:
        for key, value in filter_response_headers(upstream.headers.multi_items()):
            response.headers.append(key, value)
    return response


# No method list: every verb, including WebDAV and extension methods, is relayed
router.add_route("/{path:path}", bridge, include_in_schema=False)
