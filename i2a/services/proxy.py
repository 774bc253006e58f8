"""
Proxy service - rewrites inbound requests onto the target and forwards them upstream.
"""
from __future__ import annotations

from typing import AsyncIterator, Iterable, List, Optional, Tuple

import httpx

# Hop-by-hop headers that should not be forwarded in either direction
HOP_BY_HOP_HEADERS = frozenset({
    "connection", "keep-alive", "proxy-authenticate", "proxy-authorization",
    "proxy-connection", "te", "trailer", "trailers", "transfer-encoding", "upgrade",
})

# Dropped on the way upstream; httpx sets these for the outbound request
_REQUEST_SKIP_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}

# Dropped on the way back; the response body is re-framed but relayed still encoded
_RESPONSE_SKIP_HEADERS = HOP_BY_HOP_HEADERS | {"content-length"}


def build_target_url(base_url: str, path_and_query: str) -> str:
    """
    Join the target base URL and the inbound path+query.

    Plain concatenation: "http://example.i2p" + "/status?x=1". A trailing
    slash on the base is kept as-is.
    """
    return base_url + path_and_query


def filter_request_headers(headers: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Drop hop-by-hop headers, keeping repeated headers as separate entries."""
    return [(k, v) for k, v in headers if k.lower() not in _REQUEST_SKIP_HEADERS]


def filter_response_headers(headers: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    return [(k, v) for k, v in headers if k.lower() not in _RESPONSE_SKIP_HEADERS]


async def forward_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    body: AsyncIterator[bytes],
    headers: Optional[Iterable[Tuple[str, str]]] = None,
) -> httpx.Response:
    """
    Send one request upstream, streaming the body in both directions.

    The returned response has not been read yet; the caller must consume
    it and call `aclose()`.

    Args:
        client: Shared upstream client
        method: HTTP method of the inbound request
        url: Full target URL
        body: Inbound body chunks, passed through without buffering
        headers: Headers to send, or None to send only the client's defaults.
            Accept-Encoding goes out only if it is among them.

    Raises:
        httpx.RequestError: On any transport failure talking to the upstream
    """
    outbound = filter_request_headers(headers) if headers is not None else []
    request = client.build_request(method, url, content=body, headers=outbound or None)

    # The body comes back as raw bytes, so only the caller may ask for a content coding
    if not any(key.lower() == "accept-encoding" for key, _ in outbound):
        request.headers.pop("accept-encoding", None)
    return await client.send(request, stream=True)
