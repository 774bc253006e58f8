#!/usr/bin/env python3
"""
Smoke-test script that sends requests through a running i2a bridge.

Usage:
    python scripts/send_requests.py                          # GET / once
    python scripts/send_requests.py --path /status?x=1       # Custom path
    python scripts/send_requests.py --method POST --data '{"a":1}'
    python scripts/send_requests.py --concurrency 50         # Parallel burst
"""
from __future__ import annotations

import argparse
import asyncio
import sys
import time

import httpx


async def send_one(
    client: httpx.AsyncClient, index: int, method: str, url: str, data: bytes | None
) -> bool:
    """Send a single request and print a one-line summary."""
    start = time.perf_counter()
    try:
        response = await client.request(method, url, content=data)
    except httpx.RequestError as e:
        print(f"[{index:>3}] ❌ {e!r}")
        return False

    elapsed_ms = (time.perf_counter() - start) * 1000
    marker = "✅" if response.status_code < 400 else "⚠️"
    print(
        f"[{index:>3}] {marker} {response.status_code} "
        f"{len(response.content)} bytes in {elapsed_ms:.0f} ms"
    )
    if response.status_code == 502:
        print(f"      {response.text}")
    return response.status_code < 500


async def run(args: argparse.Namespace) -> int:
    url = args.bridge_url.rstrip("/") + args.path
    data = args.data.encode() if args.data is not None else None

    print(f"\n📤 {args.method} {url} x{args.concurrency}")
    # No timeout: I2P round trips are slow and the bridge itself never gives up
    async with httpx.AsyncClient(timeout=None) as client:
        results = await asyncio.gather(*(
            send_one(client, i, args.method, url, data)
            for i in range(args.concurrency)
        ))

    ok = sum(results)
    print(f"\n📥 {ok}/{len(results)} succeeded")
    return 0 if ok == len(results) else 1


def main():
    parser = argparse.ArgumentParser(description="Send requests through the i2a bridge")
    parser.add_argument("--bridge-url", default="http://127.0.0.1:8790", help="Bridge URL")
    parser.add_argument("--path", default="/", help="Path and query to request")
    parser.add_argument("--method", default="GET", help="HTTP method")
    parser.add_argument("--data", help="Request body")
    parser.add_argument("--concurrency", type=int, default=1, help="Number of parallel requests")

    args = parser.parse_args()
    if not args.path.startswith("/"):
        args.path = "/" + args.path

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
