"""
Shared pytest fixtures for hostsmerge tests.

Provides:
- An in-process aiohttp list server that records every request
- A URL that refuses connections
- Small helpers for writing list files
"""

from __future__ import annotations

import asyncio
import socket
from pathlib import Path
from typing import Awaitable, Callable

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer


class ListServer:
    """Serve one blocklist body at /list.txt and record each request."""

    def __init__(self, body: bytes, etag: str | None = None, status: int = 200) -> None:
        self.body = body
        self.etag = etag
        self.status = status
        self.delay = 0.0
        self.requests: list[tuple[str, dict[str, str]]] = []

    @property
    def methods(self) -> list[str]:
        return [method for method, _ in self.requests]

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/list.txt", self.handle)
        return app

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append((request.method, dict(request.headers)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.status != 200:
            return web.Response(status=self.status)
        headers = {"ETag": self.etag} if self.etag else {}
        if self.etag and request.headers.get("If-None-Match") == self.etag:
            return web.Response(status=304, headers=headers)
        return web.Response(body=self.body, headers=headers)


async def serve(
    list_server: ListServer, scenario: Callable[[str], Awaitable]
):
    """Start `list_server`, run `scenario(url)`, and shut the server down."""
    async with TestServer(list_server.app()) as server:
        return await scenario(str(server.make_url("/list.txt")))


@pytest.fixture
def list_server() -> Callable[..., ListServer]:
    """Factory for ListServer instances."""
    return ListServer


@pytest.fixture
def run_with_server() -> Callable:
    """Run `scenario(url)` against a started ListServer, synchronously."""

    def _run(server: ListServer, scenario: Callable[[str], Awaitable]):
        return asyncio.run(serve(server, scenario))

    return _run


@pytest.fixture
def dead_url() -> str:
    """An http URL on a local port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/list.txt"


@pytest.fixture
def write_lines(tmp_path: Path) -> Callable[..., Path]:
    """Write `lines` to tmp_path/name and return the path."""

    def _write(name: str, *lines: str) -> Path:
        path = tmp_path / name
        path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
        return path

    return _write
