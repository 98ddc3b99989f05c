"""Pytest configuration and shared fixtures."""

import asyncio
import base64
import contextlib
import json

import httpx
import pytest

from looklab.config import Settings

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")


class RecordingTransport:
    """httpx.MockTransport handler that records requests and replays queued responses.

    Queue items are ``httpx.Response`` objects, exceptions to raise, or callables
    taking the request.
    """

    def __init__(self, *responses):
        self.queue = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.queue:
            raise AssertionError(f"unexpected request {request.method} {request.url}")
        item = self.queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(request)
        return item

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def json_bodies(self) -> list:
        return [json.loads(r.content) if r.content else None for r in self.requests]


@contextlib.asynccontextmanager
async def slow_json_server(delay: float, body):
    """Local HTTP server that answers every request with ``body`` after ``delay`` seconds.

    Yields the base URL. Exercises real socket timeouts, which MockTransport cannot.
    """

    async def handle(reader, writer):
        head = await reader.readuntil(b"\r\n\r\n")
        length = 0
        for line in head.split(b"\r\n"):
            if line.lower().startswith(b"content-length:"):
                length = int(line.split(b":", 1)[1])
        if length:
            await reader.readexactly(length)
        await asyncio.sleep(delay)
        payload = json.dumps(body).encode()
        writer.write(
            b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n"
            b"Content-Length: %d\r\nConnection: close\r\n\r\n" % len(payload) + payload
        )
        await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    async with server:
        yield f"http://127.0.0.1:{port}"


@pytest.fixture
def png_bytes():
    return PNG_BYTES


@pytest.fixture
def png_data_url():
    return PNG_DATA_URL


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temporary data dir with fake credentials."""
    s = Settings(
        evolink_api_key="test-evolink-key",
        apimart_api_key="test-apimart-key",
        looklab_data_dir=str(tmp_path / "data"),
        looklab_public_files_url="http://testserver/files",
    )
    s.ensure_dirs()
    return s
