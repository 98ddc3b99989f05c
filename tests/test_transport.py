"""Tests for the retrying HTTP wrapper."""

import asyncio
import errno
import socket

import httpx
import pytest

from conftest import RecordingTransport, slow_json_server
from looklab.errors import NetworkError
from looklab.schemas.generation import GenerationRequest
from looklab.vendor import transport
from looklab.vendor.adapter import EvolinkAdapter
from looklab.vendor.transport import (
    IDEMPOTENCY_HEADER,
    RetryPolicy,
    is_retryable,
    send_with_retries,
)

URL = "https://vendor.test/v1/images/generations"


@pytest.fixture
def sleeps(monkeypatch):
    """Record backoff delays instead of sleeping."""
    recorded = []

    async def fake_sleep(delay):
        recorded.append(delay)

    monkeypatch.setattr(transport.asyncio, "sleep", fake_sleep)
    return recorded


def _send(recorder, policy=None, **kwargs):
    async def go():
        async with recorder.client() as client:
            return await send_with_retries(client, "POST", URL, policy=policy, json={"a": 1}, **kwargs)

    return asyncio.run(go())


class TestRetries:

    def test_success_first_try(self, sleeps):
        recorder = RecordingTransport(httpx.Response(200, json={"id": "t1"}))
        response = _send(recorder)
        assert response.status_code == 200
        assert len(recorder.requests) == 1
        assert sleeps == []

    def test_retries_connect_error_with_same_idempotency_key(self, sleeps):
        recorder = RecordingTransport(
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json={"id": "t1"}),
        )
        response = _send(recorder)
        assert response.json() == {"id": "t1"}
        keys = [r.headers[IDEMPOTENCY_HEADER] for r in recorder.requests]
        assert len(keys) == 2
        assert keys[0] == keys[1]
        assert sleeps == [0.25]

    def test_caller_supplied_key_is_sent(self, sleeps):
        recorder = RecordingTransport(httpx.Response(200, json={}))
        _send(recorder, idempotency_key="fixed-key")
        assert recorder.requests[0].headers[IDEMPOTENCY_HEADER] == "fixed-key"

    def test_separate_calls_get_distinct_keys(self, sleeps):
        recorder = RecordingTransport(httpx.Response(200, json={}), httpx.Response(200, json={}))
        _send(recorder)
        _send(recorder)
        first, second = (r.headers[IDEMPOTENCY_HEADER] for r in recorder.requests)
        assert first != second

    def test_http_errors_are_not_retried(self, sleeps):
        recorder = RecordingTransport(httpx.Response(503, json={"error": "busy"}))
        response = _send(recorder)
        assert response.status_code == 503
        assert len(recorder.requests) == 1

    def test_gives_up_after_retry_bound(self, sleeps):
        recorder = RecordingTransport(
            httpx.ConnectError("refused"),
            httpx.ConnectError("refused"),
        )
        with pytest.raises(NetworkError) as excinfo:
            _send(recorder)
        assert excinfo.value.attempts == 2
        assert len(recorder.requests) == 2
        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)

    def test_linear_backoff(self, sleeps):
        recorder = RecordingTransport(
            httpx.ConnectError("refused"),
            httpx.ConnectError("refused"),
            httpx.ConnectError("refused"),
            httpx.Response(200, json={}),
        )
        _send(recorder, policy=RetryPolicy(retries=3, backoff=0.25))
        assert sleeps == [0.25, 0.5, 0.75]

    def test_non_retryable_transport_error(self, sleeps):
        recorder = RecordingTransport(httpx.UnsupportedProtocol("ftp is not supported"))
        with pytest.raises(NetworkError) as excinfo:
            _send(recorder)
        assert excinfo.value.attempts == 1
        assert len(recorder.requests) == 1


def test_per_attempt_timeout_counts_as_retryable():
    calls = []

    async def slow(request):
        calls.append(request)
        await asyncio.sleep(1)
        return httpx.Response(200, json={})

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(slow)) as client:
            await send_with_retries(client, "GET", URL, policy=RetryPolicy(retries=1, timeout=0.05, backoff=0.01))

    with pytest.raises(NetworkError) as excinfo:
        asyncio.run(go())
    assert len(calls) == 2
    assert "timed out" in excinfo.value.message


class TestSocketTimeouts:

    def test_policy_timeout_overrides_client_default(self):
        async def go():
            async with slow_json_server(0.5, {"id": "t1"}) as base:
                async with httpx.AsyncClient(timeout=0.1) as client:
                    return await send_with_retries(
                        client,
                        "POST",
                        f"{base}/v1/images/generations",
                        policy=RetryPolicy(retries=0, timeout=5.0),
                        json={"a": 1},
                    )

        assert asyncio.run(go()).json() == {"id": "t1"}

    def test_vendor_client_waits_for_slow_create(self):
        async def go():
            async with slow_json_server(0.5, {"id": "abc", "status": "submitted"}) as base:
                adapter = EvolinkAdapter("key", base, retry=RetryPolicy(retries=0, timeout=5.0))
                return await adapter.submit(GenerationRequest(prompt="red silk dress"))

        assert asyncio.run(go()).task_id == "abc"


class TestIsRetryable:

    def test_timeouts(self):
        assert is_retryable(asyncio.TimeoutError())
        assert is_retryable(httpx.ReadTimeout("slow"))

    def test_connection_reset_in_cause_chain(self):
        exc = httpx.ReadError("read failed")
        exc.__cause__ = ConnectionResetError(errno.ECONNRESET, "reset by peer")
        assert is_retryable(exc)

    def test_dns_try_again(self):
        exc = httpx.ReadError("lookup failed")
        exc.__cause__ = socket.gaierror(socket.EAI_AGAIN, "temporary failure")
        assert is_retryable(exc)

    def test_other_os_errors_are_not_retryable(self):
        exc = httpx.ReadError("denied")
        exc.__cause__ = PermissionError(errno.EACCES, "denied")
        assert not is_retryable(exc)

    def test_plain_exceptions_are_not_retryable(self):
        assert not is_retryable(ValueError("nope"))
