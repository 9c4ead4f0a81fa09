"""Shared fixtures: a fake network built on httpx.MockTransport."""

import json

import httpx
import pytest

from google_api_runtime import Connection, StaticTokenProvider


class FakeGoogleAPI:
    """Records requests and replays queued responses."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._responses: list[httpx.Response | Exception] = []

    def reply(self, status_code: int = 200, json_body=None, content: bytes | None = None):
        if json_body is not None:
            content = json.dumps(json_body).encode()
        self._responses.append(httpx.Response(status_code, content=content or b""))

    def fail(self, error: Exception):
        self._responses.append(error)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_api():
    """A fake Google API endpoint."""
    return FakeGoogleAPI()


@pytest.fixture
def connection(fake_api):
    """Connection with a static token routed to the fake API."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_api))
    return Connection(StaticTokenProvider("test-token"), client=client)
