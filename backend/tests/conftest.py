"""
Shared pytest fixtures for dockcup tests.

Fixtures provided:
- checker_config: CheckerConfig with fast retries and credentials for a.example
- fake_transport: In-memory registry transport that records every request
- registry_client: RetryingClient wired to fake_transport
- mock_docker_client: Mock Docker SDK client with no images

Registry traffic never leaves the process: tests queue responses on
FakeTransport per (method, url) and inspect `calls` afterwards.
"""

import asyncio
import os
from asyncio import sleep as _yield
import sys
from collections import Counter
from typing import Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from models.config_models import CheckerConfig
from updates.http_client import RegistryResponse, RetryingClient, RetryPolicy


DIGEST_1 = "sha256:" + "1" * 64
DIGEST_2 = "sha256:" + "2" * 64
DIGEST_3 = "sha256:" + "3" * 64


def bearer_challenge(realm: str, service: str) -> RegistryResponse:
    """401 from /v2/ asking for a bearer token."""
    return RegistryResponse(
        status=401,
        headers={"WWW-Authenticate": f'Bearer realm="{realm}",service="{service}"'},
    )


def token_response(token: str = "test-token") -> RegistryResponse:
    return RegistryResponse(status=200, body=f'{{"token": "{token}"}}'.encode())


def digest_response(digest: str) -> RegistryResponse:
    return RegistryResponse(status=200, headers={"Docker-Content-Digest": digest})


class Gated:
    """Outcome held back until `event` is set"""

    def __init__(self, event: asyncio.Event, outcome):
        self.event = event
        self.outcome = outcome


class FakeTransport:
    """
    Transport double for RetryingClient.

    Each (method, url) has a queue of responses or exceptions. Items are
    consumed in order; the last item repeats once the queue runs dry.
    Unrouted requests get a 404. Every send yields to the event loop once
    so concurrent requests really overlap; `max_in_flight` records the
    highest overlap per method.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List] = {}
        self.calls: List[Dict] = []
        self.closed = False
        self.in_flight: Counter = Counter()
        self.max_in_flight: Counter = Counter()

    def add(self, method: str, url: str, *outcomes):
        self.routes.setdefault((method, url), []).extend(outcomes)
        return self

    async def send(self, method, url, headers=None, params=None):
        self.calls.append({
            "method": method,
            "url": url,
            "headers": dict(headers or {}),
            "params": list(params.items()) if isinstance(params, dict) else list(params or []),
        })
        self.in_flight[method] += 1
        self.max_in_flight[method] = max(self.max_in_flight[method], self.in_flight[method])
        try:
            await _yield(0)
            queue = self.routes.get((method, url))
            if not queue:
                return RegistryResponse(status=404, url=url)

            outcome = queue.pop(0) if len(queue) > 1 else queue[0]
            if isinstance(outcome, Gated):
                await outcome.event.wait()
                outcome = outcome.outcome
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        finally:
            self.in_flight[method] -= 1

    async def close(self):
        self.closed = True

    def calls_to(self, url: str, method: Optional[str] = None) -> List[Dict]:
        return [
            call for call in self.calls
            if call["url"] == url and (method is None or call["method"] == method)
        ]


@pytest.fixture
def checker_config():
    """Config with zero-delay retries so retry tests stay fast"""
    return CheckerConfig.model_validate({
        "authentication": {"a.example": {"username": "user", "password": "secret"}},
        "retry": {"max_retries": 3, "initial_delay": 0, "max_delay": 0},
    })


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def registry_client(fake_transport):
    return RetryingClient(
        transport=fake_transport,
        retry_policy=RetryPolicy(max_retries=3, initial_delay=0, max_delay=0),
    )


@pytest.fixture
def mock_docker_client():
    """
    Mock Docker SDK client for testing without real Docker daemon.

    Returns a MagicMock whose images.list() returns no images.
    """
    client = MagicMock()
    client.images.list = MagicMock(return_value=[])
    return client
