"""
Unit tests for the HTTP API.

The UpdateChecker is mocked; tests cover report caching, refresh and
error handling of the endpoints.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

import httpx
from fastapi.testclient import TestClient

from api.routes import create_app
from updates.image import Image
from updates.update_checker import UpdateRun
from tests.conftest import DIGEST_1, DIGEST_2


@pytest.fixture
def mock_checker():
    checker = MagicMock()
    checker.run = AsyncMock(return_value=UpdateRun(images=[
        Image.from_reference("nginx:1.25", current_digest=DIGEST_1).with_latest_digest(DIGEST_2),
    ]))
    return checker


@pytest.fixture
def client(mock_checker):
    return TestClient(create_app(mock_checker))


class TestHealth:

    def test_health(self, client, mock_checker):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        mock_checker.run.assert_not_called()


class TestReport:

    def test_first_request_runs_check(self, client, mock_checker):
        response = client.get("/json")

        assert response.status_code == 200
        data = response.json()
        assert data["images"] == {"nginx:1.25": True}
        assert data["metrics"]["updates_available"] == 1
        mock_checker.run.assert_awaited_once()

    def test_report_is_cached(self, client, mock_checker):
        client.get("/json")
        client.get("/json")

        assert mock_checker.run.await_count == 1

    def test_refresh_runs_new_check(self, client, mock_checker):
        client.get("/json")
        mock_checker.run.return_value = UpdateRun(images=[
            Image.from_reference("nginx:1.25", current_digest=DIGEST_2).with_latest_digest(DIGEST_2),
        ])

        refreshed = client.post("/refresh")
        latest = client.get("/json")

        assert refreshed.status_code == 200
        assert refreshed.json()["images"] == {"nginx:1.25": False}
        assert latest.json()["images"] == {"nginx:1.25": False}
        assert mock_checker.run.await_count == 2

    def test_check_failure_returns_500(self, client, mock_checker):
        mock_checker.run.side_effect = RuntimeError("docker exploded")

        response = client.get("/json")

        assert response.status_code == 500
        assert "docker exploded" in response.json()["detail"]


# =============================================================================
# Overlapping requests
# =============================================================================

def slow_checker():
    """Checker whose runs take a moment and record how many overlap"""
    state = {"active": 0, "max_active": 0}

    async def run(references=None):
        state["active"] += 1
        state["max_active"] = max(state["max_active"], state["active"])
        await asyncio.sleep(0.01)
        state["active"] -= 1
        return UpdateRun(images=[
            Image.from_reference("nginx:1.25", current_digest=DIGEST_1).with_latest_digest(DIGEST_1),
        ])

    checker = MagicMock()
    checker.run = AsyncMock(side_effect=run)
    return checker, state


async def send_together(app, *requests):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://dockcup") as http:
        return await asyncio.gather(*(http.request(method, path) for method, path in requests))


class TestOverlappingRequests:
    """The app is built before the server's event loop exists, as in main.py"""

    def test_lock_not_created_with_app(self):
        checker, _ = slow_checker()

        app = create_app(checker)

        assert app.state.store._lock is None

    def test_concurrent_refreshes_run_one_at_a_time(self):
        checker, state = slow_checker()
        app = create_app(checker)

        responses = asyncio.run(send_together(app, ("POST", "/refresh"), ("POST", "/refresh")))

        assert [response.status_code for response in responses] == [200, 200]
        assert checker.run.await_count == 2
        assert state["max_active"] == 1

    def test_concurrent_cold_reports_share_one_check(self):
        checker, _ = slow_checker()
        app = create_app(checker)

        responses = asyncio.run(send_together(app, ("GET", "/json"), ("GET", "/json")))

        assert [response.status_code for response in responses] == [200, 200]
        assert responses[0].json()["images"] == {"nginx:1.25": False}
        assert checker.run.await_count == 1
