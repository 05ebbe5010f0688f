"""End-to-end tests driving the client controller against the real application."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from subway_client.catalog import StationCatalog
from subway_client.client import TrackerClient
from subway_client.controller import AuthState, TrackerController


@pytest.fixture(scope="function")
def controller_factory(app):
    """Controllers with their own cookie jar against the shared app."""
    http_clients: list[AsyncClient] = []

    def _factory() -> TrackerController:
        http_client = AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")
        http_clients.append(http_client)
        client = TrackerClient(base_url="http://testserver", http_client=http_client)
        return TrackerController(client, StationCatalog.load())

    return _factory, http_clients


@pytest.mark.asyncio
async def test_controller_round_trip(controller_factory) -> None:
    """Register, toggle a complex, resume in a second controller, then clear."""
    factory, http_clients = controller_factory
    try:
        alice = factory()
        assert await alice.start() is AuthState.UNAUTHENTICATED
        assert await alice.authenticate("alice", "1234", register=True)
        assert alice.state is AuthState.AUTHENTICATED

        result = await alice.toggle_station("L02")
        assert result.target_visited is True
        assert result.applied == ["L02", "D19"]
        assert alice.visited == ("L02", "D19")

        resumed = factory()
        assert await resumed.authenticate("alice", "1234")
        assert resumed.visited == ("L02", "D19")
        assert resumed.stats().visited == 1

        assert await resumed.clear_all()
        await alice.refresh_visited()
        assert alice.visited == ()

        rows = await alice.leaderboard_view()
        assert [(row.handle, row.count, row.is_current_user) for row in rows] == [
            ("alice", 0, True)
        ]
    finally:
        for http_client in http_clients:
            await http_client.aclose()


@pytest.mark.asyncio
async def test_controller_reports_bad_credentials(controller_factory) -> None:
    """A failed login leaves the controller unauthenticated with the server message."""
    factory, http_clients = controller_factory
    try:
        controller = factory()
        assert not await controller.authenticate("ghost", "1234")
        assert controller.state is AuthState.UNAUTHENTICATED
        assert controller.error == "Invalid handle or PIN."
    finally:
        for http_client in http_clients:
            await http_client.aclose()
