"""Unit tests for the client controller state machine and view models."""

from __future__ import annotations

import asyncio

import pytest

from subway_client.catalog import Station, StationCatalog
from subway_client.client import NETWORK_ERROR
from subway_client.controller import ALL_LINES, AuthState, TrackerController
from subway_client.exceptions import TrackerResponseError, TrackerUnavailableError


class _FakeClient:
    """In-memory stand-in for TrackerClient."""

    def __init__(self) -> None:
        self.user: dict | None = None
        self.server_visited: list[str] = []
        self.failing_ids: set[str] = set()
        self.login_error: Exception | None = None
        self.unauthorized = False
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[tuple[str, str]] = []

    async def me(self):
        return self.user

    async def login(self, handle: str, credential: str):
        if self.login_error is not None:
            raise self.login_error
        self.user = {"id": 1, "handle": handle}
        return self.user

    async def register(self, handle: str, credential: str):
        return await self.login(handle, credential)

    async def logout(self) -> None:
        self.user = None

    async def list_visited(self) -> list[str]:
        return list(self.server_visited)

    async def _station_call(self, method: str, station_id: str) -> None:
        self.calls.append((method, station_id))
        if station_id in self.gates:
            await self.gates[station_id].wait()
        if self.unauthorized:
            raise TrackerResponseError("Authentication required.", 401, "not_authenticated")
        if station_id in self.failing_ids:
            raise TrackerUnavailableError(NETWORK_ERROR)

    async def mark_visited(self, station_id: str):
        await self._station_call("mark", station_id)
        if station_id not in self.server_visited:
            self.server_visited.append(station_id)
        return {"success": True, "stationId": station_id}

    async def unmark_visited(self, station_id: str):
        await self._station_call("unmark", station_id)
        deleted = station_id in self.server_visited
        if deleted:
            self.server_visited.remove(station_id)
        return {"success": True, "stationId": station_id, "deleted": deleted}

    async def clear_visited(self):
        count = len(self.server_visited)
        self.server_visited = []
        return {"success": True, "deletedCount": count}

    async def leaderboard(self):
        return [{"handle": "bob", "count": 3}, {"handle": "alice", "count": 1}]


def _catalog() -> StationCatalog:
    return StationCatalog(
        [
            Station("L02", "6 Av", ("L",), 40.7373, -73.9968, complex="601"),
            Station("D19", "14 St", ("F", "M"), 40.7382, -73.9962, complex="601"),
            Station("L01", "8 Av", ("L",), 40.7398, -74.0026),
            Station("L08", "Bedford Av", ("L",), 40.7173, -73.9569),
            Station("101", "Van Cortlandt Park-242 St", ("1",), 40.8892, -73.8986),
            Station("142", "South Ferry", ("1",), 40.7021, -74.0137),
            Station("120", "96 St", ("1", "2", "3"), 40.7939, -73.9723),
        ],
        {"1": "#EE352E", "L": "#A7A9AC"},
    )


async def _signed_in(client: _FakeClient | None = None) -> tuple[TrackerController, _FakeClient]:
    fake = client or _FakeClient()
    controller = TrackerController(fake, _catalog())  # type: ignore[arg-type]
    assert await controller.authenticate("alice", "1234")
    return controller, fake


@pytest.mark.asyncio
async def test_start_without_session_is_unauthenticated() -> None:
    controller = TrackerController(_FakeClient(), _catalog())  # type: ignore[arg-type]

    assert await controller.start() is AuthState.UNAUTHENTICATED
    assert controller.error is None


@pytest.mark.asyncio
async def test_start_with_session_hydrates_visited() -> None:
    fake = _FakeClient()
    fake.user = {"id": 1, "handle": "alice"}
    fake.server_visited = ["101", "L01"]
    controller = TrackerController(fake, _catalog())  # type: ignore[arg-type]

    assert await controller.start() is AuthState.AUTHENTICATED
    assert controller.visited == ("101", "L01")


@pytest.mark.asyncio
async def test_failed_login_returns_to_unauthenticated_with_message() -> None:
    fake = _FakeClient()
    fake.login_error = TrackerResponseError("Invalid handle or PIN.", 401, "invalid_credentials")
    controller = TrackerController(fake, _catalog())  # type: ignore[arg-type]

    assert not await controller.authenticate("alice", "0000")
    assert controller.state is AuthState.UNAUTHENTICATED
    assert controller.error == "Invalid handle or PIN."


@pytest.mark.asyncio
async def test_network_failure_on_login_uses_generic_message() -> None:
    fake = _FakeClient()
    fake.login_error = TrackerUnavailableError("connection refused")
    controller = TrackerController(fake, _catalog())  # type: ignore[arg-type]

    assert not await controller.authenticate("alice", "1234", register=True)
    assert controller.error == NETWORK_ERROR


@pytest.mark.asyncio
async def test_toggle_marks_every_complex_member() -> None:
    controller, fake = await _signed_in()

    result = await controller.toggle_station("D19")

    assert result.target_visited is True
    assert result.applied == ["L02", "D19"]
    assert controller.visited == ("L02", "D19")
    assert fake.server_visited == ["L02", "D19"]


@pytest.mark.asyncio
async def test_toggle_target_comes_from_primary_id() -> None:
    """A half-visited complex is completed when the primary id is unvisited."""
    fake = _FakeClient()
    fake.server_visited = ["L02"]
    controller, _ = await _signed_in(fake)

    result = await controller.toggle_station("D19")

    assert result.target_visited is True
    assert result.applied == ["D19"]
    assert fake.calls == [("mark", "D19")]


@pytest.mark.asyncio
async def test_toggle_unmarks_complex() -> None:
    fake = _FakeClient()
    fake.server_visited = ["L02", "D19", "101"]
    controller, _ = await _signed_in(fake)

    result = await controller.toggle_station("L02")

    assert result.target_visited is False
    assert controller.visited == ("101",)


@pytest.mark.asyncio
async def test_partial_failure_applies_only_successful_calls() -> None:
    """No rollback: the mirror holds exactly the calls that succeeded."""
    controller, fake = await _signed_in()
    fake.failing_ids = {"D19"}

    result = await controller.toggle_station("L02")

    assert result.applied == ["L02"]
    assert result.failed == ["D19"]
    assert controller.visited == ("L02",)
    assert controller.visited == tuple(fake.server_visited)
    assert controller.error == NETWORK_ERROR


@pytest.mark.asyncio
async def test_expired_session_during_toggle_signs_out() -> None:
    controller, fake = await _signed_in()
    fake.unauthorized = True

    result = await controller.toggle_station("L02")

    assert result.failed == ["L02"]
    assert controller.state is AuthState.UNAUTHENTICATED
    assert controller.visited == ()


@pytest.mark.asyncio
async def test_concurrent_toggles_apply_in_completion_order() -> None:
    """A slow first toggle lands after a fast second one."""
    controller, fake = await _signed_in()
    fake.gates["101"] = asyncio.Event()

    slow = asyncio.create_task(controller.toggle_station("101"))
    await asyncio.sleep(0)
    fast = asyncio.create_task(controller.toggle_station("142"))
    await fast
    fake.gates["101"].set()
    await slow

    assert controller.visited == ("142", "101")


@pytest.mark.asyncio
async def test_clear_all_and_logout_reset_state() -> None:
    fake = _FakeClient()
    fake.server_visited = ["101"]
    controller, _ = await _signed_in(fake)

    assert await controller.clear_all()
    assert controller.visited == ()

    fake.server_visited = ["142"]
    await controller.refresh_visited()
    await controller.logout()
    assert controller.state is AuthState.UNAUTHENTICATED
    assert controller.user is None
    assert controller.visited == ()


@pytest.mark.asyncio
async def test_sorting_follows_line_axis() -> None:
    """`all` sorts by name; L runs west to east; 1 runs north to south."""
    controller, _ = await _signed_in()

    assert [s.id for s in controller.filtered_stations()][:3] == ["D19", "L02", "L01"]

    controller.set_line_filter("L")
    assert [s.id for s in controller.filtered_stations()] == ["L01", "L02", "L08"]

    controller.set_line_filter("1")
    assert [s.id for s in controller.filtered_stations()] == ["101", "120", "142"]

    with pytest.raises(ValueError):
        controller.set_line_filter("Z")


@pytest.mark.asyncio
async def test_search_is_case_insensitive_over_visible_rows() -> None:
    controller, _ = await _signed_in()
    controller.set_line_filter("1")

    controller.set_search("FERRY")
    assert [row.station_id for row in controller.list_rows()] == ["142"]

    controller.set_search("(1 2 3)")
    assert [row.station_id for row in controller.list_rows()] == ["120"]

    controller.set_search("bedford")
    assert controller.list_rows() == []

    controller.set_line_filter(ALL_LINES)
    assert [row.station_id for row in controller.list_rows()] == ["L08"]


@pytest.mark.asyncio
async def test_stats_count_distinct_complexes() -> None:
    controller, _ = await _signed_in()
    await controller.toggle_station("L02")

    overall = controller.stats()
    assert (overall.visited, overall.total) == (1, 6)

    controller.set_line_filter("L")
    on_l = controller.stats()
    assert (on_l.visited, on_l.total) == (1, 3)


@pytest.mark.asyncio
async def test_markers_and_geojson_reflect_visits() -> None:
    controller, _ = await _signed_in()
    await controller.toggle_station("101")

    markers = {marker.station_id: marker for marker in controller.markers()}
    assert markers["101"].filled is True
    assert markers["101"].color == "#EE352E"
    assert markers["L01"].filled is False
    assert markers["D19"].color == "#666"

    document = controller.geojson()
    assert document["type"] == "FeatureCollection"
    feature = next(f for f in document["features"] if f["properties"]["id"] == "101")
    assert feature["geometry"]["coordinates"] == [-73.8986, 40.8892]
    assert feature["properties"]["visited"] is True


@pytest.mark.asyncio
async def test_leaderboard_view_ranks_and_highlights() -> None:
    controller, _ = await _signed_in()

    rows = await controller.leaderboard_view()

    assert [(row.rank, row.handle, row.is_current_user) for row in rows] == [
        (1, "bob", False),
        (2, "alice", True),
    ]
    assert rows[0].total == 6
    assert rows[0].percentage == 50.0
    assert rows[1].percentage == round(1 / 6 * 100, 1)
