"""Unit tests for the async tracker HTTP client."""

from __future__ import annotations

import json

import httpx
import pytest

from subway_client.client import NETWORK_ERROR, TrackerClient
from subway_client.exceptions import TrackerResponseError, TrackerUnavailableError

BASE_URL = "http://tracker.local"


def _client(handler) -> tuple[TrackerClient, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return TrackerClient(base_url=BASE_URL, http_client=http_client), http_client


@pytest.mark.asyncio
async def test_login_sends_credentials_and_keeps_cookie() -> None:
    """The session cookie from login is replayed on later calls."""
    seen_cookies: list[str | None] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/auth/login":
            assert json.loads(request.content) == {"handle": "alice", "credential": "1234"}
            return httpx.Response(
                200,
                json={"success": True, "user": {"id": 1, "handle": "alice"}},
                headers={"set-cookie": "session_id=tok123; Path=/; HttpOnly; SameSite=lax"},
            )
        seen_cookies.append(request.headers.get("cookie"))
        return httpx.Response(200, json=["A01"])

    client, http_client = _client(handler)
    async with http_client:
        user = await client.login("alice", "1234")
        visited = await client.list_visited()

    assert user == {"id": 1, "handle": "alice"}
    assert visited == ["A01"]
    assert seen_cookies == ["session_id=tok123"]
    assert client.session_token == "tok123"


@pytest.mark.asyncio
async def test_restore_session_sends_saved_token() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers.get("cookie") == "session_id=saved"
        return httpx.Response(200, json={"user": {"id": 3, "handle": "carol"}})

    client, http_client = _client(handler)
    async with http_client:
        client.restore_session("saved")
        user = await client.me()

    assert user == {"id": 3, "handle": "carol"}


@pytest.mark.asyncio
async def test_me_returns_none_when_unauthenticated() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            401, json={"detail": "Not authenticated.", "code": "not_authenticated"}
        )

    client, http_client = _client(handler)
    async with http_client:
        assert await client.me() is None


@pytest.mark.asyncio
async def test_error_payload_maps_to_response_error() -> None:
    """Server detail and code survive into the raised exception."""

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"detail": "Handle already taken.", "code": "handle_taken"})

    client, http_client = _client(handler)
    async with http_client:
        with pytest.raises(TrackerResponseError) as exc_info:
            await client.register("alice", "1234")

    assert exc_info.value.detail == "Handle already taken."
    assert exc_info.value.code == "handle_taken"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_non_json_error_body_gets_generic_detail() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="<html>bad gateway</html>")

    client, http_client = _client(handler)
    async with http_client:
        with pytest.raises(TrackerResponseError) as exc_info:
            await client.list_visited()

    assert exc_info.value.detail == "Request failed with status 502."
    assert exc_info.value.code is None


@pytest.mark.asyncio
async def test_network_failure_maps_to_unavailable() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("network down", request=request)

    client, http_client = _client(handler)
    async with http_client:
        with pytest.raises(TrackerUnavailableError) as exc_info:
            await client.mark_visited("A01")

    assert str(exc_info.value) == NETWORK_ERROR


@pytest.mark.asyncio
async def test_station_ids_are_path_quoted() -> None:
    paths: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.raw_path.decode())
        if request.method == "POST":
            return httpx.Response(200, json={"success": True, "stationId": "A/1"})
        return httpx.Response(200, json={"success": True, "stationId": "A/1", "deleted": False})

    client, http_client = _client(handler)
    async with http_client:
        marked = await client.mark_visited("A/1")
        unmarked = await client.unmark_visited("A/1")

    assert paths == ["/api/visited/A%2F1", "/api/visited/A%2F1"]
    assert marked == {"success": True, "stationId": "A/1"}
    assert unmarked["deleted"] is False


@pytest.mark.asyncio
async def test_clear_leaderboard_and_check_handle() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/visited":
            return httpx.Response(200, json={"success": True, "deletedCount": 4})
        if request.url.path == "/api/leaderboard":
            return httpx.Response(200, json=[{"handle": "alice", "count": 4}])
        return httpx.Response(200, json={"exists": True})

    client, http_client = _client(handler)
    async with http_client:
        cleared = await client.clear_visited()
        board = await client.leaderboard()
        exists = await client.check_handle("alice")

    assert cleared == {"success": True, "deletedCount": 4}
    assert board == [{"handle": "alice", "count": 4}]
    assert exists is True


@pytest.mark.asyncio
async def test_malformed_payload_is_rejected() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"not": "a list"})

    client, http_client = _client(handler)
    async with http_client:
        with pytest.raises(TrackerResponseError):
            await client.leaderboard()


@pytest.mark.asyncio
async def test_logout_forgets_cookie_even_on_failure() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client, http_client = _client(handler)
    async with http_client:
        client.restore_session("tok")
        with pytest.raises(TrackerUnavailableError):
            await client.logout()

    assert client.session_token is None
