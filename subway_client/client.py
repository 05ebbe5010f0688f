"""Async HTTP client for the tracker API."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from subway_client.exceptions import TrackerResponseError, TrackerUnavailableError
from subway_client.types import (
    ClearResult,
    LeaderboardEntry,
    MarkResult,
    PublicUser,
    UnmarkResult,
)

DEFAULT_TIMEOUT = httpx.Timeout(connect=2.0, read=5.0, write=5.0, pool=5.0)
DEFAULT_COOKIE_NAME = "session_id"
NETWORK_ERROR = "Network error. Please try again."


class TrackerClient:
    """Async client for the auth and visited-station endpoints.

    The session cookie issued by login or register lives in the underlying
    httpx cookie jar and is replayed on every later call.
    """

    def __init__(
        self,
        base_url: str,
        timeout: httpx.Timeout | float | None = None,
        http_client: httpx.AsyncClient | None = None,
        cookie_name: str = DEFAULT_COOKIE_NAME,
    ) -> None:
        """Create client with sane defaults and optional injected transport."""
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout or DEFAULT_TIMEOUT,
        )
        self._cookie_name = cookie_name

    @property
    def session_token(self) -> str | None:
        """Raw session token currently held in the cookie jar."""
        for cookie in self._client.cookies.jar:
            if cookie.name == self._cookie_name:
                return cookie.value
        return None

    def restore_session(self, token: str) -> None:
        """Seed the cookie jar with a previously saved session token."""
        self._client.cookies.clear()
        self._client.cookies.set(self._cookie_name, token)

    async def me(self) -> PublicUser | None:
        """Return the signed-in user, or None when there is no live session."""
        try:
            response = await self._request("GET", "/auth/me")
        except TrackerResponseError as exc:
            if exc.status_code == 401:
                return None
            raise
        return self._user_from(self._json_object(response), response)

    async def register(self, handle: str, credential: str) -> PublicUser:
        """Create an account and start a session for it."""
        self._client.cookies.clear()
        response = await self._request(
            "POST", "/auth/register", json={"handle": handle, "credential": credential}
        )
        return self._user_from(self._json_object(response), response)

    async def login(self, handle: str, credential: str) -> PublicUser:
        """Start a session for an existing account."""
        self._client.cookies.clear()
        response = await self._request(
            "POST", "/auth/login", json={"handle": handle, "credential": credential}
        )
        return self._user_from(self._json_object(response), response)

    async def check_handle(self, handle: str) -> bool:
        """Return True when the handle is already registered."""
        response = await self._request("GET", f"/auth/check/{quote(handle, safe='')}")
        exists = self._json_object(response).get("exists")
        if not isinstance(exists, bool):
            raise TrackerResponseError("Invalid handle check payload.", response.status_code)
        return exists

    async def logout(self) -> None:
        """End the current session and forget its cookie."""
        try:
            await self._request("POST", "/auth/logout")
        finally:
            self._client.cookies.clear()

    async def list_visited(self) -> list[str]:
        """Return visited station ids, oldest first."""
        response = await self._request("GET", "/api/visited")
        payload = self._json(response)
        if not isinstance(payload, list):
            raise TrackerResponseError("Invalid visited payload.", response.status_code)
        return [str(station_id) for station_id in payload]

    async def mark_visited(self, station_id: str) -> MarkResult:
        """Mark one station visited."""
        response = await self._request("POST", self._station_path(station_id))
        payload = self._json_object(response)
        return {"success": bool(payload.get("success")), "stationId": str(payload["stationId"])}

    async def unmark_visited(self, station_id: str) -> UnmarkResult:
        """Unmark one station; `deleted` is False when it was not marked."""
        response = await self._request("DELETE", self._station_path(station_id))
        payload = self._json_object(response)
        return {
            "success": bool(payload.get("success")),
            "stationId": str(payload["stationId"]),
            "deleted": bool(payload.get("deleted")),
        }

    async def clear_visited(self) -> ClearResult:
        """Remove every mark owned by the signed-in user."""
        response = await self._request("DELETE", "/api/visited")
        payload = self._json_object(response)
        return {
            "success": bool(payload.get("success")),
            "deletedCount": int(payload.get("deletedCount", 0)),
        }

    async def leaderboard(self) -> list[LeaderboardEntry]:
        """Return visit counts for every user, highest first."""
        response = await self._request("GET", "/api/leaderboard")
        payload = self._json(response)
        if not isinstance(payload, list):
            raise TrackerResponseError("Invalid leaderboard payload.", response.status_code)
        entries: list[LeaderboardEntry] = []
        for item in payload:
            if not isinstance(item, dict):
                raise TrackerResponseError("Invalid leaderboard entry.", response.status_code)
            entries.append({"handle": str(item["handle"]), "count": int(item["count"])})
        return entries

    async def aclose(self) -> None:
        """Close underlying HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> TrackerClient:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        del exc_type, exc, tb
        await self.aclose()

    @staticmethod
    def _station_path(station_id: str) -> str:
        return f"/api/visited/{quote(station_id, safe='')}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Execute request and translate transport and HTTP failures."""
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            raise TrackerUnavailableError(NETWORK_ERROR) from exc

        if response.status_code >= 400:
            detail, code = self._error_fields(response)
            if response.status_code == 503:
                raise TrackerUnavailableError(detail)
            raise TrackerResponseError(detail, response.status_code, code)
        return response

    @staticmethod
    def _error_fields(response: httpx.Response) -> tuple[str, str | None]:
        """Pull `detail` and `code` out of an error body, tolerating non-JSON bodies."""
        fallback = f"Request failed with status {response.status_code}."
        try:
            payload = response.json()
        except ValueError:
            return fallback, None
        if not isinstance(payload, dict):
            return fallback, None
        code = payload.get("code")
        return str(payload.get("detail") or fallback), str(code) if code is not None else None

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise TrackerResponseError(
                "Tracker service returned invalid JSON.", response.status_code
            ) from exc

    @classmethod
    def _json_object(cls, response: httpx.Response) -> dict[str, Any]:
        payload = cls._json(response)
        if not isinstance(payload, dict):
            raise TrackerResponseError(
                "Tracker service returned invalid JSON object.", response.status_code
            )
        return payload

    @staticmethod
    def _user_from(payload: dict[str, Any], response: httpx.Response) -> PublicUser:
        user = payload.get("user")
        if not isinstance(user, dict) or "id" not in user or "handle" not in user:
            raise TrackerResponseError("Invalid user payload.", response.status_code)
        return {"id": int(user["id"]), "handle": str(user["handle"])}
