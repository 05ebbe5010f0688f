"""Client-side state machine mirroring the signed-in user's visited stations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from subway_client.catalog import Station, StationCatalog
from subway_client.client import NETWORK_ERROR, TrackerClient
from subway_client.exceptions import (
    TrackerClientError,
    TrackerResponseError,
    TrackerUnavailableError,
)
from subway_client.types import PublicUser

ALL_LINES = "all"
# Lines that run mostly east-west are ordered by longitude; everything else north to south.
EAST_WEST_LINES = frozenset({"L", "G", "M", "S"})


class AuthState(str, Enum):
    """Authentication lifecycle of the controller."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class MarkerView:
    """Map marker for one station."""

    station_id: str
    name: str
    lat: float
    lon: float
    color: str
    filled: bool


@dataclass(frozen=True)
class ListRow:
    """Side-list row for one station."""

    station_id: str
    name: str
    lines: str
    checked: bool

    @property
    def text(self) -> str:
        return f"{self.name} ({self.lines})"


@dataclass(frozen=True)
class Stats:
    """Distinct complexes visited against the total in the current filter."""

    visited: int
    total: int


@dataclass(frozen=True)
class LeaderboardRow:
    """Leaderboard entry decorated for display."""

    rank: int
    handle: str
    count: int
    total: int
    percentage: float
    is_current_user: bool


@dataclass
class ToggleResult:
    """Outcome of one toggle: which member calls landed and which did not."""

    station_id: str
    target_visited: bool
    applied: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def error_message(exc: TrackerClientError) -> str:
    """User-facing text for a failed call."""
    if isinstance(exc, TrackerUnavailableError):
        return NETWORK_ERROR
    if isinstance(exc, TrackerResponseError):
        return exc.detail
    return str(exc)


class TrackerController:
    """Drive a `TrackerClient` and keep a local mirror of visited station ids."""

    def __init__(self, client: TrackerClient, catalog: StationCatalog) -> None:
        self._client = client
        self._catalog = catalog
        self._visited: list[str] = []
        self.state = AuthState.UNAUTHENTICATED
        self.user: PublicUser | None = None
        self.error: str | None = None
        self.line_filter = ALL_LINES
        self.search_query = ""

    @property
    def catalog(self) -> StationCatalog:
        return self._catalog

    @property
    def visited(self) -> tuple[str, ...]:
        """Visited station ids in the order they were learned."""
        return tuple(self._visited)

    def is_visited(self, station_id: str) -> bool:
        return station_id in self._visited

    async def start(self) -> AuthState:
        """Resume an existing session if the server still recognises it."""
        self.state = AuthState.AUTHENTICATING
        try:
            user = await self._client.me()
        except TrackerClientError as exc:
            self._reset(error=error_message(exc))
            return self.state
        if user is None:
            self._reset()
            return self.state
        await self._enter_authenticated(user)
        return self.state

    async def authenticate(self, handle: str, credential: str, register: bool = False) -> bool:
        """Log in (or register) once; failures return to UNAUTHENTICATED with `error` set."""
        self.state = AuthState.AUTHENTICATING
        self.error = None
        try:
            if register:
                user = await self._client.register(handle, credential)
            else:
                user = await self._client.login(handle, credential)
        except TrackerClientError as exc:
            self._reset(error=error_message(exc))
            return False
        await self._enter_authenticated(user)
        return True

    async def logout(self) -> None:
        """End the session; local state is cleared even when the call fails."""
        try:
            await self._client.logout()
        except TrackerClientError as exc:
            self._reset(error=error_message(exc))
            return
        self._reset()

    async def refresh_visited(self) -> None:
        """Replace the local mirror with the server's list."""
        try:
            self._visited = await self._client.list_visited()
        except TrackerClientError as exc:
            self._handle_call_failure(exc)
            self._visited = []

    async def toggle_station(self, station_id: str) -> ToggleResult:
        """Flip a station and every station in its complex.

        The target comes from the primary id. One call is made per member that
        is not already in the target state; only calls that succeed change the
        local mirror, so a partial failure leaves exactly those applied.
        """
        target = not self.is_visited(station_id)
        result = ToggleResult(station_id=station_id, target_visited=target)
        for member_id in self._catalog.complex_members(station_id):
            if self.is_visited(member_id) == target:
                continue
            try:
                if target:
                    await self._client.mark_visited(member_id)
                else:
                    await self._client.unmark_visited(member_id)
            except TrackerClientError as exc:
                result.failed.append(member_id)
                self._handle_call_failure(exc)
                if self.state is not AuthState.AUTHENTICATED:
                    break
                continue
            self._apply(member_id, target)
            result.applied.append(member_id)
        return result

    async def clear_all(self) -> bool:
        """Remove every mark; the mirror is only emptied when the server agrees."""
        try:
            await self._client.clear_visited()
        except TrackerClientError as exc:
            self._handle_call_failure(exc)
            return False
        self._visited = []
        return True

    def set_line_filter(self, line: str) -> None:
        if line != ALL_LINES and line not in self._catalog.lines():
            raise ValueError(f"Unknown line: {line}")
        self.line_filter = line

    def set_search(self, query: str) -> None:
        self.search_query = query

    def filtered_stations(self) -> list[Station]:
        """Stations on the selected line, in display order."""
        if self.line_filter == ALL_LINES:
            return sorted(self._catalog.stations, key=lambda station: station.name)
        stations = [s for s in self._catalog.stations if self.line_filter in s.lines]
        if self.line_filter in EAST_WEST_LINES:
            return sorted(stations, key=lambda station: station.lon)
        return sorted(stations, key=lambda station: -station.lat)

    def list_rows(self) -> list[ListRow]:
        """Rows for the side list after line filter and text search."""
        query = self.search_query.lower()
        rows = [
            ListRow(
                station_id=station.id,
                name=station.name,
                lines=station.lines_label,
                checked=self.is_visited(station.id),
            )
            for station in self.filtered_stations()
        ]
        if not query:
            return rows
        return [row for row in rows if query in row.text.lower()]

    def stats(self) -> Stats:
        """Distinct complexes visited vs. total for the current line filter."""
        stations = self.filtered_stations()
        visited = {
            self._catalog.complex_id(station.id)
            for station in stations
            if self.is_visited(station.id)
        }
        return Stats(visited=len(visited), total=self._catalog.complex_count(stations))

    def markers(self) -> list[MarkerView]:
        return [
            MarkerView(
                station_id=station.id,
                name=station.name,
                lat=station.lat,
                lon=station.lon,
                color=self._catalog.line_color(station.primary_line),
                filled=self.is_visited(station.id),
            )
            for station in self._catalog.stations
        ]

    def geojson(self) -> dict[str, Any]:
        """Every station as a GeoJSON FeatureCollection with a `visited` flag."""
        features = [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [station.lon, station.lat]},
                "properties": {
                    "id": station.id,
                    "name": station.name,
                    "lines": list(station.lines),
                    "complex": self._catalog.complex_id(station.id),
                    "color": self._catalog.line_color(station.primary_line),
                    "visited": self.is_visited(station.id),
                },
            }
            for station in self._catalog.stations
        ]
        return {"type": "FeatureCollection", "features": features}

    async def leaderboard_view(self) -> list[LeaderboardRow]:
        """Fetch the leaderboard and decorate it against the whole catalog."""
        entries = await self._client.leaderboard()
        total = self._catalog.complex_count()
        current_handle = self.user["handle"] if self.user else None
        return [
            LeaderboardRow(
                rank=index,
                handle=entry["handle"],
                count=entry["count"],
                total=total,
                percentage=round(entry["count"] / total * 100, 1) if total else 0.0,
                is_current_user=entry["handle"] == current_handle,
            )
            for index, entry in enumerate(entries, start=1)
        ]

    async def _enter_authenticated(self, user: PublicUser) -> None:
        self.user = user
        self.state = AuthState.AUTHENTICATED
        self.error = None
        await self.refresh_visited()

    def _apply(self, station_id: str, visited: bool) -> None:
        if visited and station_id not in self._visited:
            self._visited.append(station_id)
        elif not visited and station_id in self._visited:
            self._visited.remove(station_id)

    def _handle_call_failure(self, exc: TrackerClientError) -> None:
        if isinstance(exc, TrackerResponseError) and exc.status_code == 401:
            self._reset(error=exc.detail)
            return
        self.error = error_message(exc)

    def _reset(self, error: str | None = None) -> None:
        self.state = AuthState.UNAUTHENTICATED
        self.user = None
        self.error = error
        self._visited = []
