"""Client data contract types."""

from __future__ import annotations

from typing import Literal, TypedDict

ErrorCode = Literal[
    "invalid_request",
    "handle_taken",
    "invalid_credentials",
    "not_authenticated",
    "not_found",
    "method_not_allowed",
    "rate_limited",
    "service_unavailable",
    "store_failure",
    "internal_error",
]


class PublicUser(TypedDict):
    """Identity of an account as exposed by the API."""

    id: int
    handle: str


class MarkResult(TypedDict):
    """Response to marking a station visited."""

    success: bool
    stationId: str


class UnmarkResult(TypedDict):
    """Response to unmarking a station."""

    success: bool
    stationId: str
    deleted: bool


class ClearResult(TypedDict):
    """Response to clearing every mark."""

    success: bool
    deletedCount: int


class LeaderboardEntry(TypedDict):
    """One leaderboard row."""

    handle: str
    count: int
