"""Visited-station response schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class MarkVisitedResponse(BaseModel):
    """Result of marking a station visited."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    station_id: str = Field(alias="stationId")


class UnmarkVisitedResponse(BaseModel):
    """Result of unmarking one station."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    station_id: str = Field(alias="stationId")
    deleted: bool


class ClearVisitedResponse(BaseModel):
    """Result of clearing every mark for the caller."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    deleted_count: int = Field(alias="deletedCount")


class LeaderboardItem(BaseModel):
    """One leaderboard row."""

    handle: str
    count: int
