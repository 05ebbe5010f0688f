"""Public client exports."""

from subway_client.catalog import Station, StationCatalog
from subway_client.client import TrackerClient
from subway_client.controller import AuthState, TrackerController
from subway_client.exceptions import (
    TrackerClientError,
    TrackerResponseError,
    TrackerUnavailableError,
)

__all__ = [
    "AuthState",
    "Station",
    "StationCatalog",
    "TrackerClient",
    "TrackerClientError",
    "TrackerController",
    "TrackerResponseError",
    "TrackerUnavailableError",
]
