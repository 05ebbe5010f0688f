"""Client exception hierarchy."""

from __future__ import annotations


class TrackerClientError(Exception):
    """Base class for all client-side tracker errors."""


class TrackerUnavailableError(TrackerClientError):
    """Raised when the tracker service cannot be reached."""


class TrackerResponseError(TrackerClientError):
    """Raised when the tracker service rejects a request or answers with unexpected data."""

    def __init__(
        self, detail: str, status_code: int | None = None, code: str | None = None
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.code = code
