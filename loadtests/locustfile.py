"""Locust scenarios for login and visited-station load testing."""

from __future__ import annotations

import os
import random
from dataclasses import dataclass

from locust import HttpUser, between, events, task

STATION_IDS = ("127", "725", "R16", "902", "A27", "631", "L03", "635", "G29", "A32")


def _env_bool(name: str, default: bool) -> bool:
    """Read a boolean environment flag."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    """Read a float environment variable with fallback."""
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class LoadSettings:
    """Runtime settings for load-test behavior."""

    handle: str
    pin: str
    allow_429: bool
    require_rate_limit: bool
    max_failure_rate_pct: float


SETTINGS = LoadSettings(
    handle=os.environ.get("TRACKER_LOAD_HANDLE", "loadtest"),
    pin=os.environ.get("TRACKER_LOAD_PIN", "2468"),
    allow_429=_env_bool("TRACKER_LOAD_ALLOW_429", False),
    require_rate_limit=_env_bool("TRACKER_LOAD_REQUIRE_RATE_LIMIT", False),
    max_failure_rate_pct=_env_float("TRACKER_LOAD_MAX_FAILURE_RATE_PCT", 0.1),
)

_rate_limit_observed = False


def _accept_rate_limited(response) -> bool:
    """Count a 429 as success when the run tolerates rate limiting."""
    global _rate_limit_observed
    if response.status_code == 429 and SETTINGS.allow_429:
        _rate_limit_observed = True
        response.success()
        return True
    return False


class LoginFlowUser(HttpUser):
    """Sustained login scenario measuring /auth/login throughput and failures."""

    wait_time = between(0.05, 0.2)
    weight = 1

    @task
    def login(self) -> None:
        """Call login continuously with the seeded handle and PIN."""
        self.client.cookies.clear()
        with self.client.post(
            "/auth/login",
            json={"handle": SETTINGS.handle, "pin": SETTINGS.pin},
            name="POST /auth/login",
            catch_response=True,
        ) as response:
            if response.status_code == 200:
                if response.json().get("user", {}).get("handle") == SETTINGS.handle:
                    response.success()
                    return
                response.failure("200 without expected user payload")
                return
            if _accept_rate_limited(response):
                return
            response.failure(f"unexpected status={response.status_code}")


class VisitFlowUser(HttpUser):
    """Signed-in scenario toggling marks and reading the visited list."""

    wait_time = between(0.05, 0.2)
    weight = 3

    def __init__(self, environment) -> None:
        super().__init__(environment)
        self._signed_in = False

    def on_start(self) -> None:
        """Log in once so the session cookie rides along on later calls."""
        response = self.client.post(
            "/auth/login",
            json={"handle": SETTINGS.handle, "pin": SETTINGS.pin},
            name="POST /auth/login [bootstrap]",
        )
        self._signed_in = response.status_code == 200
        if not self._signed_in:
            print(f"[loadtest] visit bootstrap failed with status={response.status_code}")

    def _ensure_session(self) -> bool:
        if not self._signed_in:
            self.on_start()
        return self._signed_in

    @task(3)
    def list_visited(self) -> None:
        """Read the caller's visited ids."""
        if not self._ensure_session():
            return
        with self.client.get(
            "/api/visited", name="GET /api/visited", catch_response=True
        ) as response:
            if response.status_code == 200 and isinstance(response.json(), list):
                response.success()
                return
            if response.status_code == 401:
                self._signed_in = False
            if _accept_rate_limited(response):
                return
            response.failure(f"unexpected status={response.status_code}")

    @task(2)
    def toggle_station(self) -> None:
        """Mark a random station, then unmark it."""
        if not self._ensure_session():
            return
        station_id = random.choice(STATION_IDS)
        for method, name in (
            ("POST", "POST /api/visited/{id}"),
            ("DELETE", "DELETE /api/visited/{id}"),
        ):
            with self.client.request(
                method, f"/api/visited/{station_id}", name=name, catch_response=True
            ) as response:
                if response.status_code == 200 and response.json().get("success") is True:
                    response.success()
                    continue
                if response.status_code == 401:
                    self._signed_in = False
                if not _accept_rate_limited(response):
                    response.failure(f"unexpected status={response.status_code}")
                return

    @task(1)
    def leaderboard(self) -> None:
        """Read the leaderboard."""
        if not self._ensure_session():
            return
        with self.client.get(
            "/api/leaderboard", name="GET /api/leaderboard", catch_response=True
        ) as response:
            if response.status_code == 200:
                response.success()
                return
            if _accept_rate_limited(response):
                return
            response.failure(f"unexpected status={response.status_code}")


@events.quitting.add_listener
def _on_quitting(environment, **_kwargs) -> None:
    """Enforce pass/fail thresholds at test shutdown."""
    failure_rate_pct = environment.stats.total.fail_ratio * 100.0
    if SETTINGS.max_failure_rate_pct >= 0 and failure_rate_pct > SETTINGS.max_failure_rate_pct:
        print(
            f"[loadtest] failure rate {failure_rate_pct:.3f}% exceeded "
            f"max {SETTINGS.max_failure_rate_pct:.3f}%"
        )
        environment.process_exit_code = 1

    if SETTINGS.require_rate_limit and not _rate_limit_observed:
        print("[loadtest] expected at least one 429 response but none were observed")
        environment.process_exit_code = 1
