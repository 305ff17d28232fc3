"""
pytest configuration and shared fixtures for the LiveMap tests.

Key concern: tests must not require a live MongoDB, network access or
real wall-clock waits. We achieve this by:
  1. Setting DATA_SOURCE=none before importing the package, so no app
     instance starts polling the real snapshot endpoint.
  2. Building a fresh Dashboard per test with a FakeScheduler, so highlight
     timers fire only when a test advances the fake clock.
  3. Creating the FastAPI app per test via create_app(dashboard=...), so
     tests never share engine state.
"""

import os

import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the package so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATA_SOURCE", "none")
os.environ.setdefault("DASHBOARD_PASSWORD", "open-sesame")
os.environ.setdefault("JWT_SECRET", "test-secret")

from livemap.core.config import settings  # noqa: E402
from livemap.models.user_record import UserRecord  # noqa: E402
from livemap.services.aggregation import AggregationStore  # noqa: E402
from livemap.services.dashboard import Dashboard  # noqa: E402
from livemap.services.regions import resolve  # noqa: E402

TEST_PASSWORD = os.environ["DASHBOARD_PASSWORD"]


# ── Controllable timers ───────────────────────────────────────────────────────

class FakeTimer:
    def __init__(self, when: float, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Drop-in for loop.call_later driven by advance()."""

    def __init__(self):
        self.now = 0.0
        self._timers: list[FakeTimer] = []

    def __call__(self, delay, callback):
        timer = FakeTimer(self.now + delay, callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self._timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = sorted((t for t in self.pending if t.when <= self.now), key=lambda t: t.when)
        self._timers = [t for t in self._timers if not t.cancelled and t not in due]
        for timer in due:
            timer.callback()


# ── Helpers ───────────────────────────────────────────────────────────────────

def make_record(user_id: str, language: str | None = "Japanese", **results) -> UserRecord:
    """UserRecord with results given as name=(maxScore, clearRate)."""
    return UserRecord(
        id=user_id,
        language=language,
        results={
            name: {"maxScore": score, "clearRate": rate}
            for name, (score, rate) in results.items()
        },
    )


JAPAN = resolve("Japanese")
USA = resolve("English")
CHINA = resolve("Chinese")


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture()
def scheduler():
    return FakeScheduler()


@pytest.fixture()
def store(scheduler):
    return AggregationStore(recency_seconds=3.0, scheduler=scheduler)


@pytest.fixture()
def dashboard(scheduler):
    """Dashboard with no data source; tests drive the detector directly."""
    return Dashboard.from_settings(settings, scheduler=scheduler)


@pytest.fixture()
def app(dashboard):
    from livemap.main import create_app

    return create_app(dashboard=dashboard)


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Login is rate limited; keep counters from bleeding between tests."""
    from livemap.core.rate_limit import limiter

    try:
        limiter._limiter.storage.reset()
    except Exception:
        pass  # Some storage backends don't support reset
    yield


@pytest.fixture()
async def client(app):
    """
    HTTPX async test client wired to a fresh FastAPI app.

    Usage:
        async def test_something(client):
            response = await client.get("/health")
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def auth_headers():
    from livemap.core.security import create_session_token

    return {"Authorization": f"Bearer {create_session_token()}"}
