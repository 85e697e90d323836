"""
Shared test configuration.

Patches dotenv so pydantic-settings never reads the project's real .env file
during tests. Tests control config through monkeypatch.setenv() or explicit
constructor arguments.
"""

from datetime import datetime, timedelta, timezone

import pytest


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})


class StepClock:
    """Deterministic clock: each call returns the previous time plus *step*."""

    def __init__(self, start: datetime, step: timedelta) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def clock() -> StepClock:
    return StepClock(
        start=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
        step=timedelta(seconds=30),
    )
