"""Shared fixtures for agentgate tests."""

import pytest


class FakeClock:
    """Controllable epoch-seconds clock for window expiry tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
