"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from scholar_harvest.core.resilience import ResilienceState
from scholar_harvest.domain.entities import Paper, ProviderName
from scholar_harvest.infrastructure.http.gateway import GatewayResponse

# ============================================================
# Environment Fixtures
# ============================================================


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ============================================================
# Time
# ============================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that returns immediately and remembers every delay."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.calls: list[float] = []
        self._clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorded_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clocked_sleep(fake_clock) -> RecordingSleep:
    """Recording sleep that also advances the fake clock."""
    return RecordingSleep(fake_clock)


@pytest.fixture
def resilience(fake_clock) -> ResilienceState:
    """Isolated resilience state on a fake clock, no persistence."""
    return ResilienceState(clock=fake_clock)


# ============================================================
# Domain / gateway helpers
# ============================================================


@pytest.fixture
def make_paper():
    def _make(title: str = "Deep learning for tumour segmentation", **overrides) -> Paper:
        values = {
            "title": title,
            "authors": "Smith J, Doe A",
            "year": "2023",
            "url": "https://example.org/" + "-".join(title.lower().split()),
            "summary": "A sufficiently long abstract describing the study design and its findings.",
            "origin_provider": ProviderName.SEMANTIC_SCHOLAR,
        }
        values.update(overrides)
        return Paper(**values)

    return _make


@pytest.fixture
def make_response():
    def _make(
        status: int = 200,
        body: bytes | str = b"",
        content_type: str = "text/html; charset=utf-8",
        url: str = "https://example.org/",
    ) -> GatewayResponse:
        if isinstance(body, str):
            body = body.encode("utf-8")
        return GatewayResponse(status=status, content_type=content_type, body=body, url=url)

    return _make


@pytest.fixture
def mock_gateway():
    """Gateway double; set ``gateway.fetch.side_effect`` per test."""
    gateway = MagicMock()
    gateway.fetch = AsyncMock()
    gateway.close = AsyncMock()
    return gateway
