"""Shared fixtures for errwatch tests.

Provides a controllable clock and an ErrorRecord factory so tests can build
precise timelines without sleeping.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from hypothesis import settings

from errwatch.classify import severity_for
from errwatch.environment import StaticEnvironment
from errwatch.models.errors import DeviceInfo, ErrorKind, ErrorRecord, Severity
from errwatch.store.backends import MemoryBackend

# Wall-clock per-example deadlines are environment-dependent; disable them.
settings.register_profile("errwatch", deadline=None)
settings.load_profile("errwatch")

# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

# A fixed, hour-aligned epoch keeps trend bucket arithmetic readable.
T0 = 1_700_000_000_000 - (1_700_000_000_000 % 3_600_000)
SECOND = 1_000
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE
DAY = 24 * HOUR


class FakeClock:
    """Manually advanced wall clock in milliseconds."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


# ---------------------------------------------------------------------------
# Record factory
# ---------------------------------------------------------------------------


def _make_record(
    kind: str = ErrorKind.NETWORK_ERROR,
    message: str = "Failed to fetch",
    timestamp: int = T0,
    severity: Severity | None = None,
    location: str | None = "app.js:10",
    name: str = "Error",
    browser: str = "Chrome",
    browser_version: str = "120",
    os_family: str = "Windows",
    device_class: str = "Desktop",
    context: dict[str, Any] | None = None,
) -> ErrorRecord:
    """Create an ErrorRecord with sensible defaults for testing."""
    return ErrorRecord(
        kind=kind,
        severity=severity or severity_for(kind),
        name=name,
        message=message,
        timestamp=timestamp,
        location=location,
        device_info=DeviceInfo(
            browser_family=browser,
            browser_version=browser_version,
            os_family=os_family,
            device_class=device_class,
        ),
        context=context or {},
    )


@pytest.fixture
def make_record() -> Callable[..., ErrorRecord]:
    return _make_record


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def desktop_chrome() -> StaticEnvironment:
    return StaticEnvironment(
        device=DeviceInfo(browser_family="Chrome", browser_version="120", os_family="Windows"),
        extra={"page_path": "/dashboard"},
    )
