"""Environment probes supplying device info and context for new records."""

from __future__ import annotations

import os
import platform
import re
import sys
from dataclasses import dataclass, field
from typing import Any, Protocol

from errwatch.classify import friendly_message
from errwatch.models.errors import DeviceInfo


class EnvironmentProbe(Protocol):
    """Supplies the device snapshot and page context attached at ingestion."""

    def device_info(self) -> DeviceInfo: ...

    def context(self) -> dict[str, Any]: ...


@dataclass
class StaticEnvironment:
    """Fixed device info and context."""

    device: DeviceInfo = field(default_factory=DeviceInfo)
    extra: dict[str, Any] = field(default_factory=dict)

    def device_info(self) -> DeviceInfo:
        return self.device

    def context(self) -> dict[str, Any]:
        return dict(self.extra)


class ServerEnvironment:
    """Describes the Python host process.

    The device snapshot is computed once; the context (memory usage) is
    sampled on every call.
    """

    def __init__(self) -> None:
        self._device = DeviceInfo(
            browser_family=platform.python_implementation(),
            browser_version=platform.python_version(),
            os_family=platform.system() or "Unknown",
            device_class="Server",
        )

    def device_info(self) -> DeviceInfo:
        return self._device

    def context(self) -> dict[str, Any]:
        ctx: dict[str, Any] = {"pid": os.getpid(), "argv0": sys.argv[0] if sys.argv else ""}
        try:
            import resource

            ctx["max_rss_kb"] = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        except ImportError:
            pass  # not available on Windows
        return ctx


# ---------------------------------------------------------------------------
# User-agent parsing
# ---------------------------------------------------------------------------

# Order matters: Edge and Chrome UAs also contain "Safari"; iOS UAs contain
# "Mac OS X"; Android UAs contain "Linux".
_BROWSERS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("Edge", re.compile(r"Edg(?:e|A|iOS)?/(\d+)")),
    ("Chrome", re.compile(r"(?:Chrome|CriOS)/(\d+)")),
    ("Firefox", re.compile(r"(?:Firefox|FxiOS)/(\d+)")),
    ("Safari", re.compile(r"Version/(\d+).*Safari")),
)

_OPERATING_SYSTEMS: tuple[tuple[str, re.Pattern[str], str], ...] = (
    ("Windows", re.compile(r"Windows"), "Desktop"),
    ("iOS", re.compile(r"iPhone|iPad|iPod|\biOS\b"), "Mobile"),
    ("Android", re.compile(r"Android"), "Mobile"),
    ("macOS", re.compile(r"Macintosh|Mac OS X"), "Desktop"),
    ("Linux", re.compile(r"Linux|X11"), "Desktop"),
)


def parse_user_agent(user_agent: str) -> DeviceInfo:
    browser, version = "Unknown", "Unknown"
    for family, pattern in _BROWSERS:
        match = pattern.search(user_agent)
        if match:
            browser, version = family, match.group(1)
            break

    os_family, device = "Unknown", "Desktop"
    for family, pattern, device_class in _OPERATING_SYSTEMS:
        if pattern.search(user_agent):
            os_family, device = family, device_class
            break

    return DeviceInfo(
        browser_family=browser,
        browser_version=version,
        os_family=os_family,
        device_class=device,
    )


class UserAgentEnvironment:
    """Environment of a browser client, described by its UA string."""

    def __init__(
        self,
        user_agent: str,
        page_path: str | None = None,
        viewport: tuple[int, int] | None = None,
    ) -> None:
        self._user_agent = user_agent
        self._device = parse_user_agent(user_agent)
        self._page_path = page_path
        self._viewport = viewport

    def device_info(self) -> DeviceInfo:
        return self._device

    def context(self) -> dict[str, Any]:
        ctx: dict[str, Any] = {"user_agent": self._user_agent}
        if self._page_path is not None:
            ctx["page_path"] = self._page_path
        if self._viewport is not None:
            ctx["viewport"] = {"width": self._viewport[0], "height": self._viewport[1]}
        return ctx


@dataclass(frozen=True)
class CompatibilityResult:
    is_compatible: bool
    message: str | None = None


_MIN_CHROME_VERSION = 90


def check_compatibility(device: DeviceInfo) -> CompatibilityResult:
    """Flag browsers known to be too old for the application."""
    if device.browser_family == "Chrome" and device.browser_version.isdigit():
        if int(device.browser_version) < _MIN_CHROME_VERSION:
            return CompatibilityResult(False, friendly_message("BROWSER_COMPAT_ERROR"))
    return CompatibilityResult(True)
