"""Notification dispatcher for errwatch.

Notifier             -- Capability the AlertEngine talks to.
NullNotifier         -- No-op notifier for headless contexts and tests.
NotificationChannel  -- ABC every channel must implement.
NotificationDispatcher -- Fans out alerts to all permitted channels;
                          failures in one channel never block others or
                          the ingestion path.
"""

from __future__ import annotations

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import Protocol

import structlog

from errwatch.background import BackgroundRunner
from errwatch.models.alerts import Alert
from errwatch.observability.metrics import notifications_total

_log = structlog.get_logger(component="notifications.manager")


class Notifier(Protocol):
    def notify(self, alert: Alert) -> None:
        """Show *alert* to an operator. Must return immediately and never raise."""


class NullNotifier:
    def notify(self, alert: Alert) -> None:
        _log.debug("notification_skipped", alert_id=alert.alert_id, reason="no notifier configured")


class NotificationChannel(ABC):
    """Abstract base class for all notification channels.

    Every concrete channel must implement ``send``, which should be
    idempotent and not raise; return ``False`` instead of raising.
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Human-readable channel identifier used in metrics and logs."""

    async def request_permission(self) -> bool:
        """Ask for permission to deliver. Called at most once per channel.

        Channels without a permission model are always allowed.
        """
        return True

    @abstractmethod
    async def send(self, alert: Alert) -> bool:
        """Deliver *alert* via this channel.

        Returns:
            True  -- message accepted by the remote endpoint.
            False -- delivery failed (already logged inside implementation).
        """


class NotificationDispatcher:
    """Fan-out dispatcher that sends an alert to every permitted channel.

    * Never raises: exceptions from individual channels are caught and logged.
    * Never blocks the caller: ``notify`` hands the fan-out to the runner.
    * Requests each channel's permission once; denied channels are skipped
      silently from then on.
    """

    def __init__(
        self,
        channels: list[NotificationChannel],
        runner: BackgroundRunner | None = None,
    ) -> None:
        self._channels = channels
        self._runner = runner or BackgroundRunner(name="errwatch-notify")
        self._permissions: dict[str, bool] = {}
        self._requested: set[str] = set()
        self._lock = threading.Lock()

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    def notify(self, alert: Alert) -> None:
        """Schedule fan-out delivery of *alert* as a background task."""
        if not self._channels:
            return
        self._runner.spawn(self.deliver(alert), label=f"notify:{alert.alert_id}")

    async def request_permissions(self) -> dict[str, bool]:
        """Proactively ask every channel that has not been asked yet."""
        await asyncio.gather(*(self._ensure_permission(c) for c in self._channels))
        with self._lock:
            return dict(self._permissions)

    async def _ensure_permission(self, channel: NotificationChannel) -> bool:
        name = channel.channel_name
        with self._lock:
            if name in self._requested:
                return self._permissions.get(name, False)
            self._requested.add(name)
        try:
            granted = await channel.request_permission()
        except Exception as exc:  # noqa: BLE001
            _log.warning("notification_permission_error", channel=name, error=str(exc))
            granted = False
        with self._lock:
            self._permissions[name] = granted
        if not granted:
            _log.info("notification_permission_denied", channel=name)
        return granted

    async def deliver(self, alert: Alert) -> None:
        """Deliver *alert* to every permitted channel concurrently."""
        tasks = [self._send_one(channel, alert) for channel in self._channels]
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _send_one(self, channel: NotificationChannel, alert: Alert) -> None:
        if not await self._ensure_permission(channel):
            return
        try:
            success = await channel.send(alert)
        except Exception as exc:  # noqa: BLE001
            _log.error(
                "notification_channel_unexpected_error",
                channel=channel.channel_name,
                alert_id=alert.alert_id,
                error=str(exc),
            )
            success = False

        label = "true" if success else "false"
        notifications_total.labels(channel=channel.channel_name, success=label).inc()

        if success:
            _log.info(
                "notification_sent",
                channel=channel.channel_name,
                alert_id=alert.alert_id,
                level=alert.level.value,
                error_count=alert.error_count,
            )
        else:
            _log.warning(
                "notification_failed",
                channel=channel.channel_name,
                alert_id=alert.alert_id,
            )

    def close(self) -> None:
        self._runner.close()
