"""Generic JSON webhook notification channel.

Posts Alert data as a JSON body to any configured HTTP endpoint. The
payload mirrors the persisted alert shape so consumers can parse it without
errwatch-specific knowledge.
"""

from __future__ import annotations

from urllib.parse import urlparse

import httpx
import structlog

from errwatch.models.alerts import Alert
from errwatch.notifications.manager import NotificationChannel

_log = structlog.get_logger(component="notifications.webhook")


class WebhookNotificationChannel(NotificationChannel):
    """Delivers alerts by POSTing a JSON payload to a configurable URL.

    Args:
        url:     Full endpoint URL (must be HTTPS in production).
        headers: Optional extra headers (e.g. Authorization).
        timeout: HTTP request timeout in seconds. Defaults to 10.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        if not url:
            raise ValueError("Webhook url must not be empty")
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout

    @property
    def channel_name(self) -> str:
        return "webhook"

    async def request_permission(self) -> bool:
        """Only http(s) endpoints are ever contacted."""
        return urlparse(self._url).scheme in ("http", "https")

    async def send(self, alert: Alert) -> bool:
        """POST *alert* as JSON to the configured endpoint.

        Returns True on 2xx response, False otherwise.
        """
        request_headers = {
            "Content-Type": "application/json",
            **self._headers,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._url,
                    json=self.build_payload(alert),
                    headers=request_headers,
                )
                if response.is_success:
                    return True
                _log.warning(
                    "webhook_non_2xx_response",
                    status_code=response.status_code,
                    body=response.text[:200],
                    alert_id=alert.alert_id,
                )
                return False
        except httpx.TimeoutException:
            _log.warning("webhook_request_timeout", alert_id=alert.alert_id, url=self._url)
            return False
        except httpx.HTTPError as exc:
            _log.warning("webhook_http_error", error=str(exc), alert_id=alert.alert_id)
            return False

    @staticmethod
    def build_payload(alert: Alert) -> dict[str, object]:
        return {"event": "errwatch.alert", **alert.to_dict()}
