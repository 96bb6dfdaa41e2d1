"""Email notification channel.

Sends Alert instances as plain-text + HTML emails via SMTP using the
standard-library ``smtplib``, executed in a thread-pool executor so the
event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import smtplib
import ssl
from datetime import UTC, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

import structlog

from errwatch.models.alerts import Alert, describe_window
from errwatch.models.errors import Severity
from errwatch.notifications.manager import NotificationChannel

_log = structlog.get_logger(component="notifications.email")

_LEVEL_COLOR: dict[Severity, str] = {
    Severity.LOW: "#2e7d32",
    Severity.MEDIUM: "#e65100",
    Severity.HIGH: "#b71c1c",
}


class SMTPConfig:
    """SMTP connection parameters.

    Args:
        host:       SMTP server hostname.
        port:       SMTP server port (587 for STARTTLS, 465 for SSL).
        username:   SMTP authentication username.
        password:   SMTP authentication password.
        from_addr:  Sender email address.
        use_tls:    If True, use SMTP_SSL (port 465). Defaults to False
                    (STARTTLS on port 587).
        timeout:    Socket timeout in seconds. Defaults to 10.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_addr: str,
        use_tls: bool = False,
        timeout: float = 10.0,
    ) -> None:
        if not host:
            raise ValueError("SMTP host must not be empty")
        if not from_addr:
            raise ValueError("SMTP from_addr must not be empty")
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_addr = from_addr
        self.use_tls = use_tls
        self.timeout = timeout


def _format_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


class EmailNotificationChannel(NotificationChannel):
    """Delivers alerts as emails via SMTP."""

    def __init__(self, smtp_config: SMTPConfig, to_addr: str) -> None:
        if not to_addr:
            raise ValueError("Email to_addr must not be empty")
        self._smtp = smtp_config
        self._to_addr = to_addr

    @property
    def channel_name(self) -> str:
        return "email"

    async def send(self, alert: Alert) -> bool:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_sync, alert)
            return True
        except smtplib.SMTPException as exc:
            _log.warning("email_smtp_error", error=str(exc), alert_id=alert.alert_id)
            return False
        except OSError as exc:
            _log.warning("email_connection_error", error=str(exc), alert_id=alert.alert_id)
            return False

    def _send_sync(self, alert: Alert) -> None:
        """Blocking SMTP delivery; runs inside a thread executor."""
        msg = self.build_message(alert)
        context = ssl.create_default_context()

        if self._smtp.use_tls:
            with smtplib.SMTP_SSL(
                self._smtp.host,
                self._smtp.port,
                context=context,
                timeout=self._smtp.timeout,
            ) as server:
                if self._smtp.username:
                    server.login(self._smtp.username, self._smtp.password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(self._smtp.host, self._smtp.port, timeout=self._smtp.timeout) as server:
                server.ehlo()
                server.starttls(context=context)
                server.ehlo()
                if self._smtp.username:
                    server.login(self._smtp.username, self._smtp.password)
                server.send_message(msg)

    def build_message(self, alert: Alert) -> MIMEMultipart:
        level = alert.level.value.upper()
        window = describe_window(alert.window_ms)
        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"[errwatch] {level}: {alert.error_count} errors in {window}"
        msg["From"] = self._smtp.from_addr
        msg["To"] = self._to_addr

        rows = [
            ("Level", level),
            ("Errors", str(alert.error_count)),
            ("Threshold", f"{alert.threshold} per {window}"),
            ("Raised", _format_ms(alert.created_at)),
            ("Alert ID", alert.alert_id),
        ]
        plain = "errwatch alert\n" + "=" * 40 + "\n\n"
        plain += "".join(f"{label + ':':<11} {value}\n" for label, value in rows)
        plain += f"\n{alert.message}\n"

        color = _LEVEL_COLOR.get(alert.level, "#333333")
        table = "".join(
            f'<tr><td style="color:#757575;width:110px"><strong>{label}</strong></td>'
            f"<td>{escape(value)}</td></tr>"
            for label, value in rows
        )
        html = (
            '<html><body style="font-family:sans-serif;background:#f5f5f5;padding:24px">'
            f'<div style="background:{color};color:#fff;padding:16px 24px">'
            f"<h1 style=\"margin:0;font-size:18px\">errwatch alert: {level}</h1></div>"
            f'<div style="background:#fff;padding:16px 24px"><table cellpadding="6">{table}</table>'
            f"<p>{escape(alert.message)}</p></div></body></html>"
        )

        msg.attach(MIMEText(plain, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg
