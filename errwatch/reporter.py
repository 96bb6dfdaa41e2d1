"""Best-effort forwarding of error records to a remote collector.

Each record is POSTed on its own as a JSON body. High-severity records go
out immediately; the rest queue up and are flushed once ``batch_size`` have
accumulated, highest severity and newest first. Without an endpoint the
reporter is inert. Nothing here ever raises to the caller.
"""

from __future__ import annotations

import asyncio
import threading

import httpx
import structlog

from errwatch.background import BackgroundRunner
from errwatch.models.errors import ErrorRecord, Severity
from errwatch.observability.metrics import reports_total

_log = structlog.get_logger(component="reporter")

_MAX_PENDING = 500


def _priority(record: ErrorRecord) -> tuple[int, int]:
    return (record.severity.rank, record.timestamp)


class Reporter:
    """Ships records to ``endpoint`` without blocking ingestion.

    Args:
        endpoint:   Collector URL. Empty or None disables reporting.
        batch_size: Queued non-high records that trigger a flush.
        timeout:    HTTP request timeout in seconds.
        headers:    Optional extra headers (e.g. Authorization).
        runner:     Where delivery coroutines are scheduled.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        batch_size: int = 10,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        runner: BackgroundRunner | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be greater than zero")
        self._endpoint = endpoint or ""
        self._batch_size = batch_size
        self._timeout = timeout
        self._headers = headers or {}
        self._runner = runner or BackgroundRunner(name="errwatch-report")
        self._pending: list[ErrorRecord] = []
        self._lock = threading.Lock()
        if not self._endpoint:
            _log.info("reporter_disabled", reason="no endpoint configured")

    @property
    def enabled(self) -> bool:
        return bool(self._endpoint)

    @property
    def pending(self) -> list[ErrorRecord]:
        with self._lock:
            return list(self._pending)

    def submit(self, record: ErrorRecord) -> None:
        """Queue or immediately schedule delivery of *record*. Returns at once."""
        if not self.enabled:
            return
        if record.severity == Severity.HIGH:
            self._runner.spawn(self.send(record), label=f"report:{record.record_id}")
            return

        with self._lock:
            self._pending.append(record)
            if len(self._pending) > _MAX_PENDING:
                self._pending.sort(key=_priority, reverse=True)
                dropped = len(self._pending) - _MAX_PENDING
                del self._pending[_MAX_PENDING:]
                _log.warning("reporter_queue_overflow", dropped=dropped)
            ready = len(self._pending) >= self._batch_size
        if ready:
            self._runner.spawn(self.flush(), label="report:flush")

    async def flush(self) -> int:
        """Send every queued record. Returns how many were accepted."""
        with self._lock:
            batch = sorted(self._pending, key=_priority, reverse=True)
            self._pending = []
        if not batch:
            return 0
        return await self.send_many(batch)

    async def send_many(self, records: list[ErrorRecord]) -> int:
        if not self.enabled:
            return 0
        sent = 0
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            for record in records:
                if await self._post(client, record):
                    sent += 1
        _log.info("report_batch_sent", attempted=len(records), accepted=sent)
        return sent

    async def send(self, record: ErrorRecord) -> bool:
        """POST a single record. Returns True on a 2xx response."""
        if not self.enabled:
            return False
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._post(client, record)

    async def _post(self, client: httpx.AsyncClient, record: ErrorRecord) -> bool:
        headers = {"Content-Type": "application/json", **self._headers}
        try:
            response = await client.post(self._endpoint, json=record.to_dict(), headers=headers)
        except httpx.TimeoutException:
            _log.warning("report_request_timeout", record_id=record.record_id, url=self._endpoint)
            ok = False
        except httpx.HTTPError as exc:
            _log.warning("report_http_error", record_id=record.record_id, error=str(exc))
            ok = False
        else:
            ok = response.is_success
            if not ok:
                _log.warning(
                    "report_non_2xx_response",
                    record_id=record.record_id,
                    status_code=response.status_code,
                    body=response.text[:200],
                )
        reports_total.labels(success="true" if ok else "false").inc()
        return ok

    def close(self) -> None:
        """Stop background delivery.

        Outside an event loop queued records are flushed on the worker thread
        before it shuts down. Inside one they cannot be awaited here; they are
        dropped and counted in the log, so async owners should ``await
        flush()`` first.
        """
        with self._lock:
            queued = len(self._pending)
        if queued and self.enabled:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                self._runner.spawn(self.flush(), label="report:close")
            else:
                with self._lock:
                    dropped, self._pending = len(self._pending), []
                _log.warning("reporter_pending_dropped", count=dropped)
        self._runner.close()
