"""Request and response bodies for the errwatch REST API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator


class ErrorIn(BaseModel):
    """An error reported by a client.

    Either ``code`` (a known or custom error code such as ``NETWORK_ERROR``)
    or ``message`` must be given. When ``code`` is present the record takes
    its kind from the code and its text from the friendly message table.
    """

    name: str = Field(default="Error", min_length=1, max_length=256)
    message: str = Field(default="", max_length=10_000)
    stack_trace: str | None = Field(default=None, max_length=100_000)
    code: str | None = Field(default=None, pattern=r"^[A-Z][A-Z0-9_]{0,63}$")
    context: dict[str, Any] = Field(default_factory=dict)
    user_agent: str | None = Field(default=None, max_length=1_024)
    page_path: str | None = Field(default=None, max_length=2_048)

    @model_validator(mode="after")
    def _require_message_or_code(self) -> ErrorIn:
        if not self.code and not self.message.strip():
            raise ValueError("either message or code is required")
        return self


class RecordedResponse(BaseModel):
    """Result of POST /errors."""

    record_id: str
    kind: str
    severity: str
    duplicate: bool


class ClearedResponse(BaseModel):
    removed: int


class BatchReportResponse(BaseModel):
    sent: int


class HealthResponse(BaseModel):
    status: str
    version: str
    stored_records: int
    unresolved_alerts: int


class ErrorResponse(BaseModel):
    """Uniform error envelope."""

    error: str
    detail: str
