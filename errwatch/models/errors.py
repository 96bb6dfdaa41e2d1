"""Core error record data structures and enumerations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from uuid import uuid4


class Severity(StrEnum):
    """Coarse impact tier, shared by error records and alerts."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}


class ErrorKind(StrEnum):
    """Error taxonomy tag."""

    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    CORS_ERROR = "CORS_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    FORBIDDEN_ERROR = "FORBIDDEN_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    TYPE_ERROR = "TYPE_ERROR"
    REFERENCE_ERROR = "REFERENCE_ERROR"
    SYNTAX_ERROR = "SYNTAX_ERROR"
    RANGE_ERROR = "RANGE_ERROR"
    URI_ERROR = "URI_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass(frozen=True)
class DeviceInfo:
    """Snapshot of the environment that produced an error."""

    browser_family: str = "Unknown"
    browser_version: str = "Unknown"
    os_family: str = "Unknown"
    device_class: str = "Desktop"

    def to_dict(self) -> dict[str, str]:
        return {
            "browser_family": self.browser_family,
            "browser_version": self.browser_version,
            "os_family": self.os_family,
            "device_class": self.device_class,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> DeviceInfo:
        return cls(
            browser_family=str(raw.get("browser_family", "Unknown")),
            browser_version=str(raw.get("browser_version", "Unknown")),
            os_family=str(raw.get("os_family", "Unknown")),
            device_class=str(raw.get("device_class", "Desktop")),
        )


@dataclass(frozen=True)
class RawError:
    """An error observed outside this process (e.g. reported by a browser).

    Carries the same diagnostic text a native exception would, so it can be
    classified by the same pattern rules.
    """

    name: str
    message: str
    stack_trace: str | None = None


@dataclass(frozen=True)
class ErrorRecord:
    """Canonical error representation.

    Immutable: once persisted only its presence in the store changes.
    ``timestamp`` is wall-clock milliseconds at ingestion.
    """

    kind: str
    severity: Severity
    name: str
    message: str
    timestamp: int
    stack_trace: str | None = None
    location: str | None = None
    device_info: DeviceInfo = field(default_factory=DeviceInfo)
    context: dict[str, Any] = field(default_factory=dict)
    record_id: str = field(default_factory=lambda: uuid4().hex)

    @property
    def fingerprint(self) -> tuple[str, str, str | None]:
        """Identity used for duplicate suppression."""
        return (self.message, self.kind, self.location)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "kind": self.kind,
            "severity": self.severity.value,
            "name": self.name,
            "message": self.message,
            "stack_trace": self.stack_trace,
            "timestamp": self.timestamp,
            "location": self.location,
            "device_info": self.device_info.to_dict(),
            "context": dict(self.context),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ErrorRecord:
        """Rebuild a record from its persisted form.

        Raises:
            KeyError, ValueError, TypeError, OverflowError: if *raw* is not a
            valid record. Non-finite timestamps raise OverflowError.
        """
        context = raw.get("context") or {}
        if not isinstance(context, dict):
            raise TypeError("context must be an object")
        device = raw.get("device_info") or {}
        if not isinstance(device, dict):
            raise TypeError("device_info must be an object")
        return cls(
            record_id=str(raw["record_id"]),
            kind=str(raw["kind"]),
            severity=Severity(raw["severity"]),
            name=str(raw.get("name", "")),
            message=str(raw["message"]),
            stack_trace=raw.get("stack_trace"),
            timestamp=int(raw["timestamp"]),
            location=raw.get("location"),
            device_info=DeviceInfo.from_dict(device),
            context=context,
        )
