"""Durable key-value slots backing the record and alert stores.

A slot holds one opaque text payload. Backends only move bytes; decoding and
corruption handling live in :mod:`errwatch.store.records`.
"""

from __future__ import annotations

import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path

import structlog

_log = structlog.get_logger(component="store.backends")

_RE_SLOT = re.compile(r"^[a-z][a-z0-9_-]*$")


def _check_slot(slot: str) -> str:
    if not _RE_SLOT.match(slot):
        raise ValueError(f"Invalid slot name: {slot!r}")
    return slot


class KeyValueBackend(ABC):
    """Abstract base class for slot storage."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Identifier used in logs."""

    @abstractmethod
    def read(self, slot: str) -> str | None:
        """Return the payload stored in *slot*, or None if it is absent.

        Raises:
            OSError: if the slot exists but cannot be read.
        """

    @abstractmethod
    def write(self, slot: str, payload: str) -> None:
        """Replace the payload of *slot*.

        Raises:
            OSError: if the payload cannot be persisted.
        """

    @abstractmethod
    def delete(self, slot: str) -> None:
        """Remove *slot*. Missing slots are ignored."""


class MemoryBackend(KeyValueBackend):
    """Process-local backend, used in tests and when persistence is off."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._slots: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        return "memory"

    def read(self, slot: str) -> str | None:
        with self._lock:
            return self._slots.get(_check_slot(slot))

    def write(self, slot: str, payload: str) -> None:
        with self._lock:
            self._slots[_check_slot(slot)] = payload

    def delete(self, slot: str) -> None:
        with self._lock:
            self._slots.pop(_check_slot(slot), None)


class FileBackend(KeyValueBackend):
    """One JSON file per slot inside *directory*.

    Writes go to a temporary file in the same directory followed by an
    atomic rename, so a crash mid-write leaves the previous payload intact.
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory).expanduser()
        self._lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        return "file"

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, slot: str) -> Path:
        return self._dir / f"{_check_slot(slot)}.json"

    def read(self, slot: str) -> str | None:
        path = self._path(slot)
        with self._lock:
            try:
                return path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None

    def write(self, slot: str, payload: str) -> None:
        path = self._path(slot)
        with self._lock:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{slot}-", suffix=".tmp", dir=self._dir)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                os.replace(tmp_name, path)
            except OSError:
                Path(tmp_name).unlink(missing_ok=True)
                raise

    def delete(self, slot: str) -> None:
        path = self._path(slot)
        with self._lock:
            path.unlink(missing_ok=True)


def build_backend(kind: str, path: str = ".errwatch") -> KeyValueBackend:
    """Factory used by the application bootstrap."""
    if kind == "memory":
        return MemoryBackend()
    if kind == "file":
        _log.info("file_backend_enabled", directory=path)
        return FileBackend(path)
    raise ValueError(f"Unknown store backend: {kind!r}")
