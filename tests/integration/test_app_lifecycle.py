"""Integration tests for ErrwatchApp startup and shutdown."""

from __future__ import annotations

from pathlib import Path

import pytest

from errwatch.app import ErrwatchApp, _ComponentError
from errwatch.models.config import ErrwatchConfig, StoreConfig

pytestmark = pytest.mark.integration


class TestLifecycle:
    async def test_start_without_serving_then_stop(self, tmp_path: Path) -> None:
        config = ErrwatchConfig(store=StoreConfig(backend="file", path=str(tmp_path)))
        app = ErrwatchApp(config)

        await app.start(serve=False)
        assert app.running is True
        assert app.service is not None

        app.service.record(RuntimeError("recorded while running"))
        await app.stop()

        assert app.running is False
        assert (tmp_path / "errors.json").exists()

    async def test_state_is_reloaded_on_restart(self, tmp_path: Path) -> None:
        config = ErrwatchConfig(store=StoreConfig(backend="file", path=str(tmp_path)))

        first = ErrwatchApp(config)
        await first.start(serve=False)
        first.service.record(RuntimeError("survives restarts"))
        await first.stop()

        second = ErrwatchApp(config)
        await second.start(serve=False)
        assert [r.message for r in second.service.records()] == ["survives restarts"]
        await second.stop()

    async def test_stop_before_start_is_safe(self) -> None:
        await ErrwatchApp(ErrwatchConfig()).stop()

    async def test_stop_twice_is_safe(self) -> None:
        app = ErrwatchApp(ErrwatchConfig())
        await app.start(serve=False)
        await app.stop()
        await app.stop()

    async def test_unknown_backend_is_fatal(self) -> None:
        app = ErrwatchApp(ErrwatchConfig(store=StoreConfig(backend="redis")))
        with pytest.raises(_ComponentError) as exc_info:
            await app.start(serve=False)
        assert exc_info.value.component == "store"
        await app.stop()
