"""
Tests for governor/lifecycle.py - state transitions and failure isolation.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from governor.core.config import ConfigFileNotFound, ConfigParseError, ConfigTree
from governor.core.db import DatastoreConnectionError
from governor.lifecycle import LifecycleController, LifecycleError, LifecycleState
from governor.manager import DatastoreNotConfigured
from governor.service import ComposeError, FatalServiceError

TWO_APPS = (
    '[shop]\ndbdriver = "sqlite3"\ndbpath = "shop.db"\n'
    '[blog]\ndbdriver = "sqlite3"\ndbpath = "blog.db"\n'
    '[legacy]\ndbdriver = "mysql"\n'
)


async def _servers_started(services):
    # Stand-in for run_many: each server reaches its lifespan startup.
    for composed in services:
        for callback in composed.on_startup:
            callback()


@pytest.fixture
def controller():
    return LifecycleController()


@pytest.fixture
def configured(controller, write_config, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    controller.configure(write_config(TWO_APPS))
    return controller


class TestConfigure:
    def test_starts_unconfigured(self, controller):
        assert controller.state is LifecycleState.UNCONFIGURED
        assert controller.manager is None
        assert controller.app_state("shop") is LifecycleState.UNCONFIGURED

    def test_configure(self, configured):
        assert configured.state is LifecycleState.CONFIGURED
        assert configured.manager is not None
        assert configured.app_state("shop") is LifecycleState.CONFIGURED

    def test_missing_file_leaves_controller_untouched(self, controller, tmp_path):
        with pytest.raises(ConfigFileNotFound):
            controller.configure(tmp_path / "missing.toml")

        assert controller.state is LifecycleState.UNCONFIGURED
        assert controller.manager is None

    def test_parse_error_leaves_controller_untouched(self, controller, write_config):
        with pytest.raises(ConfigParseError):
            controller.configure(write_config("[broken"))

        assert controller.state is LifecycleState.UNCONFIGURED

    def test_no_reconfigure(self, configured, tmp_path):
        manager = configured.manager

        with pytest.raises(LifecycleError):
            configured.configure(tmp_path / "missing.toml")

        assert configured.manager is manager
        assert configured.state is LifecycleState.CONFIGURED


class TestTransitions:
    @pytest.mark.asyncio
    async def test_init_before_configure(self, controller):
        with pytest.raises(LifecycleError):
            await controller.init_datastore("shop")

    @pytest.mark.asyncio
    async def test_full_sequence(self, configured):
        descriptor = await configured.init_datastore("shop")
        assert descriptor.connected
        assert configured.app_state("shop") is LifecycleState.DATASTORE_READY

        composed = configured.compose("shop")
        assert composed.manager is configured.manager
        assert configured.app_state("shop") is LifecycleState.COMPOSED
        assert configured.composed("shop") is composed

        with patch("governor.lifecycle.run_many", new=AsyncMock(side_effect=_servers_started)) as run_many:
            await configured.serve(["shop"])

        run_many.assert_awaited_once_with([composed])
        assert configured.app_state("shop") is LifecycleState.RUNNING
        assert configured.state is LifecycleState.RUNNING
        await configured.manager.close_all()

    @pytest.mark.asyncio
    async def test_failure_before_start_is_not_running(self, configured):
        await configured.init_datastore("shop")
        configured.compose("shop")
        failure = FatalServiceError("shop", "server exited with status 1")

        with patch("governor.lifecycle.run_many", new=AsyncMock(side_effect=failure)):
            with pytest.raises(FatalServiceError):
                await configured.serve(["shop"])

        assert configured.app_state("shop") is LifecycleState.FAILED
        assert configured.failures["shop"] is failure
        assert configured.state is LifecycleState.CONFIGURED
        await configured.manager.close_all()

    def test_compose_requires_datastore(self, configured):
        with pytest.raises(LifecycleError):
            configured.compose("shop")

    @pytest.mark.asyncio
    async def test_serve_requires_composed(self, configured):
        await configured.init_datastore("shop")

        with pytest.raises(LifecycleError):
            await configured.serve(["shop"])

        assert configured.state is LifecycleState.CONFIGURED
        await configured.manager.close_all()

    @pytest.mark.asyncio
    async def test_serve_composed_apps(self, configured):
        await configured.init_datastores(["shop", "blog"])
        shop = configured.compose("shop")
        blog = configured.compose("blog")

        with patch("governor.lifecycle.run_many", new=AsyncMock(side_effect=_servers_started)) as run_many:
            await configured.serve()

        run_many.assert_awaited_once()
        served = run_many.await_args.args[0]
        assert sorted(served, key=lambda c: c.app) == [blog, shop]
        assert configured.app_state("blog") is LifecycleState.RUNNING
        await configured.manager.close_all()

    @pytest.mark.asyncio
    async def test_serve_with_nothing_composed(self, configured):
        with pytest.raises(LifecycleError):
            await configured.serve()


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_one_failed_app_does_not_block_others(self, configured):
        failures = await configured.init_datastores(["shop", "legacy", "ghost"])

        assert set(failures) == {"legacy", "ghost"}
        assert isinstance(failures["legacy"], DatastoreConnectionError)
        assert isinstance(failures["ghost"], DatastoreNotConfigured)
        assert configured.app_state("shop") is LifecycleState.DATASTORE_READY
        assert configured.app_state("legacy") is LifecycleState.FAILED
        assert configured.failures.keys() == {"legacy", "ghost"}

        configured.compose("shop")
        with pytest.raises(LifecycleError):
            configured.compose("legacy")
        await configured.manager.close_all()

    @pytest.mark.asyncio
    async def test_failed_compose_only_affects_that_app(self, configured, monkeypatch):
        await configured.init_datastores(["shop", "blog"])
        monkeypatch.setenv("BLOG_PORT", "not-a-port")

        configured.compose("shop")
        with pytest.raises(ComposeError):
            configured.compose("blog")

        assert configured.app_state("shop") is LifecycleState.COMPOSED
        assert configured.app_state("blog") is LifecycleState.FAILED
        await configured.manager.close_all()

    @pytest.mark.asyncio
    async def test_failed_app_can_retry(self, configured):
        with pytest.raises(DatastoreNotConfigured):
            await configured.init_datastore("ghost")
        assert configured.app_state("ghost") is LifecycleState.FAILED
        with pytest.raises(LifecycleError):
            configured.compose("ghost")

        configured.manager.config = ConfigTree.loads('[ghost]\ndbdriver = "sqlite3"\ndbpath = "ghost.db"\n')
        await configured.init_datastore("ghost")

        assert configured.app_state("ghost") is LifecycleState.DATASTORE_READY
        assert "ghost" not in configured.failures
        await configured.manager.close_all()


class TestBlockingRun:
    @pytest.mark.asyncio
    async def test_rejected_inside_event_loop(self, configured):
        await configured.init_datastore("shop")
        configured.compose("shop")

        with pytest.raises(LifecycleError):
            configured.run(["shop"])

        assert configured.app_state("shop") is LifecycleState.COMPOSED
        assert configured.state is LifecycleState.CONFIGURED
        await configured.manager.close_all()

    def test_rejected_with_handles_from_another_loop(self, configured):
        handle = MagicMock()
        handle.closed = False
        handle.close = AsyncMock()
        with patch("governor.manager.descriptor.db.connect", new=AsyncMock(return_value=handle)):
            asyncio.run(configured.init_datastore("shop"))

        with pytest.raises(LifecycleError) as exc_info:
            configured.run(["shop"])

        assert "shop" in str(exc_info.value)
        assert configured.app_state("shop") is LifecycleState.DATASTORE_READY
        assert configured.state is LifecycleState.CONFIGURED

    def test_registers_composes_and_serves_in_one_loop(self, configured):
        with patch("governor.lifecycle.run_many", new=AsyncMock(side_effect=_servers_started)):
            configured.run(["shop", "legacy"])

        assert configured.app_state("shop") is LifecycleState.RUNNING
        assert configured.app_state("legacy") is LifecycleState.FAILED
        assert configured.state is LifecycleState.RUNNING
        assert configured.manager.get("shop").handle.closed

    def test_closes_handles_when_nothing_composed(self, configured, monkeypatch):
        monkeypatch.setenv("SHOP_PORT", "nope")

        with pytest.raises(LifecycleError):
            configured.run(["shop"])

        assert configured.app_state("shop") is LifecycleState.FAILED
        assert configured.manager.get("shop").handle.closed
