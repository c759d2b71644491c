"""
Lifecycle controller.

Sequences the bootstrap steps for a process hosting one or more applications:

    UNCONFIGURED -> CONFIGURED -> DATASTORE_READY(app) -> COMPOSED(app) -> RUNNING

The process moves to CONFIGURED once; every application then advances on its
own, and a failure for one application (FAILED) leaves the others untouched.
"""

from __future__ import annotations

import asyncio
import logging
import os
from enum import Enum
from functools import partial
from typing import Iterable

from governor.core import GovernorError
from governor.manager import DatastoreDescriptor, Manager, configure
from governor.service import ComposedService, FatalServiceError, compose, run_many

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    DATASTORE_READY = "datastore_ready"
    COMPOSED = "composed"
    RUNNING = "running"
    FAILED = "failed"


class LifecycleError(GovernorError):
    pass


class LifecycleController:
    def __init__(self) -> None:
        self.state = LifecycleState.UNCONFIGURED
        self.manager: Manager | None = None
        self.failures: dict[str, Exception] = {}
        self._apps: dict[str, LifecycleState] = {}
        self._composed: dict[str, ComposedService] = {}

    def app_state(self, app: str) -> LifecycleState:
        if self.manager is None:
            return LifecycleState.UNCONFIGURED
        return self._apps.get(app, LifecycleState.CONFIGURED)

    def composed(self, app: str) -> ComposedService:
        try:
            return self._composed[app]
        except KeyError:
            raise LifecycleError(f"Application '{app}' has not been composed.") from None

    def configure(self, path: str | os.PathLike[str]) -> Manager:
        if self.state is not LifecycleState.UNCONFIGURED:
            raise LifecycleError(f"Cannot configure from state '{self.state.value}'.")
        # configure() raises before anything is assigned here.
        self.manager = configure(path)
        self.state = LifecycleState.CONFIGURED
        return self.manager

    def _require_configured(self) -> Manager:
        if self.manager is None:
            raise LifecycleError("Controller is not configured.")
        return self.manager

    def _require(self, app: str, *allowed: LifecycleState) -> Manager:
        self._require_configured()
        current = self.app_state(app)
        if current not in allowed:
            raise LifecycleError(f"Application '{app}' is '{current.value}', expected one of: "
                                 + ", ".join(s.value for s in allowed))
        return self.manager

    def _fail(self, app: str, exc: Exception) -> None:
        self._apps[app] = LifecycleState.FAILED
        self.failures[app] = exc
        logger.warning("app_failed app=%s error=%s", app, exc)

    async def init_datastore(self, app: str) -> DatastoreDescriptor:
        manager = self._require(
            app,
            LifecycleState.CONFIGURED,
            LifecycleState.DATASTORE_READY,
            LifecycleState.FAILED,
        )
        try:
            descriptor = await manager.register(app)
        except GovernorError as exc:
            self._fail(app, exc)
            raise

        self._apps[app] = LifecycleState.DATASTORE_READY
        self.failures.pop(app, None)
        return descriptor

    async def init_datastores(self, apps: Iterable[str]) -> dict[str, Exception]:
        """
        Initialize several applications concurrently; returns the failures by app.
        """
        names = list(dict.fromkeys(apps))
        results = await asyncio.gather(*(self.init_datastore(app) for app in names), return_exceptions=True)
        failed: dict[str, Exception] = {}
        for app, result in zip(names, results):
            if isinstance(result, GovernorError):
                failed[app] = result
            elif isinstance(result, BaseException):
                raise result
        return failed

    def compose(self, app: str) -> ComposedService:
        manager = self._require(app, LifecycleState.DATASTORE_READY)
        try:
            composed = compose(app, manager)
        except GovernorError as exc:
            self._fail(app, exc)
            raise

        self._composed[app] = composed
        self._apps[app] = LifecycleState.COMPOSED
        return composed

    def _mark_running(self, app: str) -> None:
        self._apps[app] = LifecycleState.RUNNING
        self.state = LifecycleState.RUNNING
        logger.info("app_running app=%s", app)

    def _prepare(self, apps: list[str]) -> list[ComposedService]:
        if not apps:
            raise LifecycleError("No application to run.")
        for app in apps:
            self._require(app, LifecycleState.COMPOSED)

        services = [self._composed[app] for app in apps]
        for composed in services:
            composed.on_startup.append(partial(self._mark_running, composed.app))
        return services

    async def serve(self, apps: Iterable[str] | None = None) -> None:
        """
        Serve the given (default: all composed) applications in the running loop.

        An app becomes RUNNING once its server has started; a fatal failure marks it FAILED.
        """
        names = list(apps) if apps is not None else [
            app for app, state in self._apps.items() if state is LifecycleState.COMPOSED
        ]
        try:
            await run_many(self._prepare(names))
        except FatalServiceError as exc:
            self._fail(exc.app, exc)
            raise

    async def start(self, apps: Iterable[str]) -> None:
        """
        Register, compose and serve `apps` in the running loop.

        Apps that fail to register or compose are skipped. Every datastore handle
        is closed before this returns.
        """
        manager = self._require_configured()
        names = [apps] if isinstance(apps, str) else list(dict.fromkeys(apps))
        try:
            await self.init_datastores(names)

            composed: list[str] = []
            for app in names:
                if app in self.failures:
                    continue
                try:
                    self.compose(app)
                except GovernorError:
                    continue
                composed.append(app)

            if not composed:
                raise LifecycleError("No application could be composed: " + ", ".join(names))
            await self.serve(composed)
        finally:
            await manager.close_all()

    def run(self, apps: Iterable[str]) -> None:
        """
        Blocking entry: runs start() in a new event loop and returns on shutdown.

        Datastore handles are bound to the loop that opened them, so this refuses
        to run inside a loop or after datastores were opened elsewhere.
        """
        manager = self._require_configured()
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            raise LifecycleError("run() called from a running event loop; await start() or serve() instead.")

        connected = [app for app in manager.apps() if manager.get(app).connected]
        if connected:
            raise LifecycleError(
                "Datastores already open in another event loop: " + ", ".join(connected)
            )
        asyncio.run(self.start(apps))
