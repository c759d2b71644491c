"""
Composition of an application's web service with the shared Manager, and serving.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from fastapi import FastAPI

from governor.core import GovernorError
from governor.manager import InvalidAppName, Manager

from .address import resolve_address
from .web import FatalServiceError, WebService

logger = logging.getLogger(__name__)


class ComposeError(GovernorError):
    def __init__(self, app: str, cause: Exception | str):
        self.app = app
        self.cause = cause
        super().__init__(f"Could not compose service for [{app}]: {cause}")


@dataclass
class ComposedService:
    """
    One application's web service plus the process-wide Manager.

    Routes are registered by the caller through `service.register_route`.
    `on_startup` callbacks run once the server has started its lifespan.
    """

    app: str
    service: WebService
    manager: Manager
    on_startup: list[Callable[[], None]] = field(default_factory=list, repr=False)

    def register_route(self, path: str, method: str, handler: Callable[..., Any], **kwargs: Any) -> None:
        self.service.register_route(path, method, handler, **kwargs)


def _parse_port(app: str, raw: str) -> int:
    try:
        port = int(raw)
    except ValueError:
        raise ComposeError(app, f"port {raw!r} is not an integer") from None
    if not 0 < port < 65536:
        raise ComposeError(app, f"port {port} is out of range")
    return port


def _lifespan(manager: Manager, app: str, on_startup: list[Callable[[], None]]):
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        for callback in on_startup:
            callback()
        try:
            yield
        finally:
            if app in manager.apps():
                await manager.close(app)

    return lifespan


def compose(app: str, manager: Manager) -> ComposedService:
    try:
        host, raw_port = resolve_address(app)
    except InvalidAppName as exc:
        raise ComposeError(app, exc) from exc
    port = _parse_port(app, raw_port)

    on_startup: list[Callable[[], None]] = []
    ws = WebService(app, host, port, lifespan=_lifespan(manager, app, on_startup))
    ws.app.state.app_name = app
    ws.app.state.manager = manager

    logger.info("service_composed app=%s address=%s", app, ws.address)
    return ComposedService(app=app, service=ws, manager=manager, on_startup=on_startup)


async def serve(composed: ComposedService) -> None:
    """
    Serve `composed` in the running event loop until shutdown.

    Use this from the loop that registered the datastores so connection pools
    stay on their own loop.
    """
    await composed.service.serve_async()


def run(composed: ComposedService) -> None:
    """
    Block serving `composed` in a new event loop. Returns only on shutdown;
    failures raise FatalServiceError.

    Refuses to start from inside a running loop, or while the app holds an open
    datastore handle: that handle belongs to the loop that opened it.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        pass
    else:
        raise FatalServiceError(composed.app, "run() called from a running event loop; await serve() instead")

    if composed.app in composed.manager.apps() and composed.manager.get(composed.app).connected:
        raise FatalServiceError(
            composed.app,
            "datastore is bound to the event loop that opened it; serve() from that loop",
        )
    composed.service.serve()


async def run_many(services: Iterable[ComposedService]) -> None:
    """
    Serve several composed services in one event loop.

    The first fatal failure is raised after the remaining servers are cancelled.
    """
    tasks = [asyncio.create_task(serve(s), name=f"serve-{s.app}") for s in services]
    if not tasks:
        return None
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in done:
            exc = task.exception()
            if exc is not None:
                raise exc
        await asyncio.gather(*tasks)
    finally:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)


__all__ = [
    "ComposeError",
    "ComposedService",
    "FatalServiceError",
    "compose",
    "run",
    "run_many",
    "serve",
]
