"""
HTTP service handle: a FastAPI application bound to one host:port, served by uvicorn.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import uvicorn
from fastapi import FastAPI

from governor.core import GovernorError

from .address import format_address

logger = logging.getLogger(__name__)


class FatalServiceError(GovernorError):
    def __init__(self, app: str, cause: Exception | str):
        self.app = app
        self.cause = cause
        super().__init__(f"Service for [{app}] stopped: {cause}")


class WebService:
    def __init__(self, name: str, host: str, port: int, *, lifespan: Callable[..., Any] | None = None):
        self.name = name
        self.host = host
        self.port = port
        self.app = FastAPI(title=name, lifespan=lifespan)
        self.app.add_api_route("/health", self._health, methods=["GET"])

    @property
    def address(self) -> str:
        return format_address(self.host, str(self.port))

    def _health(self) -> dict:
        return {"status": "ok", "app": self.name}

    def register_route(self, path: str, method: str, handler: Callable[..., Any], **kwargs: Any) -> None:
        self.app.add_api_route(path, handler, methods=[method.upper()], **kwargs)

    def server(self) -> uvicorn.Server:
        # log_config=None keeps uvicorn on the process logging setup.
        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_config=None)
        return uvicorn.Server(config)

    async def serve_async(self) -> None:
        """
        Serve until shutdown. Startup failures raise FatalServiceError.
        """
        server = self.server()
        logger.info("service_starting app=%s address=%s", self.name, self.address)
        try:
            await server.serve()
        except SystemExit as exc:
            # uvicorn exits the process when it cannot bind.
            raise FatalServiceError(self.name, f"server exited with status {exc.code}") from exc
        except Exception as exc:
            raise FatalServiceError(self.name, exc) from exc

        if not server.started:
            raise FatalServiceError(self.name, "server failed to start")
        logger.info("service_stopped app=%s", self.name)

    def serve(self) -> None:
        """
        Blocking variant of serve_async(); runs its own event loop.
        """
        asyncio.run(self.serve_async())
