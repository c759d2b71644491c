"""
Manager: the configuration tree plus the registry of per-application datastores.

One Manager is created per process by `configure()` and passed explicitly to
everything that needs it; there is no module-level instance.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Iterable

from governor.core import GovernorError
from governor.core.config import ConfigTree

from .descriptor import DatastoreDescriptor, build_descriptor, establish
from .properties import resolve_property, validate_app_name

logger = logging.getLogger(__name__)


class AppNotRegistered(GovernorError):
    def __init__(self, app: str):
        self.app = app
        super().__init__(f"Application '{app}' is not registered.")


class Manager:
    def __init__(self, config: ConfigTree):
        self.config = config
        self._registry: dict[str, DatastoreDescriptor] = {}
        self._lock = asyncio.Lock()

    def resolve_property(self, app: str, property: str) -> str:
        return resolve_property(self.config, app, property)

    async def register(self, app: str) -> DatastoreDescriptor:
        """
        Build and connect the datastore descriptor for `app`.

        The new descriptor always replaces any previous entry, even when the
        connection fails, so `get()` can tell "registered but unconnected"
        apart from "never registered". Build and connection errors are raised.
        """
        validate_app_name(app)
        descriptor = build_descriptor(self.config, app)

        async with self._lock:
            previous = self._registry.get(app)
            self._registry[app] = descriptor
        if previous is not None and previous.handle is not None:
            await previous.handle.close()

        if descriptor.configured and descriptor.missing:
            logger.debug("datastore_partial app=%s missing=%s", app, ",".join(descriptor.missing))
        handle = await establish(descriptor)

        async with self._lock:
            superseded = self._registry.get(app) is not descriptor
        if superseded:
            # A later register() for the same app replaced this entry.
            await handle.close()
            logger.debug("datastore_superseded app=%s", app)
        return descriptor

    async def register_many(self, apps: Iterable[str]) -> dict[str, DatastoreDescriptor | Exception]:
        """
        Register several applications concurrently.

        Each app maps to its descriptor or to the exception its registration raised.
        """
        names = list(dict.fromkeys(apps))
        results = await asyncio.gather(*(self.register(app) for app in names), return_exceptions=True)
        out: dict[str, DatastoreDescriptor | Exception] = {}
        for app, result in zip(names, results):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            out[app] = result
        return out

    def get(self, app: str) -> DatastoreDescriptor:
        try:
            return self._registry[app]
        except KeyError:
            raise AppNotRegistered(app) from None

    def apps(self) -> list[str]:
        return list(self._registry)

    async def close(self, app: str) -> None:
        descriptor = self.get(app)
        if descriptor.handle is not None:
            await descriptor.handle.close()

    async def close_all(self) -> None:
        async with self._lock:
            descriptors = list(self._registry.values())
        for descriptor in descriptors:
            if descriptor.handle is not None:
                await descriptor.handle.close()


def configure(path: str | os.PathLike[str]) -> Manager:
    """
    Load the configuration at `path` and return a fresh Manager with an empty registry.

    Raises ConfigFileNotFound or ConfigParseError; nothing is created on failure.
    """
    tree = ConfigTree.load_file(path)
    logger.info("config_loaded path=%s apps=%s", tree.source, ",".join(tree.sections()))
    return Manager(tree)
