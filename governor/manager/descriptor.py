"""
Datastore descriptors: the connection parameters assembled for one application.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from governor.core import db
from governor.core.config import ConfigTree
from governor.core.db import BuildError

from .properties import PropertyNotFound, resolve_property

# Config key -> descriptor field, in resolution order.
PROPERTY_FIELDS: tuple[tuple[str, str], ...] = (
    ("dbserver", "server"),
    ("dbport", "port"),
    ("database", "database"),
    ("dbuser", "user"),
    ("dbpassword", "password"),
    ("dbdriver", "driver"),
    ("dbpath", "path"),
)

PROPERTIES: tuple[str, ...] = tuple(prop for prop, _ in PROPERTY_FIELDS)


class DatastoreNotConfigured(BuildError):
    def __init__(self, app: str):
        super().__init__(app, f"No datastore properties configured under [{app}].")


@dataclass
class DatastoreDescriptor:
    app: str
    server: str = ""
    port: str = ""
    database: str = ""
    user: str = ""
    password: str = field(default="", repr=False)
    driver: str = ""
    path: str = ""
    # Config keys that were present; everything else defaulted to "".
    resolved: frozenset[str] = frozenset()
    handle: db.Connection | None = field(default=None, repr=False, compare=False)

    @property
    def configured(self) -> bool:
        return bool(self.resolved)

    @property
    def missing(self) -> tuple[str, ...]:
        return tuple(p for p in PROPERTIES if p not in self.resolved)

    @property
    def connected(self) -> bool:
        return self.handle is not None and not self.handle.closed

    def fields(self) -> dict[str, str]:
        return {name: getattr(self, name) for _, name in PROPERTY_FIELDS}


def build_descriptor(tree: ConfigTree, app: str) -> DatastoreDescriptor:
    """
    Resolve every datastore property for `app`.

    A missing property leaves its field empty; `resolved` records which ones
    were actually found.
    """
    values: dict[str, str] = {}
    resolved: set[str] = set()
    for prop, name in PROPERTY_FIELDS:
        try:
            values[name] = resolve_property(tree, app, prop)
        except PropertyNotFound:
            values[name] = ""
            continue
        resolved.add(prop)

    return DatastoreDescriptor(app=app, resolved=frozenset(resolved), **values)


async def establish(descriptor: DatastoreDescriptor) -> db.Connection:
    """
    Open the descriptor's connection and attach the handle.
    """
    if not descriptor.configured:
        raise DatastoreNotConfigured(descriptor.app)
    descriptor.handle = await db.connect(descriptor)
    return descriptor.handle
