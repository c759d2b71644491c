"""
governor: bootstraps multi-tenant services.

For each named application it resolves a datastore descriptor from a TOML
configuration file, opens the connection, binds a FastAPI service to the
application's host:port, and serves it.
"""

from governor.core import GovernorError
from governor.core.config import ConfigError, ConfigFileNotFound, ConfigNotLoaded, ConfigParseError, ConfigTree
from governor.core.db import BuildError, DatastoreConnectionError
from governor.lifecycle import LifecycleController, LifecycleError, LifecycleState
from governor.manager import (
    AppNotRegistered,
    DatastoreDescriptor,
    DatastoreNotConfigured,
    InvalidAppName,
    Manager,
    PropertyNotFound,
    configure,
)
from governor.service import (
    ComposedService,
    ComposeError,
    FatalServiceError,
    WebService,
    compose,
    resolve_address,
    run,
    run_many,
    serve,
)

__version__ = "0.1.0"

__all__ = [
    "AppNotRegistered",
    "BuildError",
    "ComposeError",
    "ComposedService",
    "ConfigError",
    "ConfigFileNotFound",
    "ConfigNotLoaded",
    "ConfigParseError",
    "ConfigTree",
    "DatastoreConnectionError",
    "DatastoreDescriptor",
    "DatastoreNotConfigured",
    "FatalServiceError",
    "GovernorError",
    "InvalidAppName",
    "LifecycleController",
    "LifecycleError",
    "LifecycleState",
    "Manager",
    "PropertyNotFound",
    "WebService",
    "compose",
    "configure",
    "resolve_address",
    "run",
    "run_many",
    "serve",
]
