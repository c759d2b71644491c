from .address import DEFAULT_HOST, DEFAULT_PORT, resolve_address
from .api import ComposedService, ComposeError, compose, run, run_many, serve
from .web import FatalServiceError, WebService

__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "ComposeError",
    "ComposedService",
    "FatalServiceError",
    "WebService",
    "compose",
    "resolve_address",
    "run",
    "run_many",
    "serve",
]
