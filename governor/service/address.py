"""
Listening address for an application.

The env convention is <APPNAME>_HOST and <APPNAME>_PORT, read on every call.
"""

from __future__ import annotations

from governor.core.config import getenv
from governor.manager.properties import validate_app_name

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = "7990"


def env_names(app: str) -> tuple[str, str]:
    prefix = validate_app_name(app).upper()
    return f"{prefix}_HOST", f"{prefix}_PORT"


def resolve_address(app: str) -> tuple[str, str]:
    host_var, port_var = env_names(app)
    return getenv(host_var, DEFAULT_HOST), getenv(port_var, DEFAULT_PORT)


def format_address(host: str, port: str) -> str:
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"
