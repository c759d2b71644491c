"""
Per-application property lookup in the configuration tree.
"""

from __future__ import annotations

import re

from governor.core import GovernorError
from governor.core.config import ConfigTree

# Application names double as env-var prefixes (`<APP>_HOST`), so they must be
# valid identifiers once upper-cased.
APP_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class InvalidAppName(GovernorError, ValueError):
    def __init__(self, app: str):
        self.app = app
        super().__init__(
            f"Invalid application name {app!r}: use letters, digits and '_' "
            "and do not start with a digit."
        )


class PropertyNotFound(GovernorError):
    def __init__(self, app: str, property: str):
        self.app = app
        self.property = property
        super().__init__(f"Configuration missing '{property}' section under [{app}] heading.")


def validate_app_name(app: str) -> str:
    if not isinstance(app, str) or not APP_NAME_RE.match(app):
        raise InvalidAppName(app)
    return app


def resolve_property(tree: ConfigTree, app: str, property: str) -> str:
    """
    Return `app.property` as a string or raise PropertyNotFound.

    Strings are returned as-is and integers are rendered with str(); any other
    value type counts as absent.
    """
    if not app or not property:
        raise PropertyNotFound(app, property)

    value = tree.get(f"{app}.{property}")
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    raise PropertyNotFound(app, property)
