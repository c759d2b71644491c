"""
Shared, cross-cutting code for the governor.

`core/` holds the small building blocks every application uses (configuration
tree, datastore connections, the base error type). Per-application logic lives
in `manager/` and `service/`.
"""


class GovernorError(RuntimeError):
    pass
