"""
Command-line entry point: configure, register, compose and serve applications.

    governor --config governor.toml shop blog
"""

import logging
from pathlib import Path
from typing import List, Optional

import typer

from governor.core import GovernorError
from governor.core.config import ConfigError, default_config_path, log_level
from governor.lifecycle import LifecycleController

app = typer.Typer(
    name="governor",
    help="Bootstrap and serve multi-tenant applications.",
    add_completion=False,
)

logger = logging.getLogger("governor")


@app.command()
def serve(
    apps: List[str] = typer.Argument(..., metavar="APP", help="Application section(s) to serve"),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="TOML configuration file (env: GOVERNOR_CONFIG)"
    ),
):
    """Configure, register, compose and serve the given applications."""
    logging.basicConfig(
        level=log_level(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    controller = LifecycleController()
    try:
        controller.configure(config or default_config_path())
    except ConfigError as exc:
        # Fatal at the top level only; the library returns the error.
        logger.error("config_failed error=%s", exc)
        raise typer.Exit(1)

    try:
        controller.run(apps)
    except GovernorError as exc:
        logger.error("service_failed error=%s", exc)
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
