import asyncio
import logging
import sys

import click

from .config import Settings
from .core.runner import Tabwarden

logger = logging.getLogger("tabwarden.cli")


@click.command()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="overrides LOG_LEVEL.",
)
@click.option(
    "--env-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="read settings from this .env file as well as the environment.",
)
def main(log_level: str | None, env_file: str | None):
    """run chrome, capture matching responses and keep the session logged in."""
    settings = Settings(_env_file=env_file) if env_file else Settings()
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        code = asyncio.run(Tabwarden(settings).run())
    except Exception:
        logger.exception("fatal error")
        sys.exit(1)
    sys.exit(code)


__all__ = [
    "main",
]
