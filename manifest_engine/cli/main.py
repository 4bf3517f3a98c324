"""
Entry point for the ``manifest-engine`` command.

This module is part of MANIFEST_ENGINE.
"""

import click

from .. import __version__
from .commands import check_settings, diff, validate


@click.group()
@click.version_option(__version__, prog_name="manifest-engine")
def cli() -> None:
    """Validate, compare and check application manifests."""


cli.add_command(validate)
cli.add_command(diff)
cli.add_command(check_settings)


if __name__ == "__main__":
    cli()
