"""
Validate command for CLI.

Checks a manifest's structure, embedded version and settings schema.

This module is part of MANIFEST_ENGINE.
"""

import sys
from pathlib import Path

import click

from ...core.manifest import check_manifest_structure, parse_manifest
from ...exceptions import InvalidManifestError, InvalidSemverError
from ..utils import load_json_file


@click.command()
@click.argument("manifest_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show detailed validation errors",
)
def validate(manifest_file: Path, verbose: bool) -> None:
    """
    Validate a manifest file.

    MANIFEST_FILE: Path to the manifest JSON file

    Examples:
        manifest-engine validate manifest.json
        manifest-engine validate manifest.json --verbose
    """
    manifest = load_json_file(manifest_file)

    is_valid, error_message, error_paths = check_manifest_structure(manifest)
    if is_valid:
        try:
            parsed = parse_manifest(manifest)
        except InvalidManifestError as e:
            is_valid, error_message, error_paths = False, e.message, e.error_paths
        except InvalidSemverError as e:
            is_valid, error_message, error_paths = False, e.message, ["meta.version"]

    if not is_valid:
        click.echo(click.style(f"❌ Manifest '{manifest_file}' is invalid!", fg="red"))
        if error_message:
            click.echo(click.style(f"Error: {error_message}", fg="red"))
        if error_paths and verbose:
            click.echo("\nError paths:")
            for path in error_paths:
                click.echo(f"  - {path}")
        sys.exit(1)

    click.echo(
        click.style(
            f"✅ Manifest '{manifest_file}' is valid! (version {parsed.version_string})",
            fg="green",
        )
    )
    if verbose:
        click.echo(f"Settings schema: {parsed.settings_schema.describe()}")
