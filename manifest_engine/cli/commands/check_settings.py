"""
Check-settings command for CLI.

This module is part of MANIFEST_ENGINE.
"""

import sys
from pathlib import Path

import click

from ...core.settings_schema import collect_errors
from ..utils import load_json_file, load_manifest_file


@click.command("check-settings")
@click.argument("manifest_file", type=click.Path(exists=True, path_type=Path))
@click.argument("settings_file", type=click.Path(exists=True, path_type=Path))
def check_settings(manifest_file: Path, settings_file: Path) -> None:
    """
    Validate a room settings document against a manifest.

    Examples:
        manifest-engine check-settings manifest.json settings.json
    """
    parsed = load_manifest_file(manifest_file)
    settings = load_json_file(settings_file, kind="Settings")

    errors = collect_errors(settings, parsed.settings_schema)
    if not errors:
        click.echo(
            click.style(f"✅ Settings match manifest version {parsed.version_string}", fg="green")
        )
        sys.exit(0)

    click.echo(
        click.style(
            f"❌ Settings don't match manifest version {parsed.version_string}", fg="red"
        )
    )
    for error in errors:
        click.echo(
            f"  - {error.path or '$'}: {error.kind} "
            f"(expected {error.expected}, got {error.actual})"
        )
    sys.exit(1)
