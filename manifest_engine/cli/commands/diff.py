"""
Diff command for CLI.

Compares the settings schemas of two manifests and checks that the version
bump between them is allowed.

This module is part of MANIFEST_ENGINE.
"""

import json
import sys
from pathlib import Path

import click

from ...core.semver import BumpKind, bump_kind, is_greater
from ...core.settings_schema import diff_schemas
from ..utils import load_manifest_file


@click.command()
@click.argument("old_manifest", type=click.Path(exists=True, path_type=Path))
@click.argument("new_manifest", type=click.Path(exists=True, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print the diff as JSON")
def diff(old_manifest: Path, new_manifest: Path, as_json: bool) -> None:
    """
    Compare two manifest versions.

    Exits with status 1 when NEW_MANIFEST could not be published over
    OLD_MANIFEST: its version is not greater, or the settings change is
    breaking without a major bump.

    Examples:
        manifest-engine diff v1.json v2.json
    """
    old = load_manifest_file(old_manifest)
    new = load_manifest_file(new_manifest)

    schema_diff = diff_schemas(old.settings_schema, new.settings_schema)
    increasing = is_greater(new.version, old.version)
    kind = bump_kind(old.version, new.version)

    problems = []
    if not increasing:
        problems.append(
            f"Version {new.version_string} is not greater than {old.version_string}"
        )
    elif schema_diff.is_breaking and kind != BumpKind.MAJOR:
        problems.append(f"Breaking settings change requires a MAJOR bump, got {kind.value}")

    if as_json:
        report = {
            "old_version": old.version_string,
            "new_version": new.version_string,
            "bump_kind": kind.value,
            **schema_diff.to_dict(),
            "allowed": not problems,
            "problems": problems,
        }
        click.echo(json.dumps(report, indent=2))
    else:
        click.echo(f"{old.version_string} -> {new.version_string} ({kind.value})")
        click.echo(f"Settings: {schema_diff.classification.value}")
        for change in schema_diff.changes:
            marker = click.style("!", fg="red") if change.breaking else "-"
            click.echo(f"  {marker} {change.path or '$'}: {change.kind} {change.detail}")
        for problem in problems:
            click.echo(click.style(f"❌ {problem}", fg="red"))

    sys.exit(1 if problems else 0)
