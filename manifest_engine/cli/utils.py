"""
Utility functions for CLI commands.

This module is part of MANIFEST_ENGINE.
"""

import json
from pathlib import Path
from typing import Any

import click

from ..core.manifest import ParsedManifest, parse_manifest
from ..exceptions import ManifestEngineError


def load_json_file(file_path: Path, kind: str = "Manifest") -> Any:
    """
    Load a JSON file.

    Raises:
        click.ClickException: If the file doesn't exist or is invalid JSON
    """
    if not file_path.exists():
        raise click.ClickException(f"{kind} file not found: {file_path}")

    try:
        with open(file_path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {kind.lower()} file: {e}") from e


def load_manifest_file(file_path: Path) -> ParsedManifest:
    """
    Load and parse a manifest file.

    Raises:
        click.ClickException: If the file can't be read or the manifest is invalid
    """
    try:
        return parse_manifest(load_json_file(file_path))
    except ManifestEngineError as e:
        raise click.ClickException(f"{file_path}: {e.message}") from e
