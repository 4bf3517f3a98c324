"""
Application manifest documents.

A manifest is a JSON document published by a third-party application. The
engine only relies on two parts of it: the embedded version string
(``meta.version``, or a top-level ``version``) and the ``settings`` subtree
describing what a room's ``app_settings`` must look like. Everything else
(``baseUrl``, ``capabilities``, ``permissions``, ...) is stored verbatim.

Example:
    {
        "meta": {"name": "Holiday Lottery", "version": "1.0.0"},
        "baseUrl": "https://lottery.example.com",
        "capabilities": ["winnerSelection"],
        "settings": {
            "type": "object",
            "properties": {"ticketCount": {"type": "integer"}},
            "required": ["ticketCount"]
        }
    }

This module is part of MANIFEST_ENGINE.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft7Validator

from ..constants import MANIFEST_META_KEY, SETTINGS_SCHEMA_KEY
from ..exceptions import InvalidManifestError
from .semver import SemanticVersion, parse_version
from .settings_schema import SchemaNode, parse_schema

logger = logging.getLogger(__name__)

ManifestDict = Dict[str, Any]

# Structural contract for manifest documents. The settings subtree is only
# checked for being an object here; parse_schema() enforces its subset.
MANIFEST_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Application Manifest",
    "type": "object",
    "properties": {
        "meta": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "version": {"type": "string"},
                "description": {"type": "string"},
            },
        },
        "version": {"type": "string"},
        "baseUrl": {"type": "string"},
        "capabilities": {"type": "array", "items": {"type": "string"}},
        "permissions": {"type": "array", "items": {"type": "string"}},
        "settings": {"type": "object"},
    },
    "anyOf": [
        {"required": ["meta"], "properties": {"meta": {"required": ["version"]}}},
        {"required": ["version"]},
    ],
}

_validator = Draft7Validator(MANIFEST_SCHEMA)


def check_manifest_structure(manifest: Any) -> Tuple[bool, Optional[str], Optional[List[str]]]:
    """
    Validate a manifest against ``MANIFEST_SCHEMA``.

    Returns:
        Tuple of (is_valid, error_message, error_paths)
    """
    errors = sorted(_validator.iter_errors(manifest), key=lambda e: list(e.absolute_path))
    if not errors:
        return True, None, None
    paths = [".".join(str(p) for p in e.absolute_path) or "<root>" for e in errors]
    message = "; ".join(f"{path}: {e.message}" for path, e in zip(paths, errors))
    return False, message, paths


def get_manifest_version(manifest: ManifestDict) -> str:
    """
    Return the version string embedded in a manifest (not yet semver-checked).

    ``meta.version`` wins over a top-level ``version``.

    Raises:
        InvalidManifestError: If no version string is present
    """
    meta = manifest.get(MANIFEST_META_KEY)
    version = meta.get("version") if isinstance(meta, dict) else None
    if version is None:
        version = manifest.get("version")
    if not isinstance(version, str):
        raise InvalidManifestError(
            "Manifest does not embed a version string (expected 'meta.version')",
            error_paths=["meta.version"],
        )
    return version


class ParsedManifest:
    """
    A structurally valid manifest with its parsed version and settings schema.

    ``document`` is a private deep copy; callers can't mutate the stored
    snapshot through the object they passed in.
    """

    __slots__ = ("document", "version", "settings_schema")

    def __init__(self, document: ManifestDict, version: SemanticVersion, settings_schema: SchemaNode):
        self.document = document
        self.version = version
        self.settings_schema = settings_schema

    @property
    def version_string(self) -> str:
        return str(self.version)

    @property
    def name(self) -> Optional[str]:
        meta = self.document.get(MANIFEST_META_KEY)
        return meta.get("name") if isinstance(meta, dict) else None


def parse_manifest(manifest: Any) -> ParsedManifest:
    """
    Check structure, extract and parse the version and the settings schema.

    Raises:
        InvalidManifestError: Structure is wrong or the version is missing
        InvalidSettingsSchemaError: The settings subtree is outside the supported subset
        InvalidSemverError: The embedded version is not ``MAJOR.MINOR.PATCH``
    """
    is_valid, error, paths = check_manifest_structure(manifest)
    if not is_valid:
        logger.debug(f"Manifest structure invalid: {error}")
        raise InvalidManifestError(f"Manifest is invalid: {error}", error_paths=paths)

    version = parse_version(get_manifest_version(manifest))
    schema = parse_schema(manifest.get(SETTINGS_SCHEMA_KEY))
    return ParsedManifest(copy.deepcopy(manifest), version, schema)


def settings_schema_of(manifest: ManifestDict) -> SchemaNode:
    """Parse the settings schema of an already stored manifest."""
    return parse_schema(manifest.get(SETTINGS_SCHEMA_KEY))
