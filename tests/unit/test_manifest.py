"""
Unit tests for manifest structure checks and parsing.
"""

import pytest

from manifest_engine.core.manifest import (
    check_manifest_structure,
    get_manifest_version,
    parse_manifest,
)
from manifest_engine.core.settings_schema import EMPTY_SCHEMA, ObjectNode
from manifest_engine.exceptions import (
    InvalidManifestError,
    InvalidSemverError,
    InvalidSettingsSchemaError,
)


class TestManifestStructure:
    """Test jsonschema structural validation."""

    def test_valid_manifest(self, lottery_v1):
        """Test that a complete manifest passes."""
        is_valid, error, paths = check_manifest_structure(lottery_v1)
        assert is_valid
        assert error is None
        assert paths is None

    def test_missing_version_fails(self):
        """Test that a manifest needs meta.version or version."""
        is_valid, error, _ = check_manifest_structure({"meta": {"name": "x"}})
        assert not is_valid
        assert error

    def test_wrong_field_type_reports_path(self, lottery_v1):
        """Test that type errors are reported with their JSON path."""
        lottery_v1["capabilities"] = "winnerSelection"
        is_valid, _, paths = check_manifest_structure(lottery_v1)
        assert not is_valid
        assert "capabilities" in paths

    def test_not_an_object(self):
        """Test that a non-object manifest fails at the root."""
        is_valid, _, paths = check_manifest_structure(["meta"])
        assert not is_valid
        assert paths == ["<root>"]


class TestManifestVersion:
    """Test version extraction."""

    def test_meta_version_wins(self):
        """Test that meta.version takes precedence over a top-level version."""
        assert get_manifest_version({"meta": {"version": "2.0.0"}, "version": "1.0.0"}) == "2.0.0"

    def test_top_level_fallback(self):
        """Test that a top-level version is used without meta.version."""
        assert get_manifest_version({"version": "1.2.3"}) == "1.2.3"

    def test_missing_version_raises(self):
        """Test that a manifest without any version raises."""
        with pytest.raises(InvalidManifestError) as exc_info:
            get_manifest_version({"meta": {}})
        assert exc_info.value.error_paths == ["meta.version"]


class TestParseManifest:
    """Test full manifest parsing."""

    def test_parses_version_and_schema(self, lottery_v1):
        """Test that version and settings schema are extracted."""
        parsed = parse_manifest(lottery_v1)
        assert parsed.version_string == "1.0.0"
        assert parsed.name == "Holiday Lottery"
        assert isinstance(parsed.settings_schema, ObjectNode)
        assert parsed.settings_schema.required == ("ticketCount",)

    def test_document_is_copied(self, lottery_v1):
        """Test that later caller mutations don't leak into the parsed document."""
        parsed = parse_manifest(lottery_v1)
        lottery_v1["settings"]["required"].append("theme")
        assert parsed.document["settings"]["required"] == ["ticketCount"]

    def test_without_settings(self):
        """Test that manifests without settings accept any object."""
        parsed = parse_manifest({"meta": {"name": "Bare", "version": "0.1.0"}})
        assert parsed.settings_schema is EMPTY_SCHEMA

    def test_invalid_semver(self, lottery_v1):
        """Test that a malformed embedded version is rejected."""
        lottery_v1["meta"]["version"] = "1.0"
        with pytest.raises(InvalidSemverError):
            parse_manifest(lottery_v1)

    def test_invalid_settings_schema(self, lottery_v1):
        """Test that an unsupported settings schema is an invalid manifest."""
        lottery_v1["settings"]["properties"]["ticketCount"] = {"type": "bigint"}
        with pytest.raises(InvalidManifestError) as exc_info:
            parse_manifest(lottery_v1)
        assert isinstance(exc_info.value, InvalidSettingsSchemaError)

    def test_structure_error_raises(self):
        """Test that structural errors raise InvalidManifestError."""
        with pytest.raises(InvalidManifestError) as exc_info:
            parse_manifest({"meta": {"version": 1}})
        assert exc_info.value.code == "INVALID_MANIFEST"
