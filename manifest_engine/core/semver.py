"""
Semantic version parsing and comparison.

Only strict ``MAJOR.MINOR.PATCH`` strings are accepted: non-negative
integers without leading zeros and without pre-release or build suffixes.
"""

import enum
import re
from dataclasses import dataclass
from typing import Any, Union

from ..exceptions import InvalidSemverError

_SEMVER_RE = re.compile(r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)$")


class BumpKind(str, enum.Enum):
    """Which component a version change increments."""

    MAJOR = "MAJOR"
    MINOR = "MINOR"
    PATCH = "PATCH"
    NONE = "NONE"


@dataclass(frozen=True, order=True)
class SemanticVersion:
    """Parsed ``MAJOR.MINOR.PATCH`` version; compares numerically."""

    major: int
    minor: int
    patch: int

    @classmethod
    def parse(cls, value: Any) -> "SemanticVersion":
        if isinstance(value, SemanticVersion):
            return value
        if not isinstance(value, str):
            raise InvalidSemverError(value)
        match = _SEMVER_RE.match(value)
        if match is None:
            raise InvalidSemverError(value)
        return cls(*(int(part) for part in match.groups()))

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


VersionLike = Union[str, SemanticVersion]


def parse_version(value: Any) -> SemanticVersion:
    """
    Parse a version string.

    Raises:
        InvalidSemverError: If ``value`` is not a strict ``MAJOR.MINOR.PATCH`` string
    """
    return SemanticVersion.parse(value)


def is_valid_version(value: Any) -> bool:
    """Return True when ``value`` parses as a semantic version."""
    try:
        parse_version(value)
    except InvalidSemverError:
        return False
    return True


def is_greater(a: VersionLike, b: VersionLike) -> bool:
    """Return True when ``a`` is strictly newer than ``b``."""
    return parse_version(a) > parse_version(b)


def bump_kind(old: VersionLike, new: VersionLike) -> BumpKind:
    """
    Classify the move from ``old`` to ``new``.

    Returns NONE when the versions are equal or ``new`` is older.
    """
    a, b = parse_version(old), parse_version(new)
    if b <= a:
        return BumpKind.NONE
    if b.major > a.major:
        return BumpKind.MAJOR
    if b.minor > a.minor:
        return BumpKind.MINOR
    return BumpKind.PATCH
