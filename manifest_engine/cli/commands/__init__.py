"""
CLI commands.
"""

from .check_settings import check_settings
from .diff import diff
from .validate import validate

__all__ = ["validate", "diff", "check_settings"]
