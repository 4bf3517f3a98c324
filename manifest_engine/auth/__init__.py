"""
Authorization collaborators for the manifest engine.
"""

from .provider import (
    AuthorizationProvider,
    CasbinAuthorizationProvider,
    StaticAuthorizationProvider,
    check_permission,
)

__all__ = [
    "AuthorizationProvider",
    "StaticAuthorizationProvider",
    "CasbinAuthorizationProvider",
    "check_permission",
]
