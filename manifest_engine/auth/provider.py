"""
Authorization Provider Interface

Defines the pluggable authorization collaborator the engine consults before
publishing, deprecating or upgrading. Providers answer one question:
may ``actor_id`` perform ``action`` on ``resource_id``?

All providers fail closed: any error during evaluation denies access.

This module is part of MANIFEST_ENGINE.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Protocol

from ..constants import AUTHZ_CACHE_TTL, MAX_CACHE_SIZE

if TYPE_CHECKING:
    import casbin

logger = logging.getLogger(__name__)

WILDCARD = "*"


class AuthorizationProvider(Protocol):
    """
    Defines the "contract" for any pluggable authorization provider.
    """

    async def has_permission(self, actor_id: str, action: str, resource_id: str) -> bool:
        """
        Checks if an actor may perform an action on a resource.
        """
        ...


class StaticAuthorizationProvider:
    """
    Grant-table provider for embedding and tests.

    Grants are ``(actor_id, action, resource_id)`` triples; ``"*"`` matches
    any action or resource.

    Example:
        authz = StaticAuthorizationProvider([
            ("alice", "app:manage", "app_lottery_v1"),
            ("bob", "room:upgrade", "*"),
        ])
    """

    def __init__(self, grants: Iterable[tuple[str, str, str]] = ()):
        self._grants: set[tuple[str, str, str]] = set(grants)

    def grant(self, actor_id: str, action: str, resource_id: str = WILDCARD) -> None:
        self._grants.add((actor_id, action, resource_id))

    def revoke(self, actor_id: str, action: str, resource_id: str = WILDCARD) -> None:
        self._grants.discard((actor_id, action, resource_id))

    async def has_permission(self, actor_id: str, action: str, resource_id: str) -> bool:
        if not actor_id:
            return False
        for granted_action in (action, WILDCARD):
            for granted_resource in (resource_id, WILDCARD):
                if (actor_id, granted_action, granted_resource) in self._grants:
                    return True
        return False


class CasbinAuthorizationProvider:
    """
    Implements the AuthorizationProvider interface using a Casbin enforcer.

    The enforcer's ``enforce(sub, obj, act)`` is synchronous, so it runs in a
    worker thread. Results are cached for ``AUTHZ_CACHE_TTL`` seconds.
    Requires the optional ``casbin`` extra.
    """

    def __init__(self, enforcer: "casbin.Enforcer", cache_ttl: int = AUTHZ_CACHE_TTL):
        self._enforcer = enforcer
        self._cache_ttl = cache_ttl
        self._cache: dict[tuple[str, str, str], tuple[bool, float]] = {}
        self._cache_lock = asyncio.Lock()
        logger.info("CasbinAuthorizationProvider initialized with caching.")

    async def has_permission(self, actor_id: str, action: str, resource_id: str) -> bool:
        cache_key = (actor_id, resource_id, action)
        now = time.time()

        async with self._cache_lock:
            cached = self._cache.get(cache_key)
            if cached is not None:
                result, cached_at = cached
                if now - cached_at < self._cache_ttl:
                    return result
                del self._cache[cache_key]

        try:
            result = bool(
                await asyncio.to_thread(self._enforcer.enforce, actor_id, resource_id, action)
            )
        except Exception as e:  # noqa: BLE001 - fail closed on any enforcer error
            logger.error(
                f"Casbin 'enforce' check failed for ({actor_id}, {resource_id}, {action}): {e}",
                exc_info=True,
            )
            return False

        async with self._cache_lock:
            self._cache[cache_key] = (result, now)
            if len(self._cache) > MAX_CACHE_SIZE:
                oldest_key = min(self._cache.items(), key=lambda item: item[1][1])[0]
                del self._cache[oldest_key]
        return result

    async def clear_cache(self) -> None:
        """Clears the authorization cache. Call after policies change."""
        async with self._cache_lock:
            self._cache.clear()
        logger.info("Authorization cache cleared.")


async def check_permission(
    provider: Any, actor_id: str | None, action: str, resource_id: str
) -> bool:
    """
    Ask ``provider`` and fail closed on missing actor or provider errors.
    """
    if provider is None or not actor_id:
        return False
    try:
        return bool(await provider.has_permission(actor_id, action, resource_id))
    except Exception as e:  # noqa: BLE001 - fail closed on any provider error
        logger.error(
            f"Authorization provider failed for ({actor_id}, {action}, {resource_id}): {e}",
            exc_info=True,
        )
        return False
