"""Lookups and account teardown for Domo users."""

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from domo_offboard.resources.base import bounded_gather

if TYPE_CHECKING:
    from domo_offboard.client import DomoClient

logger = structlog.get_logger(__name__)

SESSION_LIST_LIMIT = 99999999


class UserDirectory:
    """Identity API operations needed around an offboarding run."""

    def __init__(self, client: "DomoClient", max_concurrent: int = 5) -> None:
        self.client = client
        self.max_concurrent = max_concurrent
        self._logger = logger.bind(component="users")

    async def get_user(self, user_id: Any) -> dict[str, Any]:
        """Fetch a user with detailed attributes.

        Identity attributes come back as a list of `{key, values}` pairs;
        they are flattened onto the returned dict, keeping the first value.
        """
        response = await self.client.request(
            "GET",
            f"/api/identity/v1/users/{user_id}",
            params={"parts": "DETAILED"},
        )
        user: dict[str, Any] = {}
        if isinstance(response, dict):
            users = response.get("users")
            user = users[0] if users else response.get("user", response)
        flattened = {k: v for k, v in user.items() if k not in ("attributes", "role")}
        for attribute in user.get("attributes") or []:
            values = attribute.get("values") or []
            flattened[attribute.get("key")] = values[0] if values else None
        return flattened

    async def delete_user_sessions(self, user_id: Any) -> int:
        """Revoke every active session of a user.

        Returns:
            Number of sessions revoked.
        """
        sessions = await self.client.request(
            "GET",
            "/api/sessions/v1/admin",
            params={"limit": SESSION_LIST_LIMIT},
        )
        if isinstance(sessions, dict):
            sessions = sessions.get("sessions", [])
        owned = [s for s in sessions or [] if str(s.get("userId")) == str(user_id)]

        await bounded_gather(
            asyncio.Semaphore(self.max_concurrent),
            [self.client.request("DELETE", f"/api/sessions/v1/admin/{s['id']}") for s in owned],
        )
        self._logger.info("Revoked user sessions", user_id=user_id, count=len(owned))
        return len(owned)

    async def delete_user(self, user_id: Any) -> None:
        """Delete a user account."""
        await self.client.request("DELETE", f"/api/identity/v1/users/{user_id}")
        self._logger.info("Deleted user", user_id=user_id)
