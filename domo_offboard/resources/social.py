"""Alerts and goals."""

import copy
from typing import Any

from domo_offboard.resources.base import (
    Cursor,
    MigrationContext,
    Page,
    PerItemResourceKind,
    RequestTemplate,
    ResourceRef,
)


class AlertKind(PerItemResourceKind):
    """Alerts; the new owner is subscribed through the share endpoint."""

    kind_tag = "ALERT"
    page_size = 50
    list_request = RequestTemplate(
        "GET",
        "/api/social/v4/alerts",
        params={"ownerId": "{owner_id}", "limit": "{limit}", "offset": "{offset}"},
    )
    mutation = RequestTemplate(
        "POST",
        "/api/social/v4/alerts/{id}/share",
        body={"alertSubscriptions": [{"subscriberId": "{new_owner_id}", "type": "USER"}]},
    )


class GoalKind(PerItemResourceKind):
    """Goals of the current objectives period.

    The goal profile endpoint is not paginated; it is fetched once. The
    whole goal is written back with the owner list replaced by the new
    owner.
    """

    kind_tag = "GOAL"
    page_size = None

    async def current_period_id(self, context: MigrationContext) -> Any:
        periods = await context.client.request(
            "GET", "/api/social/v1/objectives/periods", params={"all": "true"}
        )
        current = next((p for p in periods or [] if p.get("current")), None)
        return current["id"] if current else None

    async def list_page(self, context: MigrationContext, cursor: Cursor) -> Page:
        period_id = await self.current_period_id(context)
        if period_id is None:
            self._logger.warning("No current objectives period; skipping goals")
            return Page(items=[])

        goals = await context.client.request(
            "GET",
            "api/social/v2/objectives/profile",
            params={
                "filterKeyResults": "false",
                "includeSampleGoal": "false",
                "periodId": period_id,
                "ownerId": context.source_user_id,
            },
        )
        rows = goals if isinstance(goals, list) else []
        return Page(items=[self.to_ref(goal) for goal in rows])

    async def transfer_one(self, context: MigrationContext, ref: ResourceRef) -> None:
        goal = copy.deepcopy(ref.attributes)
        goal["ownerId"] = context.new_owner_id
        goal["owners"] = [
            {"ownerId": context.new_owner_id, "ownerType": "USER", "primary": False}
        ]
        await context.client.request("PUT", f"/api/social/v1/objectives/{ref.id}", goal)
