"""Domo Everywhere publications and subscriptions."""

from domo_offboard.resources.base import (
    Cursor,
    MigrationContext,
    Page,
    PerItemResourceKind,
    ResourceRef,
    bounded_gather,
)
from domo_offboard.resources.content import same_principal


class PublicationKind(PerItemResourceKind):
    """Publications owned by the source user.

    A publication can only move to someone who already owns every piece of
    content in it, which cannot be checked safely here. They are listed
    and logged for manual review and never mutated.
    """

    kind_tag = "PUBLICATION"
    page_size = None
    supports_transfer = False
    unsupported_note = (
        "Publication not transferred: the new owner must already own all "
        "published content; review manually"
    )

    async def list_page(self, context: MigrationContext, cursor: Cursor) -> Page:
        publications = await context.client.request("GET", "/api/publish/v2/publications")
        publications = publications if isinstance(publications, list) else []
        details = await bounded_gather(
            context.semaphore,
            [
                context.client.request("GET", f"/api/publish/v2/publications/{p['id']}")
                for p in publications
            ],
        )
        items = [
            self.to_ref(detail)
            for detail in details
            if isinstance(detail, dict)
            and same_principal((detail.get("content") or {}).get("userId"), context.source_user_id)
        ]
        return Page(items=items, fetched=len(publications))


class SubscriptionKind(PerItemResourceKind):
    """Subscriptions to publications from other instances.

    The summaries carry no owner, so each subscription's share record is
    read to find those belonging to the source user. The share's users and
    groups are written back unchanged with the new owner.
    """

    kind_tag = "SUBSCRIPTION"
    page_size = None

    async def list_page(self, context: MigrationContext, cursor: Cursor) -> Page:
        summaries = await context.client.request("GET", "api/publish/v2/subscriptions/summaries")
        summaries = summaries if isinstance(summaries, list) else []
        shares = await bounded_gather(
            context.semaphore,
            [
                context.client.request(
                    "GET", f"api/publish/v2/subscriptions/{s['subscriptionId']}/share"
                )
                for s in summaries
            ],
        )
        items = [
            ResourceRef(id=str(share["subscription"]["id"]), kind=self.kind_tag, attributes=share)
            for share in shares
            if isinstance(share, dict)
            and share.get("subscription")
            and same_principal(share.get("userId"), context.source_user_id)
        ]
        return Page(items=items, fetched=len(summaries))

    async def transfer_one(self, context: MigrationContext, ref: ResourceRef) -> None:
        share = ref.attributes
        subscription = share["subscription"]
        await context.client.request(
            "PUT",
            f"/api/publish/v2/subscriptions/{ref.id}",
            {
                "publicationId": subscription.get("publicationId"),
                "domain": subscription.get("domain"),
                "customerId": subscription.get("customerId"),
                "userId": context.new_owner_id,
                "userIds": share.get("shareUsers") or [],
                "groupIds": share.get("shareGroups") or [],
            },
        )
