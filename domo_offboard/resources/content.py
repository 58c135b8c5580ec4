"""Content kinds: cards, pages, apps, groups and projects."""

import copy
from typing import Any

from domo_offboard.resources.base import (
    BatchResourceKind,
    Cursor,
    MigrationContext,
    Page,
    PerItemResourceKind,
    RequestTemplate,
    ResourceRef,
    TransferScope,
    bounded_gather,
)
from domo_offboard.resources.search import SearchListing, search_request

_OWNER_FACET = {"name": "OWNED_BY_ID", "facetType": "user"}


def same_principal(a: Any, b: Any) -> bool:
    return a is not None and b is not None and str(a) == str(b)


class CardKind(SearchListing, BatchResourceKind):
    """Cards; the new owner is added through the bulk owners endpoint."""

    kind_tag = "CARD"
    page_size = 50
    list_request = search_request("card", filter_extra=_OWNER_FACET)
    mutation = RequestTemplate(
        "POST",
        "/api/content/v1/cards/owners/add",
        body={
            "cardIds": "{native_ids}",
            "cardOwners": [{"id": "{new_owner_id}", "type": "USER"}],
            "note": "",
            "sendEmail": False,
        },
    )


class PageKind(SearchListing, BatchResourceKind):
    kind_tag = "PAGE"
    page_size = 50
    list_request = search_request("page", filter_extra=_OWNER_FACET)
    mutation = RequestTemplate(
        "PUT",
        "/api/content/v1/pages/bulk/owners",
        body={
            "owners": [{"id": "{new_owner_id}", "type": "USER"}],
            "pageIds": "{native_ids}",
        },
    )


class DataAppKind(BatchResourceKind):
    """App Studio apps.

    The admin summary cannot filter by owner, so every app is listed and the
    source user's apps are picked out client-side. The listing is not
    affected by reassignment, which lets each page transfer as it arrives.
    """

    kind_tag = "DATA_APP"
    page_size = 30
    transfer_scope = TransferScope.PAGE
    list_request = RequestTemplate(
        "POST",
        "/api/content/v1/dataapps/adminsummary",
        body={},
        params={"limit": "{limit}", "skip": "{offset}"},
    )
    items_path = ("dataAppAdminSummaries",)
    id_field = "dataAppId"
    mutation = RequestTemplate(
        "PUT",
        "/api/content/v1/dataapps/bulk/owners",
        body={
            "note": "",
            "entityIds": "{ids}",
            "owners": [{"type": "USER", "id": "{new_owner_id}"}],
            "sendEmail": False,
        },
    )

    def owns(self, context: MigrationContext, row: dict[str, Any]) -> bool:
        return any(
            same_principal(owner.get("id"), context.source_user_id)
            for owner in row.get("owners") or []
        )


class GroupKind(BatchResourceKind):
    """Groups; the source user is removed from the owners as the new owner is added."""

    kind_tag = "GROUP"
    page_size = 100
    list_request = RequestTemplate(
        "GET",
        "/api/content/v2/groups/grouplist",
        params={"owner": "{owner_id}", "limit": "{limit}", "offset": "{offset}"},
    )
    mutation = RequestTemplate("PUT", "/api/content/v2/groups/access", body="{changes}")

    def batch_values(self, context: MigrationContext, refs: list[ResourceRef]) -> dict[str, Any]:
        values = super().batch_values(context, refs)
        values["changes"] = [
            {
                "groupId": group_id,
                "addOwners": [{"type": "USER", "id": context.new_owner_id}],
                "removeOwners": [{"type": "USER", "id": context.source_user_id}],
            }
            for group_id in values["native_ids"]
        ]
        return values


class AppKind(PerItemResourceKind):
    """Custom apps (bricks and pro-code apps).

    Like DATA_APP, the designs listing is unfiltered and owners are matched
    client-side.
    """

    kind_tag = "APP"
    page_size = 30
    transfer_scope = TransferScope.PAGE
    list_request = RequestTemplate(
        "GET",
        "/api/apps/v1/designs",
        params={"checkAdminAuthority": "true", "limit": "{limit}", "offset": "{offset}"},
    )
    mutation = RequestTemplate(
        "POST", "/api/apps/v1/designs/{id}/permissions/ADMIN", body=["{new_owner_id}"]
    )

    def owns(self, context: MigrationContext, row: dict[str, Any]) -> bool:
        return same_principal(row.get("owner"), context.source_user_id)


PROJECTS_REQUEST = RequestTemplate(
    "GET",
    "/api/content/v2/users/{owner_id}/projects",
    params={"limit": "{limit}", "offset": "{offset}"},
)


def project_rows(response: Any) -> list[dict[str, Any]]:
    """The projects endpoint answers with either a list or `{projects: [...]}`."""
    if isinstance(response, dict):
        response = response.get("projects")
    return response if isinstance(response, list) else []


class ProjectKind(PerItemResourceKind):
    """Projects the source user is a member of; only those assigned to them move."""

    kind_tag = "PROJECT"
    page_size = 100
    list_request = PROJECTS_REQUEST
    mutation = RequestTemplate(
        "PUT",
        "/api/content/v1/project/{id}",
        body={"id": "{native_id}", "assignedTo": "{new_owner_id}"},
    )

    def extract_items(self, response: Any) -> list[dict[str, Any]]:
        return project_rows(response)

    def owns(self, context: MigrationContext, row: dict[str, Any]) -> bool:
        return same_principal(row.get("assignedTo"), context.source_user_id)


class ProjectTaskKind(PerItemResourceKind):
    """Project tasks assigned to the source user.

    Each listing page is a page of projects; the tasks of every project on
    it are fetched and become the page's items. On transfer the task's
    owner and contributor lists are rewritten: the source user is removed
    and the new owner added once, attributed to the service account.
    """

    kind_tag = "PROJECT_TASK"
    page_size = 100
    list_request = PROJECTS_REQUEST

    def extract_items(self, response: Any) -> list[dict[str, Any]]:
        return project_rows(response)

    async def list_page(self, context: MigrationContext, cursor: Cursor) -> Page:
        method, path, body, params = PROJECTS_REQUEST.render(**self.list_values(context, cursor))
        projects = self.extract_items(await context.client.request(method, path, body, params=params))

        responses = await bounded_gather(
            context.semaphore,
            [
                context.client.request(
                    "GET",
                    f"/api/content/v1/projects/{project['id']}/tasks",
                    params={"assignedToOwnerId": context.source_user_id},
                )
                for project in projects
            ],
        )
        items = [
            ResourceRef(id=str(task["id"]), kind=self.kind_tag, attributes=task)
            for response in responses
            for task in (response if isinstance(response, list) else [])
        ]
        return Page(items=items, fetched=len(projects))

    def reassigned_task(self, context: MigrationContext, task: dict[str, Any]) -> dict[str, Any]:
        """Copy of `task` with ownership moved to the new owner."""
        updated = copy.deepcopy(task)
        if same_principal(updated.get("primaryTaskOwner"), context.source_user_id):
            updated["primaryTaskOwner"] = context.new_owner_id

        assignment: dict[str, Any] = {"assignedTo": context.new_owner_id}
        if context.deployment.service_account_id is not None:
            assignment["assignedBy"] = context.deployment.service_account_id

        for key in ("owners", "contributors"):
            entries = [
                entry
                for entry in updated.get(key) or []
                if not same_principal(entry.get("assignedTo"), context.source_user_id)
            ]
            if not any(same_principal(e.get("assignedTo"), context.new_owner_id) for e in entries):
                entries.append(dict(assignment))
            updated[key] = entries
        return updated

    async def transfer_one(self, context: MigrationContext, ref: ResourceRef) -> None:
        await context.client.request(
            "PUT",
            f"/api/content/v1/tasks/{ref.id}",
            self.reassigned_task(context, ref.attributes),
        )
