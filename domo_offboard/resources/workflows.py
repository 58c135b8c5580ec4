"""Workflow models, task center tasks and approval requests."""

from typing import Any

from domo_offboard.exceptions import DomoAPIError
from domo_offboard.resources.base import (
    Cursor,
    MigrationContext,
    Page,
    PerItemResourceKind,
    RequestTemplate,
    ResourceRef,
)
from domo_offboard.resources.search import SearchListing, search_request

APPROVAL_GRAPHQL_PATH = "/api/synapse/approval/graphql"

FILTERED_REQUESTS_QUERY = """query getFilteredRequests($query: QueryRequest!, $after: ID, $reverseSort: Boolean) {
  workflowSearch(query: $query, type: "AC", after: $after, reverseSort: $reverseSort) {
    edges {
      cursor
      node {
        approval {
          id
          title
          templateTitle
          status
          modifiedTime
          version
          providerName
          approvalChainIdx
          pendingApprover: pendingApproverEx {
            id
            type
            displayName
            __typename
          }
          submitter {
            id
            type
            displayName
            __typename
          }
          __typename
        }
        __typename
      }
      __typename
    }
    pageInfo {
      hasNextPage
      hasPreviousPage
      startCursor
      endCursor
      __typename
    }
    __typename
  }
}
"""

REPLACE_APPROVERS_MUTATION = """mutation replaceApprovers($actedOnApprovals: [ActedOnApprovalInput!]!, $newApproverId: ID!, $newApproverType: ApproverType) {
  bulkReplaceApprover(actedOnApprovals: $actedOnApprovals, newApproverId: $newApproverId, newApproverType: $newApproverType) {
    id
    __typename
  }
}
"""

SENT_BACK = "SENT_BACK"


def graphql_data(response: Any, operation: str) -> dict[str, Any]:
    """Pull one operation's `data` out of a batched GraphQL response.

    The approvals endpoint answers 200 even when an operation fails, with
    the failure in `errors`; that is raised as a DomoAPIError.
    """
    results = response if isinstance(response, list) else [response]
    for result in results:
        if not isinstance(result, dict):
            continue
        if result.get("errors"):
            messages = "; ".join(str(e.get("message", e)) for e in result["errors"])
            raise DomoAPIError(f"GraphQL {operation} failed: {messages}")
        if result.get("data"):
            return result["data"]
    return {}


class WorkflowModelKind(SearchListing, PerItemResourceKind):
    kind_tag = "WORKFLOW_MODEL"
    page_size = 100
    list_request = search_request("workflow_model", filter_extra={"facetType": "user"})
    id_field = "uuid"
    mutation = RequestTemplate(
        "PUT", "/api/workflow/v1/models/{id}", body={"owner": "{new_owner_id}"}
    )


class HopperTaskKind(PerItemResourceKind):
    """Open task center tasks assigned to the source user."""

    kind_tag = "HOPPER_TASK"
    page_size = 100
    list_request = RequestTemplate(
        "POST",
        "/api/queues/v1/tasks/list",
        body={"assignedTo": ["{owner_id}"], "status": ["OPEN"]},
        params={"limit": "{limit}", "offset": "{offset}"},
    )
    mutation = RequestTemplate(
        "PUT",
        "/api/queues/v1/{queue_id}/tasks/{id}/assign",
        body={"userId": "{new_owner_id}", "type": "USER", "taskIds": ["{id}"]},
    )

    def to_ref(self, row: dict[str, Any]) -> ResourceRef:
        return ResourceRef(
            id=str(row["id"]),
            kind=self.kind_tag,
            attributes={"queueId": row.get("queueId")},
        )

    def skip_reason(self, context: MigrationContext, ref: ResourceRef) -> str | None:
        if not ref.attributes.get("queueId"):
            return "Task has no queue id"
        return None

    def mutation_values(self, context: MigrationContext, ref: ResourceRef) -> dict[str, Any]:
        values = super().mutation_values(context, ref)
        values["queue_id"] = ref.attributes["queueId"]
        return values


class ApprovalKind(PerItemResourceKind):
    """Active approval requests where the source user is an approver.

    The search is cursor paged by an opaque token. Requests that were sent
    back, or that are currently waiting on someone other than the source
    user, are recorded but left alone.
    """

    kind_tag = "APPROVAL"
    page_size = None
    token_paged = True
    list_request = RequestTemplate(
        "POST",
        APPROVAL_GRAPHQL_PATH,
        body=[
            {
                "operationName": "getFilteredRequests",
                "variables": {
                    "query": {
                        "active": True,
                        "submitterId": None,
                        "approverId": "{owner_id_str}",
                        "templateId": None,
                        "title": None,
                        "lastModifiedBefore": None,
                    },
                    "after": "{after}",
                    "reverseSort": False,
                },
                "query": FILTERED_REQUESTS_QUERY,
            }
        ],
    )
    mutation = RequestTemplate(
        "POST",
        APPROVAL_GRAPHQL_PATH,
        body=[
            {
                "operationName": "replaceApprovers",
                "variables": {
                    "actedOnApprovals": [{"id": "{id}", "version": "{version}"}],
                    "newApproverId": "{new_owner_id_str}",
                    "newApproverType": "PERSON",
                },
                "query": REPLACE_APPROVERS_MUTATION,
            }
        ],
    )

    async def list_page(self, context: MigrationContext, cursor: Cursor) -> Page:
        method, path, body, params = self.list_request.render(**self.list_values(context, cursor))
        response = await context.client.request(method, path, body, params=params)
        search = graphql_data(response, "getFilteredRequests").get("workflowSearch") or {}

        items = [
            self.to_ref(edge["node"]["approval"])
            for edge in search.get("edges") or []
            if (edge.get("node") or {}).get("approval")
        ]
        page_info = search.get("pageInfo") or {}
        next_token = page_info.get("endCursor") if page_info.get("hasNextPage") else None
        return Page(items=items, next_token=next_token)

    def skip_reason(self, context: MigrationContext, ref: ResourceRef) -> str | None:
        if ref.attributes.get("status") == SENT_BACK:
            return "Approval was sent back to the submitter"
        pending = (ref.attributes.get("pendingApprover") or {}).get("id")
        if str(pending) != str(context.source_user_id):
            return "Approval is not pending on this user"
        return None

    def mutation_values(self, context: MigrationContext, ref: ResourceRef) -> dict[str, Any]:
        values = super().mutation_values(context, ref)
        values["version"] = ref.attributes.get("version")
        return values

    async def transfer_one(self, context: MigrationContext, ref: ResourceRef) -> None:
        method, path, body, params = self.mutation.render(**self.mutation_values(context, ref))
        response = await context.client.request(method, path, body, params=params)
        graphql_data(response, "replaceApprovers")
