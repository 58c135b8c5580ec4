"""Data science kinds: Jupyter workspaces, AI models and AI projects."""

from domo_offboard.resources.base import PerItemResourceKind, RequestTemplate


def ml_search_request(entity: str) -> RequestTemplate:
    return RequestTemplate(
        "POST",
        f"/api/datascience/ml/v1/search/{entity}",
        body={
            "limit": "{limit}",
            "offset": "{offset}",
            "sortFieldMap": {"CREATED": "DESC"},
            "searchFieldMap": {"NAME": ""},
            "filters": [{"type": "OWNER", "values": ["{owner_id}"]}],
            "metricFilters": {},
            "dateFilters": {},
            "sortMetricMap": {},
        },
    )


class WorkspaceKind(PerItemResourceKind):
    kind_tag = "WORKSPACES"
    page_size = 100
    list_request = RequestTemplate(
        "POST",
        "/api/datascience/v1/search/workspaces",
        body={
            "sortFieldMap": {"LAST_RUN": "DESC"},
            "searchFieldMap": {},
            "filters": [{"type": "OWNER", "values": ["{owner_id}"]}],
            "offset": "{offset}",
            "limit": "{limit}",
        },
    )
    items_path = ("workspaces",)
    mutation = RequestTemplate(
        "PUT",
        "/api/datascience/v1/workspaces/{id}/ownership",
        body={"newOwnerId": "{new_owner_id}"},
    )


class ModelKind(PerItemResourceKind):
    kind_tag = "MODELS"
    page_size = 50
    list_request = ml_search_request("models")
    items_path = ("models",)
    mutation = RequestTemplate(
        "POST",
        "/api/datascience/ml/v1/models/{id}/ownership",
        body={"userId": "{new_owner_id}"},
    )


class AIProjectKind(PerItemResourceKind):
    kind_tag = "AI_PROJECT"
    page_size = 50
    list_request = ml_search_request("projects")
    items_path = ("projects",)
    mutation = RequestTemplate(
        "POST",
        "/api/datascience/ml/v1/projects/{id}/ownership",
        body={"userId": "{new_owner_id}"},
    )
