"""Developer kinds: Code Engine packages and sandbox repositories."""

from domo_offboard.resources.base import PerItemResourceKind, RequestTemplate
from domo_offboard.resources.search import search_request


class CodeEnginePackageKind(PerItemResourceKind):
    kind_tag = "CODEENGINE_PACKAGE"
    page_size = 100
    list_request = search_request(
        "package", query="**", hideSearchObjects=True, facetValuesToInclude=[]
    )
    items_path = ("searchResultsMap", "package")
    id_field = "uuid"
    mutation = RequestTemplate(
        "PUT", "/api/codeengine/v2/packages/{id}", body={"owner": "{new_owner_id}"}
    )


class RepositoryKind(PerItemResourceKind):
    """Sandbox repositories; the new owner is granted the OWNER permission."""

    kind_tag = "REPOSITORY"
    page_size = 50
    list_request = RequestTemplate(
        "POST",
        "/api/version/v1/repositories/search",
        body={
            "query": {
                "offset": "{offset}",
                "limit": "{limit}",
                "fieldSearchMap": {},
                "sort": "lastCommit",
                "order": "desc",
                "filters": {"userId": ["{owner_id}"]},
                "dateFilters": {},
            }
        },
    )
    items_path = ("repositories",)
    mutation = RequestTemplate(
        "POST",
        "/api/version/v1/repositories/{id}",
        body={
            "repositoryPermissionUpdates": [
                {"userId": "{new_owner_id}", "groupId": "", "permission": "OWNER"}
            ]
        },
    )
