"""Kinds enumerated through the global search API."""

from typing import Any, ClassVar

from domo_offboard.resources.base import RequestTemplate

SEARCH_PATH = "/api/search/v1/query"


def owned_by_filter(value: str = "{owner_term}", **extra: Any) -> dict[str, Any]:
    """`owned_by_id` term filter; most entities expect `<id>:USER`."""
    return {"field": "owned_by_id", "filterType": "term", "value": value, **extra}


def search_request(
    entity: str,
    owner_value: str = "{owner_term}",
    filter_extra: dict[str, Any] | None = None,
    **extra: Any,
) -> RequestTemplate:
    """Search query for one entity type owned by the source user."""
    body = {
        "query": "*",
        "count": "{limit}",
        "offset": "{offset}",
        "combineResults": False,
        "filters": [owned_by_filter(owner_value, **(filter_extra or {}))],
        "entityList": [[entity]],
    }
    body.update(extra)
    return RequestTemplate("POST", SEARCH_PATH, body=body)


class SearchListing:
    """Mixin for kinds whose listing is a search query.

    Search hits carry the entity's id as `databaseId`, or `uuid` for
    entities keyed by UUID.
    """

    items_path: ClassVar[tuple[str, ...]] = ("searchObjects",)
    id_field: ClassVar[str] = "databaseId"
