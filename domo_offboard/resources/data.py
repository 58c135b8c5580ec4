"""Data platform kinds: datasets, dataflows, accounts, functions and storage."""

from typing import Any

from domo_offboard.exceptions import ConfigurationError
from domo_offboard.resources.base import (
    BatchResourceKind,
    Cursor,
    MigrationContext,
    PerItemResourceKind,
    RequestTemplate,
    ResourceRef,
    principal_id,
)
from domo_offboard.resources.search import SEARCH_PATH, SearchListing, owned_by_filter, search_request

PROVENANCE_PREFIX = "From "


class DatasetKind(PerItemResourceKind):
    """Datasets, reassigned through their responsible user.

    After reassignment the dataset is tagged `From <previous owner>` so the
    new owner can tell inherited datasets apart; any earlier provenance tag
    is replaced rather than accumulated.
    """

    kind_tag = "DATASET"
    page_size = 100
    list_request = RequestTemplate(
        "POST",
        "/api/data/ui/v3/datasources/search",
        body={
            "entities": ["DATASET"],
            "filters": [{"field": "owned_by_id", "filterType": "term", "value": "{owner_id}"}],
            "combineResults": True,
            "query": "*",
            "count": "{limit}",
            "offset": "{offset}",
            "sort": {
                "isRelevance": False,
                "fieldSorts": [{"field": "create_date", "sortOrder": "DESC"}],
            },
        },
    )
    items_path = ("dataSources",)
    mutation = RequestTemplate(
        "PUT",
        "/api/data/v2/datasources/{id}/responsibleUsers",
        body={"responsibleUserId": "{new_owner_id}"},
    )

    async def transfer_one(self, context: MigrationContext, ref: ResourceRef) -> None:
        # A failed name lookup must leave the dataset untouched.
        if context.deployment.tag_provenance:
            await context.source_display_name()
        await super().transfer_one(context, ref)

    async def after_transfer(self, context: MigrationContext, ref: ResourceRef) -> None:
        if not context.deployment.tag_provenance:
            return
        display_name = await context.source_display_name()
        existing = ref.attributes.get("tags") or []
        tags = [t for t in existing if not str(t).startswith(PROVENANCE_PREFIX)]
        tags.append(f"{PROVENANCE_PREFIX}{display_name}")
        await context.client.request(
            "PUT", f"/api/data/ui/v3/datasources/{ref.id}/tags", tags
        )


class DataflowKind(SearchListing, PerItemResourceKind):
    kind_tag = "DATAFLOW"
    page_size = 100
    list_request = RequestTemplate(
        "POST",
        SEARCH_PATH,
        body={
            "entities": ["DATAFLOW"],
            "filters": [owned_by_filter("{owner_id}")],
            "query": "*",
            "count": "{limit}",
            "offset": "{offset}",
        },
    )
    mutation = RequestTemplate(
        "PUT",
        "/api/dataprocessing/v1/dataflows/{id}/patch",
        body={"responsibleUserId": "{new_owner_id}"},
    )


class AccountKind(PerItemResourceKind):
    """Data connector accounts; the new owner is granted OWNER access."""

    kind_tag = "ACCOUNT"
    page_size = 100
    list_request = search_request(
        "account",
        owner_value="{owner_id}",
        query="**",
        hideSearchObjects=True,
        facetValuesToInclude=[],
        queryProfile="GLOBAL",
    )
    items_path = ("searchResultsMap", "account")
    mutation = RequestTemplate(
        "PUT",
        "/api/data/v2/accounts/share/{id}",
        body={"type": "USER", "id": "{new_owner_id}", "accessLevel": "OWNER"},
    )


class ReportScheduleKind(PerItemResourceKind):
    """Scheduled reports.

    Report owners cannot be listed directly, so they are read from the
    scheduled reports statistics dataset configured for the deployment.
    """

    kind_tag = "REPORT_SCHEDULE"
    page_size = 10000
    list_request = RequestTemplate(
        "POST",
        "api/query/v1/execute/{dataset_id}",
        body={
            "querySource": "data_table",
            "useCache": True,
            "query": {
                "columns": [{"exprType": "COLUMN", "column": "Report Id"}],
                "limit": {"limit": "{limit}", "offset": "{offset}"},
                "orderByColumns": [],
                "groupByColumns": [],
                "where": {
                    "not": False,
                    "exprType": "IN",
                    "leftExpr": {"exprType": "COLUMN", "column": "Owner Id"},
                    "selectSet": [{"exprType": "STRING_VALUE", "value": "{owner_id_str}"}],
                },
                "having": None,
            },
            "context": {
                "calendar": "StandardCalendar",
                "features": {
                    "PerformTimeZoneConversion": True,
                    "AllowNullValues": True,
                    "TreatNumbersAsStrings": True,
                },
            },
            "viewTemplate": None,
            "tableAliases": None,
        },
    )
    items_path = ("rows",)
    mutation = RequestTemplate(
        "PUT",
        "/api/content/v1/reportschedules/{id}",
        body={"ownerId": "{new_owner_id}"},
    )

    def list_values(self, context: MigrationContext, cursor: Cursor) -> dict[str, Any]:
        dataset_id = context.deployment.scheduled_reports_dataset_id
        if not dataset_id:
            raise ConfigurationError("Scheduled reports dataset id is not configured")
        values = super().list_values(context, cursor)
        values["dataset_id"] = dataset_id
        return values

    def to_ref(self, row: Any) -> ResourceRef:
        return ResourceRef(id=str(row[0]), kind=self.kind_tag, attributes={"row": row})


class BeastModeKind(BatchResourceKind):
    """Beast Mode formulas and variables, updated in one bulk template call."""

    kind_tag = "BEAST_MODE_FORMULA"
    page_size = 100
    list_request = RequestTemplate(
        "POST",
        "/api/query/v1/functions/search",
        body={
            "name": "",
            "filters": [{"field": "owner", "idList": ["{owner_id}"]}],
            "sort": {"field": "name", "ascending": True},
            "limit": "{limit}",
            "offset": "{offset}",
        },
    )
    items_path = ("results",)
    mutation = RequestTemplate(
        "PUT", "/api/query/v1/functions/bulk/template", body={"update": "{updates}"}
    )

    def batch_values(self, context: MigrationContext, refs: list[ResourceRef]) -> dict[str, Any]:
        values = super().batch_values(context, refs)
        values["updates"] = [
            {"id": principal_id(ref.id), "owner": context.new_owner_id} for ref in refs
        ]
        return values


class CollectionKind(PerItemResourceKind):
    """AppDB collections, paged by page number."""

    kind_tag = "COLLECTION"
    page_size = 100
    list_request = RequestTemplate(
        "POST",
        "/api/datastores/v1/collections/query",
        body={
            "collectionFilteringList": [
                {
                    "filterType": "ownedby",
                    "comparingCriteria": "equals",
                    "typedValue": "{owner_id}",
                }
            ],
            "pageSize": "{limit}",
            "pageNumber": "{page_number}",
        },
    )
    items_path = ("collections",)
    mutation = RequestTemplate(
        "PUT",
        "/api/datastores/v1/collections/{id}",
        body={"id": "{id}", "owner": "{new_owner_id}"},
    )


class FilesetKind(PerItemResourceKind):
    kind_tag = "FILESET"
    page_size = 100
    list_request = RequestTemplate(
        "POST",
        "/api/files/v1/filesets/search",
        body={
            "filters": [
                {"field": "owner", "value": ["{owner_id}"], "not": False, "operator": "EQUALS"}
            ],
            "fieldSort": [{"field": "updated", "order": "DESC"}],
            "dateFilters": [],
        },
        params={"offset": "{offset}", "limit": "{limit}"},
    )
    items_path = ("filesets",)
    mutation = RequestTemplate(
        "POST",
        "/api/files/v1/filesets/{id}/ownership",
        body={"userId": "{new_owner_id}"},
    )
