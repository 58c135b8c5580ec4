"""End-to-end transfer runs over the full kind registry against a fake backend."""

from unittest.mock import patch

import pytest

from domo_offboard.exceptions import ServerError
from domo_offboard.orchestration import MigrationOrchestrator, transfer_content
from domo_offboard.resources import AlertKind, DatasetKind, GoalKind
from domo_offboard.resources.search import SEARCH_PATH

# Test constants
SOURCE_USER_ID = 42
NEW_OWNER_ID = 99
DATASET_SEARCH_PATH = "/api/data/ui/v3/datasources/search"
CARD_COUNT = 125


def dataset_listing(*ids):
    def respond(body, params):
        if body["offset"] > 0:
            return {"dataSources": []}
        return {"dataSources": [{"id": i, "tags": []} for i in ids]}

    return respond


def card_search(total):
    def respond(body, params):
        if body.get("entityList") != [["card"]]:
            return {}
        offset, count = body["offset"], body["count"]
        return {
            "searchObjects": [
                {"databaseId": i} for i in range(offset, min(offset + count, total))
            ]
        }

    return respond


def rows_for(fake_domo, kind_tag):
    return [row for row in fake_domo.audit_rows if row[2] == kind_tag]


@pytest.mark.asyncio
class TestTransferFlow:
    async def test_datasets_moved_and_audited(self, fake_domo, config):
        fake_domo.on("POST", DATASET_SEARCH_PATH, dataset_listing("D1", "D2"))

        run = await MigrationOrchestrator(fake_domo, config).transfer_content(
            SOURCE_USER_ID, NEW_OWNER_ID
        )

        assert run.failed_kinds == []
        assert run.transferred == 2
        for dataset_id in ("D1", "D2"):
            calls = fake_domo.calls_to(
                "PUT", f"/api/data/v2/datasources/{dataset_id}/responsibleUsers"
            )
            assert [c[2] for c in calls] == [{"responsibleUserId": NEW_OWNER_ID}]
        rows = rows_for(fake_domo, "DATASET")
        assert [(r[0], r[1], r[3], r[5]) for r in rows] == [
            ("42", "99", "D1", "TRANSFERRED"),
            ("42", "99", "D2", "TRANSFERRED"),
        ]
        assert len(fake_domo.audit_rows) == 2

    async def test_owned_publication_logged_for_review(self, fake_domo, config):
        fake_domo.on("GET", "/api/publish/v2/publications", [{"id": "P1"}])
        fake_domo.on(
            "GET",
            "/api/publish/v2/publications/P1",
            {"id": "P1", "content": {"userId": SOURCE_USER_ID}},
        )

        run = await MigrationOrchestrator(fake_domo, config).transfer_content(
            SOURCE_USER_ID, NEW_OWNER_ID
        )

        rows = rows_for(fake_domo, "PUBLICATION")
        assert [(r[3], r[5]) for r in rows] == [("P1", "NOT_TRANSFERRED")]
        assert rows[0][6]
        assert fake_domo.mutation_calls() == []
        assert run.not_transferred == 1

    async def test_cards_audited_in_batches_of_fifty(self, fake_domo, config):
        fake_domo.on("POST", SEARCH_PATH, card_search(CARD_COUNT))

        run = await MigrationOrchestrator(fake_domo, config).transfer_content(
            SOURCE_USER_ID, NEW_OWNER_ID
        )

        assert run.transferred == CARD_COUNT
        card_batches = [
            text.splitlines() for text in fake_domo.appends if ",CARD," in text
        ]
        assert [len(batch) for batch in card_batches] == [50, 50, 25]
        mutations = fake_domo.calls_to("POST", "/api/content/v1/cards/owners/add")
        assert [len(c[2]["cardIds"]) for c in mutations] == [50, 50, 25]
        assert [row[3] for row in rows_for(fake_domo, "CARD")] == [
            str(i) for i in range(CARD_COUNT)
        ]

    async def test_failing_kind_is_isolated(self, fake_domo, config):
        fake_domo.on("POST", DATASET_SEARCH_PATH, dataset_listing("D1"))
        fake_domo.on("GET", "/api/social/v1/objectives/periods", ServerError("down", 503))
        fake_domo.on("GET", "/api/social/v4/alerts", [{"id": 5}])
        kinds = [DatasetKind(), GoalKind(), AlertKind()]

        run = await MigrationOrchestrator(fake_domo, config, kinds=kinds).transfer_content(
            SOURCE_USER_ID, NEW_OWNER_ID
        )

        assert [k.kind_tag for k in run.failed_kinds] == ["GOAL"]
        assert run.transferred == 2
        assert {row[2] for row in fake_domo.audit_rows} == {"DATASET", "ALERT"}
        assert fake_domo.calls_to("POST", "/api/social/v4/alerts/5/share")

    async def test_audit_outage_does_not_block_transfers(self, fake_domo, config):
        fake_domo.append_error = ServerError("dataset locked", 500)
        fake_domo.on("POST", DATASET_SEARCH_PATH, dataset_listing("D1", "D2"))

        run = await MigrationOrchestrator(fake_domo, config).transfer_content(
            SOURCE_USER_ID, NEW_OWNER_ID
        )

        assert run.failed_kinds == []
        assert run.transferred == 2
        assert fake_domo.append_csv.await_count == 1

    async def test_second_run_repeats_the_same_mutations(self, fake_domo, config):
        fake_domo.on("POST", DATASET_SEARCH_PATH, dataset_listing("D1"))
        fake_domo.on("POST", SEARCH_PATH, card_search(3))

        await MigrationOrchestrator(fake_domo, config).transfer_content(
            SOURCE_USER_ID, NEW_OWNER_ID
        )
        first = fake_domo.mutation_calls()
        fake_domo.calls.clear()
        await MigrationOrchestrator(fake_domo, config).transfer_content(
            SOURCE_USER_ID, NEW_OWNER_ID
        )

        assert fake_domo.mutation_calls() == first

    async def test_transfer_content_entry_point(self, fake_domo, config):
        fake_domo.on("POST", DATASET_SEARCH_PATH, dataset_listing("D1"))

        with patch("domo_offboard.orchestration.DomoClient") as client_cls:
            client_cls.return_value.__aenter__.return_value = fake_domo
            run = await transfer_content("42", "99", config=config)

        client_cls.assert_called_once_with(config.domo, config.migration)
        assert run.source_user_id == SOURCE_USER_ID
        assert run.new_owner_id == NEW_OWNER_ID
        assert run.transferred == 1
