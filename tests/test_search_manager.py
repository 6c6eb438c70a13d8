import pytest
from fakes import FakeRemote, local_record

from workreplica.metadata import MetadataManager
from workreplica.records import ItemType, StateCategory, StateDefinition
from workreplica.search.index_manager import IndexManager
from workreplica.search.search_manager import (
    SearchManager,
    sort_by_state,
    to_display_item,
)
from workreplica.store import ReplicaStore

BUG_STATES = (
    StateDefinition("New", "b2b2b2", StateCategory.PROPOSED),
    StateDefinition("Active", "007acc", StateCategory.IN_PROGRESS),
    StateDefinition("Closed", "339933", StateCategory.COMPLETED),
    StateDefinition("Resolved", "ff9d00", StateCategory.RESOLVED),
)


class TestSearchManager:
    @pytest.fixture
    def store(self, tmp_path):
        s = ReplicaStore(tmp_path / "replica.db")
        yield s
        s.close()

    @pytest.fixture
    def index_manager(self, store):
        return IndexManager(
            store,
            export_poll_interval=0.01,
            export_grace_period=0,
            export_timeout=1.0,
        )

    @pytest.fixture
    def metadata_manager(self, store):
        return MetadataManager(store)

    @pytest.fixture
    def manager(self, store, index_manager, metadata_manager):
        return SearchManager(store, index_manager, metadata_manager)

    async def load_metadata(self, metadata_manager):
        remote = FakeRemote()
        await metadata_manager.update_metadata_dictionary(
            remote,
            [ItemType("Bug", "https://icons/bug.svg", BUG_STATES)],
        )

    @pytest.mark.asyncio
    async def test_empty_query_returns_nothing(self, manager):
        assert await manager.search("   ") == []

    @pytest.mark.asyncio
    async def test_results_sorted_by_state_category(
        self, manager, store, index_manager, metadata_manager
    ):
        store.bulk_put(
            [
                local_record(1, title="login closed", state="Closed"),
                local_record(2, title="login new", state="New"),
                local_record(3, title="login active", state="Active"),
                local_record(4, title="login odd", state="Mystery"),
                local_record(5, title="login fixed", state="Resolved"),
            ]
        )
        await self.load_metadata(metadata_manager)
        await index_manager.build_index()

        items = await manager.search("login")

        assert [item.id for item in items] == [3, 2, 5, 1, 4]
        assert items[0].state_category is StateCategory.IN_PROGRESS
        assert items[0].state_color == "#007acc"
        assert items[-1].state_category is StateCategory.UNKNOWN
        assert items[-1].state_color == "#b2b2b2"
        assert items[0].icon_data_url.startswith("data:image/svg+xml")

    @pytest.mark.asyncio
    async def test_match_flags(self, manager, store, index_manager):
        store.bulk_put(
            [
                local_record(
                    12,
                    title="Checkout",
                    assignee="José García",
                    iteration="Proj\\Sprint 9",
                    tags="payments; ui",
                )
            ]
        )
        await index_manager.build_index()

        [item] = await manager.search("jose")

        assert item.is_assignee_matched
        assert not item.is_type_matched
        assert not item.is_id_matched
        assert item.tag_matches == (False, False)
        assert item.short_iteration_path == "Sprint 9"

        [item] = await manager.search("pay")
        assert item.tag_matches == (True, False)

    @pytest.mark.asyncio
    async def test_requery_on_index_change(
        self, manager, store, index_manager
    ):
        store.bulk_put([local_record(1, title="rocket launch")])
        await index_manager.build_index()
        pushed = []
        manager.changed.subscribe(pushed.append)

        assert [i.id for i in await manager.search("rocket")] == [1]

        store.bulk_put([local_record(2, title="rocket fuel")])
        await index_manager.build_index()

        assert pushed
        assert pushed[-1].query == "rocket"
        assert sorted(i.id for i in pushed[-1].items) == [1, 2]

    @pytest.mark.asyncio
    async def test_recent(self, manager, store):
        store.bulk_put(
            [
                local_record(1, age=20),
                local_record(2, age=0),
                local_record(3, age=10),
            ]
        )

        items = await manager.recent(limit=2)

        assert [item.id for item in items] == [2, 3]
        assert not items[0].is_id_matched


def test_sort_is_stable_without_metadata():
    records = [local_record(3), local_record(1), local_record(2)]
    assert [r.id for r in sort_by_state({}, records)] == [3, 1, 2]


def test_display_item_without_query_has_no_flags():
    item = to_display_item({}, local_record(5, tags="a; b"))
    assert item.tag_matches == ()
    assert item.icon_data_url is None
