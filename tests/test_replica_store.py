import pytest
from fakes import local_record

from workreplica.records import (
    FIELD_ASSIGNED_TO,
    FIELD_ITERATION_PATH,
    FIELD_STATE,
    FIELD_TAGS,
    FIELD_TITLE,
    FIELD_TYPE,
    MetadataEntry,
    RemoteItem,
    StateCategory,
    StateDefinition,
    to_local_record,
)
from workreplica.store import ReplicaStore


class TestReplicaStore:
    @pytest.fixture
    def store(self, tmp_path):
        s = ReplicaStore(tmp_path / "replica.db")
        yield s
        s.close()

    def test_empty_store(self, store):
        assert store.count() == 0
        assert store.get(1) is None
        assert store.bulk_get([]) == []

    def test_bulk_put_and_get(self, store):
        record = local_record(7, rev=3, tags="alpha; beta")
        store.bulk_put([record])

        loaded = store.get(7)
        assert loaded == record
        assert loaded.tags == ("alpha", "beta")

    def test_null_remote_fields_are_stored_empty(self, store):
        fields = {
            FIELD_TITLE: None,
            FIELD_TYPE: None,
            FIELD_STATE: None,
            FIELD_ITERATION_PATH: None,
            FIELD_ASSIGNED_TO: None,
            FIELD_TAGS: None,
        }
        record = to_local_record(RemoteItem(id=5, rev=2, fields=fields))

        assert store.replace_all([record]) == 1
        loaded = store.get(5)
        assert loaded.title == ""
        assert loaded.type_name == ""
        assert loaded.assignee == "Unassigned"
        assert loaded.tags == ()

    def test_bulk_put_upserts(self, store):
        store.bulk_put([local_record(1, rev=1, title="old")])
        store.bulk_put([local_record(1, rev=2, title="new")])

        assert store.count() == 1
        assert store.get(1).rev == 2
        assert store.get(1).title == "new"

    def test_bulk_get_preserves_order_with_gaps(self, store):
        store.bulk_put([local_record(1), local_record(3)])

        result = store.bulk_get([3, 2, 1])

        assert [r.id if r else None for r in result] == [3, None, 1]

    def test_bulk_get_many_ids(self, store):
        store.bulk_put(local_record(i) for i in range(1, 1201))

        result = store.bulk_get(range(1, 1201))

        assert len(result) == 1200
        assert all(r is not None for r in result)

    def test_delete_present_returns_only_existing(self, store):
        store.bulk_put([local_record(1), local_record(2)])

        deleted = store.delete_present([2, 99])

        assert deleted == [2]
        assert store.get(2) is None
        assert store.count() == 1

    def test_replace_all(self, store):
        store.bulk_put([local_record(1), local_record(2)])

        store.replace_all([local_record(5), local_record(6)])

        assert sorted(r.id for r in store.iter_items()) == [5, 6]

    def test_recent_orders_by_changed_date(self, store):
        store.bulk_put(
            [
                local_record(1, age=30),
                local_record(2, age=0),
                local_record(3, age=10),
            ]
        )

        assert [r.id for r in store.recent(2)] == [2, 3]

    def test_clear_items_keeps_other_tables(self, store):
        store.bulk_put([local_record(1)])
        store.write_snapshot([("reg", b"x")])

        store.clear_items()

        assert store.count() == 0
        assert store.read_snapshot() == [("reg", b"x")]

    def test_snapshot_write_replaces(self, store):
        store.write_snapshot([("a", b"1"), ("b", b"2")])
        store.write_snapshot([("c", b"3")])

        assert store.read_snapshot() == [("c", b"3")]

        store.clear_snapshot()
        assert store.read_snapshot() == []

    def test_item_types_roundtrip(self, store):
        entry = MetadataEntry(
            type_name="Bug",
            icon_url="https://icons/bug.svg",
            icon_bytes=b"<svg/>",
            icon_content_type="image/svg+xml",
            states=(
                StateDefinition("Active", "007acc", StateCategory.IN_PROGRESS),
                StateDefinition("Odd", "ffffff", StateCategory.UNKNOWN),
            ),
        )
        assert store.put_item_types([entry]) == 1

        assert store.list_item_types() == [entry]

        store.clear_item_types()
        assert store.list_item_types() == []

    def test_persists_across_reopen(self, tmp_path):
        path = tmp_path / "replica.db"
        first = ReplicaStore(path)
        first.bulk_put([local_record(42, rev=9)])
        first.close()

        second = ReplicaStore(path)
        try:
            assert second.get(42).rev == 9
        finally:
            second.close()
