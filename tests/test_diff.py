import pytest
from fakes import local_record, remote_item

from workreplica.sync.diff import (
    DiffOutcome,
    classify,
    classify_one,
    diff_page,
    get_pages,
)


class TestClassify:
    def test_missing_local_is_added(self):
        assert classify_one(remote_item(1, 3), None) is DiffOutcome.ADDED

    def test_newer_remote_is_updated(self):
        outcome = classify_one(remote_item(1, 3), local_record(1, 2))
        assert outcome is DiffOutcome.UPDATED

    def test_equal_rev_is_unchanged(self):
        outcome = classify_one(remote_item(1, 3), local_record(1, 3))
        assert outcome is DiffOutcome.UNCHANGED

    def test_older_remote_is_inconsistent(self):
        outcome = classify_one(remote_item(1, 2), local_record(1, 3))
        assert outcome is DiffOutcome.INCONSISTENT

    def test_only_rev_is_compared(self):
        remote = remote_item(1, 4, title="renamed")
        local = local_record(1, 4, title="first")
        assert classify_one(remote, local) is DiffOutcome.UNCHANGED

    def test_classify_uses_lookup(self):
        locals_ = {2: local_record(2, 1)}
        outcomes = classify(
            [remote_item(1), remote_item(2, 1)], locals_.get
        )
        assert outcomes == {
            1: DiffOutcome.ADDED,
            2: DiffOutcome.UNCHANGED,
        }


class TestDiffPage:
    def test_partitions_page(self):
        remote = [
            remote_item(1, 7),
            remote_item(2, 1),
            remote_item(3, 4),
            remote_item(4, 1),
        ]
        local = [
            local_record(1, 5),
            None,
            local_record(3, 4),
            local_record(4, 2),
        ]

        diff = diff_page(remote, local)

        assert diff.added_ids == [2]
        assert diff.updated_ids == [1]
        assert diff.unchanged_ids == [3]
        assert diff.inconsistent_ids == [4]
        assert not diff.is_consistent

    def test_clean_page_is_consistent(self):
        diff = diff_page([remote_item(1, 2)], [local_record(1, 1)])
        assert diff.is_consistent

    def test_misaligned_input_rejected(self):
        with pytest.raises(ValueError):
            diff_page([remote_item(1)], [])


class TestGetPages:
    def test_splits_in_order(self):
        assert get_pages([1, 2, 3, 4, 5], size=2) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        assert get_pages([], size=2) == []
