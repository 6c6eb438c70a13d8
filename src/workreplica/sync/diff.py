"""Page-level reconciliation of remote items against the replica."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from workreplica.config import PAGE_SIZE
from workreplica.records import LocalRecord, RemoteItem

T = TypeVar("T")


class DiffOutcome(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    INCONSISTENT = "inconsistent"


def classify_one(
    remote: RemoteItem, local: LocalRecord | None
) -> DiffOutcome:
    """Revision is the only staleness signal; fields are never compared."""
    if local is None:
        return DiffOutcome.ADDED
    if remote.rev > local.rev:
        return DiffOutcome.UPDATED
    if remote.rev == local.rev:
        return DiffOutcome.UNCHANGED
    return DiffOutcome.INCONSISTENT


def classify(
    remote_items: Sequence[RemoteItem],
    local_lookup: Callable[[int], LocalRecord | None],
) -> dict[int, DiffOutcome]:
    return {
        item.id: classify_one(item, local_lookup(item.id))
        for item in remote_items
    }


@dataclass
class PageDiff:
    added_ids: list[int] = field(default_factory=list)
    updated_ids: list[int] = field(default_factory=list)
    unchanged_ids: list[int] = field(default_factory=list)
    inconsistent_ids: list[int] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.inconsistent_ids


def diff_page(
    remote_items: Sequence[RemoteItem],
    local_records: Sequence[LocalRecord | None],
) -> PageDiff:
    """Partition a page; local_records is aligned with remote_items."""
    if len(remote_items) != len(local_records):
        raise ValueError("remote and local sequences must be aligned")

    local_by_id = {
        remote.id: local
        for remote, local in zip(remote_items, local_records, strict=True)
    }
    outcomes = classify(remote_items, local_by_id.get)

    diff = PageDiff()
    buckets = {
        DiffOutcome.ADDED: diff.added_ids,
        DiffOutcome.UPDATED: diff.updated_ids,
        DiffOutcome.UNCHANGED: diff.unchanged_ids,
        DiffOutcome.INCONSISTENT: diff.inconsistent_ids,
    }
    for item_id, outcome in outcomes.items():
        buckets[outcome].append(item_id)
    return diff


def get_pages(ids: Sequence[T], size: int = PAGE_SIZE) -> list[list[T]]:
    return [list(ids[i : i + size]) for i in range(0, len(ids), size)]
