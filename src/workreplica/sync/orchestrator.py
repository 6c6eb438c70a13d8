"""Sync orchestration: full repopulation or incremental diff update.

Per attempt:

    IDLE -> PEEKING -> FULL | INCREMENTAL | NOOP -> APPLYING_INDEX
         -> DONE | FAILED

An empty replica skips the peek and always takes the full path.
Incremental paging relies on the remote listing ids most recently changed
first: the first page containing an already-synced item ends paging,
since every later page must be synced too. The orchestrator logs a warning
when fetched pages contradict that ordering.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Literal

import structlog

from workreplica.config import PAGE_SIZE
from workreplica.errors import InconsistentPageError
from workreplica.events import Broadcaster
from workreplica.records import (
    ALL_FIELDS,
    LocalRecord,
    SyncSummary,
    to_local_record,
)
from workreplica.sync.diff import diff_page, get_pages

if TYPE_CHECKING:
    from workreplica.remote.base import RemoteSource
    from workreplica.search.index_manager import IndexManager
    from workreplica.store.replica import ReplicaStore

logger = structlog.get_logger(__name__)

ProgressType = Literal["progress", "success", "error"]


class SyncState(str, Enum):
    IDLE = "idle"
    PEEKING = "peeking"
    FULL = "full"
    INCREMENTAL = "incremental"
    NOOP = "noop"
    APPLYING_INDEX = "applying_index"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncProgress:
    type: ProgressType
    message: str


@dataclass
class SyncResult:
    summary: SyncSummary = field(default_factory=SyncSummary)
    state: SyncState = SyncState.IDLE
    skipped: bool = False
    error: str | None = None


class SyncOrchestrator:
    """Drives one sync attempt at a time against the replica."""

    def __init__(
        self,
        store: ReplicaStore,
        index_manager: IndexManager,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.store = store
        self.index_manager = index_manager
        self.page_size = page_size
        self.progress: Broadcaster[SyncProgress] = Broadcaster(
            "sync-progress"
        )
        self.state = SyncState.IDLE
        self._lock = asyncio.Lock()
        # rows written by the current attempt, reconciled on failure
        self._written = SyncSummary()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def _emit(self, type_: ProgressType, message: str) -> None:
        await self.progress.emit(SyncProgress(type=type_, message=message))

    async def run(
        self, remote: RemoteSource, rebuild_index: bool = False
    ) -> SyncResult:
        """Run one sync attempt. Never raises; failures become events."""
        if self._lock.locked():
            logger.info("sync already in flight, skipping", state=self.state)
            return SyncResult(state=self.state, skipped=True)

        async with self._lock:
            started = asyncio.get_running_loop().time()
            self._written = SyncSummary()
            try:
                summary = await self._sync(remote)
                await self._apply_index(summary, rebuild_index)
            except Exception as e:
                self.state = SyncState.FAILED
                message = str(e) or "Unknown error"
                logger.exception("sync failed", error=message)
                await self._reconcile_partial()
                await self._emit("error", message)
                return SyncResult(state=SyncState.FAILED, error=message)

            self.state = SyncState.DONE
            logger.info(
                "sync complete",
                added=len(summary.added_ids),
                updated=len(summary.updated_ids),
                deleted=len(summary.deleted_ids),
                elapsed=round(asyncio.get_running_loop().time() - started, 3),
            )
            await self._emit("success", summary.message())
            return SyncResult(summary=summary, state=SyncState.DONE)

    async def _sync(self, remote: RemoteSource) -> SyncSummary:
        if self.store.count() == 0:
            self.state = SyncState.FULL
            return await self._full_sync(remote)

        self.state = SyncState.PEEKING
        await self._emit("progress", "Peeking changes...")
        if not await self._peek_is_changed(remote):
            self.state = SyncState.NOOP
            logger.debug("peek found no drift")
            return SyncSummary()

        self.state = SyncState.INCREMENTAL
        return await self._incremental_sync(remote)

    async def _reconcile_partial(self) -> None:
        """Index pages committed before a failure.

        Later peeks compare against those rows and would otherwise report
        no drift. Without a completed build the next build covers them.
        """
        if not self._written.is_dirty or not self.index_manager.is_built:
            return
        try:
            await self.index_manager.update_index(self._written)
        except Exception:
            logger.exception("failed to index partially synced pages")

    async def _apply_index(
        self, summary: SyncSummary, rebuild_index: bool
    ) -> None:
        # update_index waits for a completed build, so the first dirty sync
        # of a process builds instead
        if rebuild_index or (
            summary.is_dirty and not self.index_manager.is_built
        ):
            self.state = SyncState.APPLYING_INDEX
            await self._emit("progress", "Building index...")
            await self.index_manager.build_index()
        elif summary.is_dirty:
            self.state = SyncState.APPLYING_INDEX
            await self._emit("progress", "Updating index...")
            await self.index_manager.update_index(summary)

    # -------------------------------------------------------------------------
    # Staleness peek
    # -------------------------------------------------------------------------

    async def _peek_is_changed(self, remote: RemoteSource) -> bool:
        has_upsertion, has_deletion = await asyncio.gather(
            self._peek_upsertion(remote),
            self._peek_deletion(remote),
        )
        return has_upsertion or has_deletion

    async def _peek_upsertion(self, remote: RemoteSource) -> bool:
        ids = await remote.list_active_ids(top=1)
        # remote should never be empty; treat as drift
        if not ids:
            return True
        local = self.store.get(ids[0])
        if local is None:
            return True
        items = await remote.get_items(ALL_FIELDS, ids[:1])
        if not items:
            return True
        return items[0].rev != local.rev

    async def _peek_deletion(self, remote: RemoteSource) -> bool:
        ids = await remote.list_deleted_ids(top=1)
        if not ids:
            return False
        return self.store.get(ids[0]) is not None

    # -------------------------------------------------------------------------
    # Full sync
    # -------------------------------------------------------------------------

    async def _full_sync(self, remote: RemoteSource) -> SyncSummary:
        await self._emit("progress", "Fetching ids...")
        all_ids = await remote.list_active_ids()
        pages = get_pages(all_ids, self.page_size)
        await self._emit(
            "progress",
            f"Fetching ids... found {len(all_ids)} items, "
            f"{len(pages)} pages",
        )

        fetched = 0

        async def fetch_page(ids: list[int]) -> list[LocalRecord]:
            nonlocal fetched
            items = await remote.get_items(ALL_FIELDS, ids)
            fetched += len(ids)
            await self._emit(
                "progress",
                f"Fetching content: {fetched / len(all_ids) * 100:.2f}%",
            )
            return [to_local_record(item) for item in items]

        results = await asyncio.gather(*(fetch_page(p) for p in pages))
        records = [record for page in results for record in page]

        self.store.replace_all(records)
        logger.info("full sync wrote replica", items=len(records))

        return SyncSummary(added_ids={r.id for r in records})

    # -------------------------------------------------------------------------
    # Incremental sync
    # -------------------------------------------------------------------------

    async def _incremental_sync(self, remote: RemoteSource) -> SyncSummary:
        await self._emit("progress", "Fetching ids...")
        all_ids, deleted_candidates = await asyncio.gather(
            remote.list_active_ids(),
            remote.list_deleted_ids(),
        )
        pages = get_pages(all_ids, self.page_size)
        await self._emit(
            "progress",
            f"Fetching item ids... found {len(all_ids)} items, "
            f"{len(pages)} pages",
        )

        summary = SyncSummary()
        newest_seen: datetime | None = None

        # pages run in order; the first clean page ends paging
        for page_no, ids in enumerate(pages):
            items = await remote.get_items(ALL_FIELDS, ids)
            records = {item.id: to_local_record(item) for item in items}
            newest_seen = self._check_ordering(
                page_no, [records[item.id] for item in items], newest_seen
            )

            local = self.store.bulk_get(item.id for item in items)
            diff = diff_page(items, local)
            logger.debug(
                "page diff",
                page=page_no,
                added=len(diff.added_ids),
                updated=len(diff.updated_ids),
                unchanged=len(diff.unchanged_ids),
            )
            if not diff.is_consistent:
                raise InconsistentPageError(diff.inconsistent_ids)

            changed = diff.added_ids + diff.updated_ids
            if changed:
                self.store.bulk_put(records[i] for i in changed)
            summary.added_ids.update(diff.added_ids)
            summary.updated_ids.update(diff.updated_ids)
            self._written.added_ids.update(diff.added_ids)
            self._written.updated_ids.update(diff.updated_ids)

            await self._emit(
                "progress",
                f"Syncing page {page_no + 1}/{len(pages)}: "
                f"{len(diff.added_ids)} added, "
                f"{len(diff.updated_ids)} updated",
            )

            if diff.unchanged_ids:
                break

        summary.deleted_ids.update(
            self.store.delete_present(deleted_candidates)
        )
        logger.debug("applied deletions", deleted=len(summary.deleted_ids))
        return summary

    def _check_ordering(
        self,
        page_no: int,
        records: list[LocalRecord],
        newest_seen: datetime | None,
    ) -> datetime | None:
        """Warn when records are not most-recently-changed first."""
        previous = newest_seen
        for record in records:
            if previous is not None and record.changed_at > previous:
                logger.warning(
                    "remote ordering violated, incremental sync may "
                    "under-fetch",
                    page=page_no,
                    item_id=record.id,
                )
                return record.changed_at
            previous = record.changed_at
        return previous
