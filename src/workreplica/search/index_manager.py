"""Warm/fresh search index holder.

Two instances back the "current" index:

- warm: restored from the persisted snapshot on start. Fast, lets search
  work immediately after process start.
- fresh: rebuilt from the whole replica. Slow; once a rebuild finishes it
  replaces warm for the rest of the process lifetime.

Switching is one reference assignment, so a reader sees either index in
full and never a mix of two generations.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from workreplica.config import (
    EXPORT_GRACE_PERIOD,
    EXPORT_POLL_INTERVAL,
    EXPORT_TIMEOUT,
)
from workreplica.events import Broadcaster
from workreplica.records import IndexedItem, SyncSummary
from workreplica.search.engine import MAP_CHUNK_KEY, SearchIndex
from workreplica.utils.polling import poll_until

if TYPE_CHECKING:
    from workreplica.store.replica import ReplicaStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IndexChanged:
    rev: int


@dataclass(frozen=True)
class BuildResult:
    item_count: int
    snapshot_written: bool
    skipped: bool = False


class IndexManager:
    def __init__(
        self,
        store: ReplicaStore,
        export_poll_interval: float = EXPORT_POLL_INTERVAL,
        export_grace_period: float = EXPORT_GRACE_PERIOD,
        export_timeout: float = EXPORT_TIMEOUT,
        index_factory: Callable[[], SearchIndex] = SearchIndex,
    ) -> None:
        self.store = store
        self.export_poll_interval = export_poll_interval
        self.export_grace_period = export_grace_period
        self.export_timeout = export_timeout
        self.index_factory = index_factory

        self.changed: Broadcaster[IndexChanged] = Broadcaster("index-changed")

        self._warm = index_factory()
        self._fresh: SearchIndex | None = None
        self._active: SearchIndex | None = None
        self._restore_task: asyncio.Task[SearchIndex] | None = None
        self._restored = asyncio.Event()
        self._built = asyncio.Event()
        self._lock = asyncio.Lock()
        self._building = False
        self._rev = 0

    @property
    def rev(self) -> int:
        return self._rev

    @property
    def is_built(self) -> bool:
        return self._built.is_set()

    async def _notify(self) -> None:
        self._rev += 1
        await self.changed.emit(IndexChanged(rev=self._rev))

    # -------------------------------------------------------------------------
    # Warm index
    # -------------------------------------------------------------------------

    def start(self) -> asyncio.Task[SearchIndex]:
        """Begin restoring the warm index from the persisted snapshot."""
        if self._restore_task is None:
            self._restore_task = asyncio.create_task(
                self._restore_snapshot(), name="index-restore"
            )
        return self._restore_task

    async def _restore_snapshot(self) -> SearchIndex:
        # chunks go into a private instance that replaces warm only once
        # every chunk has imported
        restored = self.index_factory()
        chunks = 0
        try:
            for key, value in self.store.read_snapshot():
                restored.import_chunk(key, value)
                chunks += 1
                # yield between chunks, large maps take a while to decode
                await asyncio.sleep(0)
        except Exception:
            logger.warning(
                "unreadable index snapshot, starting empty",
                chunks=chunks,
                exc_info=True,
            )
        else:
            self._warm = restored
        finally:
            self._restored.set()

        if self._active is None:
            self._active = self._warm
            await self._notify()

        logger.info(
            "restored index snapshot",
            chunks=chunks,
            items=len(self._warm),
        )
        return self._warm

    async def get_current_index(self) -> SearchIndex:
        if self._fresh is not None:
            return self._fresh
        self.start()
        await self._restored.wait()
        return self._fresh if self._fresh is not None else self._warm

    # -------------------------------------------------------------------------
    # Fresh index
    # -------------------------------------------------------------------------

    async def build_index(self) -> BuildResult:
        """Rebuild from the whole replica, persist, then activate.

        A request arriving while a rebuild is running is ignored.
        """
        if self._building:
            logger.info("index rebuild already in progress, ignoring")
            return BuildResult(
                item_count=0, snapshot_written=False, skipped=True
            )

        self._building = True
        try:
            async with self._lock:
                index = self.index_factory()
                for record in self.store.iter_items():
                    item = IndexedItem.from_record(record)
                    index.add(item.id, item.searchable_text)

                # the snapshot is written before the new index is served
                written = await self._export(index)

                self._fresh = index
                self._active = index
                self._built.set()
                await self._notify()
        finally:
            self._building = False

        logger.info(
            "built index", items=len(index), snapshot_written=written
        )
        return BuildResult(item_count=len(index), snapshot_written=written)

    async def _export(self, index: SearchIndex) -> bool:
        entries: list[tuple[str, bytes]] = []

        await index.export(lambda key, value: entries.append((key, value)))

        # the export coroutine returns before every chunk is delivered;
        # wait for the largest chunk, then allow the rest to settle
        complete = await poll_until(
            lambda: any(key == MAP_CHUNK_KEY for key, _ in entries),
            interval=self.export_poll_interval,
            timeout=self.export_timeout,
            label=MAP_CHUNK_KEY,
        )
        if not complete:
            logger.warning(
                "index export incomplete, keeping previous snapshot",
                chunks=len(entries),
                timeout=self.export_timeout,
            )
            return False

        await asyncio.sleep(self.export_grace_period)
        self.store.write_snapshot(entries)
        logger.info("exported index snapshot", chunks=len(entries))
        return True

    async def update_index(self, summary: SyncSummary) -> None:
        """Apply a sync delta to the fresh index.

        Waits for the first full build of this process.
        """
        await self._built.wait()

        async with self._lock:
            index = self._fresh
            assert index is not None

            for item_id in summary.deleted_ids:
                index.remove(item_id)

            added = self.store.bulk_get(sorted(summary.added_ids))
            updated = self.store.bulk_get(sorted(summary.updated_ids))

            for record in added:
                if record is not None:
                    item = IndexedItem.from_record(record)
                    index.add(item.id, item.searchable_text)

            for record in updated:
                if record is not None:
                    item = IndexedItem.from_record(record)
                    index.update(item.id, item.searchable_text)

            await self._notify()

        logger.debug(
            "updated index",
            added=len(summary.added_ids),
            updated=len(summary.updated_ids),
            deleted=len(summary.deleted_ids),
        )

    async def reset(self) -> None:
        """Drop the persisted snapshot. The active index is untouched."""
        self.store.clear_snapshot()
        logger.info("cleared index snapshot")
