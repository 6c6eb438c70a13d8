"""Item type, state and icon metadata with a per-process icon cache."""

from __future__ import annotations

import asyncio
import base64
import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

import structlog

from workreplica.events import Broadcaster
from workreplica.records import ItemType, MetadataEntry, StateCategory

if TYPE_CHECKING:
    from workreplica.remote.base import RemoteSource
    from workreplica.store.replica import ReplicaStore

logger = structlog.get_logger(__name__)

DEFAULT_STATE_COLOR = "b2b2b2"

Icon = tuple[bytes, str]


@dataclass(frozen=True)
class StateMetadata:
    color: str
    category: StateCategory


@dataclass(frozen=True)
class TypeMetadata:
    icon_url: str
    icon_data_url: str
    states: Mapping[str, StateMetadata]


MetadataMap = Mapping[str, TypeMetadata]


@dataclass(frozen=True)
class MetadataProgress:
    progress: int
    total: int


@dataclass(frozen=True)
class MetadataUpdateSummary:
    type_count: int
    new_fetch_count: int


@dataclass(frozen=True)
class MetadataChanged:
    timestamp: float


ProgressCallback = Callable[[MetadataProgress], "Awaitable[None] | None"]


def to_data_url(content: bytes, content_type: str) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def build_metadata_map(entries: list[MetadataEntry]) -> MetadataMap:
    return MappingProxyType(
        {
            entry.type_name: TypeMetadata(
                icon_url=entry.icon_url,
                icon_data_url=to_data_url(
                    entry.icon_bytes, entry.icon_content_type
                ),
                states=MappingProxyType(
                    {
                        s.name: StateMetadata(
                            color=s.color, category=s.category
                        )
                        for s in entry.states
                    }
                ),
            )
            for entry in entries
        }
    )


class MetadataManager:
    """Owns the type/state/icon map and the icon download cache.

    The icon cache is keyed by URL since several types can share an icon.
    It holds futures so concurrent requests for one URL share a single
    download. The published map is replaced wholesale on every update and
    never mutated in place.
    """

    def __init__(self, store: ReplicaStore) -> None:
        self.store = store
        self.changed: Broadcaster[MetadataChanged] = Broadcaster(
            "metadata-changed"
        )
        self._map: MetadataMap = MappingProxyType({})
        self._icon_cache: dict[str, asyncio.Future[Icon]] = {}
        self._start_task: asyncio.Task[None] | None = None
        self._loaded = asyncio.Event()

    def start(self) -> asyncio.Task[None]:
        """Load persisted metadata and seed the icon cache from it."""
        if self._start_task is None:
            self._start_task = asyncio.create_task(
                self._load(), name="metadata-load"
            )
        return self._start_task

    async def _load(self) -> None:
        try:
            entries = self.store.list_item_types()
            await asyncio.gather(
                self._load_map(entries), self._seed_icon_cache(entries)
            )
        finally:
            # set before notifying so observers can read the map
            self._loaded.set()
        await self.changed.emit(MetadataChanged(timestamp=time.time()))

    async def _load_map(self, entries: list[MetadataEntry]) -> None:
        self._map = build_metadata_map(entries)

    async def _seed_icon_cache(self, entries: list[MetadataEntry]) -> None:
        loop = asyncio.get_running_loop()
        for entry in entries:
            if entry.icon_url in self._icon_cache:
                continue
            future: asyncio.Future[Icon] = loop.create_future()
            future.set_result((entry.icon_bytes, entry.icon_content_type))
            self._icon_cache[entry.icon_url] = future
        logger.info("icon cache restored", urls=len(self._icon_cache))

    async def wait_loaded(self) -> None:
        self.start()
        await self._loaded.wait()

    async def get_map(self) -> MetadataMap:
        await self.wait_loaded()
        return self._map

    @property
    def cached_icon_urls(self) -> set[str]:
        return set(self._icon_cache)

    def state_metadata(
        self, type_name: str, state: str
    ) -> StateMetadata | None:
        type_meta = self._map.get(type_name)
        if type_meta is None:
            return None
        return type_meta.states.get(state)

    def _get_icon(
        self, remote: RemoteSource, url: str
    ) -> tuple[asyncio.Future[Icon], bool]:
        """Return (future, is_new_fetch) for url."""
        cached = self._icon_cache.get(url)
        if cached is not None:
            return cached, False

        task = asyncio.ensure_future(remote.fetch_icon(url))
        self._icon_cache[url] = task

        def _drop_failed(done: asyncio.Future[Icon]) -> None:
            if done.cancelled() or done.exception() is not None:
                if self._icon_cache.get(url) is done:
                    del self._icon_cache[url]

        task.add_done_callback(_drop_failed)
        return task, True

    async def update_metadata_dictionary(
        self,
        remote: RemoteSource,
        item_types: list[ItemType],
        on_progress: ProgressCallback | None = None,
    ) -> MetadataUpdateSummary:
        """Persist one entry per enabled type, downloading missing icons.

        Any icon failure fails the whole update; the previous map and
        cached icons stay in place.
        """
        await self.wait_loaded()

        enabled = [t for t in item_types if not t.is_disabled]
        total = len(enabled)
        done = 0
        new_fetches = 0

        async def process(item_type: ItemType) -> MetadataEntry:
            nonlocal done, new_fetches
            future, is_new = self._get_icon(remote, item_type.icon_url)
            if is_new:
                new_fetches += 1
            icon_bytes, content_type = await future

            done += 1
            if on_progress is not None:
                result = on_progress(
                    MetadataProgress(progress=done, total=total)
                )
                if inspect.isawaitable(result):
                    await result
            return MetadataEntry(
                type_name=item_type.name,
                icon_url=item_type.icon_url,
                icon_bytes=icon_bytes,
                icon_content_type=content_type,
                states=item_type.states,
            )

        tasks = [asyncio.ensure_future(process(t)) for t in enabled]
        try:
            entries = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        # nothing is persisted unless every icon arrived
        self.store.put_item_types(entries)
        self._map = build_metadata_map(list(entries))
        logger.info(
            "metadata updated", types=total, new_icon_fetches=new_fetches
        )
        await self.changed.emit(MetadataChanged(timestamp=time.time()))

        return MetadataUpdateSummary(
            type_count=total, new_fetch_count=new_fetches
        )

    async def reset(self) -> None:
        self.store.clear_item_types()
        self._icon_cache.clear()
        self._map = MappingProxyType({})
        logger.info("cleared metadata and icon cache")
        await self.changed.emit(MetadataChanged(timestamp=time.time()))
