"""Worker context: one instance of every component, wired together."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from functools import partial
from pathlib import Path

from workreplica.config import PAGE_SIZE, RemoteConfig
from workreplica.logging_config import get_logger
from workreplica.metadata.manager import MetadataChanged, MetadataManager
from workreplica.models import (
    ConfigPayload,
    IndexChangedUpdate,
    MetadataChangedUpdate,
    ProgressUpdate,
    RecentRequest,
    ResetRequest,
    SearchChangedUpdate,
    SearchRequest,
    SyncMetadataRequest,
    SyncRequest,
    TestConnectionRequest,
)
from workreplica.paths import get_db_path
from workreplica.remote.base import RemoteSource
from workreplica.remote.client import AdoClient
from workreplica.rpc import handlers
from workreplica.rpc.handlers import to_items_response
from workreplica.rpc.server import RpcServer, Transport
from workreplica.search.index_manager import IndexChanged, IndexManager
from workreplica.search.search_manager import SearchChanged, SearchManager
from workreplica.store.replica import ReplicaStore
from workreplica.sync.orchestrator import SyncOrchestrator, SyncProgress

logger = get_logger(__name__)

RemoteFactory = Callable[[RemoteConfig], RemoteSource]


class WorkerContext:
    """Explicit context object handed to every route handler.

    Usage:
        ctx = WorkerContext.create(send=transport.send)
        ctx.start()
        await ctx.server.serve(inbox)
        await ctx.close()
    """

    def __init__(
        self,
        store: ReplicaStore,
        send: Transport,
        remote_factory: RemoteFactory = AdoClient,
        index_manager: IndexManager | None = None,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.store = store
        self.remote_factory = remote_factory
        self.server = RpcServer(send)
        self.index_manager = index_manager or IndexManager(store)
        self.metadata_manager = MetadataManager(store)
        self.search_manager = SearchManager(
            store, self.index_manager, self.metadata_manager
        )
        self.orchestrator = SyncOrchestrator(
            store, self.index_manager, page_size=page_size
        )
        self._unsubscribers: list[Callable[[], None]] = []
        self._started = False

    @classmethod
    def create(
        cls,
        send: Transport,
        data_dir: Path | None = None,
        remote_factory: RemoteFactory = AdoClient,
    ) -> WorkerContext:
        store = ReplicaStore(get_db_path(data_dir))
        return cls(store, send, remote_factory=remote_factory)

    def start(self) -> None:
        """Register routes, bridge events to topics, begin warm loads."""
        if self._started:
            return

        routes = [
            ("sync", handlers.handle_sync, SyncRequest),
            (
                "sync-metadata",
                handlers.handle_sync_metadata,
                SyncMetadataRequest,
            ),
            ("search", handlers.handle_search, SearchRequest),
            ("recent", handlers.handle_recent, RecentRequest),
            ("reset", handlers.handle_reset, ResetRequest),
            (
                "test-connection",
                handlers.handle_test_connection,
                TestConnectionRequest,
            ),
        ]
        for route, handler, model in routes:
            self.server.add_request_handler(
                route, partial(handler, self), model
            )

        self._unsubscribers = [
            self.orchestrator.progress.subscribe(self._on_sync_progress),
            self.index_manager.changed.subscribe(self._on_index_changed),
            self.metadata_manager.changed.subscribe(
                self._on_metadata_changed
            ),
            self.search_manager.changed.subscribe(self._on_search_changed),
        ]

        self.index_manager.start()
        self.metadata_manager.start()
        self._started = True
        logger.info("worker started", routes=self.server.routes)

    async def _on_sync_progress(self, event: SyncProgress) -> None:
        await self.server.emit(
            handlers.SYNC_PROGRESS,
            ProgressUpdate(type=event.type, message=event.message),
        )

    async def _on_index_changed(self, event: IndexChanged) -> None:
        await self.server.emit(
            "index-changed", IndexChangedUpdate(rev=event.rev)
        )

    async def _on_metadata_changed(self, event: MetadataChanged) -> None:
        await self.server.emit(
            "metadata-changed",
            MetadataChangedUpdate(timestamp=event.timestamp),
        )

    async def _on_search_changed(self, event: SearchChanged) -> None:
        response = to_items_response(event.items)
        await self.server.emit(
            "search-changed",
            SearchChangedUpdate(query=event.query, items=response.items),
        )

    async def poll_tick(self, config: RemoteConfig, tick: int) -> None:
        """One poller tick.

        The first tick rebuilds the index and refreshes metadata; later
        ticks run an incremental sync only.
        """
        payload = ConfigPayload(
            org=config.org,
            area_path=config.area_path,
            email=config.email,
            pat=config.pat,
            base_url=config.base_url,
        )
        if tick == 0:
            await asyncio.gather(
                handlers.handle_sync(
                    self, SyncRequest(config=payload, rebuild_index=True)
                ),
                handlers.handle_sync_metadata(
                    self, SyncMetadataRequest(config=payload)
                ),
            )
        else:
            await handlers.handle_sync(self, SyncRequest(config=payload))

    async def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        # let warm loads settle before the connection goes away
        if self._started:
            await asyncio.gather(
                self.index_manager.start(),
                self.metadata_manager.start(),
                return_exceptions=True,
            )

        self.store.close()
        logger.info("worker closed")
