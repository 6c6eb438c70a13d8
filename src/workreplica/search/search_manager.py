"""Query execution, sorting and display decoration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from workreplica.config import RECENT_LIMIT, SEARCH_LIMIT
from workreplica.events import Broadcaster
from workreplica.metadata.manager import DEFAULT_STATE_COLOR
from workreplica.records import LocalRecord, StateCategory, short_iteration
from workreplica.search.tokenize import is_token_match, tokenize

if TYPE_CHECKING:
    from workreplica.metadata.manager import MetadataManager, MetadataMap
    from workreplica.search.index_manager import IndexManager
    from workreplica.store.replica import ReplicaStore

logger = structlog.get_logger(__name__)

CATEGORY_PRIORITY: dict[StateCategory, int] = {
    StateCategory.IN_PROGRESS: 0,
    StateCategory.PROPOSED: 1,
    StateCategory.RESOLVED: 2,
    StateCategory.COMPLETED: 3,
    StateCategory.REMOVED: 4,
    StateCategory.UNKNOWN: 5,
}


@dataclass(frozen=True)
class DisplayItem:
    id: int
    rev: int
    title: str
    type_name: str
    changed_at: datetime
    assignee: str
    state: str
    iteration_path: str
    tags: tuple[str, ...]
    short_iteration_path: str
    state_color: str
    state_category: StateCategory
    icon_data_url: str | None = None
    # match flags, only set for search results
    is_id_matched: bool = False
    is_type_matched: bool = False
    is_assignee_matched: bool = False
    is_state_matched: bool = False
    is_iteration_matched: bool = False
    tag_matches: tuple[bool, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SearchChanged:
    query: str
    items: list[DisplayItem]


def get_category(
    metadata: MetadataMap, record: LocalRecord
) -> StateCategory:
    type_meta = metadata.get(record.type_name)
    if type_meta is None:
        return StateCategory.UNKNOWN
    state = type_meta.states.get(record.state)
    return state.category if state else StateCategory.UNKNOWN


def sort_by_state(
    metadata: MetadataMap, records: list[LocalRecord]
) -> list[LocalRecord]:
    """Stable sort by state category priority."""
    return sorted(
        records, key=lambda r: CATEGORY_PRIORITY[get_category(metadata, r)]
    )


def to_display_item(
    metadata: MetadataMap,
    record: LocalRecord,
    query_tokens: list[str] | None = None,
) -> DisplayItem:
    type_meta = metadata.get(record.type_name)
    state_meta = type_meta.states.get(record.state) if type_meta else None
    short_path = short_iteration(record.iteration_path)
    color = state_meta.color if state_meta else DEFAULT_STATE_COLOR

    flags: dict[str, object] = {}
    if query_tokens:
        flags = {
            "is_id_matched": is_token_match(query_tokens, str(record.id)),
            "is_type_matched": is_token_match(query_tokens, record.type_name),
            "is_assignee_matched": is_token_match(
                query_tokens, record.assignee
            ),
            "is_state_matched": is_token_match(query_tokens, record.state),
            "is_iteration_matched": is_token_match(query_tokens, short_path),
            "tag_matches": tuple(
                is_token_match(query_tokens, tag) for tag in record.tags
            ),
        }

    return DisplayItem(
        id=record.id,
        rev=record.rev,
        title=record.title,
        type_name=record.type_name,
        changed_at=record.changed_at,
        assignee=record.assignee,
        state=record.state,
        iteration_path=record.iteration_path,
        tags=record.tags,
        short_iteration_path=short_path,
        state_color=f"#{color}",
        state_category=(
            state_meta.category if state_meta else StateCategory.UNKNOWN
        ),
        icon_data_url=type_meta.icon_data_url if type_meta else None,
        **flags,
    )


class SearchManager:
    """Runs queries against the current index and re-runs on change.

    After the first search() the manager watches the index and metadata
    managers and pushes fresh results for the active query through
    `changed`.
    """

    def __init__(
        self,
        store: ReplicaStore,
        index_manager: IndexManager,
        metadata_manager: MetadataManager,
        limit: int = SEARCH_LIMIT,
    ) -> None:
        self.store = store
        self.index_manager = index_manager
        self.metadata_manager = metadata_manager
        self.limit = limit
        self.changed: Broadcaster[SearchChanged] = Broadcaster(
            "search-changed"
        )
        self._active_query = ""
        self._watching = False

    def _start_watching(self) -> None:
        self.index_manager.changed.subscribe(self._on_source_changed)
        self.metadata_manager.changed.subscribe(self._on_source_changed)
        self._watching = True
        logger.debug("search manager watching for changes")

    async def _on_source_changed(self, _event: object) -> None:
        items = await self.get_query_results(self._active_query)
        await self.changed.emit(
            SearchChanged(query=self._active_query, items=items)
        )

    async def search(self, query: str) -> list[DisplayItem]:
        if not self._watching:
            self._start_watching()
        self._active_query = query.strip()
        return await self.get_query_results(self._active_query)

    async def get_query_results(self, query: str) -> list[DisplayItem]:
        query = query.strip()
        if not query:
            return []

        index = await self.index_manager.get_current_index()
        ids = index.search(query, limit=self.limit)
        records = [r for r in self.store.bulk_get(ids) if r is not None]
        metadata = await self.metadata_manager.get_map()

        query_tokens = tokenize(query)
        return [
            to_display_item(metadata, record, query_tokens)
            for record in sort_by_state(metadata, records)
        ]

    async def recent(self, limit: int = RECENT_LIMIT) -> list[DisplayItem]:
        metadata = await self.metadata_manager.get_map()
        return [
            to_display_item(metadata, record)
            for record in self.store.recent(limit)
        ]
