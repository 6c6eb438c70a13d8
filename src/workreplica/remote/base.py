"""Remote source contract consumed by the sync and metadata layers."""

from __future__ import annotations

from typing import Protocol

from workreplica.records import ItemType, RemoteItem


class RemoteSource(Protocol):
    async def list_active_ids(self, top: int | None = None) -> list[int]:
        """Ids of live items, most recently changed first."""
        ...

    async def list_deleted_ids(self, top: int | None = None) -> list[int]:
        """Ids of deleted items, most recently changed first."""
        ...

    async def get_items(
        self, fields: list[str], ids: list[int]
    ) -> list[RemoteItem]: ...

    async def list_types(self) -> list[ItemType]: ...

    async def fetch_icon(self, url: str) -> tuple[bytes, str]:
        """Download an icon, returning (bytes, content type)."""
        ...

    async def close(self) -> None: ...