"""Async REST client for an Azure DevOps style work item service."""

from __future__ import annotations

import base64
from typing import Any

import aiohttp
import structlog

from workreplica.config import API_VERSION, RemoteConfig
from workreplica.errors import HttpError, Unauthorized
from workreplica.records import ItemType, RemoteItem
from workreplica.remote.query import build_root_query

logger = structlog.get_logger(__name__)


def basic_auth_header(email: str, pat: str) -> dict[str, str]:
    token = base64.b64encode(f"{email}:{pat}".encode()).decode("ascii")
    return {"Authorization": f"Basic {token}"}


class AdoClient:
    """RemoteSource implementation over aiohttp.

    Usage:
        async with AdoClient(config) as client:
            ids = await client.list_active_ids(top=1)
    """

    def __init__(
        self,
        config: RemoteConfig,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.config = config
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> AdoClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=basic_auth_header(self.config.email, self.config.pat)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    @property
    def _project_url(self) -> str:
        base = self.config.base_url.rstrip("/")
        return f"{base}/{self.config.org}/{self.config.project}/_apis/wit"

    async def _read_json(self, resp: aiohttp.ClientResponse) -> Any:
        if resp.status == 401:
            raise Unauthorized()
        if resp.status >= 400:
            body = await resp.text()
            logger.warning(
                "remote request failed",
                url=str(resp.url),
                status=resp.status,
                body=body[:200],
            )
            raise HttpError(resp.status)
        return await resp.json()

    async def _query_ids(self, deleted: bool, top: int | None) -> list[int]:
        params = {"api-version": API_VERSION}
        if top:
            params["$top"] = str(top)
        query = build_root_query(self.config.area_path, deleted=deleted)
        async with self.session.post(
            f"{self._project_url}/wiql/",
            params=params,
            json={"query": query},
        ) as resp:
            data = await self._read_json(resp)
        return [int(item["id"]) for item in data.get("workItems", [])]

    async def list_active_ids(self, top: int | None = None) -> list[int]:
        return await self._query_ids(deleted=False, top=top)

    async def list_deleted_ids(self, top: int | None = None) -> list[int]:
        return await self._query_ids(deleted=True, top=top)

    async def get_items(
        self, fields: list[str], ids: list[int]
    ) -> list[RemoteItem]:
        if not ids:
            return []
        async with self.session.post(
            f"{self._project_url}/workitemsbatch",
            params={"api-version": API_VERSION},
            json={"ids": ids, "fields": fields},
        ) as resp:
            data = await self._read_json(resp)
        return [RemoteItem.from_json(item) for item in data.get("value", [])]

    async def list_types(self) -> list[ItemType]:
        async with self.session.get(
            f"{self._project_url}/workitemtypes",
            params={"api-version": API_VERSION},
        ) as resp:
            data = await self._read_json(resp)
        return [ItemType.from_json(item) for item in data.get("value", [])]

    async def fetch_icon(self, url: str) -> tuple[bytes, str]:
        async with self.session.get(url) as resp:
            if resp.status == 401:
                raise Unauthorized()
            if resp.status >= 400:
                raise HttpError(resp.status)
            content = await resp.read()
            return content, resp.content_type or "application/octet-stream"
