"""Pydantic models for RPC requests, responses and push payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from workreplica.config import DEFAULT_BASE_URL, RECENT_LIMIT, RemoteConfig
from workreplica.records import StateCategory, SyncSummary


class ConfigPayload(BaseModel):
    """Remote connection settings sent with each request."""

    org: str
    area_path: str
    email: str
    pat: str
    base_url: str = DEFAULT_BASE_URL

    def to_config(self) -> RemoteConfig:
        return RemoteConfig(
            org=self.org,
            area_path=self.area_path,
            email=self.email,
            pat=self.pat,
            base_url=self.base_url,
        )


class SyncRequest(BaseModel):
    config: ConfigPayload
    rebuild_index: bool = False


class SyncResponse(BaseModel):
    added_ids: list[int] = Field(default_factory=list)
    updated_ids: list[int] = Field(default_factory=list)
    deleted_ids: list[int] = Field(default_factory=list)
    skipped: bool = Field(
        default=False, description="Another sync was already in flight"
    )

    @classmethod
    def from_summary(
        cls, summary: SyncSummary, skipped: bool = False
    ) -> SyncResponse:
        return cls(
            added_ids=sorted(summary.added_ids),
            updated_ids=sorted(summary.updated_ids),
            deleted_ids=sorted(summary.deleted_ids),
            skipped=skipped,
        )


class ProgressUpdate(BaseModel):
    type: Literal["progress", "success", "error"]
    message: str


class SyncMetadataRequest(BaseModel):
    config: ConfigPayload


class SyncMetadataResponse(BaseModel):
    type_count: int = 0
    new_fetch_count: int = 0


class SearchRequest(BaseModel):
    query: str


class RecentRequest(BaseModel):
    limit: int = Field(default=RECENT_LIMIT, ge=1, le=1000)


class DisplayItemModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    rev: int
    title: str
    type_name: str
    changed_at: datetime
    assignee: str
    state: str
    iteration_path: str
    tags: list[str]
    short_iteration_path: str
    state_color: str
    state_category: StateCategory
    icon_data_url: str | None = None
    is_id_matched: bool = False
    is_type_matched: bool = False
    is_assignee_matched: bool = False
    is_state_matched: bool = False
    is_iteration_matched: bool = False
    tag_matches: list[bool] = Field(default_factory=list)


class ItemsResponse(BaseModel):
    items: list[DisplayItemModel] = Field(default_factory=list)


class ResetRequest(BaseModel):
    clear_replica: bool = Field(
        default=False,
        description="Also clear replica records; a rebuild must follow",
    )


class TestConnectionRequest(BaseModel):
    __test__ = False

    config: ConfigPayload


class TestConnectionResponse(BaseModel):
    __test__ = False

    status: Literal["success", "error"]
    message: str


class IndexChangedUpdate(BaseModel):
    rev: int


class MetadataChangedUpdate(BaseModel):
    timestamp: float


class SearchChangedUpdate(BaseModel):
    query: str
    items: list[DisplayItemModel]


class ErrorResponse(BaseModel):
    error: str
