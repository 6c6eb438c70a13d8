"""Core record types shared by the sync, search and metadata layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

FIELD_TITLE = "System.Title"
FIELD_TYPE = "System.WorkItemType"
FIELD_CHANGED_DATE = "System.ChangedDate"
FIELD_ASSIGNED_TO = "System.AssignedTo"
FIELD_STATE = "System.State"
FIELD_ITERATION_PATH = "System.IterationPath"
FIELD_TAGS = "System.Tags"

ALL_FIELDS: list[str] = [
    FIELD_TITLE,
    FIELD_TYPE,
    FIELD_CHANGED_DATE,
    FIELD_ASSIGNED_TO,
    FIELD_STATE,
    FIELD_ITERATION_PATH,
    FIELD_TAGS,
]

UNASSIGNED = "Unassigned"
TAG_SEPARATOR = "; "


@dataclass(frozen=True)
class RemoteItem:
    id: int
    rev: int
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> RemoteItem:
        return cls(
            id=int(data["id"]),
            rev=int(data["rev"]),
            fields=dict(data.get("fields") or {}),
        )


@dataclass(frozen=True)
class LocalRecord:
    id: int
    rev: int
    title: str
    type_name: str
    changed_at: datetime
    assignee: str
    state: str
    iteration_path: str
    tags: tuple[str, ...] = ()


def parse_changed_date(value: str | None) -> datetime:
    """Parse an ISO-8601 remote timestamp ('Z' suffix allowed)."""
    if not value:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_local_record(item: RemoteItem) -> LocalRecord:
    """Project a remote item into its denormalized replica form."""
    fields = item.fields
    assigned = fields.get(FIELD_ASSIGNED_TO) or {}
    raw_tags = fields.get(FIELD_TAGS) or ""
    return LocalRecord(
        id=item.id,
        rev=item.rev,
        title=fields.get(FIELD_TITLE) or "",
        type_name=fields.get(FIELD_TYPE) or "",
        changed_at=parse_changed_date(fields.get(FIELD_CHANGED_DATE)),
        assignee=assigned.get("displayName") or UNASSIGNED,
        state=fields.get(FIELD_STATE) or "",
        iteration_path=fields.get(FIELD_ITERATION_PATH) or "",
        tags=tuple(t for t in raw_tags.split(TAG_SEPARATOR) if t),
    )


def short_iteration(iteration_path: str) -> str:
    """Last segment of a backslash separated iteration path."""
    return iteration_path.rsplit("\\", 1)[-1]


@dataclass
class SyncSummary:
    added_ids: set[int] = field(default_factory=set)
    updated_ids: set[int] = field(default_factory=set)
    deleted_ids: set[int] = field(default_factory=set)

    @property
    def is_dirty(self) -> bool:
        return bool(self.added_ids or self.updated_ids or self.deleted_ids)

    def message(self) -> str:
        parts = []
        if self.added_ids:
            parts.append(f"{len(self.added_ids)} added")
        if self.updated_ids:
            parts.append(f"{len(self.updated_ids)} updated")
        if self.deleted_ids:
            parts.append(f"{len(self.deleted_ids)} deleted")
        detail = " ".join(parts) if parts else "No change"
        return f"Sync items... Success! ({detail})"


@dataclass(frozen=True)
class IndexedItem:
    id: int
    searchable_text: str

    @classmethod
    def from_record(cls, record: LocalRecord) -> IndexedItem:
        text = " ".join(
            [
                record.state,
                str(record.id),
                record.type_name,
                record.assignee,
                short_iteration(record.iteration_path),
                record.title,
                *record.tags,
            ]
        )
        return cls(id=record.id, searchable_text=text)


class StateCategory(str, Enum):
    """Remote state categories, used only for sort priority."""

    PROPOSED = "Proposed"
    IN_PROGRESS = "InProgress"
    RESOLVED = "Resolved"
    COMPLETED = "Completed"
    REMOVED = "Removed"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str | None) -> StateCategory:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class StateDefinition:
    name: str
    color: str
    category: StateCategory


@dataclass(frozen=True)
class ItemType:
    """A remote work item type definition."""

    name: str
    icon_url: str
    states: tuple[StateDefinition, ...] = ()
    is_disabled: bool = False

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ItemType:
        icon = data.get("icon") or {}
        return cls(
            name=data["name"],
            icon_url=icon.get("url", ""),
            states=tuple(
                StateDefinition(
                    name=s["name"],
                    color=s.get("color", ""),
                    category=StateCategory.parse(s.get("category")),
                )
                for s in data.get("states") or []
            ),
            is_disabled=bool(data.get("isDisabled", False)),
        )


@dataclass(frozen=True)
class MetadataEntry:
    type_name: str
    icon_url: str
    icon_bytes: bytes
    icon_content_type: str
    states: tuple[StateDefinition, ...] = ()
