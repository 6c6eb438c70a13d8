import json
import sqlite3
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from pathlib import Path

from workreplica.records import (
    LocalRecord,
    MetadataEntry,
    StateCategory,
    StateDefinition,
)


class ReplicaStore:
    """Durable local replica: work items, index snapshot and item types.

    All three tables live in one sqlite file so a replace or snapshot
    write is a single transaction.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._init_schema()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                isolation_level="DEFERRED",
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
        return self._conn

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS work_items (
                id INTEGER PRIMARY KEY,
                rev INTEGER NOT NULL,
                title TEXT NOT NULL,
                type_name TEXT NOT NULL,
                changed_at REAL NOT NULL,
                assignee TEXT NOT NULL,
                state TEXT NOT NULL,
                iteration_path TEXT NOT NULL,
                tags TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_work_items_changed
                ON work_items(changed_at);

            CREATE TABLE IF NOT EXISTS index_snapshot (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL
            );

            CREATE TABLE IF NOT EXISTS item_types (
                name TEXT PRIMARY KEY,
                icon_url TEXT NOT NULL,
                icon_bytes BLOB NOT NULL,
                icon_content_type TEXT NOT NULL,
                states TEXT NOT NULL
            );
        """
        )
        self.conn.commit()

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    # -----------------------------------------------------------------------
    # Work items
    # -----------------------------------------------------------------------

    def _row_to_record(self, row: sqlite3.Row) -> LocalRecord:
        return LocalRecord(
            id=row["id"],
            rev=row["rev"],
            title=row["title"],
            type_name=row["type_name"],
            changed_at=datetime.fromtimestamp(
                row["changed_at"], tz=timezone.utc
            ),
            assignee=row["assignee"],
            state=row["state"],
            iteration_path=row["iteration_path"],
            tags=tuple(json.loads(row["tags"])),
        )

    def _record_params(self, record: LocalRecord) -> tuple:
        return (
            record.id,
            record.rev,
            record.title,
            record.type_name,
            record.changed_at.timestamp(),
            record.assignee,
            record.state,
            record.iteration_path,
            json.dumps(list(record.tags)),
        )

    def count(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) FROM work_items").fetchone()
        return row[0]

    def get(self, item_id: int) -> LocalRecord | None:
        row = self.conn.execute(
            "SELECT * FROM work_items WHERE id = ?", (item_id,)
        ).fetchone()
        return self._row_to_record(row) if row else None

    def bulk_get(self, ids: Iterable[int]) -> list[LocalRecord | None]:
        """Fetch records in the order of ids, None where missing."""
        ids = list(ids)
        if not ids:
            return []
        found: dict[int, LocalRecord] = {}
        # stay well under SQLITE_MAX_VARIABLE_NUMBER
        for start in range(0, len(ids), 500):
            chunk = ids[start : start + 500]
            placeholders = ",".join("?" * len(chunk))
            rows = self.conn.execute(
                f"SELECT * FROM work_items WHERE id IN ({placeholders})",
                chunk,
            ).fetchall()
            for row in rows:
                found[row["id"]] = self._row_to_record(row)
        return [found.get(i) for i in ids]

    def bulk_put(self, records: Iterable[LocalRecord]) -> int:
        params = [self._record_params(r) for r in records]
        with self.conn:
            self.conn.executemany(
                """
                INSERT INTO work_items
                    (id, rev, title, type_name, changed_at, assignee,
                     state, iteration_path, tags)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    rev = excluded.rev,
                    title = excluded.title,
                    type_name = excluded.type_name,
                    changed_at = excluded.changed_at,
                    assignee = excluded.assignee,
                    state = excluded.state,
                    iteration_path = excluded.iteration_path,
                    tags = excluded.tags
                """,
                params,
            )
        return len(params)

    def bulk_delete(self, ids: Iterable[int]) -> None:
        with self.conn:
            self.conn.executemany(
                "DELETE FROM work_items WHERE id = ?",
                [(i,) for i in ids],
            )

    def delete_present(self, ids: Iterable[int]) -> list[int]:
        """Delete the ids that exist locally and return them."""
        found = [r.id for r in self.bulk_get(ids) if r is not None]
        if found:
            self.bulk_delete(found)
        return found

    def replace_all(self, records: Iterable[LocalRecord]) -> int:
        """Clear the table and write records in one transaction."""
        params = [self._record_params(r) for r in records]
        with self.conn:
            self.conn.execute("DELETE FROM work_items")
            self.conn.executemany(
                """
                INSERT OR REPLACE INTO work_items
                    (id, rev, title, type_name, changed_at, assignee,
                     state, iteration_path, tags)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                params,
            )
        return len(params)

    def iter_items(self) -> Iterator[LocalRecord]:
        cursor = self.conn.execute("SELECT * FROM work_items ORDER BY id")
        for row in cursor:
            yield self._row_to_record(row)

    def recent(self, limit: int = 100) -> list[LocalRecord]:
        rows = self.conn.execute(
            "SELECT * FROM work_items ORDER BY changed_at DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def clear_items(self) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM work_items")

    # -----------------------------------------------------------------------
    # Index snapshot side table
    # -----------------------------------------------------------------------

    def read_snapshot(self) -> list[tuple[str, bytes]]:
        rows = self.conn.execute(
            "SELECT key, value FROM index_snapshot ORDER BY key"
        ).fetchall()
        return [(row["key"], bytes(row["value"])) for row in rows]

    def write_snapshot(self, entries: Iterable[tuple[str, bytes]]) -> int:
        """Replace the whole snapshot; a new snapshot is never merged."""
        entries = list(entries)
        with self.conn:
            self.conn.execute("DELETE FROM index_snapshot")
            self.conn.executemany(
                "INSERT INTO index_snapshot (key, value) VALUES (?, ?)",
                entries,
            )
        return len(entries)

    def clear_snapshot(self) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM index_snapshot")

    # -----------------------------------------------------------------------
    # Item type metadata
    # -----------------------------------------------------------------------

    def list_item_types(self) -> list[MetadataEntry]:
        rows = self.conn.execute(
            "SELECT * FROM item_types ORDER BY name"
        ).fetchall()
        return [
            MetadataEntry(
                type_name=row["name"],
                icon_url=row["icon_url"],
                icon_bytes=bytes(row["icon_bytes"]),
                icon_content_type=row["icon_content_type"],
                states=tuple(
                    StateDefinition(
                        name=s["name"],
                        color=s["color"],
                        category=StateCategory.parse(s["category"]),
                    )
                    for s in json.loads(row["states"])
                ),
            )
            for row in rows
        ]

    def _item_type_params(self, entry: MetadataEntry) -> tuple:
        states = json.dumps(
            [
                {
                    "name": s.name,
                    "color": s.color,
                    "category": s.category.value,
                }
                for s in entry.states
            ]
        )
        return (
            entry.type_name,
            entry.icon_url,
            entry.icon_bytes,
            entry.icon_content_type,
            states,
        )

    def put_item_types(self, entries: Iterable[MetadataEntry]) -> int:
        """Upsert entries in one transaction."""
        params = [self._item_type_params(e) for e in entries]
        with self.conn:
            self.conn.executemany(
                """
                INSERT INTO item_types
                    (name, icon_url, icon_bytes, icon_content_type, states)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    icon_url = excluded.icon_url,
                    icon_bytes = excluded.icon_bytes,
                    icon_content_type = excluded.icon_content_type,
                    states = excluded.states
                """,
                params,
            )
        return len(params)

    def clear_item_types(self) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM item_types")
