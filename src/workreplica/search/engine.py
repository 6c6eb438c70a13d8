"""In-memory forward-tokenized full text index.

Documents carry a single searchable field. Every word is indexed under all
of its prefixes so partial words match ("auth" finds "authentication").
Query terms are AND-ed; hits rank by the earliest position at which each
term occurs in the document, then by newest id.

The index can be exported as a handful of named chunks and imported
again. Export is streaming: chunks are handed to the caller's handler on
later event loop iterations and the export coroutine returns before they
have all been delivered, with no completion signal. Callers that need the
full set must watch for MAP_CHUNK_KEY, the largest chunk, which is always
delivered last.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import msgpack
import structlog

from workreplica.search.tokenize import tokenize

logger = structlog.get_logger(__name__)

FIELD = "fuzzy_tokens"
INDEX_VERSION = 1

REG_CHUNK_KEY = "reg"
CFG_CHUNK_KEY = f"{FIELD}.cfg"
MAP_CHUNK_KEY = f"{FIELD}.map"

ExportHandler = Callable[[str, bytes], None]


class SearchIndex:
    def __init__(self, limit: int = 100) -> None:
        self.limit = limit
        # id -> distinct words indexed for it
        self._reg: dict[int, list[str]] = {}
        # prefix -> {id: earliest word position}
        self._map: dict[str, dict[int, int]] = {}

    def __len__(self) -> int:
        return len(self._reg)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._reg

    def add(self, item_id: int, text: str) -> None:
        if item_id in self._reg:
            self.remove(item_id)

        words: list[str] = []
        for position, word in enumerate(tokenize(text)):
            if word not in words:
                words.append(word)
            for end in range(1, len(word) + 1):
                postings = self._map.setdefault(word[:end], {})
                if item_id not in postings or postings[item_id] > position:
                    postings[item_id] = position
        self._reg[item_id] = words

    def update(self, item_id: int, text: str) -> None:
        self.add(item_id, text)

    def remove(self, item_id: int) -> None:
        words = self._reg.pop(item_id, None)
        if words is None:
            return
        for word in words:
            for end in range(1, len(word) + 1):
                prefix = word[:end]
                postings = self._map.get(prefix)
                if postings is None:
                    continue
                postings.pop(item_id, None)
                if not postings:
                    del self._map[prefix]

    def search(self, query: str, limit: int | None = None) -> list[int]:
        terms = list(dict.fromkeys(tokenize(query)))
        if not terms:
            return []

        scores: dict[int, int] | None = None
        for term in terms:
            postings = self._map.get(term)
            if not postings:
                return []
            if scores is None:
                scores = dict(postings)
            else:
                scores = {
                    item_id: score + postings[item_id]
                    for item_id, score in scores.items()
                    if item_id in postings
                }
            if not scores:
                return []

        assert scores is not None
        ranked = sorted(scores, key=lambda i: (scores[i], -i))
        return ranked[: limit or self.limit]

    # -----------------------------------------------------------------------
    # Export / import
    # -----------------------------------------------------------------------

    def _chunks(self) -> list[tuple[str, Callable[[], object]]]:
        return [
            (REG_CHUNK_KEY, lambda: self._reg),
            (
                CFG_CHUNK_KEY,
                lambda: {
                    "field": FIELD,
                    "tokenize": "forward",
                    "version": INDEX_VERSION,
                },
            ),
            (MAP_CHUNK_KEY, lambda: self._map),
        ]

    async def export(self, handler: ExportHandler) -> None:
        """Stream chunks to handler on subsequent loop iterations.

        Returns as soon as delivery is scheduled.
        """
        loop = asyncio.get_running_loop()
        pending = self._chunks()

        def deliver_next() -> None:
            if not pending:
                return
            key, build = pending.pop(0)
            try:
                handler(key, msgpack.packb(build(), use_bin_type=True))
            except Exception:
                logger.exception("export handler failed", key=key)
                return
            loop.call_soon(deliver_next)

        loop.call_soon(deliver_next)

    def import_chunk(self, key: str, value: bytes) -> None:
        data = msgpack.unpackb(value, raw=False, strict_map_key=False)
        if key == REG_CHUNK_KEY:
            self._reg = {int(k): list(v) for k, v in data.items()}
        elif key == MAP_CHUNK_KEY:
            self._map = {
                prefix: {int(i): int(p) for i, p in postings.items()}
                for prefix, postings in data.items()
            }
        elif key == CFG_CHUNK_KEY:
            if data.get("version") != INDEX_VERSION:
                logger.warning(
                    "snapshot version mismatch",
                    expected=INDEX_VERSION,
                    found=data.get("version"),
                )
        else:
            logger.debug("ignoring unknown snapshot chunk", key=key)
