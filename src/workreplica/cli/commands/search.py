"""Search and recent commands - query the local replica."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Literal

import tyro

from workreplica import console
from workreplica.cli._common import enable_debug, request
from workreplica.config import RECENT_LIMIT


def _print_items(
    items: list[dict], title: str, output_format: Literal["none", "json"]
) -> None:
    if output_format == "json":
        print(json.dumps(items, indent=2))
    elif not items:
        console.dim("no results")
    else:
        console.items_table(items, title)


@dataclass
class Search:
    """Full text search over synced work items."""

    query_text: Annotated[
        str, tyro.conf.Positional, tyro.conf.arg(help="Search query text")
    ]
    data_dir: Path | None = field(
        default=None,
        metadata={"help": "Override the data directory"},
    )
    output_format: Literal["none", "json"] = field(
        default="none",
        metadata={"help": "Output format (none=rich, json)"},
    )
    debug: bool = field(
        default=False,
        metadata={"help": "Enable debug logging"},
    )

    def run(self) -> int:
        enable_debug(self.debug)
        response = asyncio.run(
            request("search", {"query": self.query_text}, self.data_dir)
        )
        items = response["items"]
        _print_items(
            items,
            f"{len(items)} results for {self.query_text!r}",
            self.output_format,
        )
        return 0


@dataclass
class Recent:
    """List the most recently changed work items."""

    limit: int = field(
        default=RECENT_LIMIT,
        metadata={"help": "Number of items"},
    )
    data_dir: Path | None = field(
        default=None,
        metadata={"help": "Override the data directory"},
    )
    output_format: Literal["none", "json"] = field(
        default="none",
        metadata={"help": "Output format (none=rich, json)"},
    )

    def run(self) -> int:
        response = asyncio.run(
            request("recent", {"limit": self.limit}, self.data_dir)
        )
        _print_items(response["items"], "recent items", self.output_format)
        return 0
