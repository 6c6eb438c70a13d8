"""Reset command - drop the index snapshot and metadata."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

from workreplica import console
from workreplica.cli._common import request


@dataclass
class Reset:
    """Clear the persisted index snapshot and type metadata."""

    clear_replica: bool = field(
        default=False,
        metadata={"help": "Also delete replica records (forces full sync)"},
    )
    data_dir: Path | None = field(
        default=None,
        metadata={"help": "Override the data directory"},
    )

    def run(self) -> int:
        asyncio.run(
            request(
                "reset", {"clear_replica": self.clear_replica}, self.data_dir
            )
        )
        console.success("reset complete")
        if self.clear_replica:
            console.dim("run 'workreplica sync --rebuild-index' next")
        return 0
