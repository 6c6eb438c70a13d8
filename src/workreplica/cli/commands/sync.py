"""Sync command - bring the local replica up to date."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

from workreplica import console
from workreplica.cli._common import (
    config_payload,
    enable_debug,
    request,
    require_config,
)


@dataclass
class Sync:
    """Sync work items from the remote into the local replica."""

    rebuild_index: bool = field(
        default=False,
        metadata={"help": "Rebuild the search index from the whole replica"},
    )
    data_dir: Path | None = field(
        default=None,
        metadata={"help": "Override the data directory"},
    )
    debug: bool = field(
        default=False,
        metadata={"help": "Enable debug logging"},
    )

    def run(self) -> int:
        enable_debug(self.debug)
        config = require_config()
        if config is None:
            return 1

        response = asyncio.run(
            request(
                "sync",
                {
                    "config": config_payload(config),
                    "rebuild_index": self.rebuild_index,
                },
                self.data_dir,
            )
        )

        if response["skipped"]:
            console.warning("another sync is already running")
            return 0

        console.key_value("added", len(response["added_ids"]))
        console.key_value("updated", len(response["updated_ids"]))
        console.key_value("deleted", len(response["deleted_ids"]))
        return 0
