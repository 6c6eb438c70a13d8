"""Metadata command - refresh work item types, states and icons."""

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
class Metadata:
    """Refresh work item type metadata and icons."""

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
                "sync-metadata",
                {"config": config_payload(config)},
                self.data_dir,
            )
        )
        console.key_value("types", response["type_count"])
        console.key_value("icons downloaded", response["new_fetch_count"])
        return 0
