"""Test-connection command - verify remote credentials."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

from workreplica import console
from workreplica.cli._common import config_payload, request, require_config


@dataclass
class TestConnection:
    """Check that the configured remote is reachable."""

    __test__ = False

    data_dir: Path | None = field(
        default=None,
        metadata={"help": "Override the data directory"},
    )

    def run(self) -> int:
        config = require_config()
        if config is None:
            return 1

        with console.status("connecting..."):
            response = asyncio.run(
                request(
                    "test-connection",
                    {"config": config_payload(config)},
                    self.data_dir,
                )
            )

        if response["status"] == "success":
            console.success(response["message"])
            return 0
        console.error(response["message"])
        return 1
