"""Watch command - keep the replica in sync on a fixed cadence."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path

import structlog

from workreplica import console
from workreplica.cli._common import enable_debug, print_push, require_config
from workreplica.config import RemoteConfig, get_poll_interval
from workreplica.sync.poller import RecursivePoller
from workreplica.worker import WorkerContext

logger = structlog.get_logger(__name__)


@dataclass
class Watch:
    """Run a full sync, then poll for incremental changes until ^C."""

    interval: float | None = field(
        default=None,
        metadata={
            "help": "Seconds between polls (default: WORKREPLICA_POLL_INTERVAL"
            " or 10)"
        },
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

        interval = self.interval or get_poll_interval()
        console.info(f"watching {config.area_path} every {interval:g}s")
        try:
            asyncio.run(self._watch(config, interval))
        except KeyboardInterrupt:
            console.dim("stopped")
        return 0

    async def _watch(self, config: RemoteConfig, interval: float) -> None:
        ctx = WorkerContext.create(send=print_push, data_dir=self.data_dir)
        ctx.start()
        poller = RecursivePoller(partial(ctx.poll_tick, config), interval)
        poller.start()
        try:
            await asyncio.Event().wait()
        finally:
            await poller.stop()
            logger.info("watch stopped", ticks=poller.stats.ticks)
            await ctx.close()
