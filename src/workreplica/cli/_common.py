"""Shared helpers for CLI commands."""

from __future__ import annotations

import itertools
import os
from pathlib import Path
from typing import Any

from workreplica import console
from workreplica.config import RemoteConfig
from workreplica.errors import ConfigError, WorkReplicaError
from workreplica.logging_config import ENV_DEBUG, configure_logging
from workreplica.models import ConfigPayload
from workreplica.worker import WorkerContext

PROGRESS_TOPICS = ("sync-progress", "sync-metadata-progress")

_ids = itertools.count(1)


def enable_debug(debug: bool) -> None:
    if debug:
        os.environ[ENV_DEBUG] = "1"
        configure_logging(force=True)


def config_payload(config: RemoteConfig) -> dict[str, str]:
    return ConfigPayload(
        org=config.org,
        area_path=config.area_path,
        email=config.email,
        pat=config.pat,
        base_url=config.base_url,
    ).model_dump()


def print_push(message: list[Any]) -> None:
    """Transport for the CLI: render push messages, ignore responses."""
    correlation_id, topic, payload = message
    if correlation_id is not None:
        return
    if topic in PROGRESS_TOPICS:
        console.progress(payload["type"], payload["message"])


async def request(
    route: str, payload: dict[str, Any], data_dir: Path | None = None
) -> Any:
    """Run one request through a short-lived worker and return the reply."""
    ctx = WorkerContext.create(send=print_push, data_dir=data_dir)
    ctx.start()
    try:
        _, _, response = await ctx.server.handle_message(
            [next(_ids), route, payload]
        )
    finally:
        await ctx.close()

    if isinstance(response, dict) and "error" in response:
        raise WorkReplicaError(response["error"])
    return response


def require_config() -> RemoteConfig | None:
    config = RemoteConfig()
    try:
        config.require_complete()
    except ConfigError as e:
        console.error(str(e))
        return None
    return config
