"""Route handlers. Each takes the worker context plus a validated request."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from workreplica.config import RemoteConfig
from workreplica.metadata.manager import MetadataProgress
from workreplica.models import (
    DisplayItemModel,
    ItemsResponse,
    ProgressUpdate,
    RecentRequest,
    ResetRequest,
    SearchRequest,
    SyncMetadataRequest,
    SyncMetadataResponse,
    SyncRequest,
    SyncResponse,
    TestConnectionRequest,
    TestConnectionResponse,
)

if TYPE_CHECKING:
    from workreplica.search.search_manager import DisplayItem
    from workreplica.worker import WorkerContext

logger = structlog.get_logger(__name__)

SYNC_PROGRESS = "sync-progress"
SYNC_METADATA_PROGRESS = "sync-metadata-progress"


def to_items_response(items: list[DisplayItem]) -> ItemsResponse:
    return ItemsResponse(
        items=[DisplayItemModel.model_validate(item) for item in items]
    )


async def _config_or_error(
    ctx: WorkerContext, config: RemoteConfig, topic: str
) -> bool:
    if config.is_complete:
        return True
    await ctx.server.emit(
        topic,
        ProgressUpdate(type="error", message="Missing remote config"),
    )
    return False


async def handle_sync(ctx: WorkerContext, request: SyncRequest) -> SyncResponse:
    config = request.config.to_config()
    if not await _config_or_error(ctx, config, SYNC_PROGRESS):
        return SyncResponse()

    remote = ctx.remote_factory(config)
    try:
        result = await ctx.orchestrator.run(
            remote, rebuild_index=request.rebuild_index
        )
    finally:
        await remote.close()
    return SyncResponse.from_summary(result.summary, skipped=result.skipped)


async def handle_sync_metadata(
    ctx: WorkerContext, request: SyncMetadataRequest
) -> SyncMetadataResponse:
    config = request.config.to_config()
    if not await _config_or_error(ctx, config, SYNC_METADATA_PROGRESS):
        return SyncMetadataResponse()

    async def progress(type_: str, message: str) -> None:
        await ctx.server.emit(
            SYNC_METADATA_PROGRESS,
            ProgressUpdate(type=type_, message=message),
        )

    async def on_icon(update: MetadataProgress) -> None:
        await progress(
            "progress", f"Fetching icons... {update.progress}/{update.total}"
        )

    remote = ctx.remote_factory(config)
    try:
        await progress("progress", "Fetching metadata...")
        item_types = await remote.list_types()
        await progress("progress", "Fetching icons...")
        summary = await ctx.metadata_manager.update_metadata_dictionary(
            remote, item_types, on_progress=on_icon
        )
    except Exception as e:
        message = str(e) or "Unknown error"
        logger.exception("metadata sync failed", error=message)
        await progress("error", message)
        return SyncMetadataResponse()
    finally:
        await remote.close()

    await progress("success", "Sync metadata... Success!")
    return SyncMetadataResponse(
        type_count=summary.type_count,
        new_fetch_count=summary.new_fetch_count,
    )


async def handle_search(
    ctx: WorkerContext, request: SearchRequest
) -> ItemsResponse:
    return to_items_response(await ctx.search_manager.search(request.query))


async def handle_recent(
    ctx: WorkerContext, request: RecentRequest
) -> ItemsResponse:
    return to_items_response(await ctx.search_manager.recent(request.limit))


async def handle_reset(ctx: WorkerContext, request: ResetRequest) -> None:
    await ctx.index_manager.reset()
    await ctx.metadata_manager.reset()
    if request.clear_replica:
        ctx.store.clear_items()
    logger.info("reset complete", clear_replica=request.clear_replica)


async def handle_test_connection(
    ctx: WorkerContext, request: TestConnectionRequest
) -> TestConnectionResponse:
    config = request.config.to_config()
    if not config.is_complete:
        return TestConnectionResponse(
            status="error", message="Missing remote config"
        )

    remote = ctx.remote_factory(config)
    try:
        ids = await remote.list_active_ids()
    except Exception as e:
        logger.warning("connection test failed", error=str(e))
        return TestConnectionResponse(
            status="error",
            message=(
                "Connecting to Azure DevOps... Failed! "
                f"({str(e) or 'Unknown error'})"
            ),
        )
    finally:
        await remote.close()

    return TestConnectionResponse(
        status="success",
        message=(
            "Connecting to Azure DevOps... Success! "
            f"({len(ids)} items found)"
        ),
    )
