import pytest
from fakes import FakeRemote, remote_item

from workreplica.config import RemoteConfig
from workreplica.errors import HttpError
from workreplica.records import ItemType, StateCategory, StateDefinition
from workreplica.search.index_manager import IndexManager
from workreplica.store import ReplicaStore
from workreplica.worker import WorkerContext

CONFIG = {
    "org": "acme",
    "area_path": "Proj\\Team",
    "email": "dev@example.com",
    "pat": "secret",
}


def pushes(sent, topic):
    return [payload for cid, t, payload in sent if cid is None and t == topic]


class TestWorkerContext:
    @pytest.fixture
    def remote(self):
        return FakeRemote(
            [
                remote_item(1, title="Login page crashes", state="Active"),
                remote_item(2, title="Write docs", state="New", age=5),
            ],
            item_types=[
                ItemType(
                    "Bug",
                    "https://icons/bug.svg",
                    (
                        StateDefinition(
                            "Active", "007acc", StateCategory.IN_PROGRESS
                        ),
                    ),
                )
            ],
        )

    @pytest.fixture
    def sent(self):
        return []

    @pytest.fixture
    def make_ctx(self, tmp_path, remote, sent):
        def factory():
            store = ReplicaStore(tmp_path / "replica.db")
            ctx = WorkerContext(
                store,
                sent.append,
                remote_factory=lambda config: remote,
                index_manager=IndexManager(
                    store,
                    export_poll_interval=0.01,
                    export_grace_period=0,
                    export_timeout=1.0,
                ),
            )
            return ctx

        return factory

    async def request(self, ctx, route, payload):
        _, _, response = await ctx.server.handle_message([1, route, payload])
        return response

    @pytest.mark.asyncio
    async def test_sync_and_search(self, make_ctx, remote, sent):
        ctx = make_ctx()
        ctx.start()

        response = await self.request(
            ctx, "sync", {"config": CONFIG, "rebuild_index": True}
        )
        results = await self.request(ctx, "search", {"query": "login"})
        await ctx.close()

        assert response == {
            "added_ids": [1, 2],
            "updated_ids": [],
            "deleted_ids": [],
            "skipped": False,
        }
        assert remote.closed
        progress = pushes(sent, "sync-progress")
        assert progress[-1] == {
            "type": "success",
            "message": "Sync items... Success! (2 added)",
        }
        assert {"type": "progress", "message": "Building index..."} in progress
        assert pushes(sent, "index-changed")

        [item] = results["items"]
        assert item["id"] == 1
        assert item["title"] == "Login page crashes"
        assert isinstance(item["changed_at"], str)

    @pytest.mark.asyncio
    async def test_sync_with_incomplete_config(self, make_ctx, remote, sent):
        ctx = make_ctx()
        ctx.start()

        response = await self.request(
            ctx, "sync", {"config": {**CONFIG, "pat": ""}}
        )
        await ctx.close()

        assert response["added_ids"] == []
        assert remote.calls == []
        assert pushes(sent, "sync-progress")[-1]["type"] == "error"

    @pytest.mark.asyncio
    async def test_sync_metadata(self, make_ctx, sent):
        ctx = make_ctx()
        ctx.start()

        response = await self.request(
            ctx, "sync-metadata", {"config": CONFIG}
        )
        await ctx.close()

        assert response == {"type_count": 1, "new_fetch_count": 1}
        messages = [
            p["message"] for p in pushes(sent, "sync-metadata-progress")
        ]
        assert messages[0] == "Fetching metadata..."
        assert "Fetching icons... 1/1" in messages
        assert messages[-1] == "Sync metadata... Success!"
        assert pushes(sent, "metadata-changed")

    @pytest.mark.asyncio
    async def test_sync_metadata_failure(self, make_ctx, remote, sent):
        remote.failing_icon_urls.add("https://icons/bug.svg")
        ctx = make_ctx()
        ctx.start()

        response = await self.request(
            ctx, "sync-metadata", {"config": CONFIG}
        )
        await ctx.close()

        assert response == {"type_count": 0, "new_fetch_count": 0}
        last = pushes(sent, "sync-metadata-progress")[-1]
        assert last == {"type": "error", "message": "Status code: 404"}

    @pytest.mark.asyncio
    async def test_connection_success(self, make_ctx):
        ctx = make_ctx()
        ctx.start()

        response = await self.request(
            ctx, "test-connection", {"config": CONFIG}
        )
        await ctx.close()

        assert response == {
            "status": "success",
            "message": "Connecting to Azure DevOps... Success! (2 items found)",
        }

    @pytest.mark.asyncio
    async def test_connection_failure(self, make_ctx, remote):
        async def failing(top=None):
            raise HttpError(500)

        remote.list_active_ids = failing
        ctx = make_ctx()
        ctx.start()

        response = await self.request(
            ctx, "test-connection", {"config": CONFIG}
        )
        await ctx.close()

        assert response["status"] == "error"
        assert response["message"].endswith("(Status code: 500)")

    @pytest.mark.asyncio
    async def test_reset(self, make_ctx):
        ctx = make_ctx()
        ctx.start()
        await self.request(
            ctx, "sync", {"config": CONFIG, "rebuild_index": True}
        )

        await self.request(ctx, "reset", {"clear_replica": True})

        assert ctx.store.count() == 0
        assert ctx.store.read_snapshot() == []
        await ctx.close()

    @pytest.mark.asyncio
    async def test_recent(self, make_ctx):
        ctx = make_ctx()
        ctx.start()
        await self.request(ctx, "sync", {"config": CONFIG})

        response = await self.request(ctx, "recent", {"limit": 1})
        await ctx.close()

        assert [item["id"] for item in response["items"]] == [1]

    @pytest.mark.asyncio
    async def test_search_push_after_index_change(self, make_ctx, sent):
        ctx = make_ctx()
        ctx.start()
        await self.request(ctx, "search", {"query": "docs"})

        await self.request(
            ctx, "sync", {"config": CONFIG, "rebuild_index": True}
        )
        await ctx.close()

        updates = pushes(sent, "search-changed")
        assert updates[-1]["query"] == "docs"
        assert [item["id"] for item in updates[-1]["items"]] == [2]

    @pytest.mark.asyncio
    async def test_first_poll_tick_rebuilds_and_loads_metadata(
        self, make_ctx
    ):
        ctx = make_ctx()
        ctx.start()

        await ctx.poll_tick(RemoteConfig(**CONFIG), 0)

        assert ctx.index_manager.is_built
        assert ctx.store.count() == 2
        assert [e.type_name for e in ctx.store.list_item_types()] == ["Bug"]
        await ctx.close()
