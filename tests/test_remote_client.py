import base64
import contextlib

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from workreplica.config import RemoteConfig
from workreplica.errors import HttpError, Unauthorized
from workreplica.records import ALL_FIELDS, StateCategory
from workreplica.remote import AdoClient
from workreplica.remote.query import build_root_query

WIT = "/acme/Proj/_apis/wit"
REQUESTS = web.AppKey("requests", list)


@contextlib.asynccontextmanager
async def serve(routes):
    app = web.Application()
    app[REQUESTS] = []
    for method, path, handler in routes:
        app.router.add_route(method, path, handler)
    server = TestServer(app)
    await server.start_server()
    try:
        config = RemoteConfig(
            org="acme",
            area_path="Proj\\Team",
            email="dev@example.com",
            pat="secret",
            base_url=str(server.make_url("")),
        )
        async with AdoClient(config) as client:
            yield client, app[REQUESTS]
    finally:
        await server.close()


async def wiql(request):
    body = await request.json()
    request.app[REQUESTS].append(
        {
            "auth": request.headers.get("Authorization"),
            "query": body["query"],
            "params": dict(request.query),
        }
    )
    ids = [3, 2, 1]
    if "$top" in request.query:
        ids = ids[: int(request.query["$top"])]
    return web.json_response({"workItems": [{"id": i} for i in ids]})


async def batch(request):
    body = await request.json()
    request.app[REQUESTS].append(body)
    return web.json_response(
        {
            "value": [
                {
                    "id": i,
                    "rev": 2,
                    "fields": {"System.Title": f"Item {i}"},
                }
                for i in body["ids"]
            ]
        }
    )


async def types(request):
    return web.json_response(
        {
            "value": [
                {
                    "name": "Bug",
                    "icon": {"url": "https://icons/bug.svg"},
                    "isDisabled": False,
                    "states": [
                        {
                            "name": "Active",
                            "color": "007acc",
                            "category": "InProgress",
                        },
                        {"name": "Weird", "color": "000000"},
                    ],
                }
            ]
        }
    )


async def icon(request):
    return web.Response(body=b"<svg/>", content_type="image/svg+xml")


async def unauthorized(request):
    return web.Response(status=401)


async def unavailable(request):
    return web.Response(status=503, text="down")


class TestAdoClient:
    @pytest.mark.asyncio
    async def test_list_active_ids_sends_auth_and_query(self):
        async with serve([("POST", f"{WIT}/wiql/", wiql)]) as (client, log):
            ids = await client.list_active_ids()

        assert ids == [3, 2, 1]
        expected = base64.b64encode(b"dev@example.com:secret").decode()
        assert log[0]["auth"] == f"Basic {expected}"
        assert log[0]["params"]["api-version"] == "6.0"
        assert log[0]["query"] == build_root_query("Proj\\Team")

    @pytest.mark.asyncio
    async def test_top_and_deleted(self):
        async with serve([("POST", f"{WIT}/wiql/", wiql)]) as (client, log):
            ids = await client.list_deleted_ids(top=1)

        assert ids == [3]
        assert log[0]["params"]["$top"] == "1"
        assert "[System.IsDeleted] = true" in log[0]["query"]

    @pytest.mark.asyncio
    async def test_get_items(self):
        routes = [("POST", f"{WIT}/workitemsbatch", batch)]
        async with serve(routes) as (client, log):
            items = await client.get_items(ALL_FIELDS, [5, 6])
            empty = await client.get_items(ALL_FIELDS, [])

        assert [item.id for item in items] == [5, 6]
        assert items[0].rev == 2
        assert items[0].fields["System.Title"] == "Item 5"
        assert log == [{"ids": [5, 6], "fields": ALL_FIELDS}]
        assert empty == []

    @pytest.mark.asyncio
    async def test_list_types(self):
        routes = [("GET", f"{WIT}/workitemtypes", types)]
        async with serve(routes) as (client, _):
            [bug] = await client.list_types()

        assert bug.name == "Bug"
        assert bug.icon_url == "https://icons/bug.svg"
        assert bug.states[0].category is StateCategory.IN_PROGRESS
        assert bug.states[1].category is StateCategory.UNKNOWN

    @pytest.mark.asyncio
    async def test_fetch_icon(self):
        async with serve([("GET", "/icon.svg", icon)]) as (client, _):
            url = f"{client.config.base_url.rstrip('/')}/icon.svg"
            content, content_type = await client.fetch_icon(url)

        assert content == b"<svg/>"
        assert content_type == "image/svg+xml"

    @pytest.mark.asyncio
    async def test_401_raises_unauthorized(self):
        routes = [("POST", f"{WIT}/wiql/", unauthorized)]
        async with serve(routes) as (client, _):
            with pytest.raises(Unauthorized, match="Authentication error"):
                await client.list_active_ids()

    @pytest.mark.asyncio
    async def test_error_status_raises_http_error(self):
        routes = [("POST", f"{WIT}/workitemsbatch", unavailable)]
        async with serve(routes) as (client, _):
            with pytest.raises(HttpError) as exc_info:
                await client.get_items(ALL_FIELDS, [1])

        assert exc_info.value.status == 503
        assert str(exc_info.value) == "Status code: 503"


def test_root_query_escapes_quotes():
    query = build_root_query("Proj\\O'Brien")
    assert "UNDER 'Proj\\O''Brien'" in query
    assert query.endswith("ORDER BY [System.ChangedDate] DESC")
