import asyncio
import json

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from conftest import make_mesh
from kubeclient import (
    ClientConfig,
    DeleteOptions,
    EventType,
    GetOptions,
    Invalid,
    ListOptions,
    NotFound,
    PatchType,
    RESTExecutor,
    ServerError,
    Timeout,
    TransportFailure,
)
from kubeclient.meta import Status
from servicemesh import meshes

COLLECTION = "/apis/gateway.networking.k8s.io/v1alpha2/meshes"


def _mesh(name="default", resource_version="1"):
    wire = make_mesh(name).to_wire()
    wire["metadata"]["resourceVersion"] = resource_version
    return wire


def _event(event_type, obj):
    return json.dumps({"type": event_type, "object": obj}).encode() + b"\n"


def build_app(seen, release):
    async def get_mesh(request):
        seen.append(request)
        name = request.match_info["name"]
        if name == "boom":
            return web.Response(status=500, text="upstream exploded")
        if name == "slow":
            await asyncio.sleep(2)
        if name != "default":
            status = Status.failure(404, "NotFound", f'meshes "{name}" not found', name=name, kind="meshes")
            return web.json_response(status.to_wire(), status=404)
        return web.json_response(_mesh())

    async def list_meshes(request):
        seen.append(request)
        if request.query.get("watch") != "true":
            return web.json_response({
                "apiVersion": "gateway.networking.k8s.io/v1alpha2",
                "kind": "MeshList",
                "metadata": {"resourceVersion": "9"},
                "items": [_mesh("a"), _mesh("b")],
            })
        resp = web.StreamResponse()
        resp.content_type = "application/json"
        await resp.prepare(request)
        await resp.write(_event("ADDED", _mesh("a")))
        await resp.write(_event("MODIFIED", _mesh("a", "2")))
        if "timeoutSeconds" not in request.query:
            await release.wait()
        return resp

    async def create_mesh(request):
        seen.append(request)
        body = await request.json()
        body["metadata"]["resourceVersion"] = "1"
        return web.json_response(body, status=201)

    async def patch_mesh(request):
        seen.append(request)
        body = await request.read()
        if not body:
            status = Status.failure(400, "BadRequest", "empty patch")
            return web.json_response(status.to_wire(), status=400)
        wire = _mesh(resource_version="2")
        wire["spec"].update(json.loads(body).get("spec", {}))
        return web.json_response(wire)

    async def delete_mesh(request):
        seen.append(request)
        request["body"] = await request.json()
        return web.json_response({"apiVersion": "v1", "kind": "Status", "status": "Success"})

    app = web.Application()
    app.router.add_get(COLLECTION, list_meshes)
    app.router.add_post(COLLECTION, create_mesh)
    app.router.add_get(COLLECTION + "/{name}", get_mesh)
    app.router.add_patch(COLLECTION + "/{name}", patch_mesh)
    app.router.add_delete(COLLECTION + "/{name}", delete_mesh)
    return app


@pytest.fixture
def seen():
    return []


@pytest_asyncio.fixture
async def server(seen):
    release = asyncio.Event()
    async with TestServer(build_app(seen, release)) as test_server:
        yield test_server
        release.set()


@pytest_asyncio.fixture
async def executor(server):
    config = ClientConfig(host=f"http://{server.host}:{server.port}", token="secret")
    async with RESTExecutor(config) as rest:
        yield rest


@pytest.mark.asyncio
async def test_get_sends_auth_and_options(executor, seen):
    mesh = await meshes(executor).get("default", GetOptions(resource_version="5"))

    assert mesh.metadata.resource_version == "1"
    [request] = seen
    assert request.headers["Authorization"] == "Bearer secret"
    assert request.headers["User-Agent"] == "meshclient/0.1"
    assert request.query["resourceVersion"] == "5"


@pytest.mark.asyncio
async def test_not_found_status_is_decoded(executor):
    with pytest.raises(NotFound) as exc:
        await meshes(executor).get("missing")
    assert exc.value.code == 404
    assert exc.value.name == "missing"
    assert exc.value.operation == "get"


@pytest.mark.asyncio
async def test_non_status_failure_is_server_error(executor):
    with pytest.raises(ServerError) as exc:
        await meshes(executor).get("boom")
    assert exc.value.code == 500
    assert "upstream exploded" in exc.value.message


@pytest.mark.asyncio
async def test_list_sends_selectors(executor, seen):
    result = await meshes(executor).list(ListOptions(label_selector="env=prod", limit=5))

    assert result.names() == ["a", "b"]
    assert seen[0].query["labelSelector"] == "env=prod"
    assert seen[0].query["limit"] == "5"


@pytest.mark.asyncio
async def test_create_posts_json_body(executor, seen):
    created = await meshes(executor).create(make_mesh(description="prod"))

    assert created.metadata.resource_version == "1"
    assert seen[0].content_type == "application/json"


@pytest.mark.asyncio
async def test_patch_sends_patch_content_type(executor, seen):
    patched = await meshes(executor).patch(
        "default", PatchType.MERGE, '{"spec": {"description": "patched"}}'
    )

    assert patched.spec.description == "patched"
    assert seen[0].content_type == "application/merge-patch+json"


@pytest.mark.asyncio
async def test_empty_patch_is_invalid(executor):
    with pytest.raises(Invalid):
        await meshes(executor).patch("default", PatchType.MERGE, b"")


@pytest.mark.asyncio
async def test_delete_sends_options_body(executor, seen):
    await meshes(executor).delete("default", DeleteOptions(grace_period_seconds=0))

    body = seen[0]["body"]
    assert body["kind"] == "DeleteOptions"
    assert body["gracePeriodSeconds"] == 0


@pytest.mark.asyncio
async def test_watch_streams_until_closed(executor, seen):
    watch = await meshes(executor).watch()

    first = await asyncio.wait_for(watch.__anext__(), 5)
    second = await asyncio.wait_for(watch.__anext__(), 5)
    await watch.close()

    assert (first.type, second.type) == (EventType.ADDED, EventType.MODIFIED)
    assert second.resource_version == "2"
    assert seen[0].query["watch"] == "true"
    assert watch.closed
    assert [e async for e in watch] == []


@pytest.mark.asyncio
async def test_watch_ends_when_server_closes(executor):
    watch = await meshes(executor).watch(ListOptions(timeout_seconds=5))
    events = await asyncio.wait_for(_collect(watch), 10)
    assert [e.type for e in events] == [EventType.ADDED, EventType.MODIFIED]
    assert watch.closed


async def _collect(watch):
    return [event async for event in watch]


@pytest.mark.asyncio
async def test_request_timeout_is_timeout(server):
    config = ClientConfig(host=f"http://{server.host}:{server.port}", request_timeout=0.2)
    async with RESTExecutor(config) as rest:
        with pytest.raises(Timeout):
            await meshes(rest).get("slow")


@pytest.mark.asyncio
async def test_unreachable_server_is_transport_failure():
    async with RESTExecutor(ClientConfig(host="http://127.0.0.1:1")) as rest:
        with pytest.raises(TransportFailure) as exc:
            await meshes(rest).get("default")
    assert exc.value.cause is not None


@pytest.mark.asyncio
async def test_watch_open_failure_raises():
    async with RESTExecutor(ClientConfig(host="http://127.0.0.1:1")) as rest:
        with pytest.raises(TransportFailure):
            await meshes(rest).watch()


@pytest.mark.asyncio
async def test_unconnected_executor():
    with pytest.raises(TransportFailure):
        await meshes(RESTExecutor(ClientConfig(host="http://127.0.0.1:1"))).get("default")
