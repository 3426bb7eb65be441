"""Tests for the remote-service clients against mocked HTTP transports."""

import asyncio
import base64
import json

import httpx
import pytest

from sanity.cache.token_cache import TokenCache
from sanity.cache.tree_cache import RemoteTreeCache
from sanity.clients.catalog import CatalogClient
from sanity.clients.execution_server import ExecutionServerClient
from sanity.clients.source_control import SourceControlClient
from sanity.config.resolver import ConfigResolver, SettingKeys
from sanity.errors import AuthenticationError, AuthorizationError, NotFoundError, UpstreamRequestError
from sanity.flows.lifecycle import delete_flows

DEFAULTS = {
    SettingKeys.APPMIXER_BASE_URL: "https://api.appmixer.example",
    SettingKeys.APPMIXER_USERNAME: "bot",
    SettingKeys.APPMIXER_PASSWORD: "secret",
    SettingKeys.GITHUB_REPO_OWNER: "clientIO",
    SettingKeys.GITHUB_REPO_NAME: "appmixer-connectors",
    SettingKeys.GITHUB_REPO_BRANCH: "dev",
    SettingKeys.GITHUB_TOKEN: "gh-token",
}


class Recorder:
    """MockTransport handler that records requests and answers from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"message": "Not Found"})
        status, body = self.routes[key]
        return httpx.Response(status, json=body)

    def paths(self):
        return [(r.method, r.url.path) for r in self.requests]


def _execution(routes, defaults=DEFAULTS):
    recorder = Recorder(routes)
    client = ExecutionServerClient(
        ConfigResolver(defaults=defaults), TokenCache(), transport=httpx.MockTransport(recorder)
    )
    return client, recorder


def _source_control(routes, defaults=DEFAULTS):
    recorder = Recorder(routes)
    client = SourceControlClient(
        ConfigResolver(defaults=defaults), RemoteTreeCache(), transport=httpx.MockTransport(recorder)
    )
    return client, recorder


# --- Execution server ---


def test_execution_server_authenticates_once():
    client, recorder = _execution(
        {
            ("POST", "/user/auth"): (200, {"token": "tok-1"}),
            ("GET", "/flows"): (200, [{"flowId": "f-1", "name": "E2E Box"}]),
            ("GET", "/flows/f-1"): (200, {"flowId": "f-1", "name": "E2E Box", "flow": {}}),
        }
    )

    async def scenario():
        flows = await client.list_flows("alice")
        flow = await client.get_flow("alice", "f-1")
        return flows, flow

    flows, flow = asyncio.run(scenario())
    assert flows[0]["flowId"] == "f-1"
    assert flow["name"] == "E2E Box"
    assert recorder.paths().count(("POST", "/user/auth")) == 1

    auth = json.loads(recorder.requests[0].content)
    assert auth == {"username": "bot", "password": "secret"}
    assert recorder.requests[1].headers["Authorization"] == "Bearer tok-1"
    assert recorder.requests[1].url.params["filter"] == "customFields.category:E2E_test_flow"


def test_execution_server_rejected_credentials():
    client, _ = _execution({("POST", "/user/auth"): (401, {"message": "Unauthorized"})})
    with pytest.raises(AuthenticationError):
        asyncio.run(client.list_flows("alice"))


def test_execution_server_errors_are_classified():
    client, _ = _execution(
        {
            ("POST", "/user/auth"): (200, {"token": "tok"}),
            ("DELETE", "/flows/f-2"): (500, {"message": "boom"}),
        }
    )
    with pytest.raises(NotFoundError):
        asyncio.run(client.get_flow("alice", "missing"))
    with pytest.raises(UpstreamRequestError) as excinfo:
        asyncio.run(client.delete_flow("alice", "f-2"))
    assert excinfo.value.status == 500
    assert excinfo.value.to_dict()["upstream_code"] == "boom"


def test_flow_commands_use_coordinator():
    client, recorder = _execution(
        {
            ("POST", "/user/auth"): (200, {"token": "tok"}),
            ("PATCH", "/flows/f-1/coordinator"): (200, {"started": True}),
        }
    )
    assert asyncio.run(client.start_flow("alice", "f-1")) == {"started": True}
    assert json.loads(recorder.requests[-1].content) == {"command": "start"}


# --- Source control ---


def test_get_file_decodes_base64():
    body = json.dumps({"name": "E2E Box"})
    client, recorder = _source_control(
        {
            ("GET", "/repos/clientIO/appmixer-connectors/contents/src/appmixer/box/test-flow.json"): (
                200,
                {"sha": "abc", "content": base64.b64encode(body.encode()).decode()},
            )
        }
    )
    result = asyncio.run(client.get_file("alice", "src/appmixer/box/test-flow.json"))
    assert result == {"sha": "abc", "content": body}
    assert recorder.requests[0].headers["Authorization"] == "Bearer gh-token"
    assert recorder.requests[0].url.params["ref"] == "dev"


def test_tree_is_memoized():
    client, recorder = _source_control(
        {
            ("GET", "/repos/clientIO/appmixer-connectors/git/trees/dev"): (
                200,
                {"tree": [{"path": "src/appmixer/box/test-flow.json", "type": "blob"}]},
            )
        }
    )

    async def scenario():
        first = await client.get_tree("alice")
        second = await client.get_tree("alice")
        return first, second

    first, second = asyncio.run(scenario())
    assert first == second
    assert len(recorder.requests) == 1


def test_verify_write_access():
    repo_path = ("GET", "/repos/clientIO/appmixer-connectors")
    client, _ = _source_control({repo_path: (200, {"permissions": {"push": True}})})
    asyncio.run(client.verify_write_access("alice"))

    client, _ = _source_control({repo_path: (200, {"permissions": {"pull": True}})})
    with pytest.raises(AuthorizationError):
        asyncio.run(client.verify_write_access("alice"))

    client, recorder = _source_control({}, defaults={**DEFAULTS, SettingKeys.GITHUB_TOKEN: ""})
    with pytest.raises(AuthorizationError):
        asyncio.run(client.verify_write_access("alice"))
    assert recorder.requests == []


def test_create_or_update_file_sends_existing_sha():
    path = "/repos/clientIO/appmixer-connectors/contents/src/appmixer/box/test-flow.json"
    client, recorder = _source_control(
        {
            ("GET", path): (200, {"sha": "old-sha", "content": ""}),
            ("PUT", path): (200, {"content": {"path": "src/appmixer/box/test-flow.json"}}),
        }
    )
    asyncio.run(
        client.create_or_update_file("alice", "src/appmixer/box/test-flow.json", "{}\n", "Sync", "topic")
    )
    put = json.loads(recorder.requests[-1].content)
    assert put["sha"] == "old-sha"
    assert put["branch"] == "topic"
    assert base64.b64decode(put["content"]).decode() == "{}\n"


# --- Catalog ---


def test_catalog_selects_latest_version_and_tolerates_missing_components():
    api = "https://modules.example/prod/modules"

    def handler(request):
        if request.url.path == "/prod/modules":
            return httpx.Response(
                200,
                json={
                    "appmixer.slack": {"1.9.0": {"label": "Old"}, "1.10.0": {"label": "Slack"}},
                    "appmixer.empty": {},
                },
            )
        if request.url.path == "/prod/modules/appmixer.slack/components":
            assert request.url.params["version"] == "1.10.0"
            return httpx.Response(
                200, json={"appmixer.slack.messages.SendMessage": {"private": True}}
            )
        return httpx.Response(404)

    client = CatalogClient(api, transport=httpx.MockTransport(handler))
    connectors = asyncio.run(client.fetch_all_connectors())
    assert [(c.name, c.version, c.label) for c in connectors] == [("appmixer.slack", "1.10.0", "Slack")]

    components = asyncio.run(client.fetch_components("appmixer.slack", "1.10.0"))
    assert components[0].label == "SendMessage"
    assert components[0].private is True
    assert asyncio.run(client.fetch_components("appmixer.gone", "1.0.0")) == []


# --- Transport failures ---


def _flaky_execution_server(request):
    if request.url.path == "/user/auth":
        return httpx.Response(200, json={"token": "tok"})
    if request.url.path == "/flows/f-2":
        raise httpx.ConnectError("connection reset", request=request)
    return httpx.Response(200)


def test_dropped_connection_is_reported_per_item():
    client = ExecutionServerClient(
        ConfigResolver(defaults=DEFAULTS),
        TokenCache(),
        transport=httpx.MockTransport(_flaky_execution_server),
    )
    outcome = asyncio.run(delete_flows(client, "alice", ["f-1", "f-2", "f-3"]))

    assert [s["flow_id"] for s in outcome.successes] == ["f-1", "f-3"]
    assert outcome.failures[0]["flow_id"] == "f-2"
    assert "connection reset" in outcome.failures[0]["error"]


def test_transport_errors_become_upstream_errors():
    def unreachable(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    client, _ = _execution({})
    client._transport = httpx.MockTransport(unreachable)
    with pytest.raises(UpstreamRequestError) as excinfo:
        asyncio.run(client.get_flow("alice", "f-1"))
    assert excinfo.value.status is None
    assert excinfo.value.status_code == 502

    catalog = CatalogClient("https://modules.example/prod/modules", transport=httpx.MockTransport(unreachable))
    with pytest.raises(UpstreamRequestError):
        asyncio.run(catalog.fetch_all_connectors())
