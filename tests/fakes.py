"""In-memory stand-ins for the remote-service clients."""

import json

from sanity.config.resolver import ConfigResolver, SettingKeys, SourceControlConfig
from sanity.errors import AuthorizationError, NotFoundError, UpstreamRequestError


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExecutionServer:
    """Stand-in for ExecutionServerClient; ``failing`` flow ids raise on fetch/delete."""

    def __init__(self, flows=None, failing=(), stores=None):
        self.flows = dict(flows or {})
        self.failing = set(failing)
        self.stores = dict(stores or {})
        self.updated = {}
        self.deleted = []
        self.commands = []
        self.resolver = ConfigResolver(
            defaults={
                SettingKeys.APPMIXER_BASE_URL: "https://api.appmixer.example",
                SettingKeys.APPMIXER_USERNAME: "bot",
                SettingKeys.APPMIXER_PASSWORD: "secret",
            }
        )

    async def list_flows(self, user):
        return [
            {"flowId": flow_id, "name": flow.get("name", ""), "stage": flow.get("stage", "stopped")}
            for flow_id, flow in self.flows.items()
        ]

    async def get_flow(self, user, flow_id):
        if flow_id in self.failing:
            raise UpstreamRequestError(f"Fetch flow {flow_id} failed: 500", status=500)
        if flow_id not in self.flows:
            raise NotFoundError(f"Fetch flow {flow_id}: not found")
        return dict(self.flows[flow_id], flowId=flow_id)

    async def update_flow(self, user, flow_id, definition):
        self.updated[flow_id] = definition
        return {}

    async def start_flow(self, user, flow_id):
        self.commands.append(("start", flow_id))
        return {}

    async def stop_flow(self, user, flow_id):
        self.commands.append(("stop", flow_id))
        return {}

    async def delete_flow(self, user, flow_id):
        if flow_id in self.failing:
            raise UpstreamRequestError(f"Delete flow {flow_id} failed: 500", status=500)
        self.deleted.append(flow_id)

    async def get_store_records(self, user, store_id):
        return list(self.stores.get(store_id, []))


class FakeSourceControl:
    """Stand-in for SourceControlClient backed by a ``{path: definition}`` map.

    Every call is appended to ``calls`` so tests can assert ordering.
    """

    def __init__(self, files=None, writable=True, tree_error=False, failing_paths=()):
        self.files = dict(files or {})
        self.writable = writable
        self.tree_error = tree_error
        self.failing_paths = set(failing_paths)
        self.calls = []
        self.written = {}
        self.pull_requests = []

    def config(self, user):
        return SourceControlConfig("clientIO", "appmixer-connectors", "dev", "token")

    def file_url(self, config, path, ref=None):
        return f"https://github.com/{config.full_name}/blob/{ref or config.branch}/{path}"

    async def get_tree(self, user):
        self.calls.append(("get_tree",))
        if self.tree_error:
            raise UpstreamRequestError("Fetch repository tree failed: 503", status=503)
        return [{"path": path, "type": "blob", "sha": f"sha-{i}"} for i, path in enumerate(self.files)]

    async def get_file(self, user, path, ref=None):
        if path not in self.files:
            raise NotFoundError(f"Fetch file {path}: not found")
        return {"sha": "sha", "content": json.dumps(self.files[path])}

    async def verify_write_access(self, user):
        self.calls.append(("verify_write_access",))
        if not self.writable:
            raise AuthorizationError("No write access to clientIO/appmixer-connectors")

    async def create_branch(self, user, name, from_branch):
        self.calls.append(("create_branch", name, from_branch))
        return "base-sha"

    async def create_or_update_file(self, user, path, content, message, branch):
        self.calls.append(("write", path, branch))
        if path in self.failing_paths:
            raise UpstreamRequestError(f"Write file {path} failed: 409", status=409)
        self.written[path] = (content, message, branch)
        return {"content": {"path": path}}

    async def create_pull_request(self, user, title, body, head, base):
        self.calls.append(("create_pull_request", head, base))
        self.pull_requests.append({"title": title, "body": body, "head": head, "base": base})
        return {"html_url": "https://github.com/clientIO/appmixer-connectors/pull/7", "number": 7}
