"""Tests for drift classification against the repository."""

import asyncio

import pytest
from fakes import FakeExecutionServer, FakeSourceControl

from sanity.errors import NotFoundError, ValidationError
from sanity.flows.canonical import canonicalize
from sanity.flows.diff import FlowDiffEngine, connector_from_path, is_flow_file
from sanity.models.flows import FlowRecord

BOX = {"name": "E2E Box - Upload File", "flow": {"s1": {"type": "appmixer.box.files.UploadFile"}}, "stage": "running"}
SLACK = {"name": "E2E Slack - Send Message", "flow": {"s1": {"type": "appmixer.slack.SendMessage"}}}
DRIVE = {"name": "E2E Drive - Copy", "flow": {"s1": {"type": "appmixer.google.drive.Copy"}}}
BROKEN = {"name": "E2E Asana - Create Task", "flow": {}}


def _engine(server_flows, repo_files, failing=(), tree_error=False):
    execution = FakeExecutionServer(flows=server_flows, failing=failing)
    source_control = FakeSourceControl(files=repo_files, tree_error=tree_error)
    return FlowDiffEngine(execution, source_control), execution, source_control


def _repo():
    slack_edited = canonicalize(SLACK)
    slack_edited["flow"]["s1"]["type"] = "appmixer.slack.SendDirectMessage"
    return {
        "src/appmixer/box/test-flow-upload.json": canonicalize(BOX),
        "src/appmixer/slack/test-flow-send.json": slack_edited,
        "src/appmixer/asana/test-flow-create.json": canonicalize(BROKEN),
        "src/appmixer/box/README.md": {"name": "not a flow"},
    }


def test_flow_file_filter():
    assert is_flow_file({"type": "blob", "path": "src/appmixer/box/test-flow.json"})
    assert not is_flow_file({"type": "tree", "path": "src/appmixer/box/test-flow.json"})
    assert not is_flow_file({"type": "blob", "path": "src/other/box/test-flow.json"})
    assert not is_flow_file({"type": "blob", "path": "src/appmixer/box/flow.json"})
    assert connector_from_path("src/appmixer/box/test-flow.json") == "box"


def test_repository_flow_map_indexed_by_name():
    engine, _, _ = _engine({}, _repo())
    flow_map = asyncio.run(engine.build_repository_flow_map("alice"))
    assert set(flow_map) == {BOX["name"], SLACK["name"], BROKEN["name"]}
    assert flow_map[BOX["name"]].connector == "box"
    assert flow_map[BOX["name"]].url.endswith("/blob/dev/src/appmixer/box/test-flow-upload.json")


def test_compute_statuses_classifies_every_flow():
    engine, _, _ = _engine(
        {"f-box": BOX, "f-slack": SLACK, "f-drive": DRIVE, "f-asana": BROKEN},
        _repo(),
        failing={"f-asana"},
    )
    flows = [
        FlowRecord("f-box", BOX["name"]),
        FlowRecord("f-slack", SLACK["name"]),
        FlowRecord("f-drive", DRIVE["name"]),
        FlowRecord("f-asana", BROKEN["name"]),
    ]
    states = asyncio.run(engine.compute_statuses("alice", flows))

    assert states["f-box"].status == "match"
    assert states["f-slack"].status == "modified"
    assert states["f-drive"].status == "server_only"
    assert states["f-drive"].repository_path is None
    assert states["f-asana"].status == "error"
    assert states["f-asana"].repository_path == "src/appmixer/asana/test-flow-create.json"


def test_server_only_requires_exact_name():
    engine, _, _ = _engine({"f-box": BOX}, _repo())
    states = asyncio.run(
        engine.compute_statuses("alice", [FlowRecord("f-box", "e2e box - upload file")])
    )
    assert states["f-box"].status == "server_only"


def test_unreadable_repository_marks_all_error():
    engine, _, _ = _engine({"f-box": BOX}, _repo(), tree_error=True)
    states = asyncio.run(engine.compute_statuses("alice", [FlowRecord("f-box", BOX["name"])]))
    assert states["f-box"].status == "error"
    assert "503" in states["f-box"].error


def test_list_flows_enriched_sorted_with_stats():
    engine, _, _ = _engine(
        {"f-slack": SLACK, "f-box": BOX, "f-misc": {"name": "Nightly smoke", "flow": {}}},
        _repo(),
    )
    listing = asyncio.run(engine.list_flows("alice"))

    names = [f["name"] for f in listing["flows"]]
    assert names == [BOX["name"], SLACK["name"], "Nightly smoke"]
    box = listing["flows"][0]
    assert box["connector"] == "box"
    assert box["running"] is True
    assert box["url"] == "https://my.appmixer.example/designer/f-box"
    assert box["sync_status"] == "match"
    assert listing["stats"] == {
        "total": 3,
        "running": 1,
        "stopped": 2,
        "match": 1,
        "modified": 1,
        "server_only": 1,
        "error": 0,
    }


def test_diff_returns_canonical_texts():
    engine, _, _ = _engine({"f-slack": SLACK}, _repo())
    result = asyncio.run(engine.diff("alice", "f-slack", SLACK["name"]))
    assert result["github_path"] == "src/appmixer/slack/test-flow-send.json"
    assert result["sync_status"] == "modified"
    assert "flowId" not in result["server"]
    assert "SendDirectMessage" in result["github"]


def test_diff_unknown_repository_flow():
    engine, _, _ = _engine({"f-drive": DRIVE}, _repo())
    with pytest.raises(NotFoundError):
        asyncio.run(engine.diff("alice", "f-drive", DRIVE["name"]))


def test_revert_writes_repository_copy_to_server():
    engine, execution, _ = _engine({"f-slack": SLACK}, _repo())
    result = asyncio.run(engine.revert("alice", "f-slack", SLACK["name"]))
    assert result["success"] is True
    assert execution.updated["f-slack"]["flow"]["s1"]["type"] == "appmixer.slack.SendDirectMessage"


def test_diff_and_revert_reject_blank_names():
    engine, execution, _ = _engine({"f-box": BOX}, _repo())
    with pytest.raises(ValidationError):
        asyncio.run(engine.diff("alice", "f-box", "   "))
    with pytest.raises(ValidationError):
        asyncio.run(engine.revert("alice", "f-box", "  "))
    assert execution.updated == {}
