"""Tests for catalog snapshot ingestion, version selection and the cached read side."""

import asyncio

import pytest

from sanity.batch.executor import BatchExecutor
from sanity.cache.response_cache import CacheKeys
from sanity.catalog.ingest import CatalogIngestor
from sanity.catalog.service import CatalogService
from sanity.clients.catalog import CatalogComponent, CatalogConnector, select_version, version_key
from sanity.errors import NotFoundError, UpstreamRequestError, ValidationError


class FakeCatalog:
    def __init__(self, connectors, components, failing=()):
        self.connectors = connectors
        self.components = components
        self.failing = set(failing)

    async def fetch_all_connectors(self):
        return list(self.connectors)

    async def fetch_components(self, name, version):
        if name in self.failing:
            raise UpstreamRequestError(f"Fetch components for {name} failed: 500", status=500)
        return list(self.components.get(name, []))


def _fake_catalog():
    return FakeCatalog(
        connectors=[
            CatalogConnector("appmixer.slack", "2.1.0", label="Slack"),
            CatalogConnector("appmixer.asana", "1.0.0", label="Asana"),
            CatalogConnector("appmixer.drive", "3.0.0", label="Drive"),
        ],
        components={
            "appmixer.slack": [
                CatalogComponent("appmixer.slack.messages.SendMessage"),
                CatalogComponent("appmixer.slack.messages.NewMessage", private=True),
            ],
            "appmixer.drive": [CatalogComponent("appmixer.drive.files.Copy")],
        },
        failing={"appmixer.asana"},
    )


def _ingestor(catalog):
    return CatalogIngestor(
        _fake_catalog(),
        catalog.runs,
        catalog.connectors,
        catalog.components,
        catalog.cache,
        executor=BatchExecutor(concurrency=2),
    )


def _service(catalog):
    return CatalogService(catalog.runs, catalog.connectors, catalog.components, catalog.cache)


# --- Version selection ---


def test_version_key_orders_semantically():
    assert version_key("1.10.0") > version_key("1.9.3")
    assert version_key("2.0.0") > version_key("2.0.0-beta.1")
    assert version_key("1.0.0") > version_key("garbage")


def test_select_version_takes_highest():
    assert select_version({"1.2.0": {}, "1.10.0": {}, "1.9.9": {}}) == "1.10.0"


# --- Ingestion ---


def test_ingest_records_every_connector(catalog):
    events = []
    result = asyncio.run(_ingestor(catalog).create_test_run("  Weekly  ", emit=events.append))

    assert result.connector_count == 3
    assert result.component_count == 3
    assert result.failed_connectors == ["appmixer.asana"]

    run = catalog.runs.get(result.run_id)
    assert run.name == "Weekly"
    assert run.connector_count == 3

    by_name = {c.connector_name: c for c in catalog.connectors.list_by_test_run(result.run_id)}
    assert by_name["appmixer.asana"].component_count == 0
    assert by_name["appmixer.slack"].component_count == 2
    assert all(c.status == "pending" for c in by_name.values())

    steps = [e["step"] for e in events]
    assert steps[:3] == ["init", "fetching", "fetched"]
    assert steps.count("progress") == 3
    assert steps[-1] == "done"
    assert events[-1]["id"] == result.run_id
    completed = [e["completed"] for e in events if e["step"] == "progress"]
    assert completed == [1, 2, 3]


def test_ingest_requires_name(catalog):
    with pytest.raises(ValidationError):
        asyncio.run(_ingestor(catalog).create_test_run("   "))


def test_ingest_invalidates_run_list(catalog):
    service = _service(catalog)
    assert len(service.list_test_runs()) == 1
    asyncio.run(_ingestor(catalog).create_test_run("Weekly"))
    assert len(service.list_test_runs()) == 2


# --- Cached reads and run mutations ---


def test_get_connector_embeds_components(catalog):
    connector = _service(catalog).get_connector("c1")
    assert [c["id"] for c in connector["components"]] == ["a", "b", "c"]
    assert connector["component_count"] == 3
    assert catalog.cache.get(CacheKeys.components("c1")) is not None


def test_reads_reflect_component_updates(catalog):
    service = _service(catalog)
    assert service.get_connector("c1")["status"] == "pending"
    assert service.list_test_runs()[0]["ok_count"] == 0

    for cid in ("a", "b", "c"):
        catalog.engine.update_component_status(cid, "ok")

    assert service.get_connector("c1")["status"] == "ok"
    assert service.list_connectors("run1")[0]["ok_count"] == 3
    assert service.list_test_runs()[0]["ok_count"] == 1


def test_missing_entities(catalog):
    service = _service(catalog)
    with pytest.raises(NotFoundError):
        service.get_test_run("nope")
    with pytest.raises(NotFoundError):
        service.get_connector("nope")
    with pytest.raises(NotFoundError):
        service.list_connectors("nope")


def test_update_test_run_status(catalog):
    service = _service(catalog)
    assert service.get_test_run("run1")["status"] == "in_progress"
    assert service.update_test_run_status("run1", "completed")["status"] == "completed"
    with pytest.raises(ValidationError):
        service.update_test_run_status("run1", "archived")


def test_delete_test_run_cascades(catalog):
    service = _service(catalog)
    service.get_connector("c1")
    service.delete_test_run("run1")

    assert service.list_test_runs() == []
    assert catalog.components.get("a") is None
    with pytest.raises(NotFoundError):
        service.get_connector("c1")
    with pytest.raises(NotFoundError):
        service.delete_test_run("run1")


def test_report(catalog):
    catalog.engine.update_component_status("a", "ok")
    catalog.engine.update_component_status(
        "b", "fail", ["https://github.com/clientIO/appmixer-connectors/issues/12"]
    )
    report = _service(catalog).get_report("run1")

    assert report["test_run"]["id"] == "run1"
    assert report["totals"] == {"components": 3, "ok": 1, "fail": 1, "pending": 1}
    assert len(report["days"]) == 1
    assert report["days"][0]["tested"] == 2
    assert report["failed_components"][0]["github_issues"] == [
        "https://github.com/clientIO/appmixer-connectors/issues/12"
    ]
    assert report["blocked_connectors"] == []
