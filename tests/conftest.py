"""Shared fixtures: a fake clock and an in-memory catalog database."""

from types import SimpleNamespace

import pytest
from fakes import FakeClock

from sanity.cache.response_cache import ResponseCache
from sanity.db.database import SQLiteDatabase, initialize_schema
from sanity.db.stores import ComponentStore, ConnectorStore, SettingsStore, TestRunStore
from sanity.models.catalog import Component, Connector
from sanity.rollup.engine import StatusRollupEngine


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog():
    """A test run with one connector (``c1``) holding components ``a``, ``b``, ``c``."""
    db = SQLiteDatabase(":memory:")
    initialize_schema(db)
    runs = TestRunStore(db)
    connectors = ConnectorStore(db)
    components = ComponentStore(db)
    cache = ResponseCache()

    runs.create("run1", "Nightly")
    connectors.add(Connector(id="c1", test_run_id="run1", connector_name="appmixer.box", version="1.0.0"))
    components.add_many(
        Component(id=cid, connector_id="c1", component_name=f"appmixer.box.core.{cid}")
        for cid in ("a", "b", "c")
    )
    yield SimpleNamespace(
        db=db,
        runs=runs,
        connectors=connectors,
        components=components,
        settings=SettingsStore(db),
        cache=cache,
        engine=StatusRollupEngine(connectors, components, cache),
    )
    db.close()

