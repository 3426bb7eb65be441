"""Process-wide service container for the web backend.

Every cache is an explicit object owned by :class:`AppServices` and
passed to the components that use it. Tests build their own container
(in-memory database, mock transports) and install it with
``app.dependency_overrides[get_services]``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from sanity.cache.response_cache import ResponseCache
from sanity.cache.token_cache import TokenCache
from sanity.cache.tree_cache import RemoteTreeCache
from sanity.catalog.ingest import CatalogIngestor
from sanity.catalog.service import CatalogService
from sanity.clients.catalog import CatalogClient
from sanity.clients.execution_server import ExecutionServerClient
from sanity.clients.source_control import SourceControlClient
from sanity.config.resolver import ConfigResolver
from sanity.db.database import Database, SQLiteDatabase, initialize_schema
from sanity.db.stores import ComponentStore, ConnectorStore, SettingsStore, TestRunStore
from sanity.flows.diff import FlowDiffEngine
from sanity.flows.sync import SyncOrchestrator
from sanity.rollup.engine import StatusRollupEngine


@dataclass
class AppServices:
    db: Database
    runs: TestRunStore
    connectors: ConnectorStore
    components: ComponentStore
    settings: SettingsStore
    resolver: ConfigResolver
    response_cache: ResponseCache
    token_cache: TokenCache
    tree_cache: RemoteTreeCache
    catalog: CatalogService
    ingestor: CatalogIngestor
    rollup: StatusRollupEngine
    execution: ExecutionServerClient
    source_control: SourceControlClient
    diff: FlowDiffEngine
    sync: SyncOrchestrator


def build_services(
    db: Optional[Database] = None,
    defaults: Optional[dict[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AppServices:
    """Wire every store, cache, client and engine around one database."""
    db = db or SQLiteDatabase()
    initialize_schema(db)

    runs = TestRunStore(db)
    connectors = ConnectorStore(db)
    components = ComponentStore(db)
    settings = SettingsStore(db)
    resolver = ConfigResolver(settings, defaults)

    response_cache = ResponseCache()
    token_cache = TokenCache()
    tree_cache = RemoteTreeCache()

    execution = ExecutionServerClient(resolver, token_cache, transport=transport)
    source_control = SourceControlClient(resolver, tree_cache, transport=transport)
    catalog_client = CatalogClient(resolver.modules_api_url(), transport=transport)

    return AppServices(
        db=db,
        runs=runs,
        connectors=connectors,
        components=components,
        settings=settings,
        resolver=resolver,
        response_cache=response_cache,
        token_cache=token_cache,
        tree_cache=tree_cache,
        catalog=CatalogService(runs, connectors, components, response_cache),
        ingestor=CatalogIngestor(catalog_client, runs, connectors, components, response_cache),
        rollup=StatusRollupEngine(connectors, components, response_cache),
        execution=execution,
        source_control=source_control,
        diff=FlowDiffEngine(execution, source_control),
        sync=SyncOrchestrator(execution, source_control),
    )


_services: Optional[AppServices] = None


def get_services() -> AppServices:
    """Return the singleton AppServices instance."""
    global _services
    if _services is None:
        _services = build_services()
    return _services
