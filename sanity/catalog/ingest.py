"""Catalog snapshot ingestion: create a test run from the live catalog.

Components are fetched per connector through the batch executor; a
connector whose component fetch fails is still recorded, with no
components.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from sanity.batch.executor import BatchExecutor, BatchProgress
from sanity.cache.response_cache import CacheKeys, ResponseCache, safe_invalidate
from sanity.clients.catalog import CatalogClient, CatalogComponent, CatalogConnector
from sanity.db.stores import ComponentStore, ConnectorStore, TestRunStore
from sanity.errors import ValidationError
from sanity.models.catalog import Component, Connector

logger = logging.getLogger(__name__)

ProgressEvent = dict[str, Any]
EventSink = Callable[[ProgressEvent], None]


def new_id() -> str:
    return uuid.uuid4().hex[:21]


@dataclass
class IngestResult:
    run_id: str
    connector_count: int
    component_count: int
    failed_connectors: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.run_id,
            "success": True,
            "connector_count": self.connector_count,
            "component_count": self.component_count,
            "failed_connectors": self.failed_connectors,
        }


class CatalogIngestor:
    def __init__(
        self,
        catalog: CatalogClient,
        runs: TestRunStore,
        connectors: ConnectorStore,
        components: ComponentStore,
        cache: ResponseCache,
        executor: BatchExecutor | None = None,
    ) -> None:
        self.catalog = catalog
        self.runs = runs
        self.connectors = connectors
        self.components = components
        self.cache = cache
        self.executor = executor or BatchExecutor(concurrency=5)

    async def create_test_run(self, name: str, emit: EventSink | None = None) -> IngestResult:
        """Snapshot the catalog into a new test run.

        ``emit`` receives progress events with a ``step`` of ``init``,
        ``fetching``, ``fetched``, ``progress`` and ``done``.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")

        def send(event: ProgressEvent) -> None:
            if emit is not None:
                emit(event)

        run_id = new_id()
        send({"step": "init", "message": "Creating test run..."})
        self.runs.create(run_id, name)
        safe_invalidate(lambda: self.cache.invalidate(CacheKeys.TEST_RUNS), "test run list")

        send({"step": "fetching", "message": "Fetching connectors from API..."})
        catalog_connectors = await self.catalog.fetch_all_connectors()
        total = len(catalog_connectors)
        send({"step": "fetched", "message": f"Found {total} connectors", "total": total})

        component_counts: dict[str, int] = {}

        async def ingest(connector: CatalogConnector) -> int:
            connector_id = self._store_connector(run_id, connector)
            found = await self.catalog.fetch_components(connector.name, connector.version)
            self._store_components(connector_id, found)
            component_counts[connector.name] = len(found)
            return len(found)

        def on_progress(progress: BatchProgress) -> None:
            send(
                {
                    "step": "progress",
                    "completed": progress.completed,
                    "total": progress.total,
                    "current": progress.current,
                    "component_count": component_counts.get(progress.current, 0),
                }
            )

        result = await self.executor.run(
            catalog_connectors,
            ingest,
            default=0,
            on_progress=on_progress,
            describe=lambda c: c.name,
        )

        component_total = sum(r or 0 for r in result.results)
        failed = [f.item.name for f in result.failures]
        logger.info(
            "Test run %s ingested: %d connectors, %d components, %d fetch failures",
            run_id,
            total,
            component_total,
            len(failed),
        )
        send(
            {
                "step": "done",
                "id": run_id,
                "connector_count": total,
                "component_count": component_total,
            }
        )
        return IngestResult(run_id, total, component_total, failed)

    def _store_connector(self, run_id: str, connector: CatalogConnector) -> str:
        connector_id = new_id()
        self.connectors.add(
            Connector(
                id=connector_id,
                test_run_id=run_id,
                connector_name=connector.name,
                version=connector.version,
                label=connector.label,
                description=connector.description,
                icon=connector.icon,
            )
        )
        return connector_id

    def _store_components(self, connector_id: str, found: list[CatalogComponent]) -> None:
        if not found:
            return
        self.components.add_many(
            Component(
                id=new_id(),
                connector_id=connector_id,
                component_name=c.name,
                label=c.label,
                description=c.description,
                icon=c.icon,
                version=c.version,
                is_private=c.private,
            )
            for c in found
        )
