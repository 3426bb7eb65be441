"""Cached read side of the catalog tracker plus run-level mutations.

Reads return plain dicts (the JSON the web layer serves) and go through
the :class:`ResponseCache`; mutations invalidate the affected views.
"""

from __future__ import annotations

import logging

from sanity.cache.response_cache import CacheKeys, ResponseCache, safe_invalidate
from sanity.db.stores import ComponentStore, ConnectorStore, TestRunStore
from sanity.errors import NotFoundError, ValidationError
from sanity.models.catalog import TestRunStatus

logger = logging.getLogger(__name__)

RUN_STATUSES = {s.value for s in TestRunStatus}


class CatalogService:
    def __init__(
        self,
        runs: TestRunStore,
        connectors: ConnectorStore,
        components: ComponentStore,
        cache: ResponseCache,
    ) -> None:
        self.runs = runs
        self.connectors = connectors
        self.components = components
        self.cache = cache

    # -- reads -------------------------------------------------------------

    def list_test_runs(self) -> list[dict]:
        return self.cache.get_or_load(
            CacheKeys.TEST_RUNS, lambda: [r.to_dict() for r in self.runs.list_all()]
        )

    def get_test_run(self, run_id: str) -> dict:
        def load() -> dict | None:
            run = self.runs.get(run_id)
            return run.to_dict() if run else None

        run = self.cache.get_or_load(CacheKeys.test_run(run_id), load)
        if run is None:
            raise NotFoundError("Test run not found")
        return run

    def list_connectors(self, run_id: str) -> list[dict]:
        self.get_test_run(run_id)
        return self.cache.get_or_load(
            CacheKeys.connectors(run_id),
            lambda: [c.to_dict() for c in self.connectors.list_by_test_run(run_id)],
        )

    def get_connector(self, connector_id: str) -> dict:
        """Connector detail with its components embedded."""

        def load() -> dict | None:
            connector = self.connectors.get(connector_id)
            if connector is None:
                return None
            body = connector.to_dict()
            body["components"] = self.cache.get_or_load(
                CacheKeys.components(connector_id),
                lambda: [c.to_dict() for c in self.components.list_by_connector(connector_id)],
            )
            return body

        connector = self.cache.get_or_load(CacheKeys.connector(connector_id), load)
        if connector is None:
            raise NotFoundError("Connector not found")
        return connector

    def get_report(self, run_id: str) -> dict:
        run = self.get_test_run(run_id)

        def load() -> dict:
            report = self.runs.daily_report(run_id)
            report["test_run"] = run
            return report

        return self.cache.get_or_load(CacheKeys.report(run_id), load)

    # -- mutations ---------------------------------------------------------

    def update_test_run_status(self, run_id: str, status: str) -> dict:
        if status not in RUN_STATUSES:
            raise ValidationError(f"Invalid status: {status!r}")
        if self.runs.get(run_id) is None:
            raise NotFoundError("Test run not found")
        self.runs.update_status(run_id, status)
        safe_invalidate(
            lambda: self.cache.invalidate_test_run_views(run_id), f"test run {run_id}"
        )
        return self.get_test_run(run_id)

    def delete_test_run(self, run_id: str) -> None:
        if self.runs.get(run_id) is None:
            raise NotFoundError("Test run not found")
        connector_ids = [c.id for c in self.connectors.list_by_test_run(run_id)]
        self.runs.delete(run_id)
        logger.info("Deleted test run %s (%d connectors)", run_id, len(connector_ids))

        def invalidate() -> None:
            self.cache.invalidate_test_run_views(run_id)
            self.cache.invalidate(CacheKeys.connectors(run_id))
            for connector_id in connector_ids:
                self.cache.invalidate(CacheKeys.connector(connector_id))
                self.cache.invalidate(CacheKeys.components(connector_id))

        safe_invalidate(invalidate, f"test run {run_id}")
