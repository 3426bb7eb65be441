"""Status rollup: keep a connector's status derived from its components.

Connector states::

    pending ──┐
    ok      ──┼── derived automatically from component statuses
    fail    ──┘
    blocked ───── set and cleared only by an explicit transition

Every component status write recomputes the parent connector. The derived
status is written only when the connector is not blocked, then every
cached view embedding the connector is invalidated.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from sanity.cache.response_cache import ResponseCache, safe_invalidate
from sanity.db.stores import ComponentStore, ConnectorStore
from sanity.errors import NotFoundError, ValidationError
from sanity.models.catalog import Component, ComponentStatus, Connector, ConnectorStatus

logger = logging.getLogger(__name__)

ISSUE_URL_PATTERN = re.compile(r"^https://github\.com/[\w.-]+/[\w.-]+/issues/\d+$")

COMPONENT_STATUSES = {s.value for s in ComponentStatus}
CONNECTOR_STATUSES = {s.value for s in ConnectorStatus}


def compute_connector_status(total: int, ok_count: int, fail_count: int) -> str:
    """Derive a connector status from component counts.

    ``fail`` if any component failed, ``ok`` if there is at least one
    component and all are ok, ``pending`` otherwise.
    """
    if fail_count > 0:
        return ConnectorStatus.fail.value
    if total > 0 and ok_count == total:
        return ConnectorStatus.ok.value
    return ConnectorStatus.pending.value


def rollup_statuses(statuses: Iterable[str]) -> str:
    """Same as :func:`compute_connector_status` for a list of component statuses."""
    statuses = list(statuses)
    return compute_connector_status(
        total=len(statuses),
        ok_count=sum(1 for s in statuses if s == ComponentStatus.ok.value),
        fail_count=sum(1 for s in statuses if s == ComponentStatus.fail.value),
    )


def validate_issue_references(issues: Iterable[str]) -> list[str]:
    cleaned: list[str] = []
    for issue in issues:
        issue = (issue or "").strip()
        if not issue:
            continue
        if not ISSUE_URL_PATTERN.match(issue):
            raise ValidationError(f"Invalid GitHub issue URL format: {issue}")
        if issue not in cleaned:
            cleaned.append(issue)
    return cleaned


class StatusRollupEngine:
    """Applies component and connector status changes.

    Parameters
    ----------
    connectors, components : stores
        Persistence for the two entity kinds.
    cache : ResponseCache
        Invalidated after every committed mutation.
    """

    def __init__(
        self,
        connectors: ConnectorStore,
        components: ComponentStore,
        cache: ResponseCache,
    ) -> None:
        self.connectors = connectors
        self.components = components
        self.cache = cache

    # -- component writes ------------------------------------------------

    def update_component_status(
        self,
        component_id: str,
        status: str,
        github_issues: Iterable[str] = (),
    ) -> Component:
        """Set a component's status and roll the change up to its connector.

        Issue references are kept only for failed components.
        """
        if status not in COMPONENT_STATUSES:
            raise ValidationError(f"Invalid status: {status!r}")
        issues = validate_issue_references(github_issues)

        component = self.components.get(component_id)
        if component is None:
            raise NotFoundError("Component not found")

        if status != ComponentStatus.fail.value:
            issues = []
        self.components.update_status(component_id, status, issues)
        self.recalculate(component.connector_id)
        return self.components.get(component_id)  # type: ignore[return-value]

    # -- connector writes ------------------------------------------------

    def recalculate(self, connector_id: str) -> str:
        """Recompute the connector's derived status and invalidate its views.

        Returns the candidate status, which is not applied when the
        connector is blocked.
        """
        total, ok_count, fail_count = self.connectors.component_stats(connector_id)
        candidate = compute_connector_status(total, ok_count, fail_count)

        connector = self.connectors.get(connector_id)
        if connector is None:
            return candidate
        if connector.status != ConnectorStatus.blocked.value:
            if connector.status != candidate:
                self.connectors.set_derived_status(connector_id, candidate)
                logger.debug(
                    "Connector %s rolled up %s -> %s", connector_id, connector.status, candidate
                )
        self._invalidate(connector, components=True)
        return candidate

    def update_connector_status(
        self,
        connector_id: str,
        status: str,
        blocked_reason: str | None = None,
    ) -> Connector:
        """Explicit transition, the only way in and out of ``blocked``."""
        if status not in CONNECTOR_STATUSES:
            raise ValidationError(f"Invalid status: {status!r}")
        reason = (blocked_reason or "").strip()
        if status == ConnectorStatus.blocked.value and not reason:
            raise ValidationError("Blocked reason is required")

        connector = self.connectors.get(connector_id)
        if connector is None:
            raise NotFoundError("Connector not found")

        self.connectors.update_status(
            connector_id,
            status,
            reason if status == ConnectorStatus.blocked.value else None,
        )
        self._invalidate(connector)
        return self.connectors.get(connector_id)  # type: ignore[return-value]

    def update_connector_notes(self, connector_id: str, notes: str) -> Connector:
        connector = self.connectors.get(connector_id)
        if connector is None:
            raise NotFoundError("Connector not found")
        self.connectors.update_notes(connector_id, notes)
        self._invalidate(connector)
        return self.connectors.get(connector_id)  # type: ignore[return-value]

    def _invalidate(self, connector: Connector, components: bool = False) -> None:
        if components:
            safe_invalidate(
                lambda: self.cache.invalidate_component_views(connector.id, connector.test_run_id),
                f"components of connector {connector.id}",
            )
        else:
            safe_invalidate(
                lambda: self.cache.invalidate_connector_views(connector.id, connector.test_run_id),
                f"connector {connector.id}",
            )
