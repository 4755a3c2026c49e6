"""Drift-based sync of rendered dependent resources.

A pass renders the ServiceMonitor or PrometheusRule it wants and hands the
template to :class:`ResourceDeployer`, which creates it when missing,
updates it when the stored spec drifted, and leaves it alone otherwise.
"""

from __future__ import annotations

import logging
from typing import Optional, Type

from route_monitor.comparer import DeepEqualComparer, ResourceComparer
from route_monitor.errors import NotFoundError
from route_monitor.store import ResourceStore
from route_monitor.types import NamespacedName, Resource

logger = logging.getLogger(__name__)


class ResourceDeployer:
    def __init__(
        self,
        store: ResourceStore,
        comparer: Optional[ResourceComparer] = None,
    ) -> None:
        self.store = store
        self.comparer: ResourceComparer = comparer or DeepEqualComparer()

    def update_deployment(self, template: Resource) -> bool:
        """Converge the stored resource onto *template*.

        Returns True if anything was written. Store errors other than
        not-found propagate.
        """
        try:
            existing = self.store.get(type(template), template.key)
        except NotFoundError:
            logger.info("Creating %s %s", template.kind, template.key)
            self.store.create(template)
            return True

        if self.comparer.deep_equal(existing.spec, template.spec):  # type: ignore[attr-defined]
            return False

        logger.info("%s %s drifted from its template, updating", template.kind, template.key)
        existing.spec = template.spec  # type: ignore[attr-defined]
        existing.metadata.labels = dict(template.metadata.labels)
        self.store.update(existing)
        return True

    def delete_deployment(self, kind: Type[Resource], ref: NamespacedName) -> bool:
        """Delete the resource *ref* points at. Returns True if a delete was issued.

        An unset reference or an already missing resource is not an error.
        """
        if ref.is_zero():
            return False
        try:
            existing = self.store.get(kind, ref)
        except NotFoundError:
            return False
        logger.info("Deleting %s %s", kind.kind, ref)
        self.store.delete(existing)
        return True
