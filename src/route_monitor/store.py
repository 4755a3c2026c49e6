"""Watched-resource store.

``ResourceStore`` is the interface the reconcile primitives consume; a
cluster-backed implementation lives outside this package.
``InMemoryStore`` follows the same semantics closely enough to run
reconcilers against it in tests and embedded setups:

- reads and writes hand out copies, never shared references
- writes carry a ``resource_version`` and stale writes raise
  ``ConflictError``
- ``update`` ignores the status sub-resource, ``update_status`` ignores
  everything else
- deleting an object that still has finalizers only marks it with a
  deletion timestamp; it disappears once the last finalizer is removed
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Protocol, Tuple, Type, TypeVar

from route_monitor.errors import ConflictError, NotFoundError, StoreError
from route_monitor.types import NamespacedName, Resource

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Resource)


class ResourceStore(Protocol):
    def get(self, cls: Type[T], ref: NamespacedName) -> T: ...

    def list(self, cls: Type[T], namespace: Optional[str] = None) -> List[T]: ...

    def create(self, obj: Resource) -> None: ...

    def update(self, obj: Resource) -> None: ...

    def update_status(self, obj: Resource) -> None: ...

    def delete(self, obj: Resource) -> None: ...


_Key = Tuple[str, str, str]


def _key(kind: str, namespace: str, name: str) -> _Key:
    return (kind, namespace, name)


class InMemoryStore:
    """Dict-backed ``ResourceStore`` with optimistic concurrency."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._objects: Dict[_Key, Resource] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def _lookup(self, obj: Resource) -> Resource:
        key = _key(obj.kind, obj.metadata.namespace, obj.metadata.name)
        stored = self._objects.get(key)
        if stored is None:
            raise NotFoundError(obj.kind, obj.metadata.name, obj.metadata.namespace)
        if obj.metadata.resource_version != stored.metadata.resource_version:
            raise ConflictError(
                f"{obj.kind} '{obj.key}' was modified: have resource version "
                f"{obj.metadata.resource_version}, stored {stored.metadata.resource_version}"
            )
        return stored

    def _commit(self, obj: Resource, stored_version: int) -> None:
        obj.metadata.resource_version = stored_version + 1
        key = _key(obj.kind, obj.metadata.namespace, obj.metadata.name)
        if obj.metadata.is_being_deleted and not obj.metadata.finalizers:
            logger.debug("Finalizers cleared, removing %s %s", obj.kind, obj.key)
            self._objects.pop(key, None)
            return
        self._objects[key] = copy.deepcopy(obj)

    # -- reads --

    def get(self, cls: Type[T], ref: NamespacedName) -> T:
        with self._lock:
            stored = self._objects.get(_key(cls.kind, ref.namespace, ref.name))
            if stored is None:
                raise NotFoundError(cls.kind, ref.name, ref.namespace)
            return copy.deepcopy(stored)  # type: ignore[return-value]

    def list(self, cls: Type[T], namespace: Optional[str] = None) -> List[T]:
        with self._lock:
            items = [
                copy.deepcopy(obj)
                for (kind, ns, _), obj in sorted(self._objects.items())
                if kind == cls.kind and (namespace is None or ns == namespace)
            ]
        return items  # type: ignore[return-value]

    # -- writes --

    def create(self, obj: Resource) -> None:
        with self._lock:
            key = _key(obj.kind, obj.metadata.namespace, obj.metadata.name)
            if key in self._objects:
                raise ConflictError(f"{obj.kind} '{obj.key}' already exists")
            obj.metadata.resource_version = 1
            self._objects[key] = copy.deepcopy(obj)
        logger.debug("Created %s %s", obj.kind, obj.key)

    def update(self, obj: Resource) -> None:
        with self._lock:
            stored = self._lookup(obj)
            if hasattr(stored, "status"):
                obj.status = copy.deepcopy(stored.status)  # type: ignore[attr-defined]
            obj.metadata.deletion_timestamp = stored.metadata.deletion_timestamp
            self._commit(obj, stored.metadata.resource_version)
        logger.debug("Updated %s %s", obj.kind, obj.key)

    def update_status(self, obj: Resource) -> None:
        with self._lock:
            stored = self._lookup(obj)
            if not hasattr(stored, "status"):
                raise StoreError(f"{obj.kind} has no status sub-resource")
            updated = copy.deepcopy(stored)
            updated.status = copy.deepcopy(obj.status)  # type: ignore[attr-defined]
            self._commit(updated, stored.metadata.resource_version)
            obj.metadata.resource_version = updated.metadata.resource_version
        logger.debug("Updated status of %s %s", obj.kind, obj.key)

    def delete(self, obj: Resource) -> None:
        with self._lock:
            key = _key(obj.kind, obj.metadata.namespace, obj.metadata.name)
            stored = self._objects.get(key)
            if stored is None:
                raise NotFoundError(obj.kind, obj.metadata.name, obj.metadata.namespace)
            if stored.metadata.finalizers:
                if not stored.metadata.is_being_deleted:
                    stored.metadata.deletion_timestamp = self._clock()
                    stored.metadata.resource_version += 1
                logger.debug("Marked %s %s for deletion", obj.kind, obj.key)
                return
            del self._objects[key]
        logger.debug("Deleted %s %s", obj.kind, obj.key)

    def __len__(self) -> int:
        return len(self._objects)
