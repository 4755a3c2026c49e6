"""Finalizer bookkeeping.

A finalizer key on a resource blocks its deletion until the operator has
confirmed that the external cleanup it guards is done.
"""

from __future__ import annotations

from typing import List, Protocol, runtime_checkable


@runtime_checkable
class Finalizable(Protocol):
    def get_finalizers(self) -> List[str]: ...

    def set_finalizers(self, finalizers: List[str]) -> None: ...


def has_finalizer(obj: Finalizable, key: str) -> bool:
    return key in obj.get_finalizers()


def add_finalizer(obj: Finalizable, key: str) -> bool:
    """Attach *key* to *obj*. Returns True only if it was not there yet."""
    finalizers = obj.get_finalizers()
    if key in finalizers:
        return False
    finalizers.append(key)
    obj.set_finalizers(finalizers)
    return True


def remove_finalizer(obj: Finalizable, key: str) -> bool:
    """Detach *key* from *obj*. Returns True only if it was present."""
    finalizers = obj.get_finalizers()
    if key not in finalizers:
        return False
    obj.set_finalizers([f for f in finalizers if f != key])
    return True
