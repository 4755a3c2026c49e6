"""Pluggable equality used to detect drift between desired and observed state.

Reconcilers never compare specs directly; they ask an injected
``ResourceComparer``. Production code uses :class:`DeepEqualComparer`,
tests pass a stub to force either branch.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ResourceComparer(Protocol):
    def deep_equal(self, x: Any, y: Any) -> bool: ...


class DeepEqualComparer:
    """Structural comparison.

    Dataclasses and pydantic models compare field by field through their
    generated ``__eq__``; mappings and sequences compare element-wise.
    Values of different types are never equal, so ``1`` and ``1.0`` or
    a list and a tuple count as drift.
    """

    def deep_equal(self, x: Any, y: Any) -> bool:
        if type(x) is not type(y):
            return False
        if isinstance(x, dict):
            if x.keys() != y.keys():
                return False
            return all(self.deep_equal(x[k], y[k]) for k in x)
        if isinstance(x, (list, tuple)):
            if len(x) != len(y):
                return False
            return all(self.deep_equal(a, b) for a, b in zip(x, y))
        return bool(x == y)
