"""Reconcile result: what the dispatch loop should do after a step.

A pass is a chain of steps. Each step returns a ``ReconcileResult``; the
pass keeps going while the result says ``CONTINUE`` and hands anything
else back to the dispatcher.

- ``STOP``: done for now. Also returned after a successful write to the
  watched resource, since the write re-triggers a fresh pass and the
  local copy is stale.
- ``REQUEUE``: run again, immediately or after ``requeue_after`` seconds.
- ``REQUEUE_WITH_ERROR``: run again and surface ``error``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ReconcileAction(Enum):
    CONTINUE = "continue"
    STOP = "stop"
    REQUEUE = "requeue"
    REQUEUE_WITH_ERROR = "requeue_with_error"


@dataclass(frozen=True)
class ReconcileResult:
    action: ReconcileAction
    error: Optional[BaseException] = None
    requeue_after: float = 0.0

    @classmethod
    def continue_reconcile(cls) -> ReconcileResult:
        return cls(ReconcileAction.CONTINUE)

    @classmethod
    def stop(cls) -> ReconcileResult:
        return cls(ReconcileAction.STOP)

    @classmethod
    def requeue(cls, after: float = 0.0) -> ReconcileResult:
        if after < 0:
            raise ValueError("requeue delay must not be negative")
        return cls(ReconcileAction.REQUEUE, requeue_after=after)

    @classmethod
    def requeue_with(cls, error: BaseException) -> ReconcileResult:
        return cls(ReconcileAction.REQUEUE_WITH_ERROR, error=error)

    @property
    def should_continue(self) -> bool:
        return self.action is ReconcileAction.CONTINUE

    @property
    def should_requeue(self) -> bool:
        return self.action in (ReconcileAction.REQUEUE, ReconcileAction.REQUEUE_WITH_ERROR)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "error": str(self.error) if self.error is not None else "",
            "requeueAfter": self.requeue_after,
        }
