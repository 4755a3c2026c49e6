"""Exception taxonomy for route-monitor.

Every primitive raises one of these instead of handling failures itself;
the caller (a reconciliation pass) decides whether to persist an error
status and whether to requeue.

Hierarchy::

    RouteMonitorError
    ├── StoreError
    │   ├── NotFoundError
    │   └── ConflictError
    ├── ValidationError
    │   ├── NoHostError
    │   ├── InvalidSLOError
    │   └── ConfigError
    ├── ReferenceConflictError
    ├── AmbiguousResourceError
    ├── ExternalServiceError
    └── LocationNotFoundError
"""

from __future__ import annotations

from typing import Optional


class RouteMonitorError(Exception):
    """Base class for all route-monitor errors."""


# ---------------------------------------------------------------------------
# Watched-resource store
# ---------------------------------------------------------------------------

class StoreError(RouteMonitorError):
    """A watched-resource store operation failed."""


class NotFoundError(StoreError):
    """The requested resource does not exist."""

    def __init__(self, kind: str, name: str, namespace: str = "") -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} '{where}' not found")


class ConflictError(StoreError):
    """A write was based on a stale copy of the resource."""


# ---------------------------------------------------------------------------
# Caller-supplied data
# ---------------------------------------------------------------------------

class ValidationError(RouteMonitorError):
    """Desired state is malformed; retrying will not help until it changes."""


class NoHostError(ValidationError):
    def __init__(self, message: str = "no host specified for the monitored route") -> None:
        super().__init__(message)


class InvalidSLOError(ValidationError):
    def __init__(self, message: str = "invalid SLO specification") -> None:
        super().__init__(message)


class ConfigError(ValidationError):
    """Operator configuration is missing or invalid."""


class ReferenceConflictError(RouteMonitorError):
    """An already bound reference was asked to point somewhere else."""

    def __init__(self, current: object, desired: object) -> None:
        self.current = current
        self.desired = desired
        super().__init__(
            f"reference is already bound to '{current}', refusing to rebind to '{desired}'"
        )


class AmbiguousResourceError(RouteMonitorError):
    """A singleton lookup returned zero or several results."""

    def __init__(self, kind: str, namespace: str, count: int) -> None:
        self.kind = kind
        self.namespace = namespace
        self.count = count
        super().__init__(
            f"invalid number of {kind}s detected in namespace '{namespace}': "
            f"expected 1, got {count}"
        )


# ---------------------------------------------------------------------------
# Dynatrace synthetic monitoring API
# ---------------------------------------------------------------------------

class ExternalServiceError(RouteMonitorError):
    """The remote monitoring API failed or answered with garbage."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        if status_code is not None:
            message = f"{message}. Status code: {status_code}"
        super().__init__(message)


class LocationNotFoundError(RouteMonitorError):
    def __init__(self, name: str, access_type: object) -> None:
        self.name = name
        self.access_type = access_type
        kind = getattr(access_type, "value", access_type)
        super().__init__(f"location '{name}' not found for location type '{kind}'")
