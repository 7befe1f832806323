"""
Exception taxonomy for monitoring reconciliation.

Leaf operations raise these; only the orchestrator turns them into a
phase. Every cluster-level error carries the resource coordinates so the
failure can be diagnosed without re-running the pass.
"""

from __future__ import annotations

from typing import Dict, Optional


class MonitoringError(Exception):
    """Base class for all reconciliation errors."""


class ConfigError(MonitoringError):
    """The monitoring product config could not be read."""


class ConfigPersistError(ConfigError):
    """The defaulted product config could not be written back."""


class TransientInstallError(MonitoringError):
    """The operator installer failed; retried on the next pass."""


class ClusterAPIError(MonitoringError):
    """A cluster store call failed."""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        status: Optional[int] = None,
    ):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.status = status
        super().__init__(message)

    @property
    def resource(self) -> str:
        """Human-readable ``kind namespace/name`` coordinates."""
        parts = [self.kind or "object"]
        if self.namespace and self.name:
            parts.append(f"{self.namespace}/{self.name}")
        elif self.name or self.namespace:
            parts.append(self.name or self.namespace)
        return " ".join(parts)


class NotFoundError(ClusterAPIError):
    """The requested object does not exist."""


class AlreadyExistsError(ClusterAPIError):
    """A create collided with an existing object."""


class NamespaceListError(MonitoringError):
    """Listing eligible namespaces failed; the pass cannot continue."""


class ResourceSyncError(MonitoringError):
    """Syncing one namespace failed."""

    def __init__(self, namespace: str, cause: BaseException):
        self.namespace = namespace
        self.cause = cause
        super().__init__(f"namespace {namespace}: {cause}")


class PartialSyncError(MonitoringError):
    """
    One or more namespaces failed during a sync step.

    ``failures`` maps each failed namespace to its ``ResourceSyncError``.
    Namespaces not listed there converged normally.
    """

    def __init__(self, step: str, failures: Dict[str, BaseException]):
        self.step = step
        self.failures = dict(failures)
        detail = "; ".join(
            f"{ns}: {getattr(err, 'cause', err)}" for ns, err in sorted(self.failures.items())
        )
        super().__init__(
            f"{step} failed for {len(self.failures)} namespace(s): {detail}"
        )
