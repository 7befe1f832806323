"""
Cluster object store protocol.

Defines the generic CRUD surface the reconciler needs. Objects are plain
manifest dicts (``apiVersion``/``kind``/``metadata``/``spec``), the same
shape the Kubernetes API serves. All methods are coroutines so the
reconciler can run independent sync steps concurrently and honour
cancellation at every call.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from monitorcore.constants import (
    MONITORING_GROUP,
    MONITORING_VERSION,
    OLM_GROUP,
    OLM_VERSION_V1,
    OLM_VERSION_V1ALPHA1,
    ROLE_REF_API_GROUP,
)

Manifest = Dict[str, Any]


@dataclass(frozen=True)
class KindInfo:
    """API coordinates of a resource kind."""
    group: str
    version: str
    kind: str
    plural: str
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


class Kind(Enum):
    """Resource kinds the reconciler reads or writes."""

    NAMESPACE = KindInfo("", "v1", "Namespace", "namespaces", namespaced=False)
    SERVICE_MONITOR = KindInfo(MONITORING_GROUP, MONITORING_VERSION, "ServiceMonitor", "servicemonitors")
    ROLE_BINDING = KindInfo(ROLE_REF_API_GROUP, "v1", "RoleBinding", "rolebindings")
    SUBSCRIPTION = KindInfo(OLM_GROUP, OLM_VERSION_V1ALPHA1, "Subscription", "subscriptions")
    INSTALL_PLAN = KindInfo(OLM_GROUP, OLM_VERSION_V1ALPHA1, "InstallPlan", "installplans")
    OPERATOR_GROUP = KindInfo(OLM_GROUP, OLM_VERSION_V1, "OperatorGroup", "operatorgroups")

    @property
    def info(self) -> KindInfo:
        return self.value

    def __str__(self) -> str:
        return self.value.kind


@runtime_checkable
class ClusterClient(Protocol):
    """
    Protocol defining the cluster object store.

    Errors:
        NotFoundError: get/update/delete of a missing object
        AlreadyExistsError: create of an existing object
        ClusterAPIError: any other API failure
    """

    async def get(self, kind: Kind, namespace: Optional[str], name: str) -> Manifest:
        """Fetch one object."""
        ...

    async def list(
        self,
        kind: Kind,
        namespace: Optional[str] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> List[Manifest]:
        """
        List objects matching every label in ``labels``.

        ``namespace=None`` lists across all namespaces.
        """
        ...

    async def create(self, kind: Kind, manifest: Manifest) -> Manifest:
        """Create an object; namespace and name come from its metadata."""
        ...

    async def update(self, kind: Kind, manifest: Manifest) -> Manifest:
        """Replace an existing object."""
        ...

    async def delete(self, kind: Kind, namespace: Optional[str], name: str) -> None:
        """Delete one object."""
        ...


def format_label_selector(labels: Optional[Dict[str, str]]) -> Optional[str]:
    """Render an equality selector (``a=b,c=d``) for the Kubernetes API."""
    if not labels:
        return None
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


def matches_labels(manifest: Manifest, labels: Optional[Dict[str, str]]) -> bool:
    if not labels:
        return True
    current = (manifest.get("metadata") or {}).get("labels") or {}
    return all(current.get(k) == v for k, v in labels.items())


def name_of(manifest: Manifest) -> str:
    return (manifest.get("metadata") or {}).get("name", "")


def namespace_of(manifest: Manifest) -> Optional[str]:
    return (manifest.get("metadata") or {}).get("namespace")


def new_manifest(
    kind: Kind,
    name: str,
    namespace: Optional[str] = None,
    labels: Optional[Dict[str, str]] = None,
    **body: Any,
) -> Manifest:
    """Build a manifest skeleton for ``kind``."""
    metadata: Dict[str, Any] = {"name": name}
    if namespace is not None and kind.info.namespaced:
        metadata["namespace"] = namespace
    if labels:
        metadata["labels"] = dict(labels)
    manifest: Manifest = {
        "apiVersion": kind.info.api_version,
        "kind": kind.info.kind,
        "metadata": metadata,
    }
    manifest.update(body)
    return manifest
