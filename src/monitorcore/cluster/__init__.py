"""
Cluster object store for the monitoring reconciler.

Backends:
- KubernetesClusterClient: real API server (``kubernetes`` client)
- InMemoryClusterClient: deterministic fake with failure injection

Example:
    from monitorcore.cluster import InMemoryClusterClient, Kind

    cluster = InMemoryClusterClient()
    await cluster.create(Kind.NAMESPACE, {"metadata": {"name": "fuse"}})
"""

from monitorcore.cluster.base import (
    ClusterClient,
    Kind,
    KindInfo,
    Manifest,
    format_label_selector,
    matches_labels,
    name_of,
    namespace_of,
    new_manifest,
)
from monitorcore.cluster.kubernetes import KubernetesClusterClient, load_api_client
from monitorcore.cluster.memory import InMemoryClusterClient

__all__ = [
    "ClusterClient",
    "Kind",
    "KindInfo",
    "Manifest",
    "format_label_selector",
    "matches_labels",
    "name_of",
    "namespace_of",
    "new_manifest",
    "KubernetesClusterClient",
    "load_api_client",
    "InMemoryClusterClient",
]
