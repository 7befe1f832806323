"""
MonitorCore - monitoring reconciliation for a multi-product platform.

Installs the monitoring operator, mirrors ServiceMonitors from product
namespaces into the central monitoring namespace, grants the cluster
scraper read access to each product namespace and removes whatever no
longer belongs.

Key Features:
- Label-based ownership: no side index, every pass is stateless
- Mark-and-sweep garbage collection of mirrored ServiceMonitors
- Per-namespace failure isolation
- Kubernetes and in-memory cluster stores behind one async interface

Example usage:
    from monitorcore import Reconciler, KubernetesClusterClient
    from monitorcore.config_store import ConfigMapConfigReadWriter

    cluster = KubernetesClusterClient.from_config()
    reconciler = Reconciler(ConfigMapConfigReadWriter.from_settings(cluster.core_api, "rhmi"))
    result = await reconciler.reconcile(installation, product_status, cluster)
"""

__version__ = "0.1.0"
__all__ = [
    "Reconciler",
    "ReconcileResult",
    "Phase",
    "Installation",
    "ProductStatus",
    "InMemoryClusterClient",
    "KubernetesClusterClient",
    "__version__",
]


# Lazy imports: ``import monitorcore`` loads no submodules until one is used
def __getattr__(name: str):
    if name == "Reconciler":
        from monitorcore.reconcile.reconciler import Reconciler
        return Reconciler
    if name in ("ReconcileResult", "Phase", "Installation", "ProductStatus"):
        from monitorcore import models
        return getattr(models, name)
    if name == "InMemoryClusterClient":
        from monitorcore.cluster.memory import InMemoryClusterClient
        return InMemoryClusterClient
    if name == "KubernetesClusterClient":
        from monitorcore.cluster.kubernetes import KubernetesClusterClient
        return KubernetesClusterClient
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
