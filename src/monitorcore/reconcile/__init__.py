"""
Monitoring reconciliation engine.

Components, leaves first:
- install: OperatorInstallTracker (install plan gate)
- namespaces: list_eligible_namespaces
- servicemonitors: ServiceMonitorMirror (mark-and-sweep)
- rolebindings: RoleBindingProvisioner
- reconciler: Reconciler (one pass, phase aggregation)
"""

from monitorcore.reconcile.install import OperatorInstallTracker
from monitorcore.reconcile.namespaces import list_eligible_namespaces
from monitorcore.reconcile.reconciler import Reconciler
from monitorcore.reconcile.rolebindings import RoleBindingProvisioner, desired_role_binding
from monitorcore.reconcile.servicemonitors import ServiceMonitorMirror, build_clone

__all__ = [
    "OperatorInstallTracker",
    "list_eligible_namespaces",
    "Reconciler",
    "RoleBindingProvisioner",
    "desired_role_binding",
    "ServiceMonitorMirror",
    "build_clone",
]
