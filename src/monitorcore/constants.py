"""
Label, name and API constants for monitoring reconciliation.

Every value here is part of the on-cluster contract: objects created by
one release must still be recognised by the next, so these strings must
not drift.
"""

from __future__ import annotations

from enum import Enum

# =============================================================================
# Ownership labels
# =============================================================================

# Stamped on namespaces and managed objects; value is the Installation UID
OWNER_LABEL_KEY = "integreatly.org/installation-uid"

# Marks a ServiceMonitor in the monitoring namespace as a mirrored copy
CLONED_SERVICEMONITOR_LABEL_KEY = "integreatly.org/cloned-servicemonitor"
CLONED_SERVICEMONITOR_LABEL_VALUE = "true"

# Provenance annotations on clones
SOURCE_NAMESPACE_ANNOTATION = "integreatly.org/source-namespace"
SOURCE_NAME_ANNOTATION = "integreatly.org/source-name"

# =============================================================================
# Namespace eligibility
# =============================================================================

MONITORING_LABEL_KEY = "monitoring-key"
MONITORING_LABEL_VALUE = "middleware"

# =============================================================================
# RoleBinding granting the cluster scraper read access
# =============================================================================

ROLE_BINDING_NAME = "rhmi-prometheus-k8s"
ROLE_REF_API_GROUP = "rbac.authorization.k8s.io"
ROLE_REF_KIND = "ClusterRole"
ROLE_REF_NAME = "view"

CLUSTER_MONITORING_NAMESPACE = "openshift-monitoring"
CLUSTER_MONITORING_SERVICE_ACCOUNT = "prometheus-k8s"

# =============================================================================
# Product identity
# =============================================================================

PRODUCT_NAME = "monitoring-spec"
DEFAULT_INSTALLATION_NAMESPACE = "monitoring"

# Product config keys
CONFIG_KEY_NAMESPACE = "NAMESPACE"
CONFIG_KEY_OPERATOR_NAMESPACE = "OPERATOR_NAMESPACE"
CONFIG_KEY_VERSION = "VERSION"
CONFIG_KEY_OPERATOR_VERSION = "OPERATOR_VERSION"

# =============================================================================
# Operator Lifecycle Manager
# =============================================================================

INSTALL_PLAN_PHASE_COMPLETE = "Complete"

OLM_GROUP = "operators.coreos.com"
OLM_VERSION_V1ALPHA1 = "v1alpha1"
OLM_VERSION_V1 = "v1"

MONITORING_GROUP = "monitoring.coreos.com"
MONITORING_VERSION = "v1"


class ApprovalStrategy(str, Enum):
    """Install plan approval modes understood by the subscription manager."""
    AUTOMATIC = "Automatic"
    MANUAL = "Manual"


class MetricName(str, Enum):
    """Canonical instrument names emitted by the reconciler."""

    PASSES = "monitoring.reconcile.passes"
    CLONES_UPSERTED = "monitoring.servicemonitor.upserted"
    CLONES_PRUNED = "monitoring.servicemonitor.pruned"
    BINDINGS_CREATED = "monitoring.rolebinding.created"
    BINDINGS_REMOVED = "monitoring.rolebinding.removed"
