"""
Scraper RoleBinding provisioning.

Each eligible namespace gets one RoleBinding that grants the cluster
monitoring service account read access. Bindings are removed from
namespaces that are no longer eligible; the namespaces to check are
those still labelled as owned by this installation plus any namespace
holding a binding marked with its owner label.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from monitorcore.cluster.base import ClusterClient, Kind, Manifest, name_of, namespace_of, new_manifest
from monitorcore.constants import (
    CLUSTER_MONITORING_NAMESPACE,
    CLUSTER_MONITORING_SERVICE_ACCOUNT,
    MetricName,
    ROLE_BINDING_NAME,
    ROLE_REF_API_GROUP,
    ROLE_REF_KIND,
    ROLE_REF_NAME,
)
from monitorcore.errors import NotFoundError, PartialSyncError, ResourceSyncError
from monitorcore.logger import ReconcileLogger
from monitorcore.models import NamespaceIdentity
from monitorcore.otel import emit_namespace_failure, record_count
from monitorcore.ownership import is_owned_by, labels_of, owner_labels, stamp

logger = logging.getLogger(__name__)

STEP = "rolebinding sync"

# Failure key used when stale-namespace discovery itself fails
DISCOVERY_KEY = "<stale namespace discovery>"


@dataclass
class ProvisionReport:
    """What one provisioning pass did."""

    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    failures: Dict[str, ResourceSyncError] = field(default_factory=dict)


def desired_role_binding(namespace: str, installation_uid: str) -> Manifest:
    binding = new_manifest(
        Kind.ROLE_BINDING,
        ROLE_BINDING_NAME,
        namespace,
        subjects=[
            {
                "kind": "ServiceAccount",
                "name": CLUSTER_MONITORING_SERVICE_ACCOUNT,
                "namespace": CLUSTER_MONITORING_NAMESPACE,
            }
        ],
        roleRef={
            "apiGroup": ROLE_REF_API_GROUP,
            "kind": ROLE_REF_KIND,
            "name": ROLE_REF_NAME,
        },
    )
    return stamp(binding, owner_labels(installation_uid))


class RoleBindingProvisioner:
    """
    Grants the cluster scraper access to every eligible namespace.

    Example:
        provisioner = RoleBindingProvisioner(cluster, installation.uid)
        report = await provisioner.sync(eligible)
    """

    def __init__(
        self,
        client: ClusterClient,
        installation_uid: str,
        event_log: Optional[ReconcileLogger] = None,
    ):
        self.client = client
        self.installation_uid = installation_uid
        self.event_log = event_log or ReconcileLogger(installation_uid)

    async def sync(self, eligible: Iterable[NamespaceIdentity]) -> ProvisionReport:
        """
        Upsert the binding in every eligible namespace and remove it elsewhere.

        Raises:
            PartialSyncError: one or more namespaces failed.
        """
        report = ProvisionReport()
        eligible_names = {ns.name for ns in eligible}

        for namespace in sorted(eligible_names):
            try:
                operation = await self._upsert(desired_role_binding(namespace, self.installation_uid))
            except Exception as e:
                self._fail(report, namespace, e)
                continue
            if operation == "created":
                report.created.append(namespace)
            elif operation == "updated":
                report.updated.append(namespace)
            if operation != "unchanged":
                self.event_log.log_rolebinding_created(namespace, ROLE_BINDING_NAME, operation)

        stale = await self._stale_namespaces(eligible_names, report)
        for namespace in sorted(stale):
            try:
                removed = await self._remove(namespace)
            except Exception as e:
                self._fail(report, namespace, e)
                continue
            if removed:
                report.removed.append(namespace)
                self.event_log.log_rolebinding_removed(namespace, ROLE_BINDING_NAME)

        record_count(MetricName.BINDINGS_CREATED, len(report.created))
        record_count(MetricName.BINDINGS_REMOVED, len(report.removed))

        if report.failures:
            raise PartialSyncError(STEP, report.failures)
        return report

    async def _upsert(self, desired: Manifest) -> str:
        namespace, name = namespace_of(desired), name_of(desired)
        try:
            existing = await self.client.get(Kind.ROLE_BINDING, namespace, name)
        except NotFoundError:
            await self.client.create(Kind.ROLE_BINDING, desired)
            return "created"

        if existing.get("roleRef") != desired["roleRef"]:
            # roleRef is immutable on the API server
            await self.client.delete(Kind.ROLE_BINDING, namespace, name)
            await self.client.create(Kind.ROLE_BINDING, desired)
            return "updated"

        if existing.get("subjects") == desired["subjects"] and is_owned_by(existing, self.installation_uid):
            return "unchanged"

        existing = stamp(existing, labels_of(desired))
        existing["subjects"] = desired["subjects"]
        await self.client.update(Kind.ROLE_BINDING, existing)
        return "updated"

    async def _stale_namespaces(self, eligible_names: Set[str], report: ProvisionReport) -> Set[str]:
        selector = owner_labels(self.installation_uid)
        candidates: Set[str] = set()
        try:
            for manifest in await self.client.list(Kind.NAMESPACE, labels=selector):
                candidates.add(name_of(manifest))
            for manifest in await self.client.list(Kind.ROLE_BINDING, None, labels=selector):
                if name_of(manifest) == ROLE_BINDING_NAME:
                    candidates.add(namespace_of(manifest) or "")
        except Exception as e:
            self._fail(report, DISCOVERY_KEY, e)
        candidates.discard("")
        return candidates - eligible_names

    async def _remove(self, namespace: str) -> bool:
        try:
            await self.client.get(Kind.ROLE_BINDING, namespace, ROLE_BINDING_NAME)
        except NotFoundError:
            return False
        try:
            await self.client.delete(Kind.ROLE_BINDING, namespace, ROLE_BINDING_NAME)
        except NotFoundError:
            return False
        return True

    def _fail(self, report: ProvisionReport, namespace: str, error: BaseException) -> None:
        report.failures.setdefault(namespace, ResourceSyncError(namespace, error))
        logger.warning(f"RoleBinding sync failed for namespace {namespace}: {error}")
        self.event_log.log_namespace_sync_failed(STEP, namespace, str(error))
        emit_namespace_failure(STEP, namespace, str(error))
