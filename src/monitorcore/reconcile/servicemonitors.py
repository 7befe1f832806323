"""
ServiceMonitor mirroring.

Every ServiceMonitor found in an eligible namespace is copied into the
monitoring namespace so the monitoring stack, which only watches its own
namespace, scrapes it. A pass is mark-and-sweep:

1. Mark: walk every eligible namespace, upsert one clone per source and
   record the clone name in the live set.
2. Sweep: list every clone in the monitoring namespace and delete the
   ones not in the live set.

A namespace whose listing or upsert fails keeps its existing clones: the
sweep skips clones whose source-namespace annotation names a namespace
that failed during this pass.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from monitorcore.cluster.base import ClusterClient, Kind, Manifest, name_of, new_manifest
from monitorcore.constants import MetricName
from monitorcore.errors import NotFoundError, PartialSyncError, ResourceSyncError
from monitorcore.logger import ReconcileLogger
from monitorcore.models import NamespaceIdentity
from monitorcore.otel import emit_namespace_failure, record_count
from monitorcore.ownership import (
    annotations_of,
    clone_labels,
    clone_name,
    clone_selector,
    is_clone,
    labels_of,
    source_annotations,
    source_namespace_of,
    stamp,
)

logger = logging.getLogger(__name__)

STEP = "servicemonitor sync"

OP_CREATED = "created"
OP_UPDATED = "updated"
OP_UNCHANGED = "unchanged"


@dataclass
class MirrorReport:
    """What one mirror pass did."""

    live: Set[str] = field(default_factory=set)
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    pruned: List[str] = field(default_factory=list)
    failures: Dict[str, ResourceSyncError] = field(default_factory=dict)


def build_clone(source: Manifest, monitoring_namespace: str, installation_uid: str) -> Manifest:
    """
    Desired clone of ``source`` in ``monitoring_namespace``.

    The spec is copied verbatim except for ``namespaceSelector``, which is
    pinned to the source namespace so the clone keeps selecting the same
    endpoints from its new home.
    """
    metadata = source.get("metadata") or {}
    source_ns = metadata.get("namespace", "")
    source_name = metadata.get("name", "")

    spec = copy.deepcopy(source.get("spec") or {})
    spec["namespaceSelector"] = {"matchNames": [source_ns]}

    clone = new_manifest(
        Kind.SERVICE_MONITOR,
        clone_name(source_ns, source_name),
        monitoring_namespace,
        labels=metadata.get("labels"),
        spec=spec,
    )
    return stamp(clone, clone_labels(installation_uid), source_annotations(source_ns, source_name))


def clone_drifted(existing: Manifest, desired: Manifest) -> bool:
    if (existing.get("spec") or {}) != desired["spec"]:
        return True
    if labels_of(existing) != labels_of(desired):
        return True
    current = annotations_of(existing)
    return any(current.get(k) != v for k, v in annotations_of(desired).items())


class ServiceMonitorMirror:
    """
    Keeps the monitoring namespace's clones in step with their sources.

    Example:
        mirror = ServiceMonitorMirror(cluster, installation.uid)
        report = await mirror.sync(eligible, "monitoring")
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

    async def sync(
        self,
        eligible: Iterable[NamespaceIdentity],
        monitoring_namespace: str,
    ) -> MirrorReport:
        """
        Run one mark-and-sweep pass.

        Raises:
            PartialSyncError: one or more namespaces failed. Every other
                namespace still converged.
        """
        report = MirrorReport()

        for namespace in eligible:
            await self._mark(namespace.name, monitoring_namespace, report)

        await self._sweep(monitoring_namespace, report)

        record_count(MetricName.CLONES_UPSERTED, len(report.created) + len(report.updated))
        record_count(MetricName.CLONES_PRUNED, len(report.pruned))

        if report.failures:
            raise PartialSyncError(STEP, report.failures)
        return report

    async def _mark(self, namespace: str, monitoring_namespace: str, report: MirrorReport) -> None:
        try:
            sources = await self.client.list(Kind.SERVICE_MONITOR, namespace)
        except Exception as e:
            self._fail(report, namespace, e)
            return

        for source in sources:
            if is_clone(source):
                logger.debug(f"Skipping clone {namespace}/{name_of(source)} as a mirror source")
                continue

            desired = build_clone(source, monitoring_namespace, self.installation_uid)
            name = name_of(desired)
            # Live even if the upsert below fails
            report.live.add(name)

            try:
                operation = await self._upsert(desired)
            except Exception as e:
                self._fail(report, namespace, e)
                continue

            if operation == OP_CREATED:
                report.created.append(name)
            elif operation == OP_UPDATED:
                report.updated.append(name)
            if operation != OP_UNCHANGED:
                self.event_log.log_servicemonitor_cloned(namespace, name_of(source), name, operation)

    async def _upsert(self, desired: Manifest) -> str:
        metadata = desired["metadata"]
        try:
            existing = await self.client.get(Kind.SERVICE_MONITOR, metadata["namespace"], metadata["name"])
        except NotFoundError:
            await self.client.create(Kind.SERVICE_MONITOR, desired)
            return OP_CREATED

        if not clone_drifted(existing, desired):
            return OP_UNCHANGED

        updated = copy.deepcopy(existing)
        updated["spec"] = desired["spec"]
        updated["metadata"]["labels"] = dict(metadata["labels"])
        updated["metadata"]["annotations"] = {
            **annotations_of(existing),
            **metadata["annotations"],
        }
        await self.client.update(Kind.SERVICE_MONITOR, updated)
        return OP_UPDATED

    async def _sweep(self, monitoring_namespace: str, report: MirrorReport) -> None:
        try:
            clones = await self.client.list(
                Kind.SERVICE_MONITOR, monitoring_namespace, labels=clone_selector()
            )
        except Exception as e:
            self._fail(report, monitoring_namespace, e)
            return

        for clone in clones:
            name = name_of(clone)
            if name in report.live:
                continue
            if source_namespace_of(clone) in report.failures:
                logger.debug(f"Keeping clone {name}: its source namespace failed this pass")
                continue

            try:
                await self.client.delete(Kind.SERVICE_MONITOR, monitoring_namespace, name)
            except NotFoundError:
                continue
            except Exception as e:
                self._fail(report, monitoring_namespace, e)
                continue

            report.pruned.append(name)
            self.event_log.log_servicemonitor_pruned(name, monitoring_namespace)

    def _fail(self, report: MirrorReport, namespace: str, error: BaseException) -> None:
        # First error per namespace wins
        report.failures.setdefault(namespace, ResourceSyncError(namespace, error))
        logger.warning(f"ServiceMonitor sync failed for namespace {namespace}: {error}")
        self.event_log.log_namespace_sync_failed(STEP, namespace, str(error))
        emit_namespace_failure(STEP, namespace, str(error))
