"""
Reconciliation orchestrator for the monitoring product.

One call to ``Reconciler.reconcile`` is one pass:

    ConfigLoad -> OperatorInstall -> ResourceSync -> Done

- ConfigLoad: read the product config; default and persist the
  monitoring namespace when it is empty.
- OperatorInstall: hard gate. Until the operator's install plan is
  complete the pass returns InProgress and touches nothing else.
- ResourceSync: resolve eligible namespaces once, then run the
  ServiceMonitor mirror and the RoleBinding provisioner concurrently on
  that snapshot.

Passes are not re-entrant for one Installation; the hosting control loop
runs them one at a time.

Example:
    reconciler = Reconciler(config_store, ClusterMarketplace(cluster))
    result = await reconciler.reconcile(installation, product_status, cluster)
    if result.phase == Phase.FAILED:
        result.raise_for_error()
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, List, Optional, Tuple

from monitorcore.cluster.base import ClusterClient, Kind, name_of, namespace_of
from monitorcore.config import MonitoringSettings, get_settings
from monitorcore.config_store import ConfigReadWriter, MonitoringSpec
from monitorcore.constants import (
    DEFAULT_INSTALLATION_NAMESPACE,
    CONFIG_KEY_NAMESPACE,
    MetricName,
    PRODUCT_NAME,
    ROLE_BINDING_NAME,
)
from monitorcore.errors import (
    ConfigError,
    ConfigPersistError,
    MonitoringError,
    NamespaceListError,
    NotFoundError,
    PartialSyncError,
    ResourceSyncError,
    TransientInstallError,
)
from monitorcore.events import (
    EVENT_TYPE_NORMAL,
    REASON_PRODUCT_COMPLETED,
    REASON_UNINSTALL_COMPLETED,
    EventRecorder,
    LoggingEventRecorder,
    record_error,
    safe_record,
)
from monitorcore.logger import ReconcileLogger, configure_logging_from_settings
from monitorcore.marketplace import ClusterMarketplace, OperatorInstaller
from monitorcore.models import Installation, Phase, ProductStatus, ReconcileResult
from monitorcore.otel import emit_phase_result, record_count, tracer
from monitorcore.ownership import clone_labels, is_owned_by, owner_labels
from monitorcore.reconcile.install import OperatorInstallTracker
from monitorcore.reconcile.namespaces import list_eligible_namespaces
from monitorcore.reconcile.rolebindings import DISCOVERY_KEY, RoleBindingProvisioner
from monitorcore.reconcile.servicemonitors import ServiceMonitorMirror

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Converges the monitoring footprint of one Installation.

    Args:
        config_store: Durable product config
        installer: Operator installer; defaults to ``ClusterMarketplace``
            over the client passed to each pass
        recorder: Event sink; defaults to the logging recorder
        settings: Process settings; defaults to ``get_settings()``
    """

    def __init__(
        self,
        config_store: ConfigReadWriter,
        installer: Optional[OperatorInstaller] = None,
        recorder: Optional[EventRecorder] = None,
        settings: Optional[MonitoringSettings] = None,
    ):
        self.config_store = config_store
        self.installer = installer
        self.recorder = recorder if recorder is not None else LoggingEventRecorder()
        self.settings = settings or get_settings()
        configure_logging_from_settings(self.settings)

    async def reconcile(
        self,
        installation: Installation,
        product_status: ProductStatus,
        client: ClusterClient,
    ) -> ReconcileResult:
        """
        Run one pass and update ``product_status`` in place.

        Cancelling the calling task aborts the pass at the next cluster
        call and propagates ``asyncio.CancelledError``.
        """
        event_log = ReconcileLogger(installation.uid, self.settings.service_name)
        started = time.monotonic()
        previous_phase = product_status.phase

        with tracer.start_as_current_span("monitoring.reconcile") as span:
            span.set_attribute("monitoring.installation", installation.name)
            span.set_attribute("monitoring.installation_uid", installation.uid)

            spec = None
            try:
                spec, persist_error = self._load_config(installation, event_log)
            except ConfigError as e:
                result = ReconcileResult(phase=Phase.FAILED, errors=[e])
                record_error(self.recorder, installation, "Failed to read monitoring config", e)
            else:
                errors: List[MonitoringError] = []
                if persist_error is not None:
                    errors.append(persist_error)
                    record_error(self.recorder, installation, "Failed to persist monitoring config", persist_error)
                result = await self._run(installation, spec, client, event_log, errors)

            span.set_attribute("monitoring.phase", result.phase.value)
            emit_phase_result("reconcile", result.phase.value, str(result.error) if result.error else None)

        self._update_status(product_status, result.phase, spec)
        if result.phase == Phase.COMPLETED and previous_phase != Phase.COMPLETED:
            safe_record(
                self.recorder,
                installation,
                EVENT_TYPE_NORMAL,
                REASON_PRODUCT_COMPLETED,
                f"{PRODUCT_NAME} installed",
            )

        record_count(MetricName.PASSES, attributes={"phase": result.phase.value})
        event_log.log_reconcile_completed(
            result.phase.value,
            error_count=len(result.errors),
            duration_seconds=round(time.monotonic() - started, 3),
        )
        return result

    def _load_config(
        self,
        installation: Installation,
        event_log: ReconcileLogger,
    ) -> Tuple[MonitoringSpec, Optional[ConfigPersistError]]:
        """Read the config, defaulting the monitoring namespace in place.

        Returns the spec and the write-back error, if the defaulted value
        could not be persisted.
        """
        with tracer.start_as_current_span("monitoring.config_load"):
            try:
                spec = self.config_store.read_monitoring_spec()
            except ConfigError:
                raise
            except Exception as e:
                raise ConfigError(str(e)) from e

            if spec.get_namespace():
                return spec, None

            namespace = installation.namespace or DEFAULT_INSTALLATION_NAMESPACE
            spec.set_namespace(namespace)
            event_log.log_config_defaulted(CONFIG_KEY_NAMESPACE, namespace)
            try:
                self.config_store.write_config(spec)
            except Exception as e:
                persist_error = ConfigPersistError(
                    f"could not persist monitoring namespace {namespace}: {e}"
                )
                logger.warning(str(persist_error))
                return spec, persist_error
            return spec, None

    async def _run(
        self,
        installation: Installation,
        spec: MonitoringSpec,
        client: ClusterClient,
        event_log: ReconcileLogger,
        errors: List[MonitoringError],
    ) -> ReconcileResult:
        monitoring_namespace = spec.get_namespace()
        event_log.log_reconcile_started(monitoring_namespace)

        if installation.is_being_deleted:
            return await self._uninstall(installation, monitoring_namespace, client, event_log, errors)

        # OperatorInstall
        installer = self.installer or ClusterMarketplace(client)
        tracker = OperatorInstallTracker(installer, self.settings)
        with tracer.start_as_current_span("monitoring.operator_install"):
            try:
                phase = await tracker.ensure_installed(installation, spec)
            except TransientInstallError as e:
                logger.warning(f"Operator install not finished: {e}")
                record_error(self.recorder, installation, "Failed to install monitoring operator", e)
                errors.append(e)
                phase = Phase.IN_PROGRESS
            emit_phase_result("operator_install", phase.value)
        if phase != Phase.COMPLETED:
            return ReconcileResult(phase=Phase.IN_PROGRESS, errors=errors)

        # ResourceSync
        try:
            eligible = await list_eligible_namespaces(client, installation.uid)
        except NamespaceListError as e:
            record_error(self.recorder, installation, "Failed to list monitored namespaces", e)
            errors.append(e)
            return ReconcileResult(phase=Phase.FAILED, errors=errors)
        logger.debug(f"Eligible namespaces: {[ns.name for ns in eligible]}")

        mirror = ServiceMonitorMirror(client, installation.uid, event_log)
        provisioner = RoleBindingProvisioner(client, installation.uid, event_log)
        results = await asyncio.gather(
            self._traced("monitoring.servicemonitor_sync", mirror.sync(eligible, monitoring_namespace)),
            self._traced("monitoring.rolebinding_sync", provisioner.sync(eligible)),
            return_exceptions=True,
        )

        sync_failed = False
        for outcome in results:
            if not isinstance(outcome, BaseException):
                continue
            if not isinstance(outcome, MonitoringError):
                raise outcome
            sync_failed = True
            errors.append(outcome)
            record_error(self.recorder, installation, "Failed to sync monitoring resources", outcome)

        return ReconcileResult(phase=Phase.FAILED if sync_failed else Phase.COMPLETED, errors=errors)

    @staticmethod
    async def _traced(span_name: str, step):
        with tracer.start_as_current_span(span_name) as span:
            try:
                return await step
            except MonitoringError as e:
                span.set_attribute("monitoring.error", str(e))
                raise

    async def _uninstall(
        self,
        installation: Installation,
        monitoring_namespace: str,
        client: ClusterClient,
        event_log: ReconcileLogger,
        errors: List[MonitoringError],
    ) -> ReconcileResult:
        """Remove every clone and binding this Installation created.

        Each delete is isolated: a failure is recorded against its
        namespace and the remaining objects are still removed.
        """
        failures: Dict[str, BaseException] = {}

        def fail(namespace: str, error: BaseException) -> None:
            failures.setdefault(namespace, ResourceSyncError(namespace, error))
            logger.warning(f"Uninstall failed in namespace {namespace}: {error}")

        try:
            clones = await client.list(
                Kind.SERVICE_MONITOR, monitoring_namespace, labels=clone_labels(installation.uid)
            )
        except Exception as e:
            fail(monitoring_namespace, e)
            clones = []
        for clone in clones:
            try:
                await client.delete(Kind.SERVICE_MONITOR, monitoring_namespace, name_of(clone))
            except NotFoundError:
                continue
            except Exception as e:
                fail(monitoring_namespace, e)
                continue
            event_log.log_servicemonitor_pruned(name_of(clone), monitoring_namespace)

        try:
            bindings = await client.list(Kind.ROLE_BINDING, None, labels=owner_labels(installation.uid))
        except Exception as e:
            fail(DISCOVERY_KEY, e)
            bindings = []
        for binding in bindings:
            if name_of(binding) != ROLE_BINDING_NAME or not is_owned_by(binding, installation.uid):
                continue
            namespace = namespace_of(binding) or ""
            try:
                await client.delete(Kind.ROLE_BINDING, namespace, ROLE_BINDING_NAME)
            except NotFoundError:
                continue
            except Exception as e:
                fail(namespace, e)
                continue
            event_log.log_rolebinding_removed(namespace, ROLE_BINDING_NAME)

        if failures:
            error = PartialSyncError("uninstall", failures)
            record_error(self.recorder, installation, "Failed to remove monitoring resources", error)
            errors.append(error)
            return ReconcileResult(phase=Phase.FAILED, errors=errors)

        safe_record(
            self.recorder,
            installation,
            EVENT_TYPE_NORMAL,
            REASON_UNINSTALL_COMPLETED,
            f"{PRODUCT_NAME} resources removed",
        )
        return ReconcileResult(phase=Phase.COMPLETED, errors=errors)

    def _update_status(
        self,
        product_status: ProductStatus,
        phase: Phase,
        spec: Optional[MonitoringSpec],
    ) -> None:
        product_status.name = PRODUCT_NAME
        product_status.phase = phase
        if phase != Phase.COMPLETED:
            return
        product_status.version = (spec and spec.get_product_version()) or self.settings.product_version
        product_status.operator_version = (
            (spec and spec.get_operator_version()) or self.settings.operator_version
        )
