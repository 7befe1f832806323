"""
Structured logging for reconciliation events.

Outputs JSON-formatted logs for Loki ingestion. Only state-changing
events are logged here; routine progress stays on the per-module
``logging.getLogger(__name__)`` loggers at debug level.

Logged events:
- reconcile.started
- reconcile.completed
- config.defaulted
- servicemonitor.cloned
- servicemonitor.pruned
- rolebinding.created
- rolebinding.removed
- namespace.sync_failed

Usage:
    from monitorcore.logger import ReconcileLogger

    log = ReconcileLogger(installation_uid="xyz")
    log.log_reconcile_started(monitoring_namespace="monitoring")
    log.log_servicemonitor_cloned(source_namespace="fuse", source_name="sm", clone_name="fuse-sm")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from monitorcore.config import MonitoringSettings, get_settings

# Configure structured logger for Loki
_loki_logger = logging.getLogger("monitorcore.reconcile.events")
_loki_logger.setLevel(logging.INFO)
_loki_logger.propagate = False

# Default handler outputs JSON to stdout (for container/Loki pickup)
if not _loki_logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    _loki_logger.addHandler(handler)


class _JSONFormatter(logging.Formatter):
    """Render module log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """
    Configure the ``monitorcore`` package logger.

    Args:
        level: debug, info, warning or error
        fmt: json for Loki, text for console
    """
    package_logger = logging.getLogger("monitorcore")
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    package_logger.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(_JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    package_logger.addHandler(handler)


def configure_logging_from_settings(settings: Optional[MonitoringSettings] = None) -> bool:
    """
    Apply ``log_level``/``log_format`` from settings once per process.

    Does nothing if the package logger already has handlers.

    Returns:
        True if the package logger was configured by this call
    """
    if logging.getLogger("monitorcore").handlers:
        return False
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)
    return True


class ReconcileLogger:
    """
    Structured logger for reconciliation events.

    Each log entry includes standard fields for filtering:
    - installation_uid, service
    - event type and event-specific attributes
    """

    def __init__(
        self,
        installation_uid: str,
        service_name: str = "monitorcore",
        extra_labels: Optional[Dict[str, str]] = None,
    ):
        self.installation_uid = installation_uid
        self.service_name = service_name
        self.extra_labels = extra_labels or {}
        self._logger = _loki_logger

    def _emit(self, event: str, level: str = "info", **extra_fields: Any) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "service": self.service_name,
            "installation_uid": self.installation_uid,
        }
        entry.update({k: v for k, v in extra_fields.items() if v is not None})

        if self.extra_labels:
            entry["labels"] = self.extra_labels

        log_line = json.dumps(entry, default=str)

        if level == "error":
            self._logger.error(log_line)
        elif level == "warn":
            self._logger.warning(log_line)
        else:
            self._logger.info(log_line)

    def log_reconcile_started(self, monitoring_namespace: Optional[str] = None) -> None:
        self._emit("reconcile.started", monitoring_namespace=monitoring_namespace)

    def log_reconcile_completed(
        self,
        phase: str,
        error_count: int = 0,
        duration_seconds: Optional[float] = None,
    ) -> None:
        """Log the aggregate outcome of a pass."""
        self._emit(
            "reconcile.completed",
            level="warn" if error_count else "info",
            phase=phase,
            error_count=error_count,
            duration_seconds=duration_seconds,
        )

    def log_config_defaulted(self, key: str, value: str) -> None:
        self._emit("config.defaulted", key=key, value=value)

    def log_servicemonitor_cloned(
        self,
        source_namespace: str,
        source_name: str,
        clone_name: str,
        operation: str = "created",
    ) -> None:
        self._emit(
            "servicemonitor.cloned",
            source_namespace=source_namespace,
            source_name=source_name,
            clone_name=clone_name,
            operation=operation,
        )

    def log_servicemonitor_pruned(self, clone_name: str, namespace: str) -> None:
        self._emit("servicemonitor.pruned", clone_name=clone_name, namespace=namespace)

    def log_rolebinding_created(self, namespace: str, name: str, operation: str = "created") -> None:
        self._emit("rolebinding.created", namespace=namespace, name=name, operation=operation)

    def log_rolebinding_removed(self, namespace: str, name: str) -> None:
        self._emit("rolebinding.removed", namespace=namespace, name=name)

    def log_namespace_sync_failed(self, step: str, namespace: str, error: str) -> None:
        self._emit(
            "namespace.sync_failed",
            level="error",
            step=step,
            namespace=namespace,
            error=error,
        )
