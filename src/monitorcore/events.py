"""
Event recording for reconciliation outcomes.

Recorders are fire-and-forget: ``record`` never raises, so a broken event
sink can never change the result of a pass.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Protocol, runtime_checkable

from monitorcore.models import Installation

logger = logging.getLogger(__name__)

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

REASON_PROCESSING_ERROR = "ProcessingError"
REASON_PRODUCT_COMPLETED = "ProductCompleted"
REASON_UNINSTALL_COMPLETED = "UninstallCompleted"


@runtime_checkable
class EventRecorder(Protocol):
    """Notification sink for installation events."""

    def record(
        self,
        installation: Installation,
        event_type: str,
        reason: str,
        message: str,
    ) -> None:
        ...


def record_error(
    recorder: Optional[EventRecorder],
    installation: Installation,
    message: str,
    error: BaseException,
) -> None:
    """Record a warning for a failed step."""
    safe_record(
        recorder,
        installation,
        EVENT_TYPE_WARNING,
        REASON_PROCESSING_ERROR,
        f"{message}: {error}",
    )


def safe_record(
    recorder: Optional[EventRecorder],
    installation: Installation,
    event_type: str,
    reason: str,
    message: str,
) -> None:
    """Deliver an event, dropping it if the recorder fails."""
    if recorder is None:
        return
    try:
        recorder.record(installation, event_type, reason, message)
    except Exception as e:
        logger.warning(f"Dropped {reason} event for {installation.name}: {e}")


class LoggingEventRecorder:
    """Writes events to the module logger."""

    def record(self, installation: Installation, event_type: str, reason: str, message: str) -> None:
        log_fn = logger.warning if event_type == EVENT_TYPE_WARNING else logger.info
        log_fn(f"[{reason}] {installation.namespace}/{installation.name}: {message}")


class FakeEventRecorder:
    """
    Buffers events in memory for assertions.

    Keeps at most ``buffer_size`` events, dropping new ones when full.
    """

    def __init__(self, buffer_size: int = 50):
        self.buffer_size = buffer_size
        self.events: List[str] = []

    def record(self, installation: Installation, event_type: str, reason: str, message: str) -> None:
        if len(self.events) < self.buffer_size:
            self.events.append(f"{event_type} {reason} {message}")


class KubernetesEventRecorder:
    """Creates core/v1 Events against the Installation custom resource."""

    def __init__(
        self,
        core_api,
        component: str = "monitorcore",
        api_version: str = "integreatly.org/v1alpha1",
        kind: str = "RHMI",
    ):
        """
        Args:
            core_api: ``kubernetes.client.CoreV1Api`` instance
            component: Reporting component name
            api_version: apiVersion of the Installation resource
            kind: Kind of the Installation resource
        """
        self.core_api = core_api
        self.component = component
        self.api_version = api_version
        self.kind = kind

    def record(self, installation: Installation, event_type: str, reason: str, message: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        body = {
            "metadata": {
                "generateName": f"{installation.name or 'installation'}.",
                "namespace": installation.namespace,
            },
            "involvedObject": {
                "apiVersion": self.api_version,
                "kind": self.kind,
                **installation.owner_reference(),
            },
            "type": event_type,
            "reason": reason,
            "message": message,
            "source": {"component": self.component},
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }
        self.core_api.create_namespaced_event(installation.namespace, body)
