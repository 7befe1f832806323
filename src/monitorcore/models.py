"""
Pydantic models for monitoring reconciliation.

Cluster objects themselves (ServiceMonitors, RoleBindings, Subscriptions)
travel through the engine as plain manifest dicts, exactly as the cluster
API returns them. The models here cover the records the engine owns or
reasons about:

- Installation: top-level desired-state record (read-only to the engine)
- ProductStatus: per-product status block the engine writes back
- NamespaceIdentity: one eligible namespace for the current pass
- Target: which operator package to install and where
- ReconcileResult: phase plus any errors collected during a pass
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from monitorcore.constants import ApprovalStrategy
from monitorcore.errors import MonitoringError


class Phase(str, Enum):
    """Aggregate outcome of one reconciliation pass."""
    IN_PROGRESS = "in progress"
    COMPLETED = "completed"
    FAILED = "failed"


class Installation(BaseModel):
    """
    The platform installation this engine reconciles for.

    Example:
        installation = Installation(
            name="rhmi",
            namespace="redhat-rhmi-operator",
            uid="0c1c2a4e-...",
        )
    """

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    namespace: str = ""
    uid: str = ""
    smtp_secret: Optional[str] = Field(None, description="SMTP credentials secret")
    pagerduty_secret: Optional[str] = Field(None, description="PagerDuty secret")
    dead_mans_snitch_secret: Optional[str] = Field(None, description="DMS secret")
    deletion_timestamp: Optional[datetime] = None

    @property
    def is_being_deleted(self) -> bool:
        return self.deletion_timestamp is not None

    @classmethod
    def from_manifest(cls, manifest: Dict[str, Any]) -> "Installation":
        """Build from a custom resource manifest."""
        metadata = manifest.get("metadata") or {}
        spec = manifest.get("spec") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            uid=metadata.get("uid", ""),
            smtp_secret=spec.get("smtpSecret"),
            pagerduty_secret=spec.get("pagerDutySecret"),
            dead_mans_snitch_secret=spec.get("deadMansSnitchSecret"),
            deletion_timestamp=metadata.get("deletionTimestamp"),
        )

    def owner_reference(self) -> Dict[str, str]:
        """Identity of the Installation as referenced by other objects."""
        return {"name": self.name, "namespace": self.namespace, "uid": self.uid}


class ProductStatus(BaseModel):
    """Status block for the monitoring product on the Installation."""

    model_config = ConfigDict(use_enum_values=False)

    name: str = ""
    phase: Optional[Phase] = None
    version: str = ""
    operator_version: str = ""


class NamespaceIdentity(BaseModel):
    """A namespace selected for monitoring in the current pass."""

    model_config = ConfigDict(frozen=True)

    name: str
    uid: str = ""

    @classmethod
    def from_manifest(cls, manifest: Dict[str, Any]) -> "NamespaceIdentity":
        metadata = manifest.get("metadata") or {}
        return cls(name=metadata.get("name", ""), uid=metadata.get("uid", ""))


class Target(BaseModel):
    """Operator package to install through the subscription manager."""

    package: str
    namespace: str
    channel: str = "rhmi"
    catalog_source: str = "rhmi-registry-cs"
    catalog_source_namespace: Optional[str] = None
    approval_strategy: ApprovalStrategy = ApprovalStrategy.AUTOMATIC


class ReconcileResult(BaseModel):
    """
    Outcome of one pass.

    ``errors`` may be non-empty even for a Completed pass: a failed config
    write-back is reported without affecting the phase.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    phase: Phase
    errors: List[MonitoringError] = Field(default_factory=list)

    @property
    def error(self) -> Optional[MonitoringError]:
        return self.errors[0] if self.errors else None

    @property
    def ok(self) -> bool:
        return self.phase == Phase.COMPLETED and not self.errors

    def raise_for_error(self) -> None:
        """Re-raise the first collected error, if any."""
        if self.errors:
            raise self.errors[0]
