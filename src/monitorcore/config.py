"""
Process settings for the monitoring reconciler.

Uses Pydantic BaseSettings for environment variable integration
and validation. Per-installation product config (namespace names) lives
in the config store instead; see ``monitorcore.config_store``.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (MONITORCORE_*)
3. .env file
4. Default values

Example:
    from monitorcore.config import get_settings

    settings = get_settings()
    print(settings.subscription_name)

    # Override at runtime
    settings = get_settings(approval_strategy="Manual")
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from monitorcore.constants import ApprovalStrategy


class MonitoringSettings(BaseSettings):
    """
    Settings shared by every reconciliation pass in this process.

    Example:
        export MONITORCORE_APPROVAL_STRATEGY=Manual
        export MONITORCORE_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="MONITORCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    service_name: str = Field(
        default="monitorcore",
        description="Service name for log and telemetry attribution",
    )

    # Operator subscription
    subscription_name: str = Field(
        default="integreatly-monitoring",
        description="Package / subscription name of the monitoring operator",
    )
    channel: str = Field(default="rhmi", description="Subscription channel")
    catalog_source: str = Field(
        default="rhmi-registry-cs",
        description="CatalogSource providing the operator package",
    )
    catalog_source_namespace: Optional[str] = Field(
        default=None,
        description="Namespace of the CatalogSource (defaults to the operator namespace)",
    )
    approval_strategy: ApprovalStrategy = Field(
        default=ApprovalStrategy.AUTOMATIC,
        description="Install plan approval mode",
    )

    # Product versions reported on the status block
    product_version: str = Field(default="1.0.0")
    operator_version: str = Field(default="1.0.0")

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format (json for Loki, text for console)",
    )

    # Kubernetes
    kubeconfig: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file (in-cluster config if not set)",
    )
    config_map_name: str = Field(
        default="installation-config",
        description="ConfigMap holding per-product config",
    )

    @field_validator("kubeconfig")
    @classmethod
    def expand_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand ~ and environment variables in paths."""
        if v is None:
            return v
        return os.path.expanduser(os.path.expandvars(v))


# Global singleton
_settings: Optional[MonitoringSettings] = None


def get_settings(**overrides) -> MonitoringSettings:
    """
    Get the global settings instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.
    """
    global _settings

    if overrides or _settings is None:
        _settings = MonitoringSettings(**overrides)

    return _settings


def reset_settings() -> None:
    """Reset the global settings (for testing)."""
    global _settings
    _settings = None
