"""
Durable product config for the monitoring product.

The installer keeps one flat ``str -> str`` section per product. This
module wraps the monitoring section in ``MonitoringSpec`` and provides
stores that read and write it:

- InMemoryConfigReadWriter: process-local, used by tests and embedding
- YAMLFileConfigReadWriter: one YAML mapping per product in a file
- ConfigMapConfigReadWriter: one YAML blob per product key in a ConfigMap

Data layout (file and ConfigMap alike)::

    monitoringspec: |
      NAMESPACE: redhat-rhmi-middleware-monitoring
      OPERATOR_NAMESPACE: redhat-rhmi-middleware-monitoring-operator
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol, runtime_checkable

import yaml
from kubernetes.client.rest import ApiException

from monitorcore.config import MonitoringSettings, get_settings
from monitorcore.constants import (
    CONFIG_KEY_NAMESPACE,
    CONFIG_KEY_OPERATOR_NAMESPACE,
    CONFIG_KEY_OPERATOR_VERSION,
    CONFIG_KEY_VERSION,
)
from monitorcore.errors import ConfigError, ConfigPersistError

logger = logging.getLogger(__name__)

ProductConfig = Dict[str, str]

PRODUCT_SECTION = "monitoringspec"


class MonitoringSpec:
    """Typed view over the monitoring product config."""

    def __init__(self, config: Optional[ProductConfig] = None):
        self.config: ProductConfig = dict(config or {})

    def read(self) -> ProductConfig:
        return dict(self.config)

    def get_product_name(self) -> str:
        return PRODUCT_SECTION

    def get_namespace(self) -> str:
        return self.config.get(CONFIG_KEY_NAMESPACE, "")

    def set_namespace(self, namespace: str) -> None:
        self.config[CONFIG_KEY_NAMESPACE] = namespace

    def get_operator_namespace(self) -> str:
        """Operator namespace, falling back to ``<NAMESPACE>-operator``."""
        value = self.config.get(CONFIG_KEY_OPERATOR_NAMESPACE, "")
        if value:
            return value
        namespace = self.get_namespace()
        return f"{namespace}-operator" if namespace else ""

    def get_product_version(self) -> str:
        return self.config.get(CONFIG_KEY_VERSION, "")

    def set_product_version(self, version: str) -> None:
        self.config[CONFIG_KEY_VERSION] = version

    def get_operator_version(self) -> str:
        return self.config.get(CONFIG_KEY_OPERATOR_VERSION, "")

    def set_operator_version(self, version: str) -> None:
        self.config[CONFIG_KEY_OPERATOR_VERSION] = version

    def __eq__(self, other: object) -> bool:
        return isinstance(other, MonitoringSpec) and other.config == self.config

    def __repr__(self) -> str:
        return f"MonitoringSpec({self.config!r})"


@runtime_checkable
class ConfigReadWriter(Protocol):
    """Reads and persists the monitoring product config."""

    def read_monitoring_spec(self) -> MonitoringSpec:
        """Return the current config; raise ConfigError if unreadable."""
        ...

    def write_config(self, spec: MonitoringSpec) -> None:
        """Persist the config; raise ConfigPersistError on failure."""
        ...


class InMemoryConfigReadWriter:
    """Config store held in process memory."""

    def __init__(self, config: Optional[ProductConfig] = None):
        self._config: ProductConfig = dict(config or {})
        self.writes = 0

    def read_monitoring_spec(self) -> MonitoringSpec:
        return MonitoringSpec(self._config)

    def write_config(self, spec: MonitoringSpec) -> None:
        self._config = spec.read()
        self.writes += 1

    @property
    def config(self) -> ProductConfig:
        return dict(self._config)


def _to_product_config(product: str, section: object) -> ProductConfig:
    if isinstance(section, str):
        section = yaml.safe_load(section)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ValueError(f"section {product!r} must be a mapping")
    return {str(k): "" if v is None else str(v) for k, v in section.items()}


def _decode_sections(raw: Optional[str]) -> Dict[str, ProductConfig]:
    data = yaml.safe_load(raw) if raw else None
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("config document must be a mapping")
    return {
        str(product): _to_product_config(str(product), section)
        for product, section in data.items()
    }


class YAMLFileConfigReadWriter:
    """
    Config store backed by a YAML file.

    Writes are atomic: the document is written to a temporary file in the
    same directory and renamed over the original.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def _load(self) -> Dict[str, ProductConfig]:
        if not self.path.exists():
            return {}
        return _decode_sections(self.path.read_text(encoding="utf-8"))

    def read_monitoring_spec(self) -> MonitoringSpec:
        try:
            sections = self._load()
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"could not read monitoring config: {e}") from e
        return MonitoringSpec(sections.get(PRODUCT_SECTION, {}))

    def write_config(self, spec: MonitoringSpec) -> None:
        try:
            sections = self._load()
            sections[spec.get_product_name()] = spec.read()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    yaml.safe_dump(sections, f, default_flow_style=False, sort_keys=True)
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigPersistError(f"could not write monitoring config: {e}") from e
        logger.debug(f"Wrote monitoring config to {self.path}")


class ConfigMapConfigReadWriter:
    """
    Config store backed by a Kubernetes ConfigMap.

    Each product section is stored as a YAML string under its own key,
    matching the layout the installer uses for every product.
    """

    def __init__(self, core_api, name: str, namespace: str):
        """
        Args:
            core_api: ``kubernetes.client.CoreV1Api`` instance
            name: ConfigMap name
            namespace: Namespace holding the ConfigMap
        """
        self.core_api = core_api
        self.name = name
        self.namespace = namespace

    @classmethod
    def from_settings(
        cls,
        core_api,
        namespace: str,
        settings: Optional[MonitoringSettings] = None,
    ) -> "ConfigMapConfigReadWriter":
        """Store backed by the ConfigMap named by ``config_map_name``."""
        settings = settings or get_settings()
        return cls(core_api, settings.config_map_name, namespace)

    def _read_data(self) -> Dict[str, str]:
        try:
            cm = self.core_api.read_namespaced_config_map(self.name, self.namespace)
        except ApiException as e:
            if e.status == 404:
                return {}
            raise
        return dict(cm.data or {})

    def read_monitoring_spec(self) -> MonitoringSpec:
        try:
            data = self._read_data()
            section = _to_product_config(PRODUCT_SECTION, data.get(PRODUCT_SECTION))
        except (ApiException, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"could not read monitoring config: {e}") from e
        return MonitoringSpec(section)

    def write_config(self, spec: MonitoringSpec) -> None:
        blob = yaml.safe_dump(spec.read(), default_flow_style=False, sort_keys=True)
        body = {"data": {spec.get_product_name(): blob}}
        try:
            try:
                self.core_api.patch_namespaced_config_map(self.name, self.namespace, body)
            except ApiException as e:
                if e.status != 404:
                    raise
                self.core_api.create_namespaced_config_map(
                    self.namespace,
                    {"metadata": {"name": self.name, "namespace": self.namespace}, **body},
                )
        except ApiException as e:
            raise ConfigPersistError(
                f"could not write monitoring config to configmap "
                f"{self.namespace}/{self.name}: {e.reason}"
            ) from e
        logger.debug(f"Wrote monitoring config to configmap {self.namespace}/{self.name}")
