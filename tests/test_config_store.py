"""
Tests for the monitoring product config and its stores.

Tests cover:
- MonitoringSpec getters / defaults
- In-memory store
- YAML file store (round trip, unreadable file, failed write)
- ConfigMap store (mocked CoreV1Api)
"""

from types import SimpleNamespace

import pytest
import yaml
from kubernetes.client.rest import ApiException

from monitorcore.config import MonitoringSettings
from monitorcore.config_store import (
    ConfigMapConfigReadWriter,
    InMemoryConfigReadWriter,
    MonitoringSpec,
    PRODUCT_SECTION,
    YAMLFileConfigReadWriter,
)
from monitorcore.errors import ConfigError, ConfigPersistError


class TestMonitoringSpec:
    """Test the typed config view."""

    def test_empty_namespace(self):
        assert MonitoringSpec().get_namespace() == ""

    def test_operator_namespace_defaults_from_namespace(self):
        spec = MonitoringSpec({"NAMESPACE": "monitoring"})
        assert spec.get_operator_namespace() == "monitoring-operator"

    def test_operator_namespace_explicit(self):
        spec = MonitoringSpec({"NAMESPACE": "monitoring", "OPERATOR_NAMESPACE": "ops"})
        assert spec.get_operator_namespace() == "ops"

    def test_operator_namespace_empty_without_namespace(self):
        assert MonitoringSpec().get_operator_namespace() == ""

    def test_setters(self):
        spec = MonitoringSpec()
        spec.set_namespace("monitoring")
        spec.set_product_version("1.2.0")
        spec.set_operator_version("0.9.0")

        assert spec.read() == {
            "NAMESPACE": "monitoring",
            "VERSION": "1.2.0",
            "OPERATOR_VERSION": "0.9.0",
        }

    def test_read_returns_copy(self):
        spec = MonitoringSpec({"NAMESPACE": "monitoring"})
        spec.read()["NAMESPACE"] = "other"
        assert spec.get_namespace() == "monitoring"


class TestInMemoryStore:
    """Test the in-memory store."""

    def test_write_then_read(self):
        store = InMemoryConfigReadWriter()
        spec = store.read_monitoring_spec()
        spec.set_namespace("monitoring")
        store.write_config(spec)

        assert store.read_monitoring_spec().get_namespace() == "monitoring"
        assert store.writes == 1

    def test_read_is_isolated_from_store(self):
        store = InMemoryConfigReadWriter({"NAMESPACE": "monitoring"})
        store.read_monitoring_spec().set_namespace("changed")
        assert store.config["NAMESPACE"] == "monitoring"


class TestYAMLFileStore:
    """Test the YAML file store."""

    def test_missing_file_reads_empty(self, tmp_path):
        store = YAMLFileConfigReadWriter(tmp_path / "config.yaml")
        assert store.read_monitoring_spec() == MonitoringSpec()

    def test_write_keeps_other_products(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"fuse": {"NAMESPACE": "fuse"}}))
        store = YAMLFileConfigReadWriter(path)

        store.write_config(MonitoringSpec({"NAMESPACE": "monitoring"}))

        data = yaml.safe_load(path.read_text())
        assert data["fuse"] == {"NAMESPACE": "fuse"}
        assert data[PRODUCT_SECTION] == {"NAMESPACE": "monitoring"}
        assert store.read_monitoring_spec().get_namespace() == "monitoring"

    def test_section_stored_as_yaml_string(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({PRODUCT_SECTION: "NAMESPACE: monitoring\n"}))

        spec = YAMLFileConfigReadWriter(path).read_monitoring_spec()

        assert spec.get_namespace() == "monitoring"

    def test_unreadable_file_raises_config_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError) as exc:
            YAMLFileConfigReadWriter(path).read_monitoring_spec()

        assert "could not read monitoring config" in str(exc.value)

    def test_write_failure_raises_persist_error(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        store = YAMLFileConfigReadWriter(blocker / "config.yaml")

        with pytest.raises(ConfigPersistError):
            store.write_config(MonitoringSpec({"NAMESPACE": "monitoring"}))


class TestConfigMapStore:
    """Test the ConfigMap store."""

    def test_read(self, mock_core_api):
        mock_core_api.read_namespaced_config_map.return_value = SimpleNamespace(
            data={PRODUCT_SECTION: "NAMESPACE: monitoring\nOPERATOR_NAMESPACE: monitoring-operator\n"}
        )
        store = ConfigMapConfigReadWriter(mock_core_api, "installation-config", "rhmi")

        spec = store.read_monitoring_spec()

        assert spec.get_namespace() == "monitoring"
        assert spec.get_operator_namespace() == "monitoring-operator"
        mock_core_api.read_namespaced_config_map.assert_called_once_with("installation-config", "rhmi")

    def test_missing_configmap_reads_empty(self, mock_core_api):
        mock_core_api.read_namespaced_config_map.side_effect = ApiException(status=404)
        store = ConfigMapConfigReadWriter(mock_core_api, "installation-config", "rhmi")

        assert store.read_monitoring_spec().get_namespace() == ""

    def test_api_failure_raises_config_error(self, mock_core_api):
        mock_core_api.read_namespaced_config_map.side_effect = ApiException(status=500)
        store = ConfigMapConfigReadWriter(mock_core_api, "installation-config", "rhmi")

        with pytest.raises(ConfigError) as exc:
            store.read_monitoring_spec()

        assert "could not read monitoring config" in str(exc.value)

    def test_write_patches(self, mock_core_api):
        store = ConfigMapConfigReadWriter(mock_core_api, "installation-config", "rhmi")

        store.write_config(MonitoringSpec({"NAMESPACE": "monitoring"}))

        name, namespace, body = mock_core_api.patch_namespaced_config_map.call_args.args
        assert (name, namespace) == ("installation-config", "rhmi")
        assert yaml.safe_load(body["data"][PRODUCT_SECTION]) == {"NAMESPACE": "monitoring"}
        mock_core_api.create_namespaced_config_map.assert_not_called()

    def test_write_creates_when_missing(self, mock_core_api):
        mock_core_api.patch_namespaced_config_map.side_effect = ApiException(status=404)
        store = ConfigMapConfigReadWriter(mock_core_api, "installation-config", "rhmi")

        store.write_config(MonitoringSpec({"NAMESPACE": "monitoring"}))

        namespace, body = mock_core_api.create_namespaced_config_map.call_args.args
        assert namespace == "rhmi"
        assert body["metadata"]["name"] == "installation-config"

    def test_write_failure_raises_persist_error(self, mock_core_api):
        mock_core_api.patch_namespaced_config_map.side_effect = ApiException(status=403)
        store = ConfigMapConfigReadWriter(mock_core_api, "installation-config", "rhmi")

        with pytest.raises(ConfigPersistError):
            store.write_config(MonitoringSpec({"NAMESPACE": "monitoring"}))

    def test_from_settings_uses_configured_name(self, mock_core_api):
        settings = MonitoringSettings(_env_file=None, config_map_name="custom-config")

        store = ConfigMapConfigReadWriter.from_settings(mock_core_api, "rhmi", settings)
        store.read_monitoring_spec()

        mock_core_api.read_namespaced_config_map.assert_called_once_with("custom-config", "rhmi")

    def test_from_settings_defaults_to_global_settings(self, mock_core_api, monkeypatch):
        monkeypatch.setenv("MONITORCORE_CONFIG_MAP_NAME", "env-config")

        store = ConfigMapConfigReadWriter.from_settings(mock_core_api, "rhmi")

        assert store.name == "env-config"
