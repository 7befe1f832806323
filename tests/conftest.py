"""
Pytest configuration and fixtures for MonitorCore tests.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Dict, Generator, Optional
from unittest.mock import MagicMock

import pytest

from monitorcore.cluster import InMemoryClusterClient, Kind, Manifest, new_manifest
from monitorcore.config import MonitoringSettings, reset_settings
from monitorcore.config_store import InMemoryConfigReadWriter
from monitorcore.constants import (
    CLONED_SERVICEMONITOR_LABEL_KEY,
    MONITORING_LABEL_KEY,
    MONITORING_LABEL_VALUE,
    OWNER_LABEL_KEY,
)
from monitorcore.events import FakeEventRecorder
from monitorcore.models import Installation, ProductStatus
from monitorcore.reconcile import Reconciler


INSTALLATION_UID = "xyz"
MONITORING_NAMESPACE = "monitoring"
OPERATOR_NAMESPACE = "monitoring-operator"
SUBSCRIPTION_NAME = "integreatly-monitoring"
INSTALL_PLAN_NAME = "monitoring-install-plan"


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_settings() -> Generator[None, None, None]:
    """Keep MONITORCORE_* variables and the settings singleton out of tests."""
    original = {k: v for k, v in os.environ.items() if k.startswith("MONITORCORE_")}
    for key in original:
        del os.environ[key]
    reset_settings()

    yield

    reset_settings()
    for key in [k for k in os.environ if k.startswith("MONITORCORE_")]:
        del os.environ[key]
    os.environ.update(original)


@pytest.fixture(autouse=True)
def clean_package_logger() -> Generator[None, None, None]:
    """Restore the ``monitorcore`` logger after tests that configure it."""
    package_logger = logging.getLogger("monitorcore")
    handlers, level = list(package_logger.handlers), package_logger.level
    package_logger.handlers.clear()

    yield

    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)


@pytest.fixture
def settings() -> MonitoringSettings:
    return MonitoringSettings(_env_file=None)


# ============================================================================
# Model Fixtures
# ============================================================================


@pytest.fixture
def installation() -> Installation:
    """Installation owning every labelled namespace in these tests."""
    return Installation(
        name="test-installation",
        namespace=MONITORING_NAMESPACE,
        uid=INSTALLATION_UID,
    )


@pytest.fixture
def product_status() -> ProductStatus:
    return ProductStatus()


# ============================================================================
# Manifest Factories
# ============================================================================


@pytest.fixture
def make_namespace() -> Callable[..., Manifest]:
    """Namespace manifest, labelled as owned (and eligible) by default."""

    def _make(
        name: str,
        uid: str = INSTALLATION_UID,
        eligible: bool = True,
        owned: bool = True,
        phase: str = "Active",
    ) -> Manifest:
        labels: Dict[str, str] = {}
        if owned:
            labels[OWNER_LABEL_KEY] = uid
        if eligible:
            labels[MONITORING_LABEL_KEY] = MONITORING_LABEL_VALUE
        manifest = new_manifest(Kind.NAMESPACE, name, labels=labels)
        manifest["status"] = {"phase": phase}
        return manifest

    return _make


@pytest.fixture
def make_service_monitor() -> Callable[..., Manifest]:
    """Source ServiceMonitor manifest."""

    def _make(
        namespace: str,
        name: str,
        labels: Optional[Dict[str, str]] = None,
        port: str = "metrics",
    ) -> Manifest:
        return new_manifest(
            Kind.SERVICE_MONITOR,
            name,
            namespace,
            labels=labels or {"app": name},
            spec={
                "selector": {"matchLabels": {"app": name}},
                "endpoints": [{"port": port, "interval": "30s"}],
            },
        )

    return _make


@pytest.fixture
def make_stale_clone() -> Callable[..., Manifest]:
    """Clone left behind in the monitoring namespace by an earlier pass."""

    def _make(name: str, source_namespace: Optional[str] = None) -> Manifest:
        manifest = new_manifest(
            Kind.SERVICE_MONITOR,
            name,
            MONITORING_NAMESPACE,
            labels={
                CLONED_SERVICEMONITOR_LABEL_KEY: "true",
                OWNER_LABEL_KEY: INSTALLATION_UID,
            },
            spec={"endpoints": [{"port": "web"}]},
        )
        if source_namespace:
            manifest["metadata"]["annotations"] = {
                "integreatly.org/source-namespace": source_namespace,
            }
        return manifest

    return _make


def completed_install_objects() -> list:
    """Subscription and install plan for an already installed operator."""
    subscription = new_manifest(
        Kind.SUBSCRIPTION,
        SUBSCRIPTION_NAME,
        OPERATOR_NAMESPACE,
        spec={"name": SUBSCRIPTION_NAME},
    )
    subscription["status"] = {"installPlanRef": {"name": INSTALL_PLAN_NAME}}
    plan = new_manifest(Kind.INSTALL_PLAN, INSTALL_PLAN_NAME, OPERATOR_NAMESPACE)
    plan["status"] = {"phase": "Complete"}
    return [(Kind.SUBSCRIPTION, subscription), (Kind.INSTALL_PLAN, plan)]


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest.fixture
def cluster(make_namespace) -> InMemoryClusterClient:
    """
    Cluster with the operator installed, the owned but unmonitored
    monitoring namespace and one eligible product namespace (``fuse``).
    """
    return InMemoryClusterClient(
        [
            (Kind.NAMESPACE, make_namespace(MONITORING_NAMESPACE, eligible=False)),
            (Kind.NAMESPACE, make_namespace("fuse")),
            *completed_install_objects(),
        ]
    )


@pytest.fixture
def config_store() -> InMemoryConfigReadWriter:
    return InMemoryConfigReadWriter(
        {"NAMESPACE": MONITORING_NAMESPACE, "OPERATOR_NAMESPACE": OPERATOR_NAMESPACE}
    )


@pytest.fixture
def recorder() -> FakeEventRecorder:
    return FakeEventRecorder()


@pytest.fixture
def reconciler(config_store, recorder, settings) -> Reconciler:
    return Reconciler(config_store, recorder=recorder, settings=settings)


@pytest.fixture
def mock_core_api() -> MagicMock:
    """Mock ``kubernetes.client.CoreV1Api``."""
    return MagicMock()
