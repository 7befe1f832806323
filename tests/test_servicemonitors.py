"""
Tests for ServiceMonitor mirroring.

Tests cover:
- Clone construction (name, labels, annotations, namespace pinning)
- Create / update-on-drift / no-op upserts
- Sweep of stale clones
- Per-namespace failure isolation
"""

import asyncio

import pytest

from monitorcore.cluster import InMemoryClusterClient, Kind
from monitorcore.constants import (
    CLONED_SERVICEMONITOR_LABEL_KEY,
    OWNER_LABEL_KEY,
    SOURCE_NAME_ANNOTATION,
    SOURCE_NAMESPACE_ANNOTATION,
)
from monitorcore.errors import ClusterAPIError, PartialSyncError, ResourceSyncError
from monitorcore.models import NamespaceIdentity
from monitorcore.reconcile.servicemonitors import ServiceMonitorMirror, build_clone


def namespaces(*names):
    return [NamespaceIdentity(name=n) for n in names]


@pytest.fixture
def store() -> InMemoryClusterClient:
    return InMemoryClusterClient()


@pytest.fixture
def mirror(store) -> ServiceMonitorMirror:
    return ServiceMonitorMirror(store, "xyz")


class TestBuildClone:
    """Test the desired clone."""

    def test_clone_shape(self, make_service_monitor):
        source = make_service_monitor("fuse", "fuse-servicemon", labels={"team": "fuse"})

        clone = build_clone(source, "monitoring", "xyz")

        metadata = clone["metadata"]
        assert metadata["name"] == "fuse-fuse-servicemon"
        assert metadata["namespace"] == "monitoring"
        assert metadata["labels"] == {
            "team": "fuse",
            CLONED_SERVICEMONITOR_LABEL_KEY: "true",
            OWNER_LABEL_KEY: "xyz",
        }
        assert metadata["annotations"] == {
            SOURCE_NAMESPACE_ANNOTATION: "fuse",
            SOURCE_NAME_ANNOTATION: "fuse-servicemon",
        }

    def test_spec_copied_with_namespace_selector_pinned(self, make_service_monitor):
        source = make_service_monitor("fuse", "sm")
        source["spec"]["namespaceSelector"] = {"any": True}

        clone = build_clone(source, "monitoring", "xyz")

        assert clone["spec"]["endpoints"] == source["spec"]["endpoints"]
        assert clone["spec"]["selector"] == source["spec"]["selector"]
        assert clone["spec"]["namespaceSelector"] == {"matchNames": ["fuse"]}
        assert source["spec"]["namespaceSelector"] == {"any": True}


class TestMark:
    """Test clone upserts."""

    def test_creates_clone(self, store, mirror, make_service_monitor):
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("fuse", "fuse-servicemon"))

        report = asyncio.run(mirror.sync(namespaces("fuse"), "monitoring"))

        assert report.created == ["fuse-fuse-servicemon"]
        assert store.exists(Kind.SERVICE_MONITOR, "monitoring", "fuse-fuse-servicemon")

    def test_unchanged_source_makes_no_writes(self, store, mirror, make_service_monitor):
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("fuse", "sm"))
        asyncio.run(mirror.sync(namespaces("fuse"), "monitoring"))
        store.reset_mutations()

        report = asyncio.run(mirror.sync(namespaces("fuse"), "monitoring"))

        assert store.mutations == []
        assert report.created == [] and report.updated == [] and report.pruned == []

    def test_drifted_spec_is_updated(self, store, mirror, make_service_monitor):
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("fuse", "sm"))
        asyncio.run(mirror.sync(namespaces("fuse"), "monitoring"))
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("fuse", "sm", port="web"))

        report = asyncio.run(mirror.sync(namespaces("fuse"), "monitoring"))

        assert report.updated == ["fuse-sm"]
        clone = store.objects(Kind.SERVICE_MONITOR, "monitoring")[0]
        assert clone["spec"]["endpoints"] == [{"port": "web", "interval": "30s"}]

    def test_hand_edited_clone_is_restored(self, store, mirror, make_service_monitor):
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("fuse", "sm"))
        asyncio.run(mirror.sync(namespaces("fuse"), "monitoring"))
        clone = store.objects(Kind.SERVICE_MONITOR, "monitoring")[0]
        clone["metadata"]["labels"]["extra"] = "x"
        store.add(Kind.SERVICE_MONITOR, clone)

        asyncio.run(mirror.sync(namespaces("fuse"), "monitoring"))

        assert "extra" not in store.objects(Kind.SERVICE_MONITOR, "monitoring")[0]["metadata"]["labels"]

    def test_clone_sources_are_skipped(self, store, mirror, make_service_monitor, make_stale_clone):
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("monitoring", "own-sm"))
        store.add(Kind.SERVICE_MONITOR, make_stale_clone("fuse-sm", source_namespace="fuse"))
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("fuse", "sm"))

        asyncio.run(mirror.sync(namespaces("fuse", "monitoring"), "monitoring"))

        names = sorted(o["metadata"]["name"] for o in store.objects(Kind.SERVICE_MONITOR, "monitoring"))
        assert names == ["fuse-sm", "monitoring-own-sm", "own-sm"]

    def test_same_name_in_two_namespaces(self, store, mirror, make_service_monitor):
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("fuse", "metrics"))
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("3scale", "metrics"))

        report = asyncio.run(mirror.sync(namespaces("3scale", "fuse"), "monitoring"))

        assert sorted(report.live) == ["3scale-metrics", "fuse-metrics"]


class TestSweep:
    """Test garbage collection of stale clones."""

    def test_stale_clone_deleted(self, store, mirror, make_stale_clone):
        store.add(Kind.SERVICE_MONITOR, make_stale_clone("ups-servicemon"))

        report = asyncio.run(mirror.sync([], "monitoring"))

        assert report.pruned == ["ups-servicemon"]
        assert not store.exists(Kind.SERVICE_MONITOR, "monitoring", "ups-servicemon")

    def test_deleted_source_prunes_clone(self, store, mirror, make_service_monitor):
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("fuse", "sm"))
        asyncio.run(mirror.sync(namespaces("fuse"), "monitoring"))
        asyncio.run(store.delete(Kind.SERVICE_MONITOR, "fuse", "sm"))

        asyncio.run(mirror.sync(namespaces("fuse"), "monitoring"))

        assert not store.exists(Kind.SERVICE_MONITOR, "monitoring", "fuse-sm")

    def test_ineligible_namespace_prunes_clone(self, store, mirror, make_service_monitor):
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("fuse", "sm"))
        asyncio.run(mirror.sync(namespaces("fuse"), "monitoring"))

        asyncio.run(mirror.sync([], "monitoring"))

        assert not store.exists(Kind.SERVICE_MONITOR, "monitoring", "fuse-sm")
        assert store.exists(Kind.SERVICE_MONITOR, "fuse", "sm")

    def test_unmarked_objects_left_alone(self, store, mirror, make_service_monitor):
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("monitoring", "hand-made"))

        asyncio.run(mirror.sync([], "monitoring"))

        assert store.exists(Kind.SERVICE_MONITOR, "monitoring", "hand-made")

    def test_not_found_on_delete_swallowed(self, store, mirror, make_stale_clone):
        from monitorcore.errors import NotFoundError

        store.add(Kind.SERVICE_MONITOR, make_stale_clone("gone"))
        store.fail("delete", Kind.SERVICE_MONITOR, name="gone", error=NotFoundError("gone", status=404))

        report = asyncio.run(mirror.sync([], "monitoring"))

        assert report.failures == {}


class TestFailureIsolation:
    """Test per-namespace error collection."""

    def test_list_failure_isolated(self, store, mirror, make_service_monitor):
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("fuse", "sm"))
        store.fail("list", Kind.SERVICE_MONITOR, namespace="broken")

        with pytest.raises(PartialSyncError) as exc:
            asyncio.run(mirror.sync(namespaces("broken", "fuse"), "monitoring"))

        assert list(exc.value.failures) == ["broken"]
        failure = exc.value.failures["broken"]
        assert isinstance(failure, ResourceSyncError)
        assert failure.namespace == "broken"
        assert isinstance(failure.cause, ClusterAPIError)
        assert store.exists(Kind.SERVICE_MONITOR, "monitoring", "fuse-sm")

    def test_failed_namespace_keeps_its_clones(self, store, mirror, make_service_monitor):
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("broken", "sm"))
        asyncio.run(mirror.sync(namespaces("broken"), "monitoring"))
        store.fail("list", Kind.SERVICE_MONITOR, namespace="broken")

        with pytest.raises(PartialSyncError):
            asyncio.run(mirror.sync(namespaces("broken"), "monitoring"))

        assert store.exists(Kind.SERVICE_MONITOR, "monitoring", "broken-sm")

    def test_upsert_failure_keeps_existing_clone(self, store, mirror, make_service_monitor):
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("fuse", "sm"))
        asyncio.run(mirror.sync(namespaces("fuse"), "monitoring"))
        store.add(Kind.SERVICE_MONITOR, make_service_monitor("fuse", "sm", port="web"))
        store.fail("update", Kind.SERVICE_MONITOR, namespace="monitoring")

        with pytest.raises(PartialSyncError) as exc:
            asyncio.run(mirror.sync(namespaces("fuse"), "monitoring"))

        assert list(exc.value.failures) == ["fuse"]
        assert store.exists(Kind.SERVICE_MONITOR, "monitoring", "fuse-sm")

    def test_sweep_list_failure_reported(self, store, mirror):
        store.fail("list", Kind.SERVICE_MONITOR, namespace="monitoring")

        with pytest.raises(PartialSyncError) as exc:
            asyncio.run(mirror.sync([], "monitoring"))

        assert "monitoring" in exc.value.failures
        assert "servicemonitor sync failed for 1 namespace(s)" in str(exc.value)
