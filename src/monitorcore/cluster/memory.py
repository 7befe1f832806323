"""
In-memory cluster object store for testing.

Implements the same contract as the Kubernetes client: deep-copied
manifests in and out, resourceVersion bumps on every write, NotFound /
AlreadyExists semantics. Data is lost when the process exits.

Two hooks make it useful for engine tests:
- ``mutations`` records every create/update/delete call
- ``fail()`` injects an error for matching calls
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from monitorcore.cluster.base import (
    Kind,
    Manifest,
    matches_labels,
    name_of,
    namespace_of,
)
from monitorcore.errors import AlreadyExistsError, ClusterAPIError, NotFoundError

logger = logging.getLogger(__name__)

_Key = Tuple[Kind, str, str]


@dataclass
class _Failure:
    verb: str
    kind: Kind
    namespace: Optional[str]
    name: Optional[str]
    error: Exception

    def matches(self, verb: str, kind: Kind, namespace: Optional[str], name: Optional[str]) -> bool:
        if self.verb != verb or self.kind != kind:
            return False
        if self.namespace is not None and self.namespace != namespace:
            return False
        if self.name is not None and self.name != name:
            return False
        return True


class InMemoryClusterClient:
    """
    Deterministic fake of the cluster object store.

    Example:
        client = InMemoryClusterClient([namespace_manifest, servicemonitor_manifest])
        client.fail("list", Kind.SERVICE_MONITOR, namespace="broken")
        await client.list(Kind.SERVICE_MONITOR, "broken")  # raises ClusterAPIError
    """

    def __init__(self, objects: Optional[Iterable[Tuple[Kind, Manifest]]] = None):
        self._objects: Dict[_Key, Manifest] = {}
        self._version = 0
        self._failures: List[_Failure] = []
        self.mutations: List[Tuple[str, Kind, str, str]] = []
        for kind, manifest in objects or []:
            self.add(kind, manifest)

    # Seeding and inspection (synchronous, for test setup)

    def add(self, kind: Kind, manifest: Manifest) -> Manifest:
        """Store an object without recording a mutation."""
        stored = self._prepare(kind, manifest)
        self._objects[self._key(kind, namespace_of(stored), name_of(stored))] = stored
        return copy.deepcopy(stored)

    def objects(self, kind: Kind, namespace: Optional[str] = None) -> List[Manifest]:
        return [
            copy.deepcopy(obj)
            for (k, ns, _), obj in sorted(self._objects.items(), key=lambda i: (i[0][1], i[0][2]))
            if k == kind and (namespace is None or ns == namespace)
        ]

    def exists(self, kind: Kind, namespace: Optional[str], name: str) -> bool:
        return self._key(kind, namespace, name) in self._objects

    def fail(
        self,
        verb: str,
        kind: Kind,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        error: Optional[Exception] = None,
    ) -> None:
        """Make matching ``verb`` calls raise ``error`` (ClusterAPIError by default)."""
        if error is None:
            error = ClusterAPIError(
                f"injected {verb} failure for {kind}",
                kind=str(kind),
                namespace=namespace,
                name=name,
                status=500,
            )
        self._failures.append(_Failure(verb, kind, namespace, name, error))

    def clear_failures(self) -> None:
        self._failures.clear()

    def reset_mutations(self) -> None:
        self.mutations.clear()

    # ClusterClient protocol

    async def get(self, kind: Kind, namespace: Optional[str], name: str) -> Manifest:
        self._check("get", kind, namespace, name)
        obj = self._objects.get(self._key(kind, namespace, name))
        if obj is None:
            raise self._not_found(kind, namespace, name)
        return copy.deepcopy(obj)

    async def list(
        self,
        kind: Kind,
        namespace: Optional[str] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> List[Manifest]:
        self._check("list", kind, namespace, None)
        return [obj for obj in self.objects(kind, namespace) if matches_labels(obj, labels)]

    async def create(self, kind: Kind, manifest: Manifest) -> Manifest:
        namespace, name = namespace_of(manifest), name_of(manifest)
        self._check("create", kind, namespace, name)
        key = self._key(kind, namespace, name)
        if key in self._objects:
            raise AlreadyExistsError(
                f"{kind} {name} already exists",
                kind=str(kind), namespace=namespace, name=name, status=409,
            )
        stored = self._prepare(kind, manifest)
        self._objects[key] = stored
        self.mutations.append(("create", kind, namespace or "", name))
        return copy.deepcopy(stored)

    async def update(self, kind: Kind, manifest: Manifest) -> Manifest:
        namespace, name = namespace_of(manifest), name_of(manifest)
        self._check("update", kind, namespace, name)
        key = self._key(kind, namespace, name)
        existing = self._objects.get(key)
        if existing is None:
            raise self._not_found(kind, namespace, name)
        stored = self._prepare(kind, manifest, uid=existing["metadata"].get("uid"))
        self._objects[key] = stored
        self.mutations.append(("update", kind, namespace or "", name))
        return copy.deepcopy(stored)

    async def delete(self, kind: Kind, namespace: Optional[str], name: str) -> None:
        self._check("delete", kind, namespace, name)
        key = self._key(kind, namespace, name)
        if key not in self._objects:
            raise self._not_found(kind, namespace, name)
        del self._objects[key]
        self.mutations.append(("delete", kind, namespace or "", name))

    # Internals

    @staticmethod
    def _key(kind: Kind, namespace: Optional[str], name: str) -> _Key:
        return (kind, (namespace or "") if kind.info.namespaced else "", name)

    def _prepare(self, kind: Kind, manifest: Manifest, uid: Optional[str] = None) -> Manifest:
        stored = copy.deepcopy(manifest)
        stored.setdefault("apiVersion", kind.info.api_version)
        stored.setdefault("kind", kind.info.kind)
        metadata = stored.setdefault("metadata", {})
        if not metadata.get("name"):
            raise ClusterAPIError(f"{kind} manifest has no name", kind=str(kind), status=422)
        if kind.info.namespaced and not metadata.get("namespace"):
            raise ClusterAPIError(
                f"{kind} {metadata['name']} has no namespace",
                kind=str(kind), name=metadata["name"], status=422,
            )
        self._version += 1
        metadata["resourceVersion"] = str(self._version)
        metadata["uid"] = uid or metadata.get("uid") or str(uuid.uuid4())
        return stored

    def _check(self, verb: str, kind: Kind, namespace: Optional[str], name: Optional[str]) -> None:
        for failure in self._failures:
            if failure.matches(verb, kind, namespace, name):
                raise failure.error

    @staticmethod
    def _not_found(kind: Kind, namespace: Optional[str], name: str) -> NotFoundError:
        return NotFoundError(
            f"{kind} {name} not found",
            kind=str(kind), namespace=namespace, name=name, status=404,
        )
