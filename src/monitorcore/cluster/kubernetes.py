"""
Kubernetes-backed cluster object store.

Namespaces and RoleBindings go through the typed core and RBAC APIs;
ServiceMonitors and the OLM kinds go through ``CustomObjectsApi``. Typed
responses are converted back to manifest dicts so callers see one shape
for every kind. The client library is blocking, so each call runs in a
worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from monitorcore.cluster.base import (
    Kind,
    Manifest,
    format_label_selector,
    name_of,
    namespace_of,
)
from monitorcore.config import get_settings
from monitorcore.errors import AlreadyExistsError, ClusterAPIError, NotFoundError

logger = logging.getLogger(__name__)

# Connect and read timeouts for K8s API calls
K8S_API_CONNECT_TIMEOUT_S = 3
K8S_API_READ_TIMEOUT_S = 10


def load_api_client(kubeconfig: Optional[str] = None) -> client.ApiClient:
    """Load in-cluster config, falling back to a kubeconfig file."""
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
    else:
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config()
    return client.ApiClient()


class KubernetesClusterClient:
    """
    Cluster object store talking to a real API server.

    Example:
        cluster = KubernetesClusterClient.from_config()
        namespaces = await cluster.list(Kind.NAMESPACE, labels={"monitoring-key": "middleware"})
    """

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        self.api_client = api_client or client.ApiClient()
        self.core_api = client.CoreV1Api(self.api_client)
        self.rbac_api = client.RbacAuthorizationV1Api(self.api_client)
        self.custom_api = client.CustomObjectsApi(self.api_client)
        self._timeout = (K8S_API_CONNECT_TIMEOUT_S, K8S_API_READ_TIMEOUT_S)

    @classmethod
    def from_config(cls, kubeconfig: Optional[str] = None) -> "KubernetesClusterClient":
        """Connect using ``kubeconfig``, or the ``kubeconfig`` setting if not given."""
        return cls(load_api_client(kubeconfig or get_settings().kubeconfig))

    # ClusterClient protocol

    async def get(self, kind: Kind, namespace: Optional[str], name: str) -> Manifest:
        return await self._call(kind, namespace, name, self._get, kind, namespace, name)

    async def list(
        self,
        kind: Kind,
        namespace: Optional[str] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> List[Manifest]:
        return await self._call(kind, namespace, None, self._list, kind, namespace, labels)

    async def create(self, kind: Kind, manifest: Manifest) -> Manifest:
        namespace, name = namespace_of(manifest), name_of(manifest)
        return await self._call(kind, namespace, name, self._create, kind, namespace, name, manifest)

    async def update(self, kind: Kind, manifest: Manifest) -> Manifest:
        namespace, name = namespace_of(manifest), name_of(manifest)
        return await self._call(kind, namespace, name, self._update, kind, namespace, name, manifest)

    async def delete(self, kind: Kind, namespace: Optional[str], name: str) -> None:
        await self._call(kind, namespace, name, self._delete, kind, namespace, name)

    # Blocking implementations

    async def _call(
        self,
        kind: Kind,
        namespace: Optional[str],
        name: Optional[str],
        fn: Callable[..., Any],
        *args: Any,
    ) -> Any:
        """Run a blocking API call in a worker thread, translating API errors."""
        try:
            return await asyncio.to_thread(fn, *args)
        except ApiException as e:
            raise _translate(e, kind, namespace, name) from e

    def _to_dict(self, obj: Any) -> Manifest:
        if isinstance(obj, dict):
            return obj
        return self.api_client.sanitize_for_serialization(obj)

    def _get(self, kind: Kind, namespace: Optional[str], name: str) -> Manifest:
        if kind is Kind.NAMESPACE:
            obj = self.core_api.read_namespace(name, _request_timeout=self._timeout)
        elif kind is Kind.ROLE_BINDING:
            obj = self.rbac_api.read_namespaced_role_binding(
                name, namespace, _request_timeout=self._timeout
            )
        else:
            info = kind.info
            obj = self.custom_api.get_namespaced_custom_object(
                group=info.group,
                version=info.version,
                namespace=namespace,
                plural=info.plural,
                name=name,
                _request_timeout=self._timeout,
            )
        return self._with_type(kind, self._to_dict(obj))

    def _list(
        self,
        kind: Kind,
        namespace: Optional[str],
        labels: Optional[Dict[str, str]],
    ) -> List[Manifest]:
        selector = format_label_selector(labels)
        kwargs: Dict[str, Any] = {"_request_timeout": self._timeout}
        if selector:
            kwargs["label_selector"] = selector

        if kind is Kind.NAMESPACE:
            result = self.core_api.list_namespace(**kwargs)
        elif kind is Kind.ROLE_BINDING:
            if namespace:
                result = self.rbac_api.list_namespaced_role_binding(namespace, **kwargs)
            else:
                result = self.rbac_api.list_role_binding_for_all_namespaces(**kwargs)
        else:
            info = kind.info
            if namespace:
                result = self.custom_api.list_namespaced_custom_object(
                    group=info.group,
                    version=info.version,
                    namespace=namespace,
                    plural=info.plural,
                    **kwargs,
                )
            else:
                result = self.custom_api.list_cluster_custom_object(
                    group=info.group,
                    version=info.version,
                    plural=info.plural,
                    **kwargs,
                )

        items = self._to_dict(result).get("items") or []
        return [self._with_type(kind, item) for item in items]

    def _create(self, kind: Kind, namespace: Optional[str], name: str, manifest: Manifest) -> Manifest:
        if kind is Kind.NAMESPACE:
            obj = self.core_api.create_namespace(manifest, _request_timeout=self._timeout)
        elif kind is Kind.ROLE_BINDING:
            obj = self.rbac_api.create_namespaced_role_binding(
                namespace, manifest, _request_timeout=self._timeout
            )
        else:
            info = kind.info
            obj = self.custom_api.create_namespaced_custom_object(
                group=info.group,
                version=info.version,
                namespace=namespace,
                plural=info.plural,
                body=manifest,
                _request_timeout=self._timeout,
            )
        logger.debug(f"Created {kind} {namespace}/{name}")
        return self._with_type(kind, self._to_dict(obj))

    def _update(self, kind: Kind, namespace: Optional[str], name: str, manifest: Manifest) -> Manifest:
        if kind is Kind.NAMESPACE:
            obj = self.core_api.replace_namespace(name, manifest, _request_timeout=self._timeout)
        elif kind is Kind.ROLE_BINDING:
            obj = self.rbac_api.replace_namespaced_role_binding(
                name, namespace, manifest, _request_timeout=self._timeout
            )
        else:
            info = kind.info
            obj = self.custom_api.replace_namespaced_custom_object(
                group=info.group,
                version=info.version,
                namespace=namespace,
                plural=info.plural,
                name=name,
                body=manifest,
                _request_timeout=self._timeout,
            )
        logger.debug(f"Updated {kind} {namespace}/{name}")
        return self._with_type(kind, self._to_dict(obj))

    def _delete(self, kind: Kind, namespace: Optional[str], name: str) -> None:
        if kind is Kind.NAMESPACE:
            self.core_api.delete_namespace(name, _request_timeout=self._timeout)
        elif kind is Kind.ROLE_BINDING:
            self.rbac_api.delete_namespaced_role_binding(
                name, namespace, _request_timeout=self._timeout
            )
        else:
            info = kind.info
            self.custom_api.delete_namespaced_custom_object(
                group=info.group,
                version=info.version,
                namespace=namespace,
                plural=info.plural,
                name=name,
                _request_timeout=self._timeout,
            )
        logger.debug(f"Deleted {kind} {namespace}/{name}")

    @staticmethod
    def _with_type(kind: Kind, manifest: Manifest) -> Manifest:
        # List items from the typed APIs come back without apiVersion/kind
        manifest.setdefault("apiVersion", kind.info.api_version)
        manifest.setdefault("kind", kind.info.kind)
        return manifest


def _translate(
    error: ApiException,
    kind: Kind,
    namespace: Optional[str],
    name: Optional[str],
) -> ClusterAPIError:
    where = f"{namespace}/{name}" if namespace and name else (name or namespace)
    target = f"{kind} {where}" if where else str(kind)
    message = f"{target}: {error.status} {error.reason}"
    if error.status == 404:
        cls = NotFoundError
    elif error.status == 409:
        cls = AlreadyExistsError
    else:
        cls = ClusterAPIError
    return cls(message, kind=str(kind), namespace=namespace, name=name, status=error.status)
