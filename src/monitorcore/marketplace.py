"""
Operator installation through the Operator Lifecycle Manager.

Installing an operator means ensuring an OperatorGroup and a
Subscription exist; the subscription manager then produces InstallPlans
whose phase tells us when the operator is ready. ``ClusterMarketplace``
does this over any ``ClusterClient``, so the same code drives a real
cluster and the in-memory fake.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Tuple, runtime_checkable

from monitorcore.cluster.base import ClusterClient, Kind, Manifest, new_manifest
from monitorcore.constants import ApprovalStrategy
from monitorcore.errors import AlreadyExistsError, NotFoundError
from monitorcore.models import Installation, Target
from monitorcore.ownership import owner_labels

logger = logging.getLogger(__name__)

OPERATOR_GROUP_NAME = "rhmi-registry-og"


@runtime_checkable
class OperatorInstaller(Protocol):
    """Requests operator installs and reports their progress."""

    async def install_operator(
        self,
        owner: Installation,
        target: Target,
        operator_group_namespaces: List[str],
        approval_strategy: ApprovalStrategy,
    ) -> None:
        """Request installation; a no-op when already requested."""
        ...

    async def get_subscription_install_plans(
        self,
        subscription_name: str,
        namespace: str,
    ) -> Tuple[List[Manifest], Manifest]:
        """Return the install plans in ``namespace`` and the subscription."""
        ...


def current_install_plan_name(subscription: Manifest) -> Optional[str]:
    """Name of the install plan the subscription currently points at."""
    status = subscription.get("status") or {}
    ref = status.get("installPlanRef") or status.get("install") or {}
    return ref.get("name") or None


class ClusterMarketplace:
    """
    OperatorInstaller backed by OLM objects in the cluster store.

    Example:
        marketplace = ClusterMarketplace(cluster)
        await marketplace.install_operator(installation, target, ["monitoring"], ApprovalStrategy.AUTOMATIC)
        plans, subscription = await marketplace.get_subscription_install_plans(
            target.package, target.namespace
        )
    """

    def __init__(self, client: ClusterClient, operator_group_name: str = OPERATOR_GROUP_NAME):
        self.client = client
        self.operator_group_name = operator_group_name

    async def install_operator(
        self,
        owner: Installation,
        target: Target,
        operator_group_namespaces: List[str],
        approval_strategy: ApprovalStrategy,
    ) -> None:
        labels = owner_labels(owner.uid) if owner.uid else None

        operator_group = new_manifest(
            Kind.OPERATOR_GROUP,
            self.operator_group_name,
            target.namespace,
            labels=labels,
            spec={"targetNamespaces": list(operator_group_namespaces)},
        )
        await self._create_if_absent(Kind.OPERATOR_GROUP, operator_group)

        subscription = new_manifest(
            Kind.SUBSCRIPTION,
            target.package,
            target.namespace,
            labels=labels,
            spec={
                "name": target.package,
                "channel": target.channel,
                "source": target.catalog_source,
                "sourceNamespace": target.catalog_source_namespace or target.namespace,
                "installPlanApproval": ApprovalStrategy(approval_strategy).value,
            },
        )
        await self._create_if_absent(Kind.SUBSCRIPTION, subscription)

    async def get_subscription_install_plans(
        self,
        subscription_name: str,
        namespace: str,
    ) -> Tuple[List[Manifest], Manifest]:
        subscription = await self.client.get(Kind.SUBSCRIPTION, namespace, subscription_name)
        plans = await self.client.list(Kind.INSTALL_PLAN, namespace)
        return plans, subscription

    async def _create_if_absent(self, kind: Kind, manifest: Manifest) -> None:
        metadata = manifest["metadata"]
        try:
            await self.client.get(kind, metadata["namespace"], metadata["name"])
            return
        except NotFoundError:
            pass
        try:
            await self.client.create(kind, manifest)
            logger.info(f"Created {kind} {metadata['namespace']}/{metadata['name']}")
        except AlreadyExistsError:
            logger.debug(f"{kind} {metadata['name']} created concurrently")
