"""Eligible namespace resolution."""

from __future__ import annotations

import logging
from typing import Dict, List

from monitorcore.cluster.base import ClusterClient, Kind
from monitorcore.constants import (
    MONITORING_LABEL_KEY,
    MONITORING_LABEL_VALUE,
    OWNER_LABEL_KEY,
)
from monitorcore.errors import NamespaceListError
from monitorcore.models import NamespaceIdentity

logger = logging.getLogger(__name__)

NAMESPACE_PHASE_TERMINATING = "Terminating"


def eligibility_selector(installation_uid: str) -> Dict[str, str]:
    return {
        OWNER_LABEL_KEY: installation_uid,
        MONITORING_LABEL_KEY: MONITORING_LABEL_VALUE,
    }


async def list_eligible_namespaces(
    client: ClusterClient,
    installation_uid: str,
) -> List[NamespaceIdentity]:
    """
    Namespaces that are monitoring sources for this installation.

    Selects namespaces carrying both the owner label for
    ``installation_uid`` and the monitoring label. Terminating namespaces
    are left out. The result is sorted by name and empty, never None,
    when nothing matches.

    Raises:
        NamespaceListError: the namespace list call failed.
    """
    if not installation_uid:
        logger.debug("Installation has no UID yet; no namespaces are eligible")
        return []

    try:
        manifests = await client.list(Kind.NAMESPACE, labels=eligibility_selector(installation_uid))
    except Exception as e:
        raise NamespaceListError(f"could not list monitored namespaces: {e}") from e

    eligible = []
    for manifest in manifests:
        phase = (manifest.get("status") or {}).get("phase")
        identity = NamespaceIdentity.from_manifest(manifest)
        if phase == NAMESPACE_PHASE_TERMINATING:
            logger.debug(f"Skipping terminating namespace {identity.name}")
            continue
        eligible.append(identity)

    return sorted(eligible, key=lambda ns: ns.name)
