"""
Operator install tracking.

Requests the monitoring operator through the subscription manager and
maps the current install plan's phase onto the reconciler's phases:

    install plan "Complete"   -> Phase.COMPLETED
    anything else / not yet   -> Phase.IN_PROGRESS
    installer call failed     -> TransientInstallError (retried next pass)
"""

from __future__ import annotations

import logging
from typing import List, Optional

from monitorcore.cluster.base import Manifest, name_of
from monitorcore.config import MonitoringSettings
from monitorcore.config_store import MonitoringSpec
from monitorcore.constants import INSTALL_PLAN_PHASE_COMPLETE
from monitorcore.errors import NotFoundError, TransientInstallError
from monitorcore.marketplace import OperatorInstaller, current_install_plan_name
from monitorcore.models import Installation, Phase, Target

logger = logging.getLogger(__name__)


def find_install_plan(plans: List[Manifest], name: Optional[str]) -> Optional[Manifest]:
    if not name:
        return None
    for plan in plans:
        if name_of(plan) == name:
            return plan
    return None


def install_plan_phase(plan: Optional[Manifest]) -> str:
    if plan is None:
        return ""
    return (plan.get("status") or {}).get("phase", "")


class OperatorInstallTracker:
    """Drives the monitoring operator install to completion across passes."""

    def __init__(self, installer: OperatorInstaller, settings: MonitoringSettings):
        self.installer = installer
        self.settings = settings

    def target_for(self, spec: MonitoringSpec) -> Target:
        return Target(
            package=self.settings.subscription_name,
            namespace=spec.get_operator_namespace(),
            channel=self.settings.channel,
            catalog_source=self.settings.catalog_source,
            catalog_source_namespace=self.settings.catalog_source_namespace,
            approval_strategy=self.settings.approval_strategy,
        )

    async def ensure_installed(self, installation: Installation, spec: MonitoringSpec) -> Phase:
        """
        Request the operator and report whether its install plan is complete.

        Raises:
            TransientInstallError: the installer failed; the pass should
                report InProgress and retry later.
        """
        target = self.target_for(spec)

        try:
            await self.installer.install_operator(
                installation,
                target,
                [spec.get_namespace()],
                target.approval_strategy,
            )
        except Exception as e:
            raise TransientInstallError(
                f"could not install {target.package} operator in {target.namespace}: {e}"
            ) from e

        try:
            plans, subscription = await self.installer.get_subscription_install_plans(
                target.package, target.namespace
            )
        except NotFoundError:
            logger.debug(f"Subscription {target.namespace}/{target.package} not visible yet")
            return Phase.IN_PROGRESS
        except Exception as e:
            raise TransientInstallError(
                f"could not read install plans for {target.namespace}/{target.package}: {e}"
            ) from e

        plan_name = current_install_plan_name(subscription)
        plan = find_install_plan(plans, plan_name)
        phase = install_plan_phase(plan)

        if phase == INSTALL_PLAN_PHASE_COMPLETE:
            return Phase.COMPLETED

        logger.info(
            f"Operator {target.package} not installed yet "
            f"(install plan {plan_name or '<none>'}, phase {phase or '<none>'})"
        )
        return Phase.IN_PROGRESS
