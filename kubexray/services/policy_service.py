# kubexray/services/policy_service.py
import logging
from typing import List, Set, Tuple

from kubexray.models.policy import (
    Action,
    Policy,
    PolicyTable,
    RemediationDecision,
    RemediationReason,
    ResourceType,
)

logger = logging.getLogger(__name__)


class PolicyService:
    """Maps scan findings and owning resource type to a remediation action."""

    def __init__(self, table: PolicyTable):
        self.table = table

    def _applicable(self, unscanned: bool, security: bool, license: bool) -> List[Tuple[RemediationReason, Policy]]:
        # Order matters for the reported reason when two categories tie
        applicable = []
        if security:
            applicable.append((RemediationReason.SECURITY, self.table.security))
        if license:
            applicable.append((RemediationReason.LICENSE, self.table.license))
        if unscanned:
            applicable.append((RemediationReason.UNSCANNED, self.table.unscanned))
        return applicable

    def decide(self, resource_type: ResourceType, unscanned: bool, security: bool, license: bool) -> RemediationDecision:
        """
        Picks the dominant action (delete > scaledown > ignore) over every
        category that applies to the pod.
        """
        applicable = self._applicable(unscanned, security, license)
        if not applicable:
            return RemediationDecision()
        if resource_type == ResourceType.UNRECOGNIZED:
            logger.info("Owning resource is not a deployment or stateful set, nothing to remediate.")
            return RemediationDecision(reason=applicable[0][0])

        action, reason = Action.IGNORE, applicable[0][0]
        for category, policy in applicable:
            candidate = policy.action_for(resource_type)
            if candidate > action:
                action, reason = candidate, category
        return RemediationDecision(action=action, reason=reason)

    def whitelisted_namespaces(self, unscanned: bool, security: bool, license: bool) -> Set[str]:
        namespaces: Set[str] = set()
        for _, policy in self._applicable(unscanned, security, license):
            namespaces |= policy.whitelist
        return namespaces

    def is_whitelisted(self, namespace: str, unscanned: bool, security: bool, license: bool) -> bool:
        """True if any category that applies exempts the namespace."""
        return namespace in self.whitelisted_namespaces(unscanned, security, license)
