# kubexray/services/resource_resolver.py
import logging
from typing import Optional, Tuple

from kubexray.models.policy import ResourceType
from kubexray.services.kubernetes_service import KubernetesService

logger = logging.getLogger(__name__)


class ResourceResolver:
    """
    Infers the workload owning a pod from its name.

    StatefulSet pods are named `<set>-<ordinal>`, Deployment pods
    `<deployment>-<replicaset-hash>-<suffix>`. Candidates are confirmed with
    an existence lookup, at most two per pod. This is a naming heuristic, not
    an owner-reference query; callers only see resolve().
    """

    def __init__(self, k8s_service: KubernetesService):
        self.k8s_service = k8s_service

    def resolve(self, pod_name: str, namespace: str) -> Tuple[ResourceType, Optional[str]]:
        """Returns (resource type, owning resource name). Never raises."""
        last = pod_name.rfind("-")
        if last <= 0:
            logger.debug(f"Resource for pod {pod_name} is not a recognized resource type")
            return ResourceType.UNRECOGNIZED, None

        set_name = pod_name[:last]
        if self.k8s_service.stateful_set_exists(set_name, namespace):
            return ResourceType.STATEFUL_SET, set_name
        logger.debug(f"Resource for pod {pod_name} is not stateful set {set_name}")

        second = set_name.rfind("-")
        if second <= 0:
            logger.debug(f"Resource for pod {pod_name} is not a recognized resource type")
            return ResourceType.UNRECOGNIZED, None

        deployment_name = set_name[:second]
        if self.k8s_service.deployment_exists(deployment_name, namespace):
            return ResourceType.DEPLOYMENT, deployment_name
        logger.debug(f"Resource for pod {pod_name} is not deployment {deployment_name}")
        return ResourceType.UNRECOGNIZED, None
