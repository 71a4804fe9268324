# kubexray/services/pod_handler.py
import logging
from typing import List, Tuple

from kubernetes import client

from kubexray.core.exceptions import ScanServiceError
from kubexray.models.notification import NotificationPayload, NotifyComponent
from kubexray.models.policy import Action
from kubexray.models.remediation import PodEvaluation
from kubexray.services.kubernetes_service import KubernetesService, container_observations
from kubexray.services.notification_service import NotificationService
from kubexray.services.policy_service import PolicyService
from kubexray.services.resource_resolver import ResourceResolver
from kubexray.services.scan_client import ScanClient

logger = logging.getLogger(__name__)


class PodEventHandler:
    """
    Entry points for pod watch events. Each evaluation reads cluster and scan
    service state fresh, so concurrent calls for different pods are independent.
    """

    def __init__(self, k8s_service: KubernetesService, resolver: ResourceResolver, scan_client: ScanClient,
                 policy_service: PolicyService, notifier: NotificationService, process_updates: bool = False):
        self.k8s_service = k8s_service
        self.resolver = resolver
        self.scan_client = scan_client
        self.policy_service = policy_service
        self.notifier = notifier
        self.process_updates = process_updates

    def on_created(self, pod: client.V1Pod) -> PodEvaluation:
        logger.debug(f"Pod created: {pod.metadata.namespace}/{pod.metadata.name}")
        return self.evaluate(pod)

    def on_updated(self, pod: client.V1Pod):
        if not self.process_updates:
            logger.debug(f"Pod updated: {pod.metadata.namespace}/{pod.metadata.name} (updates not evaluated)")
            return None
        return self.evaluate(pod)

    def on_deleted(self, pod: client.V1Pod):
        # Nothing left to remediate
        logger.debug(f"Pod deleted: {pod.metadata.namespace}/{pod.metadata.name}")
        return None

    def _scan_containers(self, pod: client.V1Pod) -> Tuple[List[NotifyComponent], bool, bool, bool]:
        """Scans every container digest; containers that cannot be evaluated are skipped."""
        components: List[NotifyComponent] = []
        recognized, security, license = True, False, False
        for observation in container_observations(pod):
            logger.debug(f"Container: {observation.image}, Digest: {observation.digest or 'NA'}")
            if observation.digest is None:
                continue
            try:
                verdict = self.scan_client.evaluate(observation.digest)
            except ScanServiceError as e:
                logger.warning(f"Skipping container {observation.image} of pod {pod.metadata.name}: {e}")
                continue
            components.append(NotifyComponent(component_name=observation.image, component_sha=observation.digest))
            recognized = recognized and verdict.recognized
            security = security or verdict.has_security_issue
            license = license or verdict.has_license_issue
        return components, recognized, security, license

    def evaluate(self, pod: client.V1Pod) -> PodEvaluation:
        name, namespace = pod.metadata.name, pod.metadata.namespace
        node = pod.spec.node_name if pod.spec else None
        phase = pod.status.phase if pod.status else None
        logger.debug(f"Pod: {name} v.{pod.metadata.resource_version} (Node: {node}, {phase})")

        resource_type, resource_name = self.resolver.resolve(name, namespace)
        components, recognized, security, license = self._scan_containers(pod)
        result = PodEvaluation(
            pod_name=name,
            namespace=namespace,
            resource_type=resource_type,
            resource_name=resource_name,
            recognized=recognized,
            has_security_issue=security,
            has_license_issue=license,
        )

        unscanned = not recognized
        if self.policy_service.is_whitelisted(namespace, unscanned, security, license):
            logger.debug(f"Ignoring pod: {name} (due to whitelisted namespace: {namespace})")
            result.whitelisted = True
            return result

        decision = self.policy_service.decide(resource_type, unscanned, security, license)
        payload = NotificationPayload(
            pod_name=name,
            namespace=namespace,
            action=decision.action,
            cluster_url=self.k8s_service.cluster_url,
            components=components,
        )
        result.decision = decision
        result.payload = payload

        if decision.action == Action.IGNORE:
            logger.debug(f"Ignoring pod: {name}")
            if (unscanned or security or license) and self.notifier.chat_enabled:
                result.chat_notified = self.notifier.notify_chat(payload, security, license)
            return result

        logger.info(
            f"Pod {namespace}/{name} violates the {decision.reason.value} policy, "
            f"applying {decision.action.label} to {resource_type.value} {resource_name}"
        )
        result.remediated = self.k8s_service.remove(resource_type, resource_name, namespace,
                                                    hard=decision.action == Action.DELETE)
        if not result.remediated:
            logger.warning(f"Remediation of {resource_type.value} {resource_name} for pod {name} failed")
        if self.notifier.chat_enabled:
            result.chat_notified = self.notifier.notify_chat(payload, security, license)
        try:
            self.notifier.notify_scan_service(payload)
            result.scan_service_notified = True
        except ScanServiceError as e:
            logger.error(f"Problem notifying xray about pod {name}: {e}")
        return result
