# kubexray/services/webhook_receiver.py
import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from kubexray.core.exceptions import ScanServiceError
from kubexray.models.notification import NotificationPayload, NotifyComponent
from kubexray.models.policy import Action, ResourceType
from kubexray.models.scan import LICENSE_ISSUE_TYPES, SECURITY_ISSUE_TYPES
from kubexray.models.webhook import (
    ChecksumSearchTerm,
    PodRef,
    WebhookCorrelationItem,
    WebhookReport,
    extract_search_terms,
)
from kubexray.services.kubernetes_service import KubernetesService, extract_digest
from kubexray.services.notification_service import NotificationService
from kubexray.services.policy_service import PolicyService
from kubexray.services.resource_resolver import ResourceResolver

logger = logging.getLogger(__name__)


class WebhookResult(BaseModel):
    matched: int = 0
    notifications: List[NotificationPayload] = []


class WebhookReceiver:
    """
    Handles issue reports the scanning service pushes after the fact: finds
    running containers with the reported checksums and remediates their
    workloads with the same policy as the pod event path.

    Token comparison is plain equality, suitable for trusted networks only.
    """

    def __init__(self, k8s_service: KubernetesService, resolver: ResourceResolver,
                 policy_service: PolicyService, notifier: NotificationService, token: Optional[str] = None):
        self.k8s_service = k8s_service
        self.resolver = resolver
        self.policy_service = policy_service
        self.notifier = notifier
        self.token = token

    def is_authorized(self, token: Optional[str]) -> bool:
        if not self.token or token is None:
            return False
        return token == self.token

    def correlate(self, terms: List[ChecksumSearchTerm]) -> List[WebhookCorrelationItem]:
        """Matches search terms against every running container. Raises ClusterQueryError."""
        if not terms:
            return []
        items: List[WebhookCorrelationItem] = []
        for pod in self.k8s_service.list_all_pods():
            statuses = (pod.status.container_statuses if pod.status else None) or []
            for status in statuses:
                digest = extract_digest(status.image_id)
                if digest is None:
                    continue
                for term in terms:
                    if term.checksum != digest:
                        continue
                    items.append(WebhookCorrelationItem(
                        severity=term.severity,
                        issue_type=term.issue_type,
                        checksum=digest,
                        image=status.image or "",
                        pod=PodRef(name=pod.metadata.name, namespace=pod.metadata.namespace, uid=pod.metadata.uid),
                    ))
        return items

    def handle(self, report: WebhookReport) -> WebhookResult:
        terms = extract_search_terms(report)
        logger.debug(f"Webhook reported {len(terms)} checksums with blocking issues")
        items = self.correlate(terms)

        owners: Dict[str, Tuple[ResourceType, Optional[str]]] = {}
        groups: Dict[str, List[WebhookCorrelationItem]] = {}
        for item in items:
            pod = item.pod
            if pod.uid not in owners:
                owners[pod.uid] = self.resolver.resolve(pod.name, pod.namespace)
            resource_type, _ = owners[pod.uid]
            security = item.issue_type in SECURITY_ISSUE_TYPES
            license = item.issue_type in LICENSE_ISSUE_TYPES
            if self.policy_service.is_whitelisted(pod.namespace, False, security, license):
                logger.debug(f"Ignoring pod: {pod.name} (due to whitelisted namespace: {pod.namespace})")
                continue
            item.action = self.policy_service.decide(resource_type, False, security, license).action
            if item.action == Action.IGNORE:
                logger.debug(f"Ignoring pod: {pod.name}")
                continue
            groups.setdefault(pod.uid, []).append(item)

        result = WebhookResult(matched=len(items))
        for uid, group in groups.items():
            pod = group[0].pod
            resource_type, resource_name = owners[uid]
            action = max(item.action for item in group)
            payload = NotificationPayload(
                pod_name=pod.name,
                namespace=pod.namespace,
                action=action,
                cluster_url=self.k8s_service.cluster_url,
                components=[NotifyComponent(component_name=image, component_sha=checksum)
                            for image, checksum in dict.fromkeys((item.image, item.checksum) for item in group)],
            )
            logger.info(f"Webhook: applying {action.label} to {resource_type.value} {resource_name} for pod {pod.namespace}/{pod.name}")
            if not self.k8s_service.remove(resource_type, resource_name, pod.namespace, hard=action == Action.DELETE):
                logger.warning(f"Remediation of {resource_type.value} {resource_name} for pod {pod.name} failed")
            self._dispatch(payload, group)
            result.notifications.append(payload)
        return result

    def _dispatch(self, payload: NotificationPayload, group: List[WebhookCorrelationItem]):
        if self.notifier.chat_enabled:
            security = any(item.issue_type in SECURITY_ISSUE_TYPES for item in group)
            license = any(item.issue_type in LICENSE_ISSUE_TYPES for item in group)
            self.notifier.notify_chat(payload, security, license)
        try:
            self.notifier.notify_scan_service(payload)
        except ScanServiceError as e:
            logger.error(f"Problem notifying xray about pod {payload.pod_name}: {e}")
