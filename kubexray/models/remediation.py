# kubexray/models/remediation.py
from typing import Optional

from pydantic import BaseModel

from kubexray.models.notification import NotificationPayload
from kubexray.models.policy import RemediationDecision, ResourceType

class PodEvaluation(BaseModel):
    """Outcome of evaluating one pod against the policy."""
    pod_name: str
    namespace: str
    resource_type: ResourceType = ResourceType.UNRECOGNIZED
    resource_name: Optional[str] = None
    recognized: bool = True
    has_security_issue: bool = False
    has_license_issue: bool = False
    whitelisted: bool = False
    decision: RemediationDecision = RemediationDecision()
    remediated: bool = False # Did the delete/scale call succeed?
    chat_notified: bool = False
    scan_service_notified: bool = False
    payload: Optional[NotificationPayload] = None
