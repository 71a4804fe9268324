# kubexray/models/webhook.py
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from kubexray.models.policy import Action
from kubexray.models.scan import BLOCKING_SEVERITIES


class ImpactedArtifact(BaseModel):
    model_config = ConfigDict(extra='ignore')

    pkg_type: str = ""
    sha256: str = ""


class WebhookIssue(BaseModel):
    model_config = ConfigDict(extra='ignore')

    severity: str
    type: str = ""
    impacted_artifacts: Optional[List[ImpactedArtifact]] = None


class WebhookReport(BaseModel):
    """Issue report pushed by the scanning service."""
    model_config = ConfigDict(extra='ignore')

    issues: List[WebhookIssue]


class ChecksumSearchTerm(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: str
    issue_type: str
    checksum: str


class PodRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    uid: str


class WebhookCorrelationItem(BaseModel):
    """A search term matched against a running container."""
    severity: str
    issue_type: str
    checksum: str
    image: str
    pod: PodRef
    action: Action = Action.IGNORE


def extract_search_terms(report: WebhookReport) -> List[ChecksumSearchTerm]:
    """Keep blocking-severity issues and their Docker artifacts with a checksum."""
    terms: List[ChecksumSearchTerm] = []
    for issue in report.issues:
        if issue.severity not in BLOCKING_SEVERITIES or not issue.type:
            continue
        if issue.impacted_artifacts is None:
            continue
        for artifact in issue.impacted_artifacts:
            if artifact.pkg_type != "Docker" or not artifact.sha256:
                continue
            terms.append(ChecksumSearchTerm(severity=issue.severity, issue_type=issue.type, checksum=artifact.sha256))
    return terms
