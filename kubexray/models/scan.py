# kubexray/models/scan.py
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Severities that count as a violation
BLOCKING_SEVERITIES = frozenset({"Major", "Critical", "High"})
SECURITY_ISSUE_TYPES = frozenset({"security"})
LICENSE_ISSUE_TYPES = frozenset({"license", "licenses"})


class ScanVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    recognized: bool
    has_security_issue: bool = False
    has_license_issue: bool = False


class ContainerObservation(BaseModel):
    """Image reference and digest of one container status."""
    image: str
    digest: Optional[str] = None  # None when the runtime reports no sha256 digest


class ScanIssue(BaseModel):
    """Issue type and severity, common to both scan service response shapes."""
    issue_type: str
    severity: str


# --- Primary protocol: componentIdsByChecksum + userIssues/details ---

class ComponentId(BaseModel):
    package_id: str
    version: str


class ComponentIdsResponse(BaseModel):
    sha256: Optional[str] = None
    ids: List[ComponentId] = []


class ViolationItem(BaseModel):
    type: str
    severity: str

    def as_issue(self) -> ScanIssue:
        return ScanIssue(issue_type=self.type, severity=self.severity)


class ViolationDetailsResponse(BaseModel):
    total_count: int = 0
    data: List[ViolationItem] = []


# --- Fallback protocol: summary/artifact ---

class ArtifactIssue(BaseModel):
    issue_type: str
    severity: str

    def as_issue(self) -> ScanIssue:
        return ScanIssue(issue_type=self.issue_type, severity=self.severity)


class ArtifactSummary(BaseModel):
    issues: List[ArtifactIssue] = []


class ArtifactSummaryResponse(BaseModel):
    artifacts: List[ArtifactSummary] = Field(...)
