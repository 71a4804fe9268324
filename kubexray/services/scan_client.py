# kubexray/services/scan_client.py
import logging
from typing import Iterable, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from kubexray.core.exceptions import ScanServiceError
from kubexray.models.scan import (
    BLOCKING_SEVERITIES,
    LICENSE_ISSUE_TYPES,
    SECURITY_ISSUE_TYPES,
    ArtifactSummaryResponse,
    ComponentIdsResponse,
    ScanIssue,
    ScanVerdict,
    ViolationDetailsResponse,
)

logger = logging.getLogger(__name__)

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)

COMPONENT_IDS_PATH = "/api/v1/componentIdsByChecksum/{checksum}"
VIOLATION_DETAILS_PATH = "/ui/userIssues/details"
VIOLATION_DETAILS_PARAMS = {"direction": "asc", "order_by": "severity", "num_of_rows": "0", "page_num": "0"}
ARTIFACT_SUMMARY_PATH = "/api/v1/summary/artifact"
METADATA_PATH = "/api/v1/kube/metadata"

UNRECOGNIZED = ScanVerdict(recognized=False)
CLEAN = ScanVerdict(recognized=True)


def reduce_issues(checksum: str, issues: Iterable[ScanIssue]) -> Optional[ScanVerdict]:
    """
    Returns the verdict for the first blocking security or license issue, or
    None if none of the issues is blocking.
    """
    for issue in issues:
        if issue.severity not in BLOCKING_SEVERITIES:
            continue
        if issue.issue_type in SECURITY_ISSUE_TYPES:
            logger.info(f"Major security issue found for sha: {checksum}")
            return ScanVerdict(recognized=True, has_security_issue=True)
        if issue.issue_type in LICENSE_ISSUE_TYPES:
            logger.info(f"Major license issue found for sha: {checksum}")
            return ScanVerdict(recognized=True, has_license_issue=True)
    return None


class ScanClient:
    """
    Client for the artifact scanning service (JFrog Xray API).

    evaluate() first asks which components carry the checksum and then the
    violations of each component. Servers without the component API answer
    404, in which case the artifact summary API is used instead.
    """

    def __init__(self, base_url: str, user: str, password: str, timeout: float = 30.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            auth=(user, password),
            timeout=timeout,
            transport=transport,
        )

    def close(self):
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"Error checking xray: {e}")
            raise ScanServiceError(f"Request to {path} failed: {e}") from e

    @staticmethod
    def _parse(response: httpx.Response, model: Type[ResponseModel]) -> ResponseModel:
        if response.status_code != 200:
            logger.warning(f"Error checking xray: response code is {response.status_code}")
            raise ScanServiceError(
                f"xray server responded with status: {response.status_code}", status_code=response.status_code
            )
        try:
            return model.model_validate_json(response.content)
        except ValidationError as e:
            logger.warning(f"Error checking xray: malformed {model.__name__}: {e}")
            raise ScanServiceError(f"Malformed {model.__name__} from scan service") from e

    def evaluate(self, checksum: str) -> ScanVerdict:
        """Raises ScanServiceError if the checksum could not be evaluated."""
        logger.debug(f"Checking sha {checksum} with Xray ...")
        response = self._request("GET", COMPONENT_IDS_PATH.format(checksum=checksum))
        if response.status_code == 404:
            logger.debug("404 response from componentIdsByChecksum, trying backup API instead")
            return self.evaluate_summary(checksum)
        components = self._parse(response, ComponentIdsResponse)
        if not components.ids:
            logger.debug("Xray does not recognize this sha")
            return UNRECOGNIZED

        for component in components.ids:
            response = self._request(
                "POST",
                VIOLATION_DETAILS_PATH,
                params=VIOLATION_DETAILS_PARAMS,
                json=component.model_dump(),
            )
            violations = self._parse(response, ViolationDetailsResponse)
            verdict = reduce_issues(checksum, (item.as_issue() for item in violations.data))
            if verdict is not None:
                return verdict
        logger.debug("No major security issues found")
        return CLEAN

    def evaluate_summary(self, checksum: str) -> ScanVerdict:
        """Fallback protocol: issues are returned inline per artifact."""
        response = self._request("POST", ARTIFACT_SUMMARY_PATH, json={"checksums": [checksum]})
        summary = self._parse(response, ArtifactSummaryResponse)
        if not summary.artifacts:
            logger.debug("Xray does not recognize this sha")
            return UNRECOGNIZED
        for artifact in summary.artifacts:
            verdict = reduce_issues(checksum, (issue.as_issue() for issue in artifact.issues))
            if verdict is not None:
                return verdict
        logger.debug("No major security issues found")
        return CLEAN

    def post_metadata(self, body: dict):
        """Reports a remediated pod back to the scan service. Raises ScanServiceError on non-200."""
        logger.debug(f"Message body: {body}")
        response = self._request("POST", METADATA_PATH, json=body)
        if response.status_code != 200:
            raise ScanServiceError(
                f"xray server responded with status: {response.status_code}", status_code=response.status_code
            )
