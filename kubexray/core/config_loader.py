# kubexray/core/config_loader.py
"""
Loading of the mounted YAML files: scan service credentials and the
remediation policy table.
"""
import logging
from typing import Any, Dict, Optional, Sequence, Tuple

import yaml
from pydantic import BaseModel, ValidationError

from kubexray.core.config import Settings
from kubexray.core.exceptions import ConfigurationError
from kubexray.models.policy import Policy, PolicyTable

logger = logging.getLogger(__name__)

POLICY_CATEGORIES = ("unscanned", "security", "license")


class ScanServiceCredentials(BaseModel):
    url: str
    user: str
    password: str
    slack_webhook_url: Optional[str] = None
    webhook_token: Optional[str] = None


def _read_first_yaml(paths: Sequence[str]) -> Tuple[str, Any]:
    """Returns (path, parsed content) of the first readable file in `paths`."""
    last_error: Optional[Exception] = None
    for path in paths:
        try:
            with open(path, "r", encoding="utf-8") as fh:
                content = fh.read()
        except OSError as e:
            logger.debug(f"Cannot read {path}: {e}")
            last_error = e
            continue
        try:
            return path, yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Malformed YAML in {path}: {e}") from e
    raise ConfigurationError(f"None of the files {list(paths)} could be read: {last_error}")


def resolve_credentials(settings: Settings) -> ScanServiceCredentials:
    """
    Combines environment settings with the credentials file. Values set in the
    environment win. Raises ConfigurationError if url, user or password is missing.
    """
    file_data: Dict[str, Any] = {}
    try:
        path, data = _read_first_yaml(settings.CREDENTIALS_FILE_PATHS)
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} does not contain a mapping")
        file_data = data
        logger.info(f"Loaded scan service credentials from {path}")
    except ConfigurationError as e:
        logger.debug(f"Credentials file not used: {e}")

    password = settings.SCAN_SERVICE_PASSWORD.get_secret_value() if settings.SCAN_SERVICE_PASSWORD else file_data.get("password")
    token = settings.WEBHOOK_TOKEN.get_secret_value() if settings.WEBHOOK_TOKEN else file_data.get("xrayWebhookToken")
    values = {
        "url": settings.SCAN_SERVICE_URL or file_data.get("url"),
        "user": settings.SCAN_SERVICE_USER or file_data.get("user"),
        "password": password,
        "slack_webhook_url": settings.SLACK_WEBHOOK_URL or file_data.get("slackWebhookUrl") or None,
        "webhook_token": token or None,
    }
    missing = [key for key in ("url", "user", "password") if not values[key]]
    if missing:
        raise ConfigurationError(f"Scan service configuration is missing: {', '.join(missing)}")
    try:
        return ScanServiceCredentials(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid scan service configuration: {e}") from e


def parse_policy_table(data: Any) -> PolicyTable:
    """Builds a PolicyTable from the parsed policy YAML. Absent categories ignore everything."""
    if not isinstance(data, dict):
        raise ConfigurationError("Policy configuration must be a mapping")
    policies: Dict[str, Policy] = {}
    for category in POLICY_CATEGORIES:
        raw = data.get(category)
        if raw is None:
            continue
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Policy '{category}' must be a mapping")
        for key in ("deployments", "statefulSets"):
            if key not in raw:
                raise ConfigurationError(f"Cannot read action with value '' for {category}.{key}.")
        try:
            policies[category] = Policy.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid policy '{category}': {e}") from e
    return PolicyTable(configured=True, **policies)


def load_policy_table(paths: Sequence[str]) -> PolicyTable:
    """
    Reads the policy file. A missing or malformed file leaves no policy
    configured, so every evaluation defaults to no action.
    """
    try:
        path, data = _read_first_yaml(paths)
        table = parse_policy_table(data)
    except ConfigurationError as e:
        logger.warning(f"Cannot read policy configuration, no remediation will be performed: {e}")
        return PolicyTable()
    logger.info(
        f"Loaded policy from {path}: unscanned={_describe(table.unscanned)}, "
        f"security={_describe(table.security)}, license={_describe(table.license)}"
    )
    return table


def _describe(policy: Policy) -> str:
    whitelist = ",".join(sorted(policy.whitelist)) or "-"
    return f"(deployments={policy.deployments.label}, statefulSets={policy.stateful_sets.label}, whitelist={whitelist})"
