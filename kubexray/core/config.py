# kubexray/core/config.py
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    APP_NAME: str = "Kube Xray Policy Enforcer"
    LOG_LEVEL: str = "INFO"

    # Scan service (Xray) connection. Anything left unset here is looked up
    # in the credentials file at startup.
    SCAN_SERVICE_URL: Optional[str] = Field(None, description="Base URL of the artifact scanning service")
    SCAN_SERVICE_USER: Optional[str] = Field(None, description="Basic auth user for the scanning service")
    SCAN_SERVICE_PASSWORD: Optional[SecretStr] = Field(None, description="Basic auth password for the scanning service")
    CREDENTIALS_FILE_PATHS: List[str] = ["/config/secret/xray_config.yaml", "./xray_config.yaml"]

    # Notifications
    SLACK_WEBHOOK_URL: Optional[str] = Field(None, description="Chat webhook used for pod notifications")
    CHAT_USERNAME: str = "kube-xray"

    # Inbound webhook the scanning service calls back into
    WEBHOOK_TOKEN: Optional[SecretStr] = Field(None, description="Shared token expected in the X-Auth-Token header")
    WEBHOOK_HOST: str = "0.0.0.0"
    WEBHOOK_PORT: int = 8765

    # Remediation policy
    POLICY_FILE_PATHS: List[str] = ["/config/conf/config.yaml", "./config.yaml"]

    # Kubernetes Config - leave blank to use in-cluster or default kubeconfig
    KUBE_CONFIG_PATH: Optional[str] = None
    CLUSTER_URL: Optional[str] = Field(None, description="Cluster identity reported back to the scanning service")

    HTTP_TIMEOUT_SECONDS: float = Field(30.0, gt=0, description="Timeout for scan service and chat calls")
    WATCH_PODS: bool = Field(True, description="Watch pods in-process and evaluate them as they appear")
    PROCESS_POD_UPDATES: bool = Field(False, description="Also evaluate pods on update events")

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG']:
            raise ValueError("LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG")
        return level

    model_config = SettingsConfigDict(
        env_file='.env', # Load environment variables from .env file
        env_file_encoding='utf-8',
        extra='ignore', # Ignore extra fields from environment
    )

settings = Settings()
