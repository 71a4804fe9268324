# kubexray/core/exceptions.py
from typing import Optional


class KubeXrayError(Exception):
    """Base class for errors raised by kubexray."""


class ConfigurationError(KubeXrayError):
    """Invalid or missing policy/credential configuration."""


class ScanServiceError(KubeXrayError):
    """The scanning service could not be reached or answered unexpectedly."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ClusterQueryError(KubeXrayError):
    """Listing namespaces or pods failed while correlating webhook checksums."""
