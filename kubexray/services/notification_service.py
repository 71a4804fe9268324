# kubexray/services/notification_service.py
import logging
from typing import Optional

import httpx

from kubexray.models.notification import NotificationPayload
from kubexray.models.policy import Action
from kubexray.services.scan_client import ScanClient

logger = logging.getLogger(__name__)

ACTION_TEXT = {
    Action.IGNORE: "*ignored*. ",
    Action.SCALEDOWN: "*scaled to zero*. ",
    Action.DELETE: "*deleted*. ",
}


def format_chat_message(payload: NotificationPayload, security: bool, license: bool) -> str:
    if security:
        reason = "_Reason: Major security issue_\n"
    elif license:
        reason = "_Reason: Major license issue_\n"
    else:
        reason = "_Reason: Unrecognized by Xray_\n"
    components = "Affected components:"
    for comp in payload.components:
        components += f"\n• {comp.component_name} _(sha256:{comp.component_sha})_"
    return f"Pod *{payload.pod_name}* (in {payload.namespace}) {ACTION_TEXT[payload.action]}{reason}{components}"


class NotificationService:
    """Sends pod notifications to the chat webhook and back to the scan service."""

    def __init__(self, scan_client: ScanClient, chat_webhook_url: Optional[str] = None,
                 chat_username: str = "kube-xray", timeout: float = 30.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.scan_client = scan_client
        self.chat_webhook_url = chat_webhook_url
        self.chat_username = chat_username
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self):
        self._client.close()

    @property
    def chat_enabled(self) -> bool:
        return bool(self.chat_webhook_url)

    def notify_chat(self, payload: NotificationPayload, security: bool, license: bool) -> bool:
        """Best effort: failures are logged, never raised. Returns True if the chat accepted the message."""
        if not self.chat_webhook_url:
            logger.warning("Unable to send notification, no Slack webhook URL configured")
            return False
        logger.debug(f"Sending notification concerning pod {payload.pod_name}")
        message = {"username": self.chat_username, "text": format_chat_message(payload, security, license)}
        try:
            response = self._client.post(self.chat_webhook_url, json=message)
        except httpx.HTTPError as e:
            logger.warning(f"Error notifying slack: {e}")
            return False
        if response.status_code != 200:
            logger.warning(f"Error notifying slack: response code is {response.status_code}")
            return False
        logger.debug("Notification successful")
        return True

    def notify_scan_service(self, payload: NotificationPayload):
        """Raises ScanServiceError if the scan service did not accept the report."""
        logger.debug(f"Sending message back to xray concerning pod {payload.pod_name}")
        self.scan_client.post_metadata(payload.to_callback_body())
