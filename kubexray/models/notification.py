# kubexray/models/notification.py
from typing import List

from pydantic import BaseModel, Field

from kubexray.models.policy import Action


class NotifyComponent(BaseModel):
    component_name: str
    component_sha: str


class NotificationPayload(BaseModel):
    """Structured report of what happened to one pod, sent to chat and back to the scan service."""
    pod_name: str
    namespace: str
    action: Action = Action.IGNORE
    cluster_url: str = ""
    components: List[NotifyComponent] = Field(default_factory=list)

    def to_callback_body(self) -> dict:
        body = self.model_dump()
        body["action"] = self.action.label
        return body
