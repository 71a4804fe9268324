# kubexray/models/policy.py
from enum import Enum, IntEnum
from typing import FrozenSet, List, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ResourceType(str, Enum):
    UNRECOGNIZED = "unrecognized"
    STATEFUL_SET = "statefulset"
    DEPLOYMENT = "deployment"


class Action(IntEnum):
    """Remediation action. Ordered so that max() picks the dominant one."""
    IGNORE = 0
    SCALEDOWN = 1
    DELETE = 2

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_label(cls, value: str) -> "Action":
        try:
            return {action.label: action for action in cls}[value]
        except (KeyError, TypeError):
            raise ValueError(f"Cannot read action with value '{value}'.")


class RemediationReason(str, Enum):
    NONE = "none"
    UNSCANNED = "unscanned"
    SECURITY = "security"
    LICENSE = "license"


class Policy(BaseModel):
    """Action per owning resource type for one violation category."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    deployments: Action = Action.IGNORE
    stateful_sets: Action = Field(Action.IGNORE, alias="statefulSets")
    whitelist: FrozenSet[str] = Field(frozenset(), alias="whitelistNamespaces")

    @field_validator('deployments', 'stateful_sets', mode='before')
    @classmethod
    def parse_action(cls, v):
        if isinstance(v, Action):
            return v
        if not isinstance(v, str):
            raise ValueError(f"Cannot read action with value '{v}'.")
        return Action.from_label(v)

    @field_validator('whitelist', mode='before')
    @classmethod
    def parse_whitelist(cls, v: Union[None, str, List[str]]):
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = v.split(",")
        return frozenset(ns.strip() for ns in v if isinstance(ns, str) and ns.strip())

    def action_for(self, resource_type: ResourceType) -> Action:
        if resource_type == ResourceType.DEPLOYMENT:
            return self.deployments
        if resource_type == ResourceType.STATEFUL_SET:
            return self.stateful_sets
        return Action.IGNORE


class PolicyTable(BaseModel):
    """The three policy categories, loaded once at startup."""
    model_config = ConfigDict(frozen=True)

    unscanned: Policy = Policy()
    security: Policy = Policy()
    license: Policy = Policy()
    configured: bool = False


class RemediationDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Action = Action.IGNORE
    reason: RemediationReason = RemediationReason.NONE
