"""
Decision outputs: sticky assignments, flag results, traces and events.
"""

import time
from dataclasses import dataclass, field, fields, replace, asdict
from typing import Any, Dict, List, Optional

from .settings import Variable


@dataclass(frozen=True)
class StickyAssignment:
    """Persisted (feature key, user id) decision."""
    feature_key: str
    user_id: str
    rollout_id: Optional[int] = None
    rollout_key: Optional[str] = None
    rollout_variation_id: Optional[int] = None
    experiment_id: Optional[int] = None
    experiment_key: Optional[str] = None
    experiment_variation_id: Optional[int] = None

    @property
    def has_experiment(self) -> bool:
        return self.experiment_key is not None and self.experiment_variation_id is not None

    @property
    def has_rollout(self) -> bool:
        return self.rollout_key is not None and self.rollout_variation_id is not None

    @property
    def is_valid(self) -> bool:
        return self.has_experiment or self.has_rollout

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["StickyAssignment"]:
        """Rebuild a record read back from a connector; ``None`` if unusable."""
        if not isinstance(data, dict):
            return None
        feature_key = data.get("feature_key") or data.get("featureKey")
        user_id = data.get("user_id") or data.get("userId")
        if not feature_key or user_id is None:
            return None
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["feature_key"] = feature_key
        values["user_id"] = str(user_id)
        record = cls(**values)
        return record if record.is_valid else None


@dataclass
class FlagResult:
    """Caller-facing result of a flag evaluation."""
    enabled: bool = False
    variables: List[Variable] = field(default_factory=list)

    def is_enabled(self) -> bool:
        return self.enabled

    def get_variables(self) -> List[Dict[str, Any]]:
        return [variable.model_dump() for variable in self.variables]

    def get_variable(self, key: str, default: Any = None) -> Any:
        for variable in self.variables:
            if variable.key == key:
                return variable.value
        return default


@dataclass(frozen=True)
class DecisionTrace:
    """Write-only record of what matched, handed to the hook.

    Every ``with_*`` call returns a new trace; branches of an evaluation
    never share a mutable accumulator.
    """
    api: str
    user_id: Optional[str] = None
    feature_id: Optional[int] = None
    feature_key: Optional[str] = None
    feature_name: Optional[str] = None
    rollout_id: Optional[int] = None
    rollout_key: Optional[str] = None
    rollout_variation_id: Optional[int] = None
    experiment_id: Optional[int] = None
    experiment_key: Optional[str] = None
    experiment_variation_id: Optional[int] = None
    custom_variables: Optional[Dict[str, Any]] = None
    variation_targeting_variables: Optional[Dict[str, Any]] = None
    is_enabled: bool = False

    def with_values(self, **values: Any) -> "DecisionTrace":
        return replace(self, **values)

    def with_rollout(self, campaign_id: int, campaign_key: str, variation_id: int) -> "DecisionTrace":
        return replace(self, rollout_id=campaign_id, rollout_key=campaign_key, rollout_variation_id=variation_id)

    def with_experiment(self, campaign_id: int, campaign_key: str, variation_id: int) -> "DecisionTrace":
        return replace(
            self, experiment_id=campaign_id, experiment_key=campaign_key, experiment_variation_id=variation_id
        )

    def to_assignment(self) -> StickyAssignment:
        return StickyAssignment(
            feature_key=self.feature_key,
            user_id=self.user_id,
            rollout_id=self.rollout_id,
            rollout_key=self.rollout_key,
            rollout_variation_id=self.rollout_variation_id,
            experiment_id=self.experiment_id,
            experiment_key=self.experiment_key,
            experiment_variation_id=self.experiment_variation_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class EngineEvent:
    """Outbound event handed to an event sink."""
    name: str
    account_id: int
    user_id: str
    uuid: str
    session_id: Optional[int] = None
    campaign_id: Optional[int] = None
    variation_id: Optional[int] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    visitor_properties: Dict[str, Any] = field(default_factory=dict)
    is_custom_event: bool = False
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp_ms: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_payload(self) -> Dict[str, Any]:
        """Request body understood by the events endpoint."""
        event_props: Dict[str, Any] = dict(self.properties)
        if self.is_custom_event:
            event_props["isCustomEvent"] = True
        if self.campaign_id is not None:
            event_props["id"] = self.campaign_id
        if self.variation_id is not None:
            event_props["variation"] = str(self.variation_id)
        return {
            "d": {
                "msgId": f"{self.uuid}-{self.timestamp_ms}",
                "visId": self.uuid,
                "sessionId": self.session_id or self.timestamp_ms // 1000,
                "event": {
                    "name": self.name,
                    "time": self.timestamp_ms,
                    "props": event_props,
                },
                "visitor": {"props": {"vwo_uid": self.user_id, **self.visitor_properties}},
                "userAgent": self.user_agent,
                "ipAddress": self.ip_address,
            }
        }
