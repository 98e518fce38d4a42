"""
Settings snapshot models.

Wire JSON is camelCase; fields are snake_case with aliases. Segment
trees are parsed once on validation and kept on ``segment_tree``,
which is excluded from serialization.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..constants import RANDOM_ALGO
from ..segmentation.models import SegmentNode, is_empty_segment, parse_segments


class CampaignType(str, Enum):
    """Rule types."""
    ROLLOUT = "FLAG_ROLLOUT"
    AB = "FLAG_TESTING"
    PERSONALIZE = "FLAG_PERSONALIZE"


class WireModel(BaseModel):
    """Base for settings models."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", arbitrary_types_allowed=True)


def _parse_tree(raw: Optional[Dict[str, Any]]) -> Optional[SegmentNode]:
    return None if is_empty_segment(raw) else parse_segments(raw)


class Variable(WireModel):
    id: Optional[int] = None
    key: str
    type: Optional[str] = None
    value: Any = None


class Metric(WireModel):
    id: Optional[int] = None
    identifier: str
    type: Optional[str] = None


class Variation(WireModel):
    """Campaign variation.

    ``start_range_variation``/``end_range_variation`` are filled in by the
    snapshot builder; a fresh ``Variation`` carries ``0``/``0`` and never
    matches a bucket value.
    """
    id: int
    key: Optional[str] = None
    name: Optional[str] = None
    weight: float = 0
    salt: Optional[str] = None
    segments: Optional[Dict[str, Any]] = Field(default_factory=dict)
    variables: List[Variable] = Field(default_factory=list)
    start_range_variation: int = Field(default=0, exclude=True)
    end_range_variation: float = Field(default=0, exclude=True)
    segment_tree: Optional[Any] = Field(default=None, exclude=True, repr=False)

    @model_validator(mode="after")
    def _prepare(self) -> "Variation":
        if self.key is None:
            self.key = self.name
        self.segment_tree = _parse_tree(self.segments)
        return self


class Campaign(WireModel):
    """A rule instance: rollout, A/B test or personalization."""
    id: int
    key: str = ""
    name: Optional[str] = None
    type: CampaignType
    salt: Optional[str] = None
    percent_traffic: Optional[float] = Field(default=None, alias="percentTraffic")
    segments: Optional[Dict[str, Any]] = Field(default_factory=dict)
    variations: List[Variation] = Field(default_factory=list)
    is_forced_variation_enabled: bool = Field(default=False, alias="isForcedVariationEnabled")
    is_user_list_enabled: bool = Field(default=False, alias="isUserListEnabled")
    metrics: List[Metric] = Field(default_factory=list)
    variables: List[Variable] = Field(default_factory=list)
    rule_key: Optional[str] = Field(default=None, alias="ruleKey")
    segment_tree: Optional[Any] = Field(default=None, exclude=True, repr=False)

    @field_validator("is_forced_variation_enabled", "is_user_list_enabled", mode="before")
    @classmethod
    def _none_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @model_validator(mode="after")
    def _prepare(self) -> "Campaign":
        if not self.variations:
            raise ValueError(f"campaign {self.id} has no variations")
        self.segment_tree = _parse_tree(self.segments)
        return self

    @property
    def is_rollout_or_personalize(self) -> bool:
        return self.type in (CampaignType.ROLLOUT, CampaignType.PERSONALIZE)

    @property
    def identity(self) -> str:
        """Group membership key: ``"<id>"`` or ``"<id>_<variationId>"`` for personalize."""
        if self.type == CampaignType.PERSONALIZE:
            return f"{self.id}_{self.variations[0].id}"
        return str(self.id)

    @property
    def display_key(self) -> str:
        if self.type == CampaignType.AB:
            return self.key
        return f"{self.name}_{self.rule_key}"

    def targeting_tree(self) -> Optional[SegmentNode]:
        """Pre-segmentation tree; rollout and personalize target on their variation."""
        if self.is_rollout_or_personalize:
            return self.variations[0].segment_tree
        return self.segment_tree

    def bucketing_salt(self) -> Optional[str]:
        if self.is_rollout_or_personalize:
            return self.variations[0].salt
        return self.salt

    def get_variation(self, variation_id: Any) -> Optional[Variation]:
        for variation in self.variations:
            if variation.id == variation_id:
                return variation
        return None


class Rule(WireModel):
    campaign_id: int = Field(alias="campaignId")
    variation_id: Optional[int] = Field(default=None, alias="variationId")
    type: Optional[str] = None
    rule_key: Optional[str] = Field(default=None, alias="ruleKey")
    status: Optional[bool] = None


class ImpactCampaign(WireModel):
    campaign_id: Optional[int] = Field(default=None, alias="campaignId")
    type: Optional[str] = None


class Feature(WireModel):
    """Feature flag and its ordered rules.

    ``linked_campaigns`` and ``is_gateway_service_required`` are derived
    by the snapshot builder.
    """
    id: int
    key: str
    name: Optional[str] = None
    type: Optional[str] = None
    rules: List[Rule] = Field(default_factory=list)
    metrics: List[Metric] = Field(default_factory=list)
    impact_campaign: Optional[ImpactCampaign] = Field(default=None, alias="impactCampaign")
    linked_campaigns: List[Campaign] = Field(default_factory=list, exclude=True)
    is_gateway_service_required: bool = Field(default=False, exclude=True)

    @property
    def rollout_rules(self) -> List[Campaign]:
        return [c for c in self.linked_campaigns if c.type == CampaignType.ROLLOUT]

    @property
    def experiment_rules(self) -> List[Campaign]:
        return [c for c in self.linked_campaigns if c.type in (CampaignType.AB, CampaignType.PERSONALIZE)]

    def has_metric(self, identifier: str) -> bool:
        return any(metric.identifier == identifier for metric in self.metrics)


class Group(WireModel):
    """Mutually exclusive group.

    ``et`` selects the winner algorithm, ``p`` is the priority order and
    ``wt`` the weight table used by the advanced algorithm.
    """
    name: Optional[str] = None
    campaigns: List[str] = Field(default_factory=list)
    et: int = RANDOM_ALGO
    p: List[str] = Field(default_factory=list)
    wt: Dict[str, float] = Field(default_factory=dict)

    @field_validator("campaigns", "p", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(item) for item in value]
        return value

    @field_validator("wt", mode="before")
    @classmethod
    def _stringify_weight_keys(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): v for k, v in value.items()}
        return value

    @field_validator("et", mode="before")
    @classmethod
    def _default_algo(cls, value: Any) -> Any:
        return RANDOM_ALGO if value is None else value


class Settings(WireModel):
    """Immutable configuration snapshot consumed by the engine."""
    account_id: int = Field(alias="accountId")
    sdk_key: Optional[str] = Field(default=None, alias="sdkKey")
    version: Optional[int] = None
    features: List[Feature] = Field(default_factory=list)
    campaigns: List[Campaign] = Field(default_factory=list)
    groups: Dict[str, Group] = Field(default_factory=dict)
    campaign_groups: Dict[str, str] = Field(default_factory=dict, alias="campaignGroups")

    @field_validator("groups", mode="before")
    @classmethod
    def _stringify_group_keys(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): v for k, v in value.items()}
        return value

    @field_validator("campaign_groups", mode="before")
    @classmethod
    def _stringify_campaign_groups(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return value

    def get_feature(self, feature_key: str) -> Optional[Feature]:
        for feature in self.features:
            if feature.key == feature_key:
                return feature
        return None

    def get_feature_by_id(self, feature_id: Union[int, str]) -> Optional[Feature]:
        for feature in self.features:
            if str(feature.id) == str(feature_id):
                return feature
        return None

    def get_campaign_by_key(self, campaign_key: str) -> Optional[Campaign]:
        for campaign in self.campaigns:
            if campaign.key == campaign_key:
                return campaign
        return None

    def get_variation_from_campaign_key(self, campaign_key: Optional[str], variation_id: Any) -> Optional[Variation]:
        if not campaign_key:
            return None
        campaign = self.get_campaign_by_key(campaign_key)
        if campaign is None:
            return None
        return campaign.get_variation(variation_id)

    def get_group_id(self, campaign: Campaign) -> Optional[str]:
        """Group the campaign belongs to, if any."""
        group_id = self.campaign_groups.get(campaign.identity)
        if group_id is None or group_id not in self.groups:
            return None
        return group_id

    def get_feature_keys_for_group(self, group_id: str) -> List[str]:
        """Keys of every feature with a rule referencing a member of the group."""
        group = self.groups.get(group_id)
        if group is None:
            return []

        feature_keys: List[str] = []
        for member in group.campaigns:
            campaign_part, _, variation_part = member.partition("_")
            for feature in self.features:
                if feature.key in feature_keys:
                    continue
                for rule in feature.rules:
                    if str(rule.campaign_id) != campaign_part:
                        continue
                    if not variation_part or str(rule.variation_id) == variation_part:
                        feature_keys.append(feature.key)
                        break
        return feature_keys

    def has_event(self, event_name: str) -> bool:
        return any(feature.has_metric(event_name) for feature in self.features)
