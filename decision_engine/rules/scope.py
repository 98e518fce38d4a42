"""
Per-call evaluation scope.

Everything one flag evaluation needs and accumulates: the snapshot,
the (possibly enriched) context, collaborators, rollout results per
feature and the exclusive-group winners resolved so far. A scope is
created for each call and discarded afterwards.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

from ..models.context import Context
from ..models.settings import Campaign, Settings
from ..segmentation.evaluator import SegmentEvaluator
from ..storage.service import StorageService
from .campaign_decision import with_vwo_user_id


@dataclass
class EvaluationScope:
    settings: Settings
    context: Context
    evaluator: SegmentEvaluator
    storage: StorageService
    evaluated_feature_map: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    group_winners: Dict[str, str] = field(default_factory=dict)

    @property
    def account_id(self) -> int:
        return self.settings.account_id

    @property
    def user_id(self) -> str:
        return self.context.id

    def custom_properties(self, campaign: Campaign) -> Dict[str, Any]:
        """Pre-segmentation properties for ``campaign``."""
        return with_vwo_user_id(self.context.custom_variables, campaign, self.context, self.account_id)

    def variation_targeting_properties(self, campaign: Campaign) -> Dict[str, Any]:
        """Whitelisting properties for ``campaign``."""
        return with_vwo_user_id(self.context.variation_targeting_variables, campaign, self.context, self.account_id)
