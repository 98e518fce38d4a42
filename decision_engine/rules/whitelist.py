"""
Whitelisting (forced variation) resolution for A/B campaigns.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from shared.logging import get_logger

from ..bucketing.hasher import calculate_bucket_value
from ..bucketing.ranges import allocate_ranges, find_range
from ..models.context import Context
from ..models.settings import Campaign, CampaignType, Variation
from ..segmentation.evaluator import SegmentEvaluator
from .campaign_decision import get_bucketing_seed


@dataclass(frozen=True)
class WhitelistResult:
    variation: Variation

    @property
    def variation_id(self) -> int:
        return self.variation.id

    @property
    def variation_key(self) -> Optional[str]:
        return self.variation.key


class WhitelistResolver:
    """Picks a forced variation from variation-level segments."""

    def __init__(self):
        self.logger = get_logger("decision_engine.rules.whitelist")

    @staticmethod
    def applies_to(campaign: Campaign) -> bool:
        return campaign.type == CampaignType.AB and campaign.is_forced_variation_enabled

    def check_campaign_whitelisting(
        self,
        campaign: Campaign,
        context: Context,
        evaluator: SegmentEvaluator,
        properties: Dict[str, Any]
    ) -> Optional[WhitelistResult]:
        """Forced variation for the user, or ``None``.

        ``properties`` are the variation-targeting variables including
        ``_vwoUserId``.
        """
        if not self.applies_to(campaign):
            self.logger.info("Whitelisting skipped", campaign_key=campaign.rule_key, user_id=context.id)
            return None

        result = self.evaluate_whitelisting(campaign, context, evaluator, properties)
        self.logger.info(
            "Whitelisting status",
            user_id=context.id,
            campaign_key=campaign.display_key,
            status="passed" if result else "failed",
            variation_key=result.variation_key if result else ""
        )
        return result

    def evaluate_whitelisting(
        self,
        campaign: Campaign,
        context: Context,
        evaluator: SegmentEvaluator,
        properties: Dict[str, Any]
    ) -> Optional[WhitelistResult]:
        targeted: List[Variation] = [
            variation for variation in campaign.variations
            if variation.segment_tree is not None
            and evaluator.validate_segmentation(variation.segment_tree, properties)
        ]

        if not targeted:
            return None
        if len(targeted) == 1:
            return WhitelistResult(targeted[0])

        # Several variations target this user; split between them only
        ranges = allocate_ranges([(variation, variation.weight) for variation in targeted])
        bucket_value = calculate_bucket_value(get_bucketing_seed(context.id, campaign))
        allocated = find_range(ranges, bucket_value)
        self.logger.debug(
            "Whitelisting among multiple variations",
            campaign_key=campaign.key,
            candidates=[variation.key for variation in targeted],
            bucket_value=bucket_value
        )
        return WhitelistResult(allocated.item) if allocated else None
