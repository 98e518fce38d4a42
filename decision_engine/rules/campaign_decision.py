"""
Campaign decision service.

Membership and variation lookup for a single rule: traffic check,
variation bucketing and pre-segmentation.
"""

from typing import Any, Dict, Iterable, Optional

from shared.logging import get_logger

from ..bucketing.hasher import generate_bucket_value, get_bucket_value_for_user, get_hash_value
from ..constants import MAX_TRAFFIC_VALUE, VWO_USER_ID_VARIABLE
from ..models.context import Context
from ..models.settings import Campaign, Variation
from ..segmentation.evaluator import SegmentEvaluator
from ..segmentation.models import describe


def get_bucketing_seed(user_id: str, campaign: Optional[Campaign] = None, group_id: Optional[str] = None) -> str:
    """Hash key for whitelisting and group bucketing."""
    if group_id is not None:
        return f"{group_id}_{user_id}"
    salt = campaign.bucketing_salt()
    return f"{salt}_{user_id}" if salt else f"{campaign.id}_{user_id}"


def with_vwo_user_id(variables: Optional[Dict[str, Any]], campaign: Campaign, context: Context, account_id: Any) -> Dict[str, Any]:
    """Targeting properties plus ``_vwoUserId`` for user-list segments.

    Returns a new dictionary; the context is left untouched.
    """
    properties = dict(variables or {})
    properties[VWO_USER_ID_VARIABLE] = context.get_uuid(account_id) if campaign.is_user_list_enabled else context.id
    return properties


class CampaignDecisionService:
    """Decides whether and where a user falls within one campaign."""

    def __init__(self):
        self.logger = get_logger("decision_engine.rules.campaign")

    def is_user_part_of_campaign(self, user_id: Optional[str], campaign: Optional[Campaign]) -> bool:
        if campaign is None or user_id is None:
            return False

        if campaign.is_rollout_or_personalize:
            traffic_allocation = campaign.variations[0].weight
        else:
            traffic_allocation = campaign.percent_traffic or 0

        salt = campaign.bucketing_salt()
        bucket_key = f"{salt}_{user_id}" if salt else f"{campaign.id}_{user_id}"
        value_assigned_to_user = get_bucket_value_for_user(bucket_key)

        is_user_part = value_assigned_to_user != 0 and value_assigned_to_user <= traffic_allocation

        self.logger.info(
            "User part of campaign" if is_user_part else "User not part of campaign",
            user_id=user_id,
            campaign_key=campaign.display_key,
            bucket_value=value_assigned_to_user,
            traffic=traffic_allocation
        )
        return is_user_part

    @staticmethod
    def check_in_range(variation: Variation, bucket_value: int) -> Optional[Variation]:
        if variation.start_range_variation <= bucket_value <= variation.end_range_variation:
            return variation
        return None

    def get_variation(self, variations: Iterable[Variation], bucket_value: int) -> Optional[Variation]:
        for variation in variations:
            if self.check_in_range(variation, bucket_value) is not None:
                return variation
        return None

    def bucket_user_to_variation(self, user_id: Optional[str], account_id: Any, campaign: Optional[Campaign]) -> Optional[Variation]:
        if campaign is None or user_id is None:
            return None

        salt = campaign.salt
        bucket_key = f"{salt}_{account_id}_{user_id}" if salt else f"{campaign.id}_{account_id}_{user_id}"
        hash_value = get_hash_value(bucket_key)
        bucket_value = generate_bucket_value(hash_value, MAX_TRAFFIC_VALUE)

        self.logger.debug(
            "User bucketed to variation range",
            user_id=user_id,
            campaign_key=campaign.key,
            percent_traffic=campaign.percent_traffic,
            bucket_value=bucket_value,
            hash_value=hash_value
        )
        return self.get_variation(campaign.variations, bucket_value)

    def get_variation_alloted(self, user_id: Optional[str], account_id: Any, campaign: Campaign) -> Optional[Variation]:
        if not self.is_user_part_of_campaign(user_id, campaign):
            return None
        if campaign.is_rollout_or_personalize:
            return campaign.variations[0]
        return self.bucket_user_to_variation(user_id, account_id, campaign)

    def evaluate_traffic_and_get_variation(self, user_id: str, account_id: Any, campaign: Campaign) -> Optional[Variation]:
        """Variation for the user, logging the bucketing outcome."""
        variation = self.get_variation_alloted(user_id, account_id, campaign)
        self.logger.info(
            "Campaign bucketing result",
            user_id=user_id,
            campaign_key=campaign.display_key,
            variation_key=variation.key if variation else None,
            status="got variation" if variation else "did not get any variation"
        )
        return variation

    def get_pre_segmentation_decision(
        self,
        campaign: Campaign,
        context: Context,
        evaluator: SegmentEvaluator,
        properties: Optional[Dict[str, Any]] = None
    ) -> bool:
        tree = campaign.targeting_tree()
        if tree is None:
            self.logger.info("Segmentation skipped, no segments", user_id=context.id, campaign_key=campaign.display_key)
            return True

        if properties is None:
            properties = context.custom_variables
        self.logger.debug("Evaluating segments", campaign_key=campaign.display_key, segments=describe(tree))
        result = evaluator.validate_segmentation(tree, properties)
        self.logger.info(
            "Segmentation status",
            user_id=context.id,
            campaign_key=campaign.display_key,
            status="passed" if result else "failed"
        )
        return result

