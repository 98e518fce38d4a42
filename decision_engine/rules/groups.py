"""
Mutually exclusive group (MEG) resolution.

Campaigns in one group compete for a user: across every feature that
references the group, exactly one campaign may expose the user. The
winner is remembered for the rest of the call in the scope and across
calls in storage under ``_vwo_meta_meg_<groupId>``.
"""

from typing import Dict, List, Optional, Tuple

from shared.logging import get_logger

from ..bucketing.hasher import calculate_bucket_value
from ..bucketing.ranges import allocate_ranges, find_range
from ..constants import ADVANCED_ALGO, MEG_STORAGE_KEY_PREFIX, NO_WINNER
from ..models.decision import StickyAssignment
from ..models.settings import Campaign, CampaignType, Feature, Group
from .campaign_decision import CampaignDecisionService, get_bucketing_seed
from .scope import EvaluationScope


def group_storage_key(group_id: str) -> str:
    return f"{MEG_STORAGE_KEY_PREFIX}{group_id}"


def _member_ids(campaign: Campaign) -> Tuple[str, str]:
    return str(campaign.id), f"{campaign.id}_{campaign.variations[0].id}"


class GroupResolver:
    """Negotiates the single winning campaign of an exclusive group."""

    def __init__(self, campaign_service: Optional[CampaignDecisionService] = None):
        self.campaign_service = campaign_service or CampaignDecisionService()
        self.logger = get_logger("decision_engine.rules.groups")

    def check_known_winner(self, scope: EvaluationScope, campaign: Campaign, group_id: str) -> Optional[bool]:
        """Win/lose from an already known winner, or ``None`` if the group is unresolved.

        Looks at the winners resolved earlier in this call first, then at
        the group's stored winner.
        """
        if group_id in scope.group_winners:
            winner = scope.group_winners[group_id]
            return winner != str(NO_WINNER) and winner == campaign.identity

        stored = scope.storage.get_data(group_storage_key(group_id), scope.user_id)
        if stored is None or stored.experiment_id is None or stored.experiment_key is None:
            return None

        self.logger.info(
            "Group winner found in storage",
            group_id=group_id,
            campaign_key=stored.experiment_key,
            user_id=scope.user_id
        )

        if stored.experiment_id == campaign.id:
            if campaign.type != CampaignType.PERSONALIZE:
                return True
            if stored.experiment_variation_id == campaign.variations[0].id:
                return True
            scope.group_winners[group_id] = f"{stored.experiment_id}_{stored.experiment_variation_id}"
            return False

        if stored.experiment_variation_id is not None and stored.experiment_variation_id != NO_WINNER:
            scope.group_winners[group_id] = f"{stored.experiment_id}_{stored.experiment_variation_id}"
        else:
            scope.group_winners[group_id] = str(stored.experiment_id)
        return False

    def resolve(self, scope: EvaluationScope, feature: Feature, campaign: Campaign, group_id: str) -> bool:
        """Run full negotiation for ``group_id``; True iff ``campaign`` wins."""
        winner = self.evaluate_groups(scope, feature, group_id)
        scope.group_winners[group_id] = winner.identity if winner is not None else str(NO_WINNER)
        return winner is not None and winner.identity == campaign.identity

    def evaluate_groups(self, scope: EvaluationScope, feature: Feature, group_id: str) -> Optional[Campaign]:
        group = scope.settings.groups.get(group_id)
        if group is None:
            return None

        campaign_map: Dict[str, List[Campaign]] = {}
        for feature_key in scope.settings.get_feature_keys_for_group(group_id):
            member_feature = scope.settings.get_feature(feature_key)
            if member_feature is None:
                continue
            if not self.is_rollout_rule_for_feature_passed(scope, member_feature):
                continue

            for rule in member_feature.linked_campaigns:
                if not any(member in group.campaigns for member in _member_ids(rule)):
                    continue
                rules = campaign_map.setdefault(feature_key, [])
                if all(existing.rule_key != rule.rule_key for existing in rules):
                    rules.append(rule)

        eligible, eligible_with_storage = self.get_eligible_campaigns(scope, campaign_map)
        return self.find_winner_campaign(scope, group, group_id, eligible, eligible_with_storage)

    def is_rollout_rule_for_feature_passed(self, scope: EvaluationScope, feature: Feature) -> bool:
        """A feature whose rollout rules all fail is excluded from the group."""
        evaluated = scope.evaluated_feature_map.get(feature.key)
        if evaluated and "rollout_id" in evaluated:
            return True

        rollout_rules = feature.rollout_rules
        if not rollout_rules:
            self.logger.info("No rollout rules, evaluating experiments for group", feature_key=feature.key)
            return True

        for rule in rollout_rules:
            if not self.campaign_service.get_pre_segmentation_decision(
                rule, scope.context, scope.evaluator, scope.custom_properties(rule)
            ):
                continue

            variation = self.campaign_service.evaluate_traffic_and_get_variation(scope.user_id, scope.account_id, rule)
            if variation is not None:
                scope.evaluated_feature_map[feature.key] = {
                    "rollout_id": rule.id,
                    "rollout_key": rule.key,
                    "rollout_variation_id": rule.variations[0].id,
                }
                return True
            break

        return False

    def get_eligible_campaigns(
        self,
        scope: EvaluationScope,
        campaign_map: Dict[str, List[Campaign]]
    ) -> Tuple[List[Campaign], List[Campaign]]:
        eligible: List[Campaign] = []
        eligible_with_storage: List[Campaign] = []

        for feature_key, campaigns in campaign_map.items():
            stored = scope.storage.get_data(feature_key, scope.user_id)
            for campaign in campaigns:
                if self._has_stored_assignment(scope, stored, campaign):
                    self.logger.info(
                        "Group campaign found in storage",
                        campaign_key=campaign.key,
                        user_id=scope.user_id
                    )
                    if all(existing.key != campaign.key for existing in eligible_with_storage):
                        eligible_with_storage.append(campaign)
                    continue

                if self.campaign_service.get_pre_segmentation_decision(
                    campaign, scope.context, scope.evaluator, scope.custom_properties(campaign)
                ) and self.campaign_service.is_user_part_of_campaign(scope.user_id, campaign):
                    self.logger.info("Group campaign eligible", campaign_key=campaign.key, user_id=scope.user_id)
                    eligible.append(campaign)

        return eligible, eligible_with_storage

    @staticmethod
    def _has_stored_assignment(scope: EvaluationScope, stored: Optional[StickyAssignment], campaign: Campaign) -> bool:
        if stored is None or stored.experiment_variation_id is None:
            return False
        if stored.experiment_key != campaign.key:
            return False
        return scope.settings.get_variation_from_campaign_key(
            stored.experiment_key, stored.experiment_variation_id
        ) is not None

    def find_winner_campaign(
        self,
        scope: EvaluationScope,
        group: Group,
        group_id: str,
        eligible: List[Campaign],
        eligible_with_storage: List[Campaign]
    ) -> Optional[Campaign]:
        candidates = eligible_with_storage or eligible
        if not candidates:
            self.logger.info("No winner campaign found for group", group_id=group_id, user_id=scope.user_id)
            return None

        if len(candidates) == 1:
            winner, algo = candidates[0], "single candidate"
        elif group.et == ADVANCED_ALGO:
            winner, algo = self._advanced_winner(scope, group, group_id, candidates), "advanced"
        else:
            winner, algo = self._random_winner(scope, group_id, candidates), "random"

        if winner is None:
            self.logger.info("No winner campaign found for group", group_id=group_id, algo=algo, user_id=scope.user_id)
            return None

        self.logger.info(
            "Group winner campaign",
            campaign_key=winner.key if winner.type == CampaignType.AB else f"{winner.key}_{winner.rule_key}",
            group_id=group_id,
            user_id=scope.user_id,
            algo=algo
        )
        scope.storage.set_data(StickyAssignment(
            feature_key=group_storage_key(group_id),
            user_id=scope.user_id,
            experiment_id=winner.id,
            experiment_key=winner.key,
            experiment_variation_id=winner.variations[0].id if winner.type == CampaignType.PERSONALIZE else NO_WINNER,
        ))
        return winner

    def _random_winner(self, scope: EvaluationScope, group_id: str, candidates: List[Campaign]) -> Optional[Campaign]:
        weight = round(100 / len(candidates), 4)
        ranges = allocate_ranges([(campaign, weight) for campaign in candidates], normalize=False)
        bucket_value = calculate_bucket_value(get_bucketing_seed(scope.user_id, group_id=group_id))
        allocated = find_range(ranges, bucket_value)
        return allocated.item if allocated else None

    def _advanced_winner(
        self,
        scope: EvaluationScope,
        group: Group,
        group_id: str,
        candidates: List[Campaign]
    ) -> Optional[Campaign]:
        for priority in group.p:
            for campaign in candidates:
                if priority in _member_ids(campaign):
                    return campaign

        weighted = []
        for campaign in candidates:
            campaign_id, composite_id = _member_ids(campaign)
            weight = group.wt.get(campaign_id, group.wt.get(composite_id))
            if weight:
                weighted.append((campaign, weight))

        ranges = allocate_ranges(weighted, normalize=False)
        bucket_value = calculate_bucket_value(get_bucketing_seed(scope.user_id, group_id=group_id))
        allocated = find_range(ranges, bucket_value)
        return allocated.item if allocated else None
