"""
Test helper functions and factory methods for the decision engine.

Payloads are built in the camelCase wire shape the settings builder
consumes, so tests exercise the same validation path as production.
"""

from typing import Dict, Any, Optional, List


class SettingsFactory:
    """Factory for creating settings wire payloads."""

    @staticmethod
    def variable(variable_id: int, key: str, value: Any, variable_type: str = "string") -> Dict[str, Any]:
        return {"id": variable_id, "key": key, "type": variable_type, "value": value}

    @staticmethod
    def variation(
        variation_id: int,
        key: str,
        weight: float,
        variables: Optional[List[Dict[str, Any]]] = None,
        segments: Optional[Dict[str, Any]] = None,
        salt: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a variation."""
        return {
            "id": variation_id,
            "key": key,
            "name": key,
            "weight": weight,
            "salt": salt,
            "segments": segments or {},
            "variables": variables or [],
        }

    @staticmethod
    def campaign(
        campaign_id: int,
        key: str,
        campaign_type: str,
        variations: List[Dict[str, Any]],
        percent_traffic: float = 100,
        segments: Optional[Dict[str, Any]] = None,
        salt: Optional[str] = None,
        forced_variation: bool = False,
        user_list: bool = False
    ) -> Dict[str, Any]:
        """Create a campaign (rule instance)."""
        return {
            "id": campaign_id,
            "key": key,
            "name": key,
            "type": campaign_type,
            "salt": salt,
            "percentTraffic": percent_traffic,
            "segments": segments or {},
            "variations": variations,
            "isForcedVariationEnabled": forced_variation,
            "isUserListEnabled": user_list,
        }

    @staticmethod
    def feature(
        feature_id: int,
        key: str,
        rules: List[Dict[str, Any]],
        metrics: Optional[List[Dict[str, Any]]] = None,
        impact_campaign_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Create a feature flag."""
        feature = {
            "id": feature_id,
            "key": key,
            "name": key.replace("_", " ").title(),
            "type": "FEATURE_FLAG",
            "rules": rules,
            "metrics": metrics or [],
        }
        if impact_campaign_id is not None:
            feature["impactCampaign"] = {"campaignId": impact_campaign_id, "type": "IMPACT_ANALYSIS"}
        return feature

    @staticmethod
    def rule(campaign_id: int, rule_key: str, rule_type: str, variation_id: Optional[int] = None) -> Dict[str, Any]:
        rule = {"campaignId": campaign_id, "ruleKey": rule_key, "type": rule_type, "status": True}
        if variation_id is not None:
            rule["variationId"] = variation_id
        return rule

    @staticmethod
    def settings(
        features: List[Dict[str, Any]],
        campaigns: List[Dict[str, Any]],
        groups: Optional[Dict[str, Any]] = None,
        campaign_groups: Optional[Dict[str, Any]] = None,
        account_id: int = 123456
    ) -> Dict[str, Any]:
        """Create a settings payload."""
        return {
            "accountId": account_id,
            "sdkKey": "test-sdk-key",
            "version": 1,
            "features": features,
            "campaigns": campaigns,
            "groups": groups or {},
            "campaignGroups": campaign_groups or {},
        }

    def create_full_settings(self) -> Dict[str, Any]:
        """Settings covering rollouts, experiments, targeting, whitelisting and an exclusive group.

        - ``checkout``: full rollout, then a 50/50 A/B test at 100% traffic.
        - ``search``: A/B test targeted at ``plan == gold``.
        - ``banner`` and ``promo``: A/B tests in exclusive group ``1``.
        - ``beta``: 0% rollout with an impact campaign.
        - ``vip_access``: A/B test at 0% traffic with a whitelisted variation.
        """
        campaigns = [
            self.campaign(10, "checkout_rollout", "FLAG_ROLLOUT", [
                self.variation(1, "rollout-on", 100, [self.variable(1, "color", "blue")]),
            ]),
            self.campaign(20, "checkout_test", "FLAG_TESTING", [
                self.variation(1, "control", 50, [self.variable(1, "color", "blue")]),
                self.variation(2, "variant", 50, [self.variable(1, "color", "green")]),
            ]),
            self.campaign(30, "search_test", "FLAG_TESTING", [
                self.variation(1, "control", 50, [self.variable(2, "ranking", "classic")]),
                self.variation(2, "variant", 50, [self.variable(2, "ranking", "semantic")]),
            ], segments={"or": [{"custom_variable": {"plan": "gold"}}]}),
            self.campaign(40, "banner_test", "FLAG_TESTING", [
                self.variation(1, "banner-on", 100, [self.variable(3, "banner", True, "boolean")]),
            ]),
            self.campaign(50, "promo_test", "FLAG_TESTING", [
                self.variation(1, "promo-on", 100, [self.variable(4, "promo", True, "boolean")]),
            ]),
            self.campaign(60, "beta_rollout", "FLAG_ROLLOUT", [
                self.variation(1, "beta-on", 0),
            ]),
            self.campaign(70, "vip_test", "FLAG_TESTING", [
                self.variation(1, "standard", 50, [self.variable(5, "tier", "standard")]),
                self.variation(2, "vip", 50, [self.variable(5, "tier", "vip")],
                               segments={"or": [{"user": "vip-user, vip-user-2"}]}),
            ], percent_traffic=0, forced_variation=True),
        ]
        features = [
            self.feature(1, "checkout", [
                self.rule(10, "checkout_rollout_rule", "FLAG_ROLLOUT", variation_id=1),
                self.rule(20, "checkout_test_rule", "FLAG_TESTING"),
            ], metrics=[{"id": 1, "identifier": "purchase", "type": "CUSTOM_GOAL"}]),
            self.feature(2, "search", [self.rule(30, "search_test_rule", "FLAG_TESTING")]),
            self.feature(3, "banner", [self.rule(40, "banner_test_rule", "FLAG_TESTING")]),
            self.feature(4, "promo", [self.rule(50, "promo_test_rule", "FLAG_TESTING")]),
            self.feature(5, "beta", [
                self.rule(60, "beta_rollout_rule", "FLAG_ROLLOUT", variation_id=1),
            ], impact_campaign_id=600),
            self.feature(6, "vip_access", [self.rule(70, "vip_test_rule", "FLAG_TESTING")]),
        ]
        groups = {"1": {"name": "Homepage", "campaigns": [40, 50], "et": 1}}
        campaign_groups = {"40": 1, "50": 1}
        return self.settings(features, campaigns, groups, campaign_groups)


class ContextFactory:
    """Factory for creating user contexts."""

    @staticmethod
    def create_context(user_id: str = "user-1", **overrides) -> Dict[str, Any]:
        context: Dict[str, Any] = {"id": user_id}
        context.update(overrides)
        return context

    @staticmethod
    def create_user_ids(count: int, prefix: str = "user") -> List[str]:
        return [f"{prefix}-{index}" for index in range(count)]


# Global instances for easy access
settings_factory = SettingsFactory()
context_factory = ContextFactory()
