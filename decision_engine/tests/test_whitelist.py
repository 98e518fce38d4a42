"""
Unit tests for whitelisting (forced variations).
"""

import pytest

from decision_engine.models.builder import build_settings
from decision_engine.models.context import Context
from decision_engine.rules.campaign_decision import with_vwo_user_id
from decision_engine.rules.whitelist import WhitelistResolver
from decision_engine.segmentation.evaluator import SegmentEvaluator
from shared.test_helpers import context_factory, settings_factory


@pytest.fixture
def settings():
    """Built settings snapshot."""
    return build_settings(settings_factory.create_full_settings())


@pytest.fixture
def resolver():
    return WhitelistResolver()


def check(resolver, settings, campaign, user_id, variation_targeting_variables=None):
    context = Context(id=user_id, variation_targeting_variables=variation_targeting_variables or {})
    properties = with_vwo_user_id(context.variation_targeting_variables, campaign, context, settings.account_id)
    return resolver.check_campaign_whitelisting(campaign, context, SegmentEvaluator(context, settings), properties)


class TestWhitelistResolver:
    """Test cases for WhitelistResolver."""

    def test_whitelisted_user_gets_forced_variation(self, resolver, settings):
        """Test a user named in a variation's segment is forced into it."""
        campaign = settings.get_feature("vip_access").experiment_rules[0]

        result = check(resolver, settings, campaign, "vip-user-2")

        assert result is not None
        assert result.variation_id == 2
        assert result.variation_key == "vip"

    def test_other_users_are_not_whitelisted(self, resolver, settings):
        campaign = settings.get_feature("vip_access").experiment_rules[0]
        assert check(resolver, settings, campaign, "someone-else") is None

    def test_disabled_forced_variation_is_skipped(self, resolver, settings):
        """Test whitelisting only applies with forced variations enabled."""
        campaign = settings.get_feature("vip_access").experiment_rules[0].model_copy(
            update={"is_forced_variation_enabled": False}
        )
        assert check(resolver, settings, campaign, "vip-user") is None

    def test_only_ab_campaigns_apply(self, resolver, settings):
        rollout = settings.get_feature("checkout").rollout_rules[0]
        assert not resolver.applies_to(rollout)

    def test_multiple_matches_pick_one_deterministically(self, resolver):
        """Test several matching variations split by re-normalized weights."""
        segments = {"custom_variable": {"beta": "true"}}
        raw = settings_factory.settings(
            [settings_factory.feature(1, "flag", [settings_factory.rule(1, "rule", "FLAG_TESTING")])],
            [settings_factory.campaign(1, "forced", "FLAG_TESTING", [
                settings_factory.variation(1, "a", 10, segments=segments),
                settings_factory.variation(2, "b", 10, segments=segments),
                settings_factory.variation(3, "c", 80),
            ], forced_variation=True)]
        )
        settings = build_settings(raw)
        campaign = settings.features[0].linked_campaigns[0]

        seen = set()
        for user_id in context_factory.create_user_ids(200):
            first = check(resolver, settings, campaign, user_id, {"beta": True})
            second = check(resolver, settings, campaign, user_id, {"beta": True})
            assert first.variation_id == second.variation_id
            assert first.variation_id in (1, 2)
            seen.add(first.variation_id)

        assert seen == {1, 2}
