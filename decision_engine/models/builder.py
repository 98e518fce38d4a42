"""
Settings snapshot builder.

Turns the raw settings JSON into a ready-to-evaluate ``Settings``:
variation ranges allocated, rules linked to campaign copies, gateway
requirement flagged. The returned snapshot is never modified again.
"""

from typing import Any, Dict, List

from pydantic import ValidationError

from shared.errors import ConfigurationError
from shared.logging import get_logger

from ..bucketing.ranges import allocate_ranges, allocate_rollout_range
from ..segmentation.models import requires_gateway
from .settings import Campaign, Feature, Settings

logger = get_logger("decision_engine.settings")


def _with_ranges(campaign: Campaign) -> Campaign:
    """Copy of ``campaign`` whose variations carry their traffic ranges."""
    if campaign.is_rollout_or_personalize:
        allocated = [allocate_rollout_range(v, v.weight) for v in campaign.variations]
    else:
        allocated = allocate_ranges([(v, v.weight) for v in campaign.variations])

    variations = [
        item.item.model_copy(update={"start_range_variation": item.start, "end_range_variation": item.end})
        for item in allocated
    ]
    for item in allocated:
        logger.debug(
            "Variation range allocated",
            campaign_key=campaign.key,
            variation_key=item.item.key,
            weight=item.weight,
            start=item.start,
            end=item.end
        )
    return campaign.model_copy(update={"variations": variations})


def _link_campaigns(feature: Feature, campaigns: Dict[int, Campaign]) -> Feature:
    linked: List[Campaign] = []
    for rule in feature.rules:
        campaign = campaigns.get(rule.campaign_id)
        if campaign is None:
            logger.warning("Rule references unknown campaign", feature_key=feature.key, campaign_id=rule.campaign_id)
            continue

        update: Dict[str, Any] = {"rule_key": rule.rule_key}
        if rule.variation_id is not None:
            variation = campaign.get_variation(rule.variation_id)
            if variation is not None:
                update["variations"] = [variation]
        linked.append(campaign.model_copy(update=update))

    gateway_required = any(requires_gateway(campaign.targeting_tree()) for campaign in linked)
    return feature.model_copy(update={
        "linked_campaigns": linked,
        "is_gateway_service_required": gateway_required,
    })


def build_settings(raw: Dict[str, Any]) -> Settings:
    """Validate raw settings JSON and prepare it for evaluation.

    Raises ConfigurationError when the payload does not describe valid
    settings.
    """
    if isinstance(raw, Settings):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, dict):
        raise ConfigurationError("Settings must be a JSON object")

    try:
        settings = Settings.model_validate(raw)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False)
        logger.error("Settings validation failed", error_count=len(errors))
        raise ConfigurationError("Invalid settings", details={"errors": errors}) from e

    campaigns = [_with_ranges(campaign) for campaign in settings.campaigns]
    campaign_map = {campaign.id: campaign for campaign in campaigns}
    features = [_link_campaigns(feature, campaign_map) for feature in settings.features]

    snapshot = settings.model_copy(update={"campaigns": campaigns, "features": features})
    logger.info(
        "Settings snapshot built",
        account_id=snapshot.account_id,
        features=len(features),
        campaigns=len(campaigns),
        groups=len(snapshot.groups)
    )
    return snapshot
