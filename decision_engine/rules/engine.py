"""
Flag decision pipeline.

One ``get_flag`` call walks: stored assignment -> rollout rules ->
experiment rules (whitelisting, exclusive groups, pre-segmentation,
bucketing) -> persistence -> hook and impact events. Any failure inside
is converted into a disabled result.
"""

import dataclasses
from typing import Any, Callable, Dict, NamedTuple, Optional

from shared.errors import EnrichmentError
from shared.logging import bind_evaluation_context, clear_context, get_logger
from shared.metrics import DecisionMetrics

from ..constants import (
    API_GET_FLAG, EVENT_VARIATION_SHOWN, IMPACT_CONTROL_VARIATION_ID, IMPACT_ENABLED_VARIATION_ID
)
from ..models.context import Context
from ..models.decision import DecisionTrace, EngineEvent, FlagResult
from ..models.settings import Campaign, CampaignType, Feature, Settings, Variation
from ..segmentation.evaluator import SegmentEvaluator
from ..storage.service import StorageService
from .campaign_decision import CampaignDecisionService
from .groups import GroupResolver
from .scope import EvaluationScope
from .whitelist import WhitelistResolver, WhitelistResult

Hook = Callable[[Dict[str, Any]], Any]


class RuleEvaluation(NamedTuple):
    passed: bool
    whitelisted: Optional[WhitelistResult] = None
    custom_properties: Optional[Dict[str, Any]] = None
    variation_targeting_properties: Optional[Dict[str, Any]] = None


class DecisionPipeline:
    """Evaluates one feature flag for one user."""

    def __init__(
        self,
        storage: Optional[StorageService] = None,
        gateway=None,
        event_sink=None,
        hook: Optional[Hook] = None,
        metrics: Optional[DecisionMetrics] = None
    ):
        self.storage = storage or StorageService()
        self.gateway = gateway
        self.event_sink = event_sink
        self.hook = hook
        self.metrics = metrics
        self.campaign_service = CampaignDecisionService()
        self.whitelist_resolver = WhitelistResolver()
        self.group_resolver = GroupResolver(self.campaign_service)
        self.logger = get_logger("decision_engine.pipeline")

    def get_flag(self, settings: Settings, feature_key: str, context: Context) -> FlagResult:
        """Evaluate ``feature_key`` for ``context``; never raises."""
        bind_evaluation_context(API_GET_FLAG, user_id=context.id, feature_key=feature_key)
        result = FlagResult(False, [])
        try:
            if self.metrics is not None:
                with self.metrics.time_evaluation() as outcome:
                    result = self._evaluate(settings, feature_key, context)
                    outcome["enabled"] = result.enabled
            else:
                result = self._evaluate(settings, feature_key, context)
        except Exception as e:
            self.logger.error("Flag evaluation failed", error=str(e), error_type=type(e).__name__)
            result = FlagResult(False, [])
        finally:
            clear_context()
        return result

    def _evaluate(self, settings: Settings, feature_key: str, context: Context) -> FlagResult:
        feature = settings.get_feature(feature_key)
        if feature is None:
            self.logger.error("Feature not found", feature_key=feature_key)
            return FlagResult(False, [])

        trace = DecisionTrace(
            api=API_GET_FLAG,
            user_id=context.id,
            feature_id=feature.id,
            feature_key=feature.key,
            feature_name=feature.name
        )
        is_enabled = False
        check_experiments = False
        rollout_variation: Optional[Variation] = None
        experiment_variation: Optional[Variation] = None
        evaluated_feature_map: Dict[str, Dict[str, Any]] = {}

        stored = self.storage.get_data(feature_key, context.id)
        if stored is not None and stored.has_experiment:
            variation = settings.get_variation_from_campaign_key(stored.experiment_key, stored.experiment_variation_id)
            if variation is not None:
                self.logger.info(
                    "Stored variation found",
                    variation_key=variation.key,
                    experiment_key=stored.experiment_key,
                    experiment_type="experiment"
                )
                trace = trace.with_experiment(stored.experiment_id, stored.experiment_key, variation.id)
                self.execute_hook(trace.with_values(is_enabled=True).to_dict())
                return FlagResult(True, list(variation.variables))
        elif stored is not None and stored.has_rollout and stored.rollout_id is not None:
            variation = settings.get_variation_from_campaign_key(stored.rollout_key, stored.rollout_variation_id)
            if variation is not None:
                self.logger.info(
                    "Stored variation found",
                    variation_key=variation.key,
                    experiment_key=stored.rollout_key,
                    experiment_type="rollout"
                )
                is_enabled = True
                check_experiments = True
                rollout_variation = variation
                trace = trace.with_rollout(stored.rollout_id, stored.rollout_key, stored.rollout_variation_id)
                evaluated_feature_map[feature_key] = {
                    "rollout_id": stored.rollout_id,
                    "rollout_key": stored.rollout_key,
                    "rollout_variation_id": stored.rollout_variation_id,
                }

        context = self._enrich_context(feature, context)
        scope = EvaluationScope(
            settings=settings,
            context=context,
            evaluator=SegmentEvaluator(context, settings, self.storage, self.gateway),
            storage=self.storage,
            evaluated_feature_map=evaluated_feature_map,
        )

        rollout_rules = feature.rollout_rules
        if rollout_rules and not is_enabled:
            for rule in rollout_rules:
                evaluation = self._check_whitelisting_and_pre_seg(scope, feature, rule)
                trace = self._with_properties(trace, evaluation)
                if not evaluation.passed:
                    continue

                variation = self.campaign_service.evaluate_traffic_and_get_variation(context.id, settings.account_id, rule)
                if variation is not None:
                    is_enabled = True
                    check_experiments = True
                    rollout_variation = variation
                    trace = trace.with_rollout(rule.id, rule.key, variation.id)
                    evaluated_feature_map[feature_key] = {
                        "rollout_id": rule.id,
                        "rollout_key": rule.key,
                        "rollout_variation_id": variation.id,
                    }
                    self._send_exposure(settings, context, rule.id, variation.id)
                break
        elif not rollout_rules:
            self.logger.debug("No rollout rules, evaluating experiments")
            check_experiments = True

        if check_experiments:
            for rule in feature.experiment_rules:
                evaluation = self._check_whitelisting_and_pre_seg(scope, feature, rule)
                trace = self._with_properties(trace, evaluation)
                if not evaluation.passed:
                    continue

                if evaluation.whitelisted is not None:
                    variation = evaluation.whitelisted.variation
                else:
                    variation = self.campaign_service.evaluate_traffic_and_get_variation(
                        context.id, settings.account_id, rule
                    )
                if variation is not None:
                    is_enabled = True
                    experiment_variation = variation
                    trace = trace.with_experiment(rule.id, rule.key, variation.id)
                    self._send_exposure(settings, context, rule.id, variation.id)
                break

        if is_enabled:
            self.storage.set_data(trace.to_assignment())

        self.execute_hook(trace.with_values(is_enabled=is_enabled).to_dict())

        if feature.impact_campaign is not None and feature.impact_campaign.campaign_id:
            self.logger.info(
                "Impact analysis",
                feature_key=feature_key,
                status="enabled" if is_enabled else "disabled"
            )
            self._send_exposure(
                settings,
                context,
                feature.impact_campaign.campaign_id,
                IMPACT_ENABLED_VARIATION_ID if is_enabled else IMPACT_CONTROL_VARIATION_ID
            )

        source = experiment_variation or rollout_variation
        return FlagResult(is_enabled, list(source.variables) if source is not None else [])

    def _check_whitelisting_and_pre_seg(self, scope: EvaluationScope, feature: Feature, campaign: Campaign) -> RuleEvaluation:
        """Whitelisting, exclusive-group membership and pre-segmentation for one rule."""
        variation_targeting_properties = None
        if campaign.type == CampaignType.AB:
            variation_targeting_properties = scope.variation_targeting_properties(campaign)
            whitelisted = self.whitelist_resolver.check_campaign_whitelisting(
                campaign, scope.context, scope.evaluator, variation_targeting_properties
            )
            if whitelisted is not None:
                return RuleEvaluation(True, whitelisted, None, variation_targeting_properties)

        custom_properties = scope.custom_properties(campaign)
        group_id = scope.settings.get_group_id(campaign)

        if group_id is not None:
            known = self.group_resolver.check_known_winner(scope, campaign, group_id)
            if known is not None:
                return RuleEvaluation(known, None, custom_properties, variation_targeting_properties)

        passed = self.campaign_service.get_pre_segmentation_decision(
            campaign, scope.context, scope.evaluator, custom_properties
        )
        if passed and group_id is not None:
            passed = self.group_resolver.resolve(scope, feature, campaign, group_id)

        return RuleEvaluation(passed, None, custom_properties, variation_targeting_properties)

    @staticmethod
    def _with_properties(trace: DecisionTrace, evaluation: RuleEvaluation) -> DecisionTrace:
        values: Dict[str, Any] = {}
        if evaluation.custom_properties is not None:
            values["custom_variables"] = evaluation.custom_properties
        if evaluation.variation_targeting_properties is not None:
            values["variation_targeting_variables"] = evaluation.variation_targeting_properties
        return trace.with_values(**values) if values else trace

    def _enrich_context(self, feature: Feature, context: Context) -> Context:
        """Context with gateway data attached, when the feature's segments need it."""
        if not feature.is_gateway_service_required or self.gateway is None or context.vwo is not None:
            return context
        if not context.user_agent and not context.ip_address:
            return context

        try:
            vwo = self.gateway.get_user_data(context.user_agent, context.ip_address)
        except EnrichmentError as e:
            self.logger.error("Failed to enrich context for segmentation", error=e.message)
            return context
        return dataclasses.replace(context, vwo=vwo)

    def _send_exposure(self, settings: Settings, context: Context, campaign_id: int, variation_id: int):
        self.dispatch(EngineEvent(
            name=EVENT_VARIATION_SHOWN,
            account_id=settings.account_id,
            user_id=context.id,
            uuid=context.get_uuid(settings.account_id),
            session_id=context.session_id,
            campaign_id=campaign_id,
            variation_id=variation_id,
            user_agent=context.user_agent,
            ip_address=context.ip_address,
        ))

    def dispatch(self, event: EngineEvent):
        if self.event_sink is None:
            return
        try:
            self.event_sink.send(event)
        except Exception as e:
            self.logger.error("Event dispatch failed", event_name=event.name, error=str(e))
            return
        if self.metrics is not None:
            self.metrics.record_event(event.name)

    def execute_hook(self, data: Dict[str, Any]):
        if self.hook is None:
            return
        try:
            self.hook(data)
        except Exception as e:
            self.logger.error("Integration hook failed", error=str(e))
