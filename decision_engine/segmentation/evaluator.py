"""
Segmentation evaluator.

Walks a parsed segment tree against one user context. Leaf results
depend only on the tree, the properties passed in and the context;
the evaluator keeps no state between calls.
"""

from typing import Any, Dict, Optional, Sequence
from urllib.parse import unquote

from shared.errors import ConfigurationError, EnrichmentError
from shared.logging import get_logger

from ..constants import VWO_USER_ID_VARIABLE
from ..models.context import Context
from ..models.settings import Settings
from .models import (
    AndNode, InvalidNode, LeafNode, NotNode, OrNode, SegmentNode, SegmentOperator,
    LOCATION_OPERATORS, UA_PARSER_OPERATORS, VERSION_OPERATORS
)
from .operands import (
    extract_list_id, match_operand, matches_ua_value, normalize_location_value, pre_process_tag_value
)


class SegmentEvaluator:
    """Evaluates segment trees for one context."""

    def __init__(self, context: Context, settings: Settings, storage=None, gateway=None):
        self.context = context
        self.settings = settings
        self.storage = storage
        self.gateway = gateway
        self.logger = get_logger("decision_engine.segmentation")

    def validate_segmentation(self, tree: Optional[SegmentNode], properties: Dict[str, Any]) -> bool:
        """Top-level check; configuration errors inside the tree fail closed."""
        if tree is None:
            return True
        try:
            return self.is_segmentation_valid(tree, properties)
        except ConfigurationError as e:
            self.logger.error("Segmentation failed", error=e.message, **e.details)
            return False

    def is_segmentation_valid(self, node: SegmentNode, properties: Dict[str, Any]) -> bool:
        if isinstance(node, NotNode):
            return not self.is_segmentation_valid(node.child, properties)
        if isinstance(node, AndNode):
            return self._every(node.children, properties)
        if isinstance(node, OrNode):
            return self._some(node.children, properties)
        if isinstance(node, LeafNode):
            return self._evaluate_leaf(node, properties)
        if isinstance(node, InvalidNode):
            self.logger.debug("Invalid segment node", reason=node.reason, key=node.key)
        return False

    def _every(self, children: Sequence[SegmentNode], properties: Dict[str, Any]) -> bool:
        if self._is_location_group(children):
            return self._check_location(children)
        if self._is_ua_parser_group(children):
            return self._check_user_agent_parser(children, require_all=True)
        return all(self.is_segmentation_valid(child, properties) for child in children)

    def _some(self, children: Sequence[SegmentNode], properties: Dict[str, Any]) -> bool:
        if self._is_location_group(children):
            return self._check_location(children)
        if self._is_ua_parser_group(children):
            return self._check_user_agent_parser(children, require_all=False)
        return any(self.is_segmentation_valid(child, properties) for child in children)

    @staticmethod
    def _is_location_group(children: Sequence[SegmentNode]) -> bool:
        operators = [child.operator for child in children if isinstance(child, LeafNode)]
        return len(operators) == len(children) == len(LOCATION_OPERATORS) and set(operators) == LOCATION_OPERATORS

    @staticmethod
    def _is_ua_parser_group(children: Sequence[SegmentNode]) -> bool:
        return all(isinstance(child, LeafNode) and child.operator in UA_PARSER_OPERATORS for child in children)

    def _location(self) -> Optional[Dict[str, Any]]:
        if not self.context.ip_address:
            self.logger.error("To evaluate location segments, pass ipAddress in the context")
            return None
        if self.context.vwo is None or not self.context.vwo.location:
            self.logger.info("Location data unavailable for segmentation")
            return None
        return self.context.vwo.location

    def _ua_info(self) -> Optional[Dict[str, Any]]:
        if not self.context.user_agent:
            self.logger.error("To evaluate user agent segments, pass userAgent in the context")
            return None
        if self.context.vwo is None or not self.context.vwo.ua_info:
            self.logger.info("User agent data unavailable for segmentation")
            return None
        return self.context.vwo.ua_info

    def _check_location(self, leaves: Sequence[LeafNode]) -> bool:
        location = self._location()
        if location is None:
            return False
        return all(
            normalize_location_value(leaf.operand) == normalize_location_value(location.get(leaf.operator.value))
            for leaf in leaves
        )

    def _check_user_agent_parser(self, leaves: Sequence[LeafNode], require_all: bool) -> bool:
        ua_info = self._ua_info()
        if ua_info is None:
            return False
        results = (matches_ua_value(leaf.operand, ua_info.get(leaf.operator.value)) for leaf in leaves)
        return all(results) if require_all else any(results)

    def _evaluate_leaf(self, leaf: LeafNode, properties: Dict[str, Any]) -> bool:
        operator = leaf.operator

        if operator == SegmentOperator.CUSTOM_VARIABLE:
            return self._evaluate_custom_variable(leaf, properties)

        if operator == SegmentOperator.USER:
            user_id = str(properties.get(VWO_USER_ID_VARIABLE))
            return any(user.strip() == user_id for user in leaf.operand.split(","))

        if operator == SegmentOperator.UA:
            if not self.context.user_agent:
                self.logger.error("To evaluate user agent segments, pass userAgent in the context")
                return False
            return match_operand(leaf.operand, unquote(self.context.user_agent))

        if operator == SegmentOperator.IP:
            if not self.context.ip_address:
                self.logger.error("To evaluate IP segments, pass ipAddress in the context")
                return False
            return match_operand(leaf.operand, self.context.ip_address, version_aware=True)

        if operator in VERSION_OPERATORS:
            ua_info = self._ua_info()
            if ua_info is None or ua_info.get(operator.value) is None:
                return False
            return match_operand(leaf.operand, ua_info[operator.value], version_aware=True)

        if operator in LOCATION_OPERATORS:
            return self._check_location([leaf])

        if operator in UA_PARSER_OPERATORS:
            return self._check_user_agent_parser([leaf], require_all=True)

        if operator == SegmentOperator.FEATURE_ID:
            return self._evaluate_feature_id(leaf)

        return False

    def _evaluate_custom_variable(self, leaf: LeafNode, properties: Dict[str, Any]) -> bool:
        if leaf.name not in properties:
            return False

        tag_value = pre_process_tag_value(properties[leaf.name])
        if "inlist" not in leaf.operand:
            return match_operand(leaf.operand, tag_value)

        list_id = extract_list_id(leaf.operand)
        if list_id is None:
            self.logger.error("Invalid inlist operand", operand=leaf.operand)
            return False
        if self.gateway is None:
            self.logger.error("Gateway not configured, inlist segment cannot be evaluated", list_id=list_id)
            return False
        try:
            return bool(self.gateway.check_attribute_in_list(tag_value, list_id))
        except EnrichmentError as e:
            self.logger.error("List membership lookup failed", list_id=list_id, error=e.message)
            return False

    def _evaluate_feature_id(self, leaf: LeafNode) -> bool:
        feature = self.settings.get_feature_by_id(leaf.name)
        if feature is None:
            raise ConfigurationError("Feature not found", details={"feature_id": leaf.name})
        if leaf.operand not in ("on", "off"):
            return False

        stored = None
        if self.storage is not None:
            stored = self.storage.get_data(feature.key, self.context.id)
        result = stored is not None
        return not result if leaf.operand == "off" else result
