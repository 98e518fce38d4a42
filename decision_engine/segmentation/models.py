"""
Segmentation DSL tree.

The wire form is a tree of single-key objects (``{"and": [...]}``,
``{"custom_variable": {"plan": "gold"}}``). It is parsed once, when the
settings snapshot is built, into the node types below so evaluation
never re-inspects raw dictionaries.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class SegmentOperator(str, Enum):
    """Leaf operator keys."""
    CUSTOM_VARIABLE = "custom_variable"
    USER = "user"
    UA = "ua"
    IP = "ip_address"
    BROWSER_VERSION = "browser_version"
    OS_VERSION = "os_version"
    COUNTRY = "country"
    REGION = "region"
    CITY = "city"
    OPERATING_SYSTEM = "os"
    BROWSER_AGENT = "browser_string"
    DEVICE = "device"
    DEVICE_TYPE = "device_type"
    FEATURE_ID = "featureId"


class SegmentConnective(str, Enum):
    """Boolean connective keys."""
    AND = "and"
    OR = "or"
    NOT = "not"


LOCATION_OPERATORS = frozenset({
    SegmentOperator.COUNTRY,
    SegmentOperator.REGION,
    SegmentOperator.CITY,
})

UA_PARSER_OPERATORS = frozenset({
    SegmentOperator.OPERATING_SYSTEM,
    SegmentOperator.BROWSER_AGENT,
    SegmentOperator.DEVICE,
    SegmentOperator.DEVICE_TYPE,
})

VERSION_OPERATORS = frozenset({
    SegmentOperator.IP,
    SegmentOperator.BROWSER_VERSION,
    SegmentOperator.OS_VERSION,
})

# Leaves that can only be answered with gateway-resolved data
GATEWAY_OPERATORS = LOCATION_OPERATORS | UA_PARSER_OPERATORS | frozenset({
    SegmentOperator.UA,
    SegmentOperator.BROWSER_VERSION,
    SegmentOperator.OS_VERSION,
})


@dataclass(frozen=True)
class LeafNode:
    """Single condition.

    ``name`` carries the custom-variable name or the referenced feature
    id; it is ``None`` for leaves whose payload is a bare operand.
    """
    operator: SegmentOperator
    operand: str
    name: Optional[str] = None


@dataclass(frozen=True)
class NotNode:
    child: "SegmentNode"


@dataclass(frozen=True)
class AndNode:
    children: Tuple["SegmentNode", ...]


@dataclass(frozen=True)
class OrNode:
    children: Tuple["SegmentNode", ...]


@dataclass(frozen=True)
class InvalidNode:
    """Malformed or unknown node; always evaluates to False."""
    reason: str
    key: Optional[str] = None


SegmentNode = Union[LeafNode, NotNode, AndNode, OrNode, InvalidNode]


def is_empty_segment(raw: Any) -> bool:
    """An absent or empty tree means "no targeting" and always passes."""
    return raw is None or (isinstance(raw, dict) and len(raw) == 0)


def _operand_to_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def parse_segments(raw: Any) -> SegmentNode:
    """Parse a wire DSL node into its typed form.

    Never raises: anything that does not fit the grammar becomes an
    ``InvalidNode`` so that a single bad rule cannot break a snapshot.
    """
    if not isinstance(raw, dict) or not raw:
        return InvalidNode("segment node must be a non-empty object")

    key, payload = next(iter(raw.items()))

    if key == SegmentConnective.NOT.value:
        if not isinstance(payload, dict) or not payload:
            return InvalidNode("'not' expects a single node", key)
        return NotNode(parse_segments(payload))

    if key in (SegmentConnective.AND.value, SegmentConnective.OR.value):
        if not isinstance(payload, list) or not payload:
            return InvalidNode(f"'{key}' expects a non-empty list", key)
        children = tuple(parse_segments(child) for child in payload)
        return AndNode(children) if key == SegmentConnective.AND.value else OrNode(children)

    try:
        operator = SegmentOperator(key)
    except ValueError:
        return InvalidNode("unknown operator", key)

    if operator in (SegmentOperator.CUSTOM_VARIABLE, SegmentOperator.FEATURE_ID):
        if not isinstance(payload, dict) or not payload:
            return InvalidNode(f"'{key}' expects a name/operand object", key)
        name, operand = next(iter(payload.items()))
        return LeafNode(operator, _operand_to_str(operand), str(name))

    if isinstance(payload, (dict, list)):
        return InvalidNode(f"'{key}' expects a scalar operand", key)

    return LeafNode(operator, _operand_to_str(payload))


def iter_leaves(node: SegmentNode):
    """Yield every leaf of a parsed tree, depth first."""
    if isinstance(node, LeafNode):
        yield node
    elif isinstance(node, NotNode):
        yield from iter_leaves(node.child)
    elif isinstance(node, (AndNode, OrNode)):
        for child in node.children:
            yield from iter_leaves(child)


def requires_gateway(node: Optional[SegmentNode]) -> bool:
    """True when evaluating the tree needs IP/UA enrichment or list lookups."""
    if node is None:
        return False
    for leaf in iter_leaves(node):
        if leaf.operator in GATEWAY_OPERATORS:
            return True
        if leaf.operator == SegmentOperator.CUSTOM_VARIABLE and "inlist(" in leaf.operand:
            return True
    return False


def describe(node: SegmentNode) -> Dict[str, Any]:
    """Render a parsed tree back to its wire shape, for logs."""
    if isinstance(node, NotNode):
        return {SegmentConnective.NOT.value: describe(node.child)}
    if isinstance(node, AndNode):
        return {SegmentConnective.AND.value: [describe(child) for child in node.children]}
    if isinstance(node, OrNode):
        return {SegmentConnective.OR.value: [describe(child) for child in node.children]}
    if isinstance(node, LeafNode):
        if node.name is not None:
            return {node.operator.value: {node.name: node.operand}}
        return {node.operator.value: node.operand}
    return {"invalid": node.reason, "key": node.key}
