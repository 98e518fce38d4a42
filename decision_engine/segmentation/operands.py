"""
Operand matching for segmentation leaves.

An operand is a string such as ``"lower(Gold)"``, ``"wildcard(*chrome*)"``,
``"regex(^a.+)"``, ``"gte(10)"`` or a plain value. It is classified by an
ordered cascade of patterns and then matched against the tag value taken
from the user context.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, List, Optional, Pattern

from shared.errors import PatternError
from shared.logging import get_logger

logger = get_logger("decision_engine.segmentation.operands")


class OperandType(str, Enum):
    LOWER = "lower"
    STARTING_ENDING_STAR = "starting_ending_star"
    STARTING_STAR = "starting_star"
    ENDING_STAR = "ending_star"
    REGEX = "regex"
    GREATER_THAN = "gt"
    LESS_THAN = "lt"
    GREATER_THAN_EQUAL_TO = "gte"
    LESS_THAN_EQUAL_TO = "lte"
    EQUAL = "equal"


LOWER_MATCH = re.compile(r"^lower\((.*)\)")
WILDCARD_MATCH = re.compile(r"^wildcard\((.*)\)")
REGEX_MATCH = re.compile(r"^regex\((.*)\)")
GREATER_THAN_EQUAL_TO_MATCH = re.compile(r"^gte\((.*)\)")
LESS_THAN_EQUAL_TO_MATCH = re.compile(r"^lte\((.*)\)")
GREATER_THAN_MATCH = re.compile(r"^gt\((.*)\)")
LESS_THAN_MATCH = re.compile(r"^lt\((.*)\)")
INLIST_MATCH = re.compile(r"inlist\(([^)]+)\)")

NUMBER_PATTERN = re.compile(r"^(\d+(\.\d+)?|\.\d+)$")
VERSION_PATTERN = re.compile(r"^\d+(\.\d+)*$")

COMPARATOR_CASCADE = (
    (GREATER_THAN_EQUAL_TO_MATCH, OperandType.GREATER_THAN_EQUAL_TO),
    (LESS_THAN_EQUAL_TO_MATCH, OperandType.LESS_THAN_EQUAL_TO),
    (GREATER_THAN_MATCH, OperandType.GREATER_THAN),
    (LESS_THAN_MATCH, OperandType.LESS_THAN),
)


@dataclass(frozen=True)
class ParsedOperand:
    type: OperandType
    value: str


@lru_cache(maxsize=1024)
def parse_operand(operand: str) -> ParsedOperand:
    """Classify an operand string."""
    match = LOWER_MATCH.match(operand)
    if match:
        return ParsedOperand(OperandType.LOWER, match.group(1))

    match = WILDCARD_MATCH.match(operand)
    if match:
        value = match.group(1)
        starts, ends = value.startswith("*"), value.endswith("*")
        if starts and ends and len(value) > 1:
            return ParsedOperand(OperandType.STARTING_ENDING_STAR, value[1:-1])
        if starts:
            return ParsedOperand(OperandType.STARTING_STAR, value[1:])
        if ends:
            return ParsedOperand(OperandType.ENDING_STAR, value[:-1])
        return ParsedOperand(OperandType.EQUAL, value)

    match = REGEX_MATCH.match(operand)
    if match:
        return ParsedOperand(OperandType.REGEX, match.group(1))

    for pattern, operand_type in COMPARATOR_CASCADE:
        match = pattern.match(operand)
        if match:
            return ParsedOperand(operand_type, match.group(1))

    return ParsedOperand(OperandType.EQUAL, operand)


def extract_list_id(operand: str) -> Optional[str]:
    """List id from an ``inlist(<id>)`` operand."""
    match = INLIST_MATCH.search(operand)
    return match.group(1) if match else None


def pre_process_tag_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _version_parts(value: str) -> List[int]:
    return [int(part) for part in value.split(".")]


def compare_versions(left: str, right: str) -> int:
    """Compare dotted-integer versions; missing trailing parts count as 0."""
    left_parts, right_parts = _version_parts(left), _version_parts(right)
    length = max(len(left_parts), len(right_parts))
    left_parts += [0] * (length - len(left_parts))
    right_parts += [0] * (length - len(right_parts))
    for a, b in zip(left_parts, right_parts):
        if a != b:
            return 1 if a > b else -1
    return 0


def _compare(tag_value: str, operand_value: str, version_aware: bool) -> Optional[int]:
    """Three-way comparison of tag against operand; ``None`` if not comparable."""
    if version_aware and VERSION_PATTERN.match(tag_value) and VERSION_PATTERN.match(operand_value):
        return compare_versions(tag_value, operand_value)
    if NUMBER_PATTERN.match(tag_value) and NUMBER_PATTERN.match(operand_value):
        tag_number, operand_number = float(tag_value), float(operand_value)
        return (tag_number > operand_number) - (tag_number < operand_number)
    return None


def compile_pattern(pattern: str, flags: int = 0) -> Pattern:
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        raise PatternError(pattern, str(e)) from e


def match_operand(operand: str, tag_value: Any, version_aware: bool = False) -> bool:
    """Match a raw operand string against a context value.

    ``version_aware`` enables dotted-version comparison for IP and
    browser/OS version leaves.
    """
    parsed = parse_operand(operand)
    tag = pre_process_tag_value(tag_value)
    value = parsed.value

    if parsed.type == OperandType.LOWER:
        return value.lower() == tag.lower()
    if parsed.type == OperandType.STARTING_ENDING_STAR:
        return value in tag
    if parsed.type == OperandType.STARTING_STAR:
        return tag.endswith(value)
    if parsed.type == OperandType.ENDING_STAR:
        return tag.startswith(value)
    if parsed.type == OperandType.REGEX:
        try:
            return compile_pattern(value).search(tag) is not None
        except PatternError as e:
            logger.warning("Invalid regex operand", pattern=value, error=e.message)
            return False

    comparison = _compare(tag, value, version_aware)
    if parsed.type == OperandType.EQUAL:
        return comparison == 0 if comparison is not None else tag == value

    if comparison is None:
        # Lexical fallback for values that are not plain numbers
        comparison = (tag > value) - (tag < value)
    if parsed.type == OperandType.GREATER_THAN:
        return comparison > 0
    if parsed.type == OperandType.LESS_THAN:
        return comparison < 0
    if parsed.type == OperandType.GREATER_THAN_EQUAL_TO:
        return comparison >= 0
    return comparison <= 0


def matches_ua_value(expected: str, actual: Any) -> bool:
    """Case-insensitive match of a parsed user-agent field, ``wildcard(...)`` allowed."""
    actual_value = pre_process_tag_value(actual)
    expected_value = expected.lower()
    if expected_value.startswith("wildcard(") and expected_value.endswith(")"):
        inner = expected_value[len("wildcard("):-1]
        pattern = ".*".join(re.escape(part) for part in inner.split("*"))
        return re.search(pattern, actual_value, re.IGNORECASE) is not None
    return expected_value == actual_value.lower()


def normalize_location_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    return re.sub(r'^"|"$', "", str(value)).strip()
