from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from .models import Clip, SmartFolder

logger = logging.getLogger(__name__)


class RuleField(Enum):
    STARRED = "starred"
    FILENAME = "filename"
    DIR_SOURCE = "dirSource"
    FILE_SIZE = "fileSize"
    DURATION = "durationSecs"
    RECORDED_AT = "recordedAt"
    TAG = "tag"


class RuleOperator(Enum):
    CONTAINS = "contains"
    EQUALS = "equals"
    GT = "gt"
    LT = "lt"
    BETWEEN = "between"
    HAS = "has"
    IS = "is"


class MalformedRulePolicy(Enum):
    MATCH_ALL = "match_all"
    MATCH_NONE = "match_none"


RuleValue = str | float | bool

LEGAL_OPERATORS: dict[RuleField, tuple[RuleOperator, ...]] = {
    RuleField.STARRED: (RuleOperator.IS,),
    RuleField.FILENAME: (RuleOperator.CONTAINS, RuleOperator.EQUALS),
    RuleField.DIR_SOURCE: (RuleOperator.EQUALS,),
    RuleField.FILE_SIZE: (RuleOperator.GT, RuleOperator.LT, RuleOperator.BETWEEN),
    RuleField.DURATION: (RuleOperator.GT, RuleOperator.LT, RuleOperator.BETWEEN),
    RuleField.RECORDED_AT: (RuleOperator.GT, RuleOperator.LT),
    RuleField.TAG: (RuleOperator.HAS,),
}

NUMERIC_FIELDS = {RuleField.FILE_SIZE, RuleField.DURATION, RuleField.RECORDED_AT}


@dataclass(frozen=True)
class Rule:
    field: RuleField
    operator: RuleOperator
    value: RuleValue
    value2: float | None = None

    def is_legal(self) -> bool:
        return self.operator in LEGAL_OPERATORS.get(self.field, ())


def matches(clip: Clip, rule: Rule) -> bool:
    try:
        return _matches(clip, rule)
    except (TypeError, ValueError):
        return False


def evaluate_all(clips: Iterable[Clip], rules: list[Rule]) -> list[Clip]:
    return [clip for clip in clips if all(matches(clip, rule) for rule in rules)]


def _matches(clip: Clip, rule: Rule) -> bool:
    op = rule.operator
    if rule.field == RuleField.STARRED:
        return op == RuleOperator.IS and clip.starred == _as_bool(rule.value)
    if rule.field == RuleField.FILENAME:
        needle = str(rule.value).casefold()
        if op == RuleOperator.CONTAINS:
            return needle in clip.filename.casefold()
        if op == RuleOperator.EQUALS:
            return clip.filename.casefold() == needle
        return False
    if rule.field == RuleField.DIR_SOURCE:
        if op == RuleOperator.EQUALS:
            return clip.dir_source.casefold() == str(rule.value).casefold()
        return False
    if rule.field == RuleField.FILE_SIZE:
        return _compare(float(clip.file_size), rule)
    if rule.field == RuleField.DURATION:
        if clip.duration_secs is None:
            return False
        return _compare(clip.duration_secs, rule)
    if rule.field == RuleField.RECORDED_AT:
        if op == RuleOperator.BETWEEN:
            return False
        return _compare(clip.recorded_at, rule)
    if rule.field == RuleField.TAG:
        return op == RuleOperator.HAS and str(rule.value) in clip.tags
    return False


def _compare(actual: float, rule: Rule) -> bool:
    low = float(rule.value)
    if rule.operator == RuleOperator.GT:
        return actual > low
    if rule.operator == RuleOperator.LT:
        return actual < low
    if rule.operator == RuleOperator.BETWEEN:
        high = rule.value2 if rule.value2 is not None else low
        return low <= actual <= high
    return False


def _as_bool(value: RuleValue) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def parse_rules(text: str) -> list[Rule]:
    """Parse the persisted JSON rule array.

    Raises ValueError when the text is not a JSON array of rule objects or a
    record names an unknown field or operator.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Rules are not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise ValueError("Rules must be a JSON array")
    return [rule_from_dict(item, index) for index, item in enumerate(data, start=1)]


def rule_from_dict(data: Any, position: int = 1) -> Rule:
    if not isinstance(data, dict):
        raise ValueError(f"Rule {position} must be an object")
    try:
        rule_field = RuleField(data.get("field"))
    except ValueError as exc:
        raise ValueError(f"Rule {position} has unknown field: {data.get('field')!r}") from exc
    try:
        operator = RuleOperator(data.get("operator"))
    except ValueError as exc:
        raise ValueError(
            f"Rule {position} has unknown operator: {data.get('operator')!r}"
        ) from exc
    value = coerce_value(rule_field, data.get("value"))
    raw_value2 = data.get("value2")
    value2 = None
    if raw_value2 is not None and raw_value2 != "":
        value2 = _as_number(raw_value2)
    return Rule(field=rule_field, operator=operator, value=value, value2=value2)


def coerce_value(rule_field: RuleField, raw: Any) -> RuleValue:
    if rule_field == RuleField.STARRED:
        if isinstance(raw, str):
            return raw.strip().lower() == "true"
        return bool(raw)
    if rule_field in NUMERIC_FIELDS:
        return _as_number(raw)
    if raw is None:
        return ""
    return str(raw)


def _as_number(raw: Any) -> float:
    if isinstance(raw, bool):
        raise ValueError("Expected a number, got a boolean")
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        try:
            return float(raw.strip())
        except ValueError as exc:
            raise ValueError(f"Expected a number, got {raw!r}") from exc
    raise ValueError(f"Expected a number, got {raw!r}")


def rule_to_dict(rule: Rule) -> dict[str, Any]:
    value: Any = rule.value
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    data: dict[str, Any] = {
        "field": rule.field.value,
        "operator": rule.operator.value,
        "value": value,
    }
    if rule.value2 is not None:
        value2: Any = rule.value2
        if value2.is_integer():
            value2 = int(value2)
        data["value2"] = value2
    return data


def format_rules(rules: list[Rule]) -> str:
    return json.dumps([rule_to_dict(rule) for rule in rules], ensure_ascii=True)


def rules_for_folder(
    folder: SmartFolder,
    policy: MalformedRulePolicy = MalformedRulePolicy.MATCH_ALL,
) -> list[Rule] | None:
    """Resolve a folder's rule set; None means the folder selects nothing."""
    try:
        return parse_rules(folder.rules)
    except ValueError as exc:
        logger.debug("Smart folder %s has malformed rules: %s", folder.id, exc)
        if policy == MalformedRulePolicy.MATCH_NONE:
            return None
        return []
