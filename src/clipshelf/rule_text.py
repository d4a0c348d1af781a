from __future__ import annotations

import shlex
from typing import Mapping

from .formatting import format_seconds, parse_date
from .rules import (
    LEGAL_OPERATORS,
    NUMERIC_FIELDS,
    Rule,
    RuleField,
    RuleOperator,
    coerce_value,
)

_FIELD_ALIASES = {
    "starred": RuleField.STARRED,
    "star": RuleField.STARRED,
    "filename": RuleField.FILENAME,
    "name": RuleField.FILENAME,
    "dirsource": RuleField.DIR_SOURCE,
    "source": RuleField.DIR_SOURCE,
    "filesize": RuleField.FILE_SIZE,
    "size": RuleField.FILE_SIZE,
    "durationsecs": RuleField.DURATION,
    "duration": RuleField.DURATION,
    "recordedat": RuleField.RECORDED_AT,
    "recorded": RuleField.RECORDED_AT,
    "tag": RuleField.TAG,
}

_OPERATOR_ALIASES = {
    "contains": RuleOperator.CONTAINS,
    "equals": RuleOperator.EQUALS,
    "=": RuleOperator.EQUALS,
    "gt": RuleOperator.GT,
    ">": RuleOperator.GT,
    "after": RuleOperator.GT,
    "lt": RuleOperator.LT,
    "<": RuleOperator.LT,
    "before": RuleOperator.LT,
    "between": RuleOperator.BETWEEN,
    "has": RuleOperator.HAS,
    "is": RuleOperator.IS,
}


def parse_rule_text(
    text: str,
    *,
    tag_ids_by_name: Mapping[str, str] | None = None,
) -> list[Rule]:
    """Parse the editor syntax: one ``<field> <operator> <value> [<value2>]`` per line.

    ``tag has`` values are looked up in ``tag_ids_by_name`` (case-folded names)
    so users can write tag names instead of ids; unknown names are kept as-is.
    """
    text = text.lstrip("\ufeff")
    rules: list[Rule] = []
    for line_no, raw in enumerate(text.splitlines(), start=1):
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        rules.append(_parse_rule_line(stripped, line_no, tag_ids_by_name))
    return rules


def _parse_rule_line(
    line: str,
    line_no: int,
    tag_ids_by_name: Mapping[str, str] | None,
) -> Rule:
    try:
        tokens = shlex.split(line)
    except ValueError as exc:
        raise ValueError(f"Invalid rule on line {line_no}: {exc}") from exc
    if len(tokens) < 3:
        raise ValueError(f"Rule on line {line_no} needs a field, operator and value: {line}")

    field_name, operator_name, *values = tokens
    rule_field = _FIELD_ALIASES.get(field_name.casefold())
    if rule_field is None:
        raise ValueError(f"Unknown rule field '{field_name}' on line {line_no}")
    operator = _OPERATOR_ALIASES.get(operator_name.casefold())
    if operator is None:
        raise ValueError(f"Unknown rule operator '{operator_name}' on line {line_no}")
    if operator not in LEGAL_OPERATORS[rule_field]:
        allowed = ", ".join(op.value for op in LEGAL_OPERATORS[rule_field])
        raise ValueError(
            f"Operator '{operator.value}' is not valid for {rule_field.value} "
            f"on line {line_no} (use {allowed})"
        )

    expected = 2 if operator == RuleOperator.BETWEEN else 1
    if rule_field not in NUMERIC_FIELDS and len(values) > 1:
        values = [" ".join(values)]
    if len(values) != expected:
        raise ValueError(
            f"Rule on line {line_no} expects {expected} value(s), got {len(values)}"
        )

    try:
        if rule_field == RuleField.RECORDED_AT:
            values = [_date_or_number(item) for item in values]
        value = coerce_value(rule_field, values[0])
        value2 = float(coerce_value(rule_field, values[1])) if expected == 2 else None
    except ValueError as exc:
        raise ValueError(f"Invalid value on line {line_no}: {exc}") from exc
    if value2 is not None and value2 < float(value):
        raise ValueError(f"Range on line {line_no} has its upper bound below its lower bound")

    if rule_field == RuleField.TAG and tag_ids_by_name:
        value = tag_ids_by_name.get(str(value).casefold(), str(value))
    return Rule(field=rule_field, operator=operator, value=value, value2=value2)


def _date_or_number(value: str) -> str:
    if "-" in value.strip("-"):
        return format_seconds(parse_date(value))
    return value


def format_rule_text(
    rules: list[Rule],
    *,
    tag_names_by_id: Mapping[str, str] | None = None,
) -> str:
    lines: list[str] = []
    for rule in rules:
        value = rule.value
        if rule.field == RuleField.TAG and tag_names_by_id:
            value = tag_names_by_id.get(str(value), str(value))
        parts = [rule.field.value, rule.operator.value, _format_value(value)]
        if rule.value2 is not None:
            parts.append(_format_value(rule.value2))
        lines.append(" ".join(parts))
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def _format_value(value: str | float | bool) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    return _quote_if_needed(value)


def _quote_if_needed(value: str) -> str:
    if not value or any(ch.isspace() for ch in value) or any(ch in "\"'#" for ch in value):
        return shlex.quote(value)
    return value
