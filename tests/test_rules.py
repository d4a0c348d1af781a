import json

import pytest

from clipshelf.models import Clip, SmartFolder
from clipshelf.rules import (
    MalformedRulePolicy,
    Rule,
    RuleField,
    RuleOperator,
    evaluate_all,
    format_rules,
    matches,
    parse_rules,
    rules_for_folder,
)


def _clip(clip_id: str, **overrides) -> Clip:
    values = {
        "id": clip_id,
        "filename": f"{clip_id}.mp4",
        "path": f"/videos/{clip_id}.mp4",
        "dir_source": "root",
        "recorded_at": 1_700_000_000.0,
        "file_size": 150,
        "duration_secs": 30.0,
    }
    values.update(overrides)
    return Clip(**values)


def test_evaluate_all_empty_rules_returns_everything() -> None:
    clips = [_clip("a"), _clip("b"), _clip("c")]
    assert evaluate_all(clips, []) == clips


def test_evaluate_all_is_order_preserving_subset() -> None:
    clips = [
        _clip("a", starred=True),
        _clip("b"),
        _clip("c", starred=True),
        _clip("d", starred=True),
    ]
    rules = [Rule(RuleField.STARRED, RuleOperator.IS, True)]
    result = evaluate_all(clips, rules)
    assert [clip.id for clip in result] == ["a", "c", "d"]


def test_rules_are_anded() -> None:
    clips = [
        _clip("a", starred=True, duration_secs=5.0),
        _clip("b", starred=True, duration_secs=90.0),
        _clip("c", starred=False, duration_secs=90.0),
    ]
    rules = [
        Rule(RuleField.STARRED, RuleOperator.IS, True),
        Rule(RuleField.DURATION, RuleOperator.GT, 60.0),
    ]
    assert [clip.id for clip in evaluate_all(clips, rules)] == ["b"]


def test_between_file_size_is_inclusive() -> None:
    rule = Rule(RuleField.FILE_SIZE, RuleOperator.BETWEEN, 100.0, 200.0)
    assert matches(_clip("a", file_size=100), rule)
    assert matches(_clip("b", file_size=200), rule)
    assert not matches(_clip("c", file_size=99), rule)
    assert not matches(_clip("d", file_size=201), rule)


def test_between_without_upper_bound_uses_lower_bound() -> None:
    rule = Rule(RuleField.FILE_SIZE, RuleOperator.BETWEEN, 100.0)
    assert matches(_clip("a", file_size=100), rule)
    assert not matches(_clip("b", file_size=101), rule)


def test_unknown_duration_never_matches() -> None:
    clip = _clip("a", duration_secs=None)
    assert not matches(clip, Rule(RuleField.DURATION, RuleOperator.GT, 0.0))
    assert not matches(clip, Rule(RuleField.DURATION, RuleOperator.LT, 1e9))
    assert not matches(clip, Rule(RuleField.DURATION, RuleOperator.BETWEEN, 0.0, 1e9))


def test_filename_matching_is_case_insensitive() -> None:
    clip = _clip("a", filename="Big_Play.MP4")
    assert matches(clip, Rule(RuleField.FILENAME, RuleOperator.CONTAINS, "play"))
    assert matches(clip, Rule(RuleField.FILENAME, RuleOperator.EQUALS, "big_play.mp4"))
    assert not matches(clip, Rule(RuleField.FILENAME, RuleOperator.EQUALS, "big_play"))


def test_dir_source_and_tag_rules() -> None:
    clip = _clip("a", dir_source="captures", tags=("t1", "t2"))
    assert matches(clip, Rule(RuleField.DIR_SOURCE, RuleOperator.EQUALS, "Captures"))
    assert matches(clip, Rule(RuleField.TAG, RuleOperator.HAS, "t2"))
    assert not matches(clip, Rule(RuleField.TAG, RuleOperator.HAS, "t3"))


def test_recorded_at_comparisons() -> None:
    clip = _clip("a", recorded_at=1000.0)
    assert matches(clip, Rule(RuleField.RECORDED_AT, RuleOperator.GT, 999.0))
    assert matches(clip, Rule(RuleField.RECORDED_AT, RuleOperator.LT, 1001.0))
    assert not matches(clip, Rule(RuleField.RECORDED_AT, RuleOperator.BETWEEN, 0.0, 2000.0))


def test_illegal_combination_does_not_match_or_raise() -> None:
    clip = _clip("a", starred=True)
    assert not matches(clip, Rule(RuleField.STARRED, RuleOperator.CONTAINS, "true"))
    assert not matches(clip, Rule(RuleField.FILENAME, RuleOperator.GT, 3.0))
    assert not matches(clip, Rule(RuleField.FILE_SIZE, RuleOperator.GT, "big"))


def test_parse_rules_coerces_values() -> None:
    text = json.dumps(
        [
            {"field": "starred", "operator": "is", "value": "true"},
            {"field": "fileSize", "operator": "between", "value": "100", "value2": 200},
            {"field": "filename", "operator": "contains", "value": 42},
            {"field": "starred", "operator": "is", "value": 1},
            {"field": "starred", "operator": "is", "value": 0},
        ]
    )
    rules = parse_rules(text)
    assert rules == [
        Rule(RuleField.STARRED, RuleOperator.IS, True),
        Rule(RuleField.FILE_SIZE, RuleOperator.BETWEEN, 100.0, 200.0),
        Rule(RuleField.FILENAME, RuleOperator.CONTAINS, "42"),
        Rule(RuleField.STARRED, RuleOperator.IS, True),
        Rule(RuleField.STARRED, RuleOperator.IS, False),
    ]


def test_numeric_starred_value_selects_starred_clips() -> None:
    folder = SmartFolder(
        id="f1", name="Faves", color="#fff", rules='[{"field": "starred", "operator": "is", "value": 1}]'
    )
    clips = [_clip("s", starred=True), _clip("p")]
    assert [clip.id for clip in evaluate_all(clips, rules_for_folder(folder))] == ["s"]


def test_format_rules_writes_integral_numbers_as_ints() -> None:
    rules = [Rule(RuleField.DURATION, RuleOperator.BETWEEN, 10.0, 60.5)]
    assert json.loads(format_rules(rules)) == [
        {"field": "durationSecs", "operator": "between", "value": 10, "value2": 60.5}
    ]


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        '{"field": "starred"}',
        '[{"field": "color", "operator": "is", "value": 1}]',
        '[{"field": "fileSize", "operator": "gt", "value": "big"}]',
    ],
)
def test_parse_rules_rejects_malformed(text: str) -> None:
    with pytest.raises(ValueError):
        parse_rules(text)


def test_rules_for_folder_policy() -> None:
    folder = SmartFolder(id="f1", name="Broken", color="#fff", rules="{oops")
    assert rules_for_folder(folder, MalformedRulePolicy.MATCH_ALL) == []
    assert rules_for_folder(folder, MalformedRulePolicy.MATCH_NONE) is None
