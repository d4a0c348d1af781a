import pytest

from clipshelf.rule_text import format_rule_text, parse_rule_text
from clipshelf.rules import Rule, RuleField, RuleOperator


def test_parse_rule_text_with_comments_and_aliases() -> None:
    text = """
    # long starred clips
    starred is true
    duration > 30
    size between 100 200

    filename contains "big play"
    """
    assert parse_rule_text(text) == [
        Rule(RuleField.STARRED, RuleOperator.IS, True),
        Rule(RuleField.DURATION, RuleOperator.GT, 30.0),
        Rule(RuleField.FILE_SIZE, RuleOperator.BETWEEN, 100.0, 200.0),
        Rule(RuleField.FILENAME, RuleOperator.CONTAINS, "big play"),
    ]


def test_parse_rule_text_joins_unquoted_words() -> None:
    rules = parse_rule_text("filename contains final round\n")
    assert rules == [Rule(RuleField.FILENAME, RuleOperator.CONTAINS, "final round")]


def test_parse_rule_text_converts_dates() -> None:
    rules = parse_rule_text("recordedAt after 2024-01-01\n")
    assert rules == [Rule(RuleField.RECORDED_AT, RuleOperator.GT, 1704067200.0)]


def test_parse_rule_text_resolves_tag_names() -> None:
    rules = parse_rule_text("tag has Highlight\ntag has t9\n", tag_ids_by_name={"highlight": "t1"})
    assert rules == [
        Rule(RuleField.TAG, RuleOperator.HAS, "t1"),
        Rule(RuleField.TAG, RuleOperator.HAS, "t9"),
    ]


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("starred\n", "line 1"),
        ("\ncolor is red\n", "Unknown rule field 'color' on line 2"),
        ("starred contains x\n", "not valid for starred"),
        ("size between 100\n", "expects 2 value"),
        ("size between 200 100\n", "upper bound"),
        ("duration gt long\n", "Invalid value on line 1"),
        ("recordedAt before 2024-13-45\n", "Invalid value on line 1"),
    ],
)
def test_parse_rule_text_errors_name_the_line(text: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        parse_rule_text(text)


def test_format_rule_text_round_trips_through_parser() -> None:
    rules = [
        Rule(RuleField.STARRED, RuleOperator.IS, False),
        Rule(RuleField.FILENAME, RuleOperator.EQUALS, "my clip.mp4"),
        Rule(RuleField.DURATION, RuleOperator.BETWEEN, 10.0, 60.5),
        Rule(RuleField.TAG, RuleOperator.HAS, "t1"),
    ]
    text = format_rule_text(rules, tag_names_by_id={"t1": "highlight"})
    assert "filename equals 'my clip.mp4'" in text
    assert "tag has highlight" in text
    assert parse_rule_text(text, tag_ids_by_name={"highlight": "t1"}) == rules


def test_format_rule_text_empty() -> None:
    assert format_rule_text([]) == ""
