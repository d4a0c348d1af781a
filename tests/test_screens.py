import pytest

from clipshelf.ui.screens import (
    TranscodeKind,
    TranscodeRequest,
    default_output_path,
    parse_date_range,
    parse_transcode_request,
    rule_text_for_editor,
    split_dirs,
)
from clipshelf.rule_text import parse_rule_text


def test_parse_date_range_inclusive_end() -> None:
    date_from, date_to = parse_date_range("2024-01-01", "2024-01-01")
    assert date_to - date_from == 86_399
    assert parse_date_range("", "") == (None, None)


def test_parse_date_range_rejects_reversed() -> None:
    with pytest.raises(ValueError, match="before start"):
        parse_date_range("2024-02-01", "2024-01-01")


def test_default_output_paths() -> None:
    assert default_output_path("/v/clip.mp4", TranscodeKind.TRIM) == "/v/clip_trim.mp4"
    assert default_output_path("/v/clip.mp4", TranscodeKind.GIF) == "/v/clip.gif"
    assert default_output_path("/v/clip.mkv", TranscodeKind.COMPRESS) == "/v/clip_compressed.mp4"


def test_trim_request_defaults_end_to_duration() -> None:
    request = parse_transcode_request(
        TranscodeKind.TRIM, output_path="/out.mp4", start="5", duration=30.0
    )
    assert request == TranscodeRequest(TranscodeKind.TRIM, "/out.mp4", start=5.0, end=30.0)


def test_trim_request_precise() -> None:
    request = parse_transcode_request(
        TranscodeKind.TRIM, output_path="/out.mp4", start="0:05", end="0:10", option="Precise"
    )
    assert request.precise is True
    assert (request.start, request.end) == (5.0, 10.0)


@pytest.mark.parametrize(
    ("start", "end", "duration", "message"),
    [
        ("10", "5", 30.0, "after start"),
        ("0", "40", 30.0, "past the clip length"),
        ("0", "", None, "required"),
    ],
)
def test_trim_request_rejects(start: str, end: str, duration: float | None, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        parse_transcode_request(
            TranscodeKind.TRIM, output_path="/out.mp4", start=start, end=end, duration=duration
        )


def test_gif_request_options() -> None:
    request = parse_transcode_request(
        TranscodeKind.GIF, output_path="/out.gif", end="3", option="320@10"
    )
    assert (request.width, request.fps) == (320, 10)
    default = parse_transcode_request(TranscodeKind.GIF, output_path="/out.gif", end="3")
    assert (default.width, default.fps) == (480, 15)


def test_compress_request_options() -> None:
    request = parse_transcode_request(
        TranscodeKind.COMPRESS, output_path="/out.mp4", option="low/1280"
    )
    assert (request.quality, request.max_width) == ("low", 1280)
    assert parse_transcode_request(TranscodeKind.COMPRESS, output_path="/o.mp4").quality == "medium"
    with pytest.raises(ValueError, match="Quality"):
        parse_transcode_request(TranscodeKind.COMPRESS, output_path="/o.mp4", option="ultra")
    with pytest.raises(ValueError, match="Max width"):
        parse_transcode_request(TranscodeKind.COMPRESS, output_path="/o.mp4", option="high/-5")


def test_output_path_required() -> None:
    with pytest.raises(ValueError, match="Output path"):
        parse_transcode_request(TranscodeKind.COMPRESS, output_path="  ")


def test_split_dirs_dedupes_and_strips() -> None:
    assert split_dirs(" /a \n\n/b\n/a\n") == ["/a", "/b"]


def test_stored_rules_open_as_editor_text() -> None:
    stored = '[{"field": "tag", "operator": "has", "value": "t1"}]'
    text, error = rule_text_for_editor(stored, {"t1": "clutch"})
    assert error is None
    assert "clutch" in text


def test_unreadable_stored_rules_are_kept_and_reported() -> None:
    stored = '[{"field": "mood", "operator": "is", "value": "happy"}]'
    text, error = rule_text_for_editor(stored, {})
    assert text == stored
    assert "could not be read" in error
    assert "mood" in error
    with pytest.raises(ValueError):
        parse_rule_text(text)
