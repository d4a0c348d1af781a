import pytest

from clipshelf.models import (
    Clip,
    ClipFilter,
    ScanPhase,
    ScanProgress,
    SortField,
    clip_from_dict,
    collection_from_dict,
    event_from_dict,
    smart_folder_from_dict,
    tag_from_dict,
)


def test_clip_from_dict_defaults() -> None:
    clip = clip_from_dict({"id": "c1", "filename": "a.mp4"})
    assert clip == Clip(
        id="c1",
        filename="a.mp4",
        path="a.mp4",
        dir_source="root",
        recorded_at=0.0,
        file_size=0,
    )


def test_clip_from_dict_rejects_missing_id() -> None:
    with pytest.raises(ValueError):
        clip_from_dict({"filename": "a.mp4"})


def test_clip_from_dict_ignores_bool_numbers() -> None:
    clip = clip_from_dict({"id": "c1", "filename": "a.mp4", "fileSize": True, "width": 1920.0})
    assert clip.file_size == 0
    assert clip.width == 1920


def test_tag_names_are_casefolded() -> None:
    tag = tag_from_dict({"id": "t1", "name": "Highlight", "clipCount": 4})
    assert tag.name == "highlight"
    assert tag.clip_count == 4
    assert tag.color == "#6366f1"


def test_collection_and_smart_folder_records() -> None:
    collection = collection_from_dict({"id": "c", "name": "Best", "sortOrder": 3})
    assert collection.sort_order == 3
    folder = smart_folder_from_dict({"id": "f", "name": "Long", "rules": 5})
    assert folder.rules == "[]"


def test_sort_value_by_field() -> None:
    clip = clip_from_dict({"id": "c1", "filename": "a.mp4", "fileSize": 9})
    assert clip.sort_value(SortField.FILE_SIZE) == 9
    assert clip.sort_value(SortField.DURATION) is None
    assert clip.sort_value(SortField.FILENAME) == "a.mp4"


def test_filter_activity_ignores_search() -> None:
    assert not ClipFilter(search="x").is_active()
    assert ClipFilter(starred=False).is_active()
    assert ClipFilter(dir_source="captures").is_active()


def test_scan_progress_fraction() -> None:
    assert ScanProgress(5, 10, ScanPhase.SCANNING).fraction == 0.5
    assert ScanProgress(0, 0, ScanPhase.COMPLETE).fraction == 0.0
    assert ScanProgress(12, 10, ScanPhase.THUMBNAILS).fraction == 1.0


def test_unknown_scan_phase_is_dropped() -> None:
    assert event_from_dict({"event": "scan-progress", "payload": {"phase": "idle"}}) is None
    assert event_from_dict({"event": "thumb-ready", "payload": {"clipId": "c"}}) is None
