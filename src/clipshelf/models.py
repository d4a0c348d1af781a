from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

STARRED_COLLECTION_ID = "__starred"


class SortField(Enum):
    RECORDED_AT = "recordedAt"
    FILENAME = "filename"
    FILE_SIZE = "fileSize"
    DURATION = "durationSecs"


class SortDirection(Enum):
    ASC = "asc"
    DESC = "desc"


class ViewMode(Enum):
    GRID = "grid"
    TIMELINE = "timeline"


class ScanPhase(Enum):
    SCANNING = "scanning"
    THUMBNAILS = "thumbnails"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Clip:
    id: str
    filename: str
    path: str
    dir_source: str
    recorded_at: float
    file_size: int
    duration_secs: float | None = None
    width: int | None = None
    height: int | None = None
    thumb_path: str | None = None
    description: str = ""
    tags: tuple[str, ...] = ()
    starred: bool = False
    created_at: float = 0.0
    updated_at: float = 0.0

    def sort_value(self, sort_field: SortField) -> str | float | None:
        if sort_field == SortField.FILENAME:
            return self.filename
        if sort_field == SortField.FILE_SIZE:
            return self.file_size
        if sort_field == SortField.DURATION:
            return self.duration_secs
        return self.recorded_at


@dataclass(frozen=True)
class Tag:
    id: str
    name: str
    color: str
    created_at: float = 0.0
    clip_count: int | None = None


@dataclass(frozen=True)
class Collection:
    id: str
    name: str
    color: str
    description: str = ""
    sort_order: int = 0
    clip_count: int = 0


@dataclass(frozen=True)
class SmartFolder:
    id: str
    name: str
    color: str
    rules: str = "[]"


@dataclass(frozen=True)
class ClipFilter:
    date_from: float | None = None
    date_to: float | None = None
    tags: frozenset[str] = field(default_factory=frozenset)
    search: str = ""
    dir_source: str = "all"
    starred: bool | None = None

    def is_active(self) -> bool:
        return (
            self.date_from is not None
            or self.date_to is not None
            or bool(self.tags)
            or self.dir_source != "all"
            or self.starred is not None
        )


@dataclass(frozen=True)
class SortConfig:
    field: SortField = SortField.RECORDED_AT
    direction: SortDirection = SortDirection.DESC


@dataclass(frozen=True)
class SearchResult:
    clip_id: str
    score: float


@dataclass(frozen=True)
class ScanProgress:
    done: int
    total: int
    phase: ScanPhase

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(1.0, self.done / self.total)


@dataclass(frozen=True)
class ThumbReady:
    clip_id: str
    path: str


@dataclass(frozen=True)
class LibraryChanged:
    pass


BackendEvent = ScanProgress | ThumbReady | LibraryChanged


def clip_from_dict(data: dict[str, Any]) -> Clip:
    clip_id = _as_str(data.get("id"))
    filename = _as_str(data.get("filename"))
    if clip_id is None or filename is None:
        raise ValueError("Clip record requires id and filename")
    tags = data.get("tags")
    return Clip(
        id=clip_id,
        filename=filename,
        path=_as_str(data.get("path")) or filename,
        dir_source=_as_str(data.get("dirSource")) or "root",
        recorded_at=_as_float(data.get("recordedAt")) or 0.0,
        file_size=_as_int(data.get("fileSize")) or 0,
        duration_secs=_as_float(data.get("durationSecs")),
        width=_as_int(data.get("width")),
        height=_as_int(data.get("height")),
        thumb_path=_as_str(data.get("thumbPath")),
        description=data.get("description") if isinstance(data.get("description"), str) else "",
        tags=tuple(tag for tag in tags if isinstance(tag, str)) if isinstance(tags, list) else (),
        starred=data.get("starred") is True,
        created_at=_as_float(data.get("createdAt")) or 0.0,
        updated_at=_as_float(data.get("updatedAt")) or 0.0,
    )


def tag_from_dict(data: dict[str, Any]) -> Tag:
    tag_id = _as_str(data.get("id"))
    name = _as_str(data.get("name"))
    if tag_id is None or name is None:
        raise ValueError("Tag record requires id and name")
    return Tag(
        id=tag_id,
        name=name.casefold(),
        color=_as_str(data.get("color")) or "#6366f1",
        created_at=_as_float(data.get("createdAt")) or 0.0,
        clip_count=_as_int(data.get("clipCount")),
    )


def collection_from_dict(data: dict[str, Any]) -> Collection:
    collection_id = _as_str(data.get("id"))
    name = _as_str(data.get("name"))
    if collection_id is None or name is None:
        raise ValueError("Collection record requires id and name")
    return Collection(
        id=collection_id,
        name=name,
        color=_as_str(data.get("color")) or "#6366f1",
        description=_as_str(data.get("description")) or "",
        sort_order=_as_int(data.get("sortOrder")) or 0,
        clip_count=_as_int(data.get("clipCount")) or 0,
    )


def smart_folder_from_dict(data: dict[str, Any]) -> SmartFolder:
    folder_id = _as_str(data.get("id"))
    name = _as_str(data.get("name"))
    if folder_id is None or name is None:
        raise ValueError("Smart folder record requires id and name")
    rules = data.get("rules")
    return SmartFolder(
        id=folder_id,
        name=name,
        color=_as_str(data.get("color")) or "#06b6d4",
        rules=rules if isinstance(rules, str) else "[]",
    )


def search_result_from_dict(data: dict[str, Any]) -> SearchResult:
    clip_id = _as_str(data.get("clipId"))
    score = _as_float(data.get("score"))
    if clip_id is None or score is None:
        raise ValueError("Search result requires clipId and score")
    return SearchResult(clip_id=clip_id, score=score)


def event_from_dict(data: dict[str, Any]) -> BackendEvent | None:
    name = data.get("event")
    payload = data.get("payload")
    if not isinstance(payload, dict):
        payload = {}
    if name == "scan-progress":
        try:
            phase = ScanPhase(payload.get("phase"))
        except ValueError:
            return None
        return ScanProgress(
            done=_as_int(payload.get("done")) or 0,
            total=_as_int(payload.get("total")) or 0,
            phase=phase,
        )
    if name == "thumb-ready":
        clip_id = _as_str(payload.get("clipId"))
        path = _as_str(payload.get("thumbPath"))
        if clip_id is None or path is None:
            return None
        return ThumbReady(clip_id=clip_id, path=path)
    if name == "clips-updated":
        return LibraryChanged()
    return None


def _as_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None
