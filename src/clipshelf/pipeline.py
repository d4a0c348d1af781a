"""Derivation of the ordered clip list shown in the browser.

Everything here is a pure function of a :class:`LibraryView` snapshot: the
same view always produces the same list, and nothing in the view is mutated.
The list is rebuilt in full whenever any input changes.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from .models import (
    STARRED_COLLECTION_ID,
    Clip,
    ClipFilter,
    SearchResult,
    SmartFolder,
    SortConfig,
    SortDirection,
    SortField,
    Tag,
)
from .rules import MalformedRulePolicy, evaluate_all, rules_for_folder


class ScopeKind(Enum):
    ALL = "all"
    STARRED = "starred"
    COLLECTION = "collection"
    SMART_FOLDER = "smart_folder"


@dataclass(frozen=True)
class Scope:
    kind: ScopeKind = ScopeKind.ALL
    target_id: str | None = None

    @classmethod
    def everything(cls) -> Scope:
        return cls()

    @classmethod
    def starred(cls) -> Scope:
        return cls(ScopeKind.STARRED, STARRED_COLLECTION_ID)

    @classmethod
    def collection(cls, collection_id: str) -> Scope:
        if collection_id == STARRED_COLLECTION_ID:
            return cls.starred()
        return cls(ScopeKind.COLLECTION, collection_id)

    @classmethod
    def smart_folder(cls, folder_id: str) -> Scope:
        return cls(ScopeKind.SMART_FOLDER, folder_id)


@dataclass(frozen=True)
class LibraryView:
    clips: tuple[Clip, ...] = ()
    tags: tuple[Tag, ...] = ()
    smart_folders: tuple[SmartFolder, ...] = ()
    scope: Scope = field(default_factory=Scope)
    # None while the membership lookup for the active collection is pending.
    collection_clip_ids: frozenset[str] | None = None
    clip_filter: ClipFilter = field(default_factory=ClipFilter)
    semantic_mode: bool = False
    semantic_results: tuple[SearchResult, ...] = ()
    sort: SortConfig = field(default_factory=SortConfig)
    malformed_rules: MalformedRulePolicy = MalformedRulePolicy.MATCH_ALL

    @property
    def query(self) -> str:
        return self.clip_filter.search


def filter_clips(view: LibraryView) -> list[Clip]:
    result = apply_scope(view)

    if view.semantic_mode and view.semantic_results:
        return rank_by_score(result, view.semantic_results)

    query = view.query.strip().casefold()
    if query and not view.semantic_mode:
        tag_names = {tag.id: tag.name.casefold() for tag in view.tags}
        result = [clip for clip in result if _matches_text(clip, query, tag_names)]

    result = apply_filter(result, view.clip_filter)
    return sort_clips(result, view.sort)


def apply_scope(view: LibraryView) -> list[Clip]:
    clips = list(view.clips)
    scope = view.scope
    if scope.kind == ScopeKind.STARRED:
        return [clip for clip in clips if clip.starred]
    if scope.kind == ScopeKind.COLLECTION:
        if view.collection_clip_ids is None:
            return clips
        members = view.collection_clip_ids
        return [clip for clip in clips if clip.id in members]
    if scope.kind == ScopeKind.SMART_FOLDER:
        folder = next((item for item in view.smart_folders if item.id == scope.target_id), None)
        if folder is None:
            return clips
        rules = rules_for_folder(folder, view.malformed_rules)
        if rules is None:
            return []
        return evaluate_all(clips, rules)
    return clips


def rank_by_score(clips: Iterable[Clip], results: Iterable[SearchResult]) -> list[Clip]:
    scores: dict[str, float] = {}
    for item in results:
        scores.setdefault(item.clip_id, item.score)
    ranked = [clip for clip in clips if clip.id in scores]
    ranked.sort(key=lambda clip: scores[clip.id], reverse=True)
    return ranked


def apply_filter(clips: Iterable[Clip], clip_filter: ClipFilter) -> list[Clip]:
    result = list(clips)
    if clip_filter.date_from is not None:
        result = [clip for clip in result if clip.recorded_at >= clip_filter.date_from]
    if clip_filter.date_to is not None:
        result = [clip for clip in result if clip.recorded_at <= clip_filter.date_to]
    if clip_filter.tags:
        wanted = clip_filter.tags
        result = [clip for clip in result if wanted.issubset(clip.tags)]
    if clip_filter.dir_source != "all":
        result = [clip for clip in result if clip.dir_source == clip_filter.dir_source]
    if clip_filter.starred is not None:
        result = [clip for clip in result if clip.starred == clip_filter.starred]
    return result


def library_counts(clips: Iterable[Clip]) -> tuple[int, int]:
    """Total and starred clip counts for the sidebar."""
    total = starred = 0
    for clip in clips:
        total += 1
        if clip.starred:
            starred += 1
    return total, starred


def sort_clips(clips: Iterable[Clip], sort: SortConfig) -> list[Clip]:
    defined: list[Clip] = []
    undefined: list[Clip] = []
    for clip in clips:
        if clip.sort_value(sort.field) is None:
            undefined.append(clip)
        else:
            defined.append(clip)
    if sort.field == SortField.FILENAME:
        defined.sort(
            key=lambda clip: text_sort_key(clip.filename),
            reverse=sort.direction == SortDirection.DESC,
        )
    else:
        defined.sort(
            key=lambda clip: clip.sort_value(sort.field),
            reverse=sort.direction == SortDirection.DESC,
        )
    return defined + undefined


def text_sort_key(value: str) -> tuple[str, str]:
    folded = unicodedata.normalize("NFKD", value).casefold()
    base = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return (base, value)


def _matches_text(clip: Clip, query: str, tag_names: dict[str, str]) -> bool:
    if query in clip.filename.casefold():
        return True
    if query in clip.description.casefold():
        return True
    for tag_id in clip.tags:
        name = tag_names.get(tag_id)
        if name is not None and query in name:
            return True
    return False
