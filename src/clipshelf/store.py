from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Iterable, Mapping, Sequence

from .backend import Backend, BackendError
from .models import (
    Clip,
    ClipFilter,
    Collection,
    ScanProgress,
    SearchResult,
    SmartFolder,
    SortConfig,
    Tag,
)
from .pipeline import LibraryView, Scope, ScopeKind, filter_clips
from .rules import MalformedRulePolicy

logger = logging.getLogger(__name__)

Listener = Callable[[], None]
RemovedClips = list[tuple[int, Clip]]


class LibraryStore:
    """In-memory snapshot plus the browsing state that drives the result list.

    Every change bumps ``version`` and notifies subscribers. ``derive`` runs
    the filter pipeline at most once per version.
    """

    def __init__(
        self,
        *,
        sort: SortConfig | None = None,
        malformed_rules: MalformedRulePolicy = MalformedRulePolicy.MATCH_ALL,
    ) -> None:
        self._clips: list[Clip] = []
        self.tags: tuple[Tag, ...] = ()
        self.collections: tuple[Collection, ...] = ()
        self.smart_folders: tuple[SmartFolder, ...] = ()
        self.scope = Scope()
        self.collection_clip_ids: frozenset[str] | None = None
        self.clip_filter = ClipFilter()
        self.semantic_mode = False
        self.semantic_results: tuple[SearchResult, ...] = ()
        self.sort = sort or SortConfig()
        self.malformed_rules = malformed_rules
        self.scan_progress: ScanProgress | None = None
        self.loaded = False
        self._version = 0
        self._derived_version = -1
        self._derived: list[Clip] = []
        self._listeners: list[Listener] = []

    @property
    def version(self) -> int:
        return self._version

    @property
    def clips(self) -> tuple[Clip, ...]:
        return tuple(self._clips)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def view(self) -> LibraryView:
        return LibraryView(
            clips=tuple(self._clips),
            tags=self.tags,
            smart_folders=self.smart_folders,
            scope=self.scope,
            collection_clip_ids=self.collection_clip_ids,
            clip_filter=self.clip_filter,
            semantic_mode=self.semantic_mode,
            semantic_results=self.semantic_results,
            sort=self.sort,
            malformed_rules=self.malformed_rules,
        )

    def derive(self) -> list[Clip]:
        if self._derived_version != self._version:
            self._derived = filter_clips(self.view())
            self._derived_version = self._version
        return list(self._derived)

    # Snapshot

    def load_snapshot(
        self,
        clips: Sequence[Clip],
        tags: Sequence[Tag],
        collections: Sequence[Collection],
        smart_folders: Sequence[SmartFolder],
    ) -> None:
        self._clips = list(clips)
        self.tags = tuple(tags)
        self.collections = tuple(sorted(collections, key=lambda item: item.sort_order))
        self.smart_folders = tuple(smart_folders)
        self.loaded = True
        if self.scope.kind == ScopeKind.SMART_FOLDER and self.smart_folder(self.scope.target_id) is None:
            self.scope = Scope()
        self._changed()

    def clip(self, clip_id: str | None) -> Clip | None:
        if clip_id is None:
            return None
        for clip in self._clips:
            if clip.id == clip_id:
                return clip
        return None

    def tag(self, tag_id: str) -> Tag | None:
        return next((tag for tag in self.tags if tag.id == tag_id), None)

    def tag_by_name(self, name: str) -> Tag | None:
        folded = name.strip().casefold()
        return next((tag for tag in self.tags if tag.name == folded), None)

    def collection(self, collection_id: str | None) -> Collection | None:
        return next((item for item in self.collections if item.id == collection_id), None)

    def smart_folder(self, folder_id: str | None) -> SmartFolder | None:
        return next((item for item in self.smart_folders if item.id == folder_id), None)

    def dir_sources(self) -> list[str]:
        return sorted({clip.dir_source for clip in self._clips})

    def patch_clip(self, clip_id: str, **changes: Any) -> Clip | None:
        """Replace one clip with ``changes`` applied; returns the pre-image."""
        for position, clip in enumerate(self._clips):
            if clip.id == clip_id:
                self._clips[position] = replace(clip, **changes)
                self._changed()
                return clip
        return None

    def patch_clips(self, updates: Mapping[str, Mapping[str, Any]]) -> list[str]:
        """Apply per-clip field changes on top of the current records.

        Ids no longer in the snapshot are skipped. Subscribers are notified
        once; returns the ids that were patched.
        """
        patched: list[str] = []
        for position, clip in enumerate(self._clips):
            changes = updates.get(clip.id)
            if changes:
                self._clips[position] = replace(clip, **changes)
                patched.append(clip.id)
        if patched:
            self._changed()
        return patched

    def remove_clips(self, clip_ids: Iterable[str]) -> RemovedClips:
        wanted = set(clip_ids)
        removed: RemovedClips = []
        kept: list[Clip] = []
        for position, clip in enumerate(self._clips):
            if clip.id in wanted:
                removed.append((position, clip))
            else:
                kept.append(clip)
        if removed:
            self._clips = kept
            self._changed()
        return removed

    def restore_clips(self, removed: RemovedClips) -> None:
        if not removed:
            return
        present = {clip.id for clip in self._clips}
        for position, clip in sorted(removed, key=lambda item: item[0]):
            if clip.id in present:
                continue
            self._clips.insert(min(position, len(self._clips)), clip)
        self._changed()

    def set_thumb(self, clip_id: str, path: str) -> None:
        self.patch_clip(clip_id, thumb_path=path)

    def add_tag_record(self, tag: Tag) -> None:
        if self.tag(tag.id) is not None:
            return
        self.tags = (*self.tags, tag)
        self._changed()

    # Browsing state

    def set_scope(self, scope: Scope) -> None:
        if scope == self.scope:
            return
        self.scope = scope
        self.collection_clip_ids = None
        self._changed()

    def set_collection_clip_ids(self, collection_id: str, clip_ids: Iterable[str]) -> bool:
        """Apply a membership lookup if ``collection_id`` is still the active scope."""
        if self.scope.kind != ScopeKind.COLLECTION or self.scope.target_id != collection_id:
            return False
        self.collection_clip_ids = frozenset(clip_ids)
        self._changed()
        return True

    def set_filter(self, **changes: Any) -> None:
        updated = replace(self.clip_filter, **changes)
        if updated == self.clip_filter:
            return
        self.clip_filter = updated
        self._changed()

    def clear_filters(self) -> None:
        self.set_filter(date_from=None, date_to=None, tags=frozenset(), dir_source="all", starred=None)

    def set_semantic_mode(self, enabled: bool) -> None:
        if enabled == self.semantic_mode:
            return
        self.semantic_mode = enabled
        if not enabled:
            self.semantic_results = ()
        self._changed()

    def set_semantic_results(self, results: Iterable[SearchResult]) -> None:
        self.semantic_results = tuple(results)
        self._changed()

    def set_sort(self, sort: SortConfig) -> None:
        if sort == self.sort:
            return
        self.sort = sort
        self._changed()

    def set_malformed_rules(self, policy: MalformedRulePolicy) -> None:
        if policy == self.malformed_rules:
            return
        self.malformed_rules = policy
        self._changed()

    def set_scan_progress(self, progress: ScanProgress | None) -> None:
        self.scan_progress = progress
        self._changed()

    # Loading

    async def refresh(self, backend: Backend) -> bool:
        """Re-read the whole snapshot; on failure the previous one stays."""
        try:
            clips, tags, collections, folders = await asyncio.gather(
                backend.get_clips(),
                backend.get_tags(),
                backend.get_collections(),
                backend.get_smart_folders(),
            )
        except BackendError as exc:
            logger.warning("Library refresh failed: %s", exc)
            return False
        self.load_snapshot(clips, tags, collections, folders)
        logger.debug("Loaded %d clips, %d tags", len(clips), len(tags))
        return True

    async def load_collection(self, backend: Backend, collection_id: str) -> bool:
        try:
            clip_ids = await backend.get_collection_clips(collection_id)
        except BackendError as exc:
            logger.warning("Collection %s lookup failed: %s", collection_id, exc)
            return False
        return self.set_collection_clip_ids(collection_id, clip_ids)

    def _changed(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            listener()
