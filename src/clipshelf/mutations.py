from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from .backend import Backend, BackendError
from .models import Clip
from .store import LibraryStore

logger = logging.getLogger(__name__)

DEFAULT_TAG_COLOR = "#6366f1"

FieldKey = tuple[str, ...]
Tokens = dict[FieldKey, int]


@dataclass(frozen=True)
class MutationResult:
    ok: bool
    error: str | None = None


_OK = MutationResult(ok=True)


class MutationCoordinator:
    """Optimistic edits against the store with compensation on backend failure.

    Each operation applies its edit locally, then awaits the backend. If the
    backend call fails, only the fields that operation changed are put back,
    on top of whatever the clip looks like by then, and a single failure is
    reported. A field that a newer edit has since touched is left to that
    edit.
    """

    def __init__(self, store: LibraryStore, backend: Backend) -> None:
        self.store = store
        self.backend = backend
        self._tokens = itertools.count(1)
        self._latest: dict[FieldKey, int] = {}
        self._in_flight: dict[FieldKey, int] = {}

    async def toggle_star(self, clip_id: str) -> MutationResult:
        clip = self.store.clip(clip_id)
        if clip is None:
            return _missing(clip_id)
        return await self.set_star(clip_id, not clip.starred)

    async def set_star(self, clip_id: str, starred: bool) -> MutationResult:
        if self.store.clip(clip_id) is None:
            return _missing(clip_id)
        return await self._edit_field(
            "star", [clip_id], "starred", starred, lambda: self.backend.toggle_star(clip_id, starred)
        )

    async def update_description(self, clip_id: str, description: str) -> MutationResult:
        if self.store.clip(clip_id) is None:
            return _missing(clip_id)
        return await self._edit_field(
            "update description",
            [clip_id],
            "description",
            description,
            lambda: self.backend.update_description(clip_id, description),
        )

    async def add_tag(self, clip_id: str, tag_id: str) -> MutationResult:
        clip = self.store.clip(clip_id)
        if clip is None:
            return _missing(clip_id)
        if tag_id in clip.tags and not self._in_flight.get(_tag_key(clip_id, tag_id)):
            return _OK
        return await self._edit_tag(
            "add tag", [clip_id], tag_id, True, lambda: self.backend.add_tag(clip_id, tag_id)
        )

    async def remove_tag(self, clip_id: str, tag_id: str) -> MutationResult:
        clip = self.store.clip(clip_id)
        if clip is None:
            return _missing(clip_id)
        if tag_id not in clip.tags and not self._in_flight.get(_tag_key(clip_id, tag_id)):
            return _OK
        return await self._edit_tag(
            "remove tag", [clip_id], tag_id, False, lambda: self.backend.remove_tag(clip_id, tag_id)
        )

    async def bulk_star(self, clip_ids: Iterable[str], starred: bool) -> MutationResult:
        ids = self._present_ids(clip_ids)
        if not ids:
            return _OK
        return await self._edit_field(
            "bulk star", ids, "starred", starred, lambda: self.backend.bulk_star(ids, starred)
        )

    async def bulk_add_tag(self, clip_ids: Iterable[str], tag_id: str) -> MutationResult:
        ids = self._present_ids(clip_ids)
        if not ids:
            return _OK
        return await self._edit_tag(
            "bulk add tag", ids, tag_id, True, lambda: self.backend.bulk_add_tag(ids, tag_id)
        )

    async def bulk_remove_tag(self, clip_ids: Iterable[str], tag_id: str) -> MutationResult:
        ids = self._present_ids(clip_ids)
        if not ids:
            return _OK
        return await self._edit_tag(
            "bulk remove tag", ids, tag_id, False, lambda: self.backend.bulk_remove_tag(ids, tag_id)
        )

    async def delete_clips(self, clip_ids: Iterable[str]) -> MutationResult:
        removed = self.store.remove_clips(clip_ids)
        if not removed:
            return _OK
        ids = [clip.id for _, clip in removed]
        return await self._commit(
            "delete",
            lambda: self.backend.delete_clips(ids),
            lambda _owned: self.store.restore_clips(removed),
            {},
        )

    async def create_tag_and_add(
        self,
        clip_ids: Iterable[str],
        name: str,
        color: str = DEFAULT_TAG_COLOR,
    ) -> MutationResult:
        """Tag clips by name, creating the tag first when no tag has that name."""
        ids = list(dict.fromkeys(clip_ids))
        folded = name.strip().casefold()
        if not folded:
            return MutationResult(ok=False, error="Tag name is empty")
        tag = self.store.tag_by_name(folded)
        if tag is None:
            try:
                tag = await self.backend.create_tag(folded, color)
            except BackendError as exc:
                logger.warning("create tag %r failed: %s", folded, exc)
                return MutationResult(ok=False, error=str(exc))
            self.store.add_tag_record(tag)
        if not ids:
            return _OK
        if len(ids) == 1:
            return await self.add_tag(ids[0], tag.id)
        return await self.bulk_add_tag(ids, tag.id)

    async def _edit_field(
        self,
        label: str,
        clip_ids: list[str],
        field_name: str,
        value: Any,
        call: Callable[[], Awaitable[object]],
    ) -> MutationResult:
        previous: dict[str, Any] = {}
        for clip in self._clips(clip_ids):
            previous[clip.id] = getattr(clip, field_name)
        self.store.patch_clips({clip_id: {field_name: value} for clip_id in previous})
        tokens = self._begin((field_name, clip_id) for clip_id in previous)

        def undo(owned: list[FieldKey]) -> None:
            self.store.patch_clips({key[1]: {field_name: previous[key[1]]} for key in owned})

        return await self._commit(label, call, undo, tokens)

    async def _edit_tag(
        self,
        label: str,
        clip_ids: list[str],
        tag_id: str,
        present: bool,
        call: Callable[[], Awaitable[object]],
    ) -> MutationResult:
        had_tag: dict[str, bool] = {}
        changes: dict[str, dict[str, Any]] = {}
        for clip in self._clips(clip_ids):
            had_tag[clip.id] = tag_id in clip.tags
            changes[clip.id] = {"tags": _with_tag(clip.tags, tag_id, present)}
        self.store.patch_clips(changes)
        tokens = self._begin(_tag_key(clip_id, tag_id) for clip_id in had_tag)

        def undo(owned: list[FieldKey]) -> None:
            restore: dict[str, dict[str, Any]] = {}
            for key in owned:
                clip = self.store.clip(key[1])
                if clip is not None:
                    restore[clip.id] = {"tags": _with_tag(clip.tags, tag_id, had_tag[clip.id])}
            self.store.patch_clips(restore)

        return await self._commit(label, call, undo, tokens)

    def _begin(self, keys: Iterable[FieldKey]) -> Tokens:
        tokens: Tokens = {}
        for key in keys:
            token = next(self._tokens)
            tokens[key] = token
            self._latest[key] = token
            self._in_flight[key] = self._in_flight.get(key, 0) + 1
        return tokens

    def _finish(self, tokens: Tokens) -> None:
        for key, token in tokens.items():
            remaining = self._in_flight.get(key, 1) - 1
            if remaining:
                self._in_flight[key] = remaining
            else:
                self._in_flight.pop(key, None)
            if self._latest.get(key) == token:
                del self._latest[key]

    async def _commit(
        self,
        label: str,
        call: Callable[[], Awaitable[object]],
        undo: Callable[[list[FieldKey]], None],
        tokens: Tokens,
    ) -> MutationResult:
        try:
            await call()
        except BackendError as exc:
            owned = [key for key, token in tokens.items() if self._latest.get(key) == token]
            logger.warning("%s failed, reverting: %s", label, exc)
            undo(owned)
            return MutationResult(ok=False, error=str(exc))
        finally:
            self._finish(tokens)
        return _OK

    def _clips(self, clip_ids: Iterable[str]) -> list[Clip]:
        return [clip for clip in map(self.store.clip, clip_ids) if clip is not None]

    def _present_ids(self, clip_ids: Iterable[str]) -> list[str]:
        return [clip.id for clip in self._clips(dict.fromkeys(clip_ids))]


def _tag_key(clip_id: str, tag_id: str) -> FieldKey:
    return ("tags", clip_id, tag_id)


def _with_tag(tags: tuple[str, ...], tag_id: str, present: bool) -> tuple[str, ...]:
    if present:
        return tags if tag_id in tags else (*tags, tag_id)
    return tuple(tag for tag in tags if tag != tag_id)


def _missing(clip_id: str) -> MutationResult:
    return MutationResult(ok=False, error=f"Clip not found: {clip_id}")
