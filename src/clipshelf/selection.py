from __future__ import annotations

from typing import Iterable


class SelectionState:
    """Focused clip plus an independent multi-select set, keyed by clip id.

    A plain click (focus and drop the multi-selection) is composed by the
    caller from ``focus`` and ``clear``.
    """

    def __init__(self) -> None:
        self._focused: str | None = None
        self._selected: set[str] = set()

    @property
    def focused(self) -> str | None:
        return self._focused

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(self._selected)

    def __len__(self) -> int:
        return len(self._selected)

    def __contains__(self, clip_id: object) -> bool:
        return clip_id in self._selected

    def is_selected(self, clip_id: str) -> bool:
        return clip_id in self._selected

    def focus(self, clip_id: str | None) -> None:
        self._focused = clip_id

    def toggle(self, clip_id: str) -> bool:
        if clip_id in self._selected:
            self._selected.discard(clip_id)
            return False
        self._selected.add(clip_id)
        return True

    def select_all(self, clip_ids: Iterable[str]) -> None:
        self._selected = set(clip_ids)

    def clear(self) -> None:
        self._selected.clear()

    def prune(self, valid_ids: Iterable[str]) -> None:
        valid = set(valid_ids)
        self._selected &= valid
        if self._focused is not None and self._focused not in valid:
            self._focused = None
