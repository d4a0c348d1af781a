"""Windowing math for the clip views.

The views only render the slice of the result list that intersects the
viewport plus an overscan margin. Sizes are estimates until the renderer
reports a measured size for an item; measurements refine the offsets but the
math stays correct with estimates alone. Units are terminal lines for sizes
and cells for widths.
"""

from __future__ import annotations

import math
from bisect import bisect_right
from dataclasses import dataclass
from typing import Callable, Sequence

from .formatting import day_key
from .models import Clip

DEFAULT_OVERSCAN = 3


@dataclass(frozen=True)
class VirtualItem:
    index: int
    start: int
    size: int

    @property
    def end(self) -> int:
        return self.start + self.size


@dataclass(frozen=True)
class VisibleWindow:
    start_index: int
    end_index: int
    items: tuple[VirtualItem, ...]
    total_size: int

    @property
    def is_empty(self) -> bool:
        return self.end_index < self.start_index

    def indices(self) -> range:
        return range(self.start_index, self.end_index + 1)


EMPTY_WINDOW = VisibleWindow(start_index=0, end_index=-1, items=(), total_size=0)


def visible_range(first: int, last: int, overscan: int, count: int) -> tuple[int, int] | None:
    """Inclusive index range for visible items ``first..last`` widened by overscan."""
    if count <= 0:
        return None
    if last < first:
        first, last = last, first
    overscan = max(0, overscan)
    start = max(0, min(first, count - 1) - overscan)
    end = min(count - 1, max(last, 0) + overscan)
    return (start, end)


class Virtualizer:
    def __init__(
        self,
        count: int,
        estimate: Callable[[int], int],
        overscan: int = DEFAULT_OVERSCAN,
    ) -> None:
        self._estimate = estimate
        self.overscan = max(0, overscan)
        self._measured: dict[int, int] = {}
        self._sizes: list[int] = []
        self._offsets: list[int] = [0]
        self.set_count(count)

    @property
    def count(self) -> int:
        return len(self._sizes)

    @property
    def total_size(self) -> int:
        return self._offsets[-1]

    def set_count(self, count: int) -> None:
        count = max(0, count)
        self._measured = {index: size for index, size in self._measured.items() if index < count}
        self._sizes = [self._size_for(index) for index in range(count)]
        self._rebuild_offsets(0)

    def measure(self, index: int, size: int) -> bool:
        """Record a rendered size; returns True when offsets moved."""
        if not 0 <= index < self.count:
            return False
        size = max(1, int(size))
        self._measured[index] = size
        if self._sizes[index] == size:
            return False
        self._sizes[index] = size
        self._rebuild_offsets(index)
        return True

    def reset_measurements(self) -> None:
        self._measured.clear()
        self.set_count(self.count)

    def is_measured(self, index: int) -> bool:
        return index in self._measured

    def size_of(self, index: int) -> int:
        return self._sizes[index]

    def offset_of(self, index: int) -> int:
        return self._offsets[index]

    def item(self, index: int) -> VirtualItem:
        return VirtualItem(index=index, start=self._offsets[index], size=self._sizes[index])

    def index_at(self, offset: int) -> int:
        if self.count == 0:
            return -1
        position = bisect_right(self._offsets, offset) - 1
        return max(0, min(position, self.count - 1))

    def window(self, scroll_offset: int, viewport_size: int) -> VisibleWindow:
        if self.count == 0:
            return EMPTY_WINDOW
        total = self.total_size
        top = max(0, min(scroll_offset, total - 1))
        bottom = min(top + max(1, viewport_size) - 1, total - 1)
        span = visible_range(self.index_at(top), self.index_at(bottom), self.overscan, self.count)
        if span is None:
            return EMPTY_WINDOW
        start, end = span
        items = tuple(self.item(index) for index in range(start, end + 1))
        return VisibleWindow(start_index=start, end_index=end, items=items, total_size=total)

    def scroll_to_reveal(self, index: int, scroll_offset: int, viewport_size: int) -> int:
        """Smallest scroll change that brings ``index`` fully into view."""
        if not 0 <= index < self.count:
            return scroll_offset
        item = self.item(index)
        if item.start < scroll_offset:
            return item.start
        if item.end > scroll_offset + viewport_size:
            return max(0, item.end - viewport_size)
        return scroll_offset

    def _size_for(self, index: int) -> int:
        measured = self._measured.get(index)
        if measured is not None:
            return measured
        return max(1, int(self._estimate(index)))

    def _rebuild_offsets(self, start: int) -> None:
        offsets = self._offsets[: start + 1]
        running = offsets[-1]
        for size in self._sizes[start:]:
            running += size
            offsets.append(running)
        self._offsets = offsets


def grid_columns(width: int, min_card_width: int, gap: int) -> int:
    if min_card_width + gap <= 0:
        return 1
    return max(1, math.floor((width + gap) / (min_card_width + gap)))


class GridLayout:
    """Fixed-height rows of ``columns`` cards each."""

    def __init__(
        self,
        item_count: int,
        columns: int,
        row_height: int,
        overscan: int = DEFAULT_OVERSCAN,
    ) -> None:
        self.item_count = max(0, item_count)
        self.columns = max(1, columns)
        self.row_height = max(1, row_height)
        self.virtualizer = Virtualizer(self.row_count, lambda _: self.row_height, overscan)

    @property
    def row_count(self) -> int:
        return math.ceil(self.item_count / self.columns)

    @property
    def total_size(self) -> int:
        return self.virtualizer.total_size

    def reflow(self, columns: int) -> bool:
        columns = max(1, columns)
        if columns == self.columns:
            return False
        self.columns = columns
        self.virtualizer.set_count(self.row_count)
        return True

    def row_items(self, row: int) -> range:
        start = row * self.columns
        return range(start, min(self.item_count, start + self.columns))

    def row_of(self, index: int) -> int:
        return index // self.columns

    def window(self, scroll_offset: int, viewport_size: int) -> VisibleWindow:
        return self.virtualizer.window(scroll_offset, viewport_size)

    def item_range(self, window: VisibleWindow) -> range:
        if window.is_empty:
            return range(0)
        start = window.start_index * self.columns
        end = min(self.item_count, (window.end_index + 1) * self.columns)
        return range(start, end)


@dataclass(frozen=True)
class DayGroup:
    key: str
    indices: tuple[int, ...]

    @property
    def size(self) -> int:
        return len(self.indices)


def group_by_day(clips: Sequence[Clip]) -> list[DayGroup]:
    """Groups of result-list indices per calendar day, newest day first."""
    grouped: dict[str, list[int]] = {}
    for index, clip in enumerate(clips):
        grouped.setdefault(day_key(clip.recorded_at), []).append(index)
    keys = sorted(grouped, reverse=True)
    return [DayGroup(key=key, indices=tuple(grouped[key])) for key in keys]


def estimate_group_height(
    member_count: int,
    columns: int,
    header_height: int,
    row_height: int,
) -> int:
    rows = math.ceil(member_count / max(1, columns))
    return header_height + rows * row_height


class TimelineLayout:
    """Variable-height day groups with estimated heights refined by measurement."""

    def __init__(
        self,
        clips: Sequence[Clip],
        *,
        columns_estimate: int = 3,
        header_height: int = 2,
        row_height: int = 4,
        overscan: int = 2,
    ) -> None:
        self.groups = group_by_day(clips)
        self.columns_estimate = max(1, columns_estimate)
        self.header_height = header_height
        self.row_height = row_height
        self.virtualizer = Virtualizer(len(self.groups), self._estimate, overscan)

    @property
    def total_size(self) -> int:
        return self.virtualizer.total_size

    def measure_group(self, group_index: int, height: int) -> bool:
        return self.virtualizer.measure(group_index, height)

    def window(self, scroll_offset: int, viewport_size: int) -> VisibleWindow:
        return self.virtualizer.window(scroll_offset, viewport_size)

    def reset_measurements(self) -> None:
        self.virtualizer.reset_measurements()

    def group_of(self, index: int) -> int | None:
        for position, group in enumerate(self.groups):
            if index in group.indices:
                return position
        return None

    def display_order(self) -> list[int]:
        """Result-list indices in the order the timeline shows them."""
        return [index for group in self.groups for index in group.indices]

    def _estimate(self, group_index: int) -> int:
        return estimate_group_height(
            self.groups[group_index].size,
            self.columns_estimate,
            self.header_height,
            self.row_height,
        )
