from __future__ import annotations

import math
from typing import Mapping, Sequence

from rich.segment import Segment
from rich.style import Style
from rich.text import Text
from textual import events
from textual.binding import Binding
from textual.geometry import Size
from textual.message import Message
from textual.scroll_view import ScrollView
from textual.strip import Strip

from ..formatting import fmt_date, fmt_day_label, fmt_duration, fmt_size
from ..models import Clip, ViewMode
from ..virtual import (
    EMPTY_WINDOW,
    GridLayout,
    TimelineLayout,
    VisibleWindow,
    grid_columns,
)

CARD_HEIGHT = 4
CARD_LINES = 3
CARD_GAP = 2
HEADER_HEIGHT = 2
TIMELINE_OVERSCAN = 2
TIMELINE_COLUMNS_ESTIMATE = 3


def format_card_lines(clip: Clip, tag_names: Mapping[str, str]) -> tuple[Text, Text, Text]:
    title = Text()
    title.append("★ " if clip.starred else "  ", style="bold yellow")
    title.append(clip.filename)

    facts = [fmt_duration(clip.duration_secs) or "--:--", fmt_size(clip.file_size)]
    if clip.width and clip.height:
        facts.append(f"{clip.width}x{clip.height}")
    details = Text("  " + " · ".join(facts), style="dim")

    footer = Text("  " + fmt_date(clip.recorded_at), style="dim")
    names = [tag_names[tag_id] for tag_id in clip.tags if tag_id in tag_names]
    if names:
        footer.append("  ")
        footer.append(" ".join(f"#{name}" for name in names), style="cyan")
    return title, details, footer


class ClipGridView(ScrollView, can_focus=True):
    """Card grid (or day-grouped timeline) that renders only the visible window."""

    COMPONENT_CLASSES = {
        "clip-grid--card",
        "clip-grid--cursor",
        "clip-grid--selected",
        "clip-grid--header",
        "clip-grid--empty",
    }

    DEFAULT_CSS = """
    ClipGridView {
        background: $surface;
    }

    ClipGridView > .clip-grid--card {
        background: $panel;
    }

    ClipGridView > .clip-grid--cursor {
        background: $primary 45%;
        text-style: bold;
    }

    ClipGridView > .clip-grid--selected {
        background: $accent 35%;
    }

    ClipGridView > .clip-grid--header {
        color: $secondary;
        text-style: bold;
    }

    ClipGridView > .clip-grid--empty {
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("up", "cursor_up", show=False),
        Binding("down", "cursor_down", show=False),
        Binding("left", "cursor_left", show=False),
        Binding("right", "cursor_right", show=False),
        Binding("pageup", "page_up", show=False),
        Binding("pagedown", "page_down", show=False),
        Binding("home", "first", show=False),
        Binding("end", "last", show=False),
    ]

    class Highlighted(Message):
        def __init__(self, clip: Clip | None) -> None:
            super().__init__()
            self.clip = clip

    class Clicked(Message):
        def __init__(self, clip: Clip, toggle: bool) -> None:
            super().__init__()
            self.clip = clip
            self.toggle = toggle

    def __init__(
        self,
        *,
        mode: ViewMode = ViewMode.GRID,
        min_card_width: int = 26,
        overscan: int = 3,
        id: str | None = None,
    ) -> None:
        super().__init__(id=id)
        self._mode = mode
        self._min_card_width = min_card_width
        self._overscan = overscan
        self._clips: list[Clip] = []
        self._selected: frozenset[str] = frozenset()
        self._tag_names: dict[str, str] = {}
        self._columns = 1
        self._grid = GridLayout(0, 1, CARD_HEIGHT, overscan)
        self._timeline: TimelineLayout | None = None
        self._order: list[int] = []
        self._cursor = 0
        self._window: VisibleWindow = EMPTY_WINDOW
        self._cards: dict[int, tuple[Text, Text, Text]] = {}

    @property
    def mode(self) -> ViewMode:
        return self._mode

    @property
    def columns(self) -> int:
        return self._columns

    @property
    def window(self) -> VisibleWindow:
        return self._window

    @property
    def focused_clip(self) -> Clip | None:
        if not self._order:
            return None
        return self._clips[self._order[self._cursor]]

    def displayed_clips(self) -> list[Clip]:
        return [self._clips[index] for index in self._order]

    def set_clips(self, clips: Sequence[Clip], *, focus_id: str | None = None) -> None:
        self._clips = list(clips)
        self._rebuild_layout()
        position = min(self._cursor, max(0, len(self._order) - 1))
        if focus_id is not None:
            for order_position, index in enumerate(self._order):
                if self._clips[index].id == focus_id:
                    position = order_position
                    break
        self._cursor = position
        self._update_window()
        self.refresh()
        self.post_message(self.Highlighted(self.focused_clip))

    def set_selected(self, clip_ids: frozenset[str]) -> None:
        if clip_ids == self._selected:
            return
        self._selected = clip_ids
        self.refresh()

    def set_tag_names(self, tag_names: Mapping[str, str]) -> None:
        self._tag_names = dict(tag_names)
        self._cards.clear()
        self.refresh()

    def set_mode(self, mode: ViewMode) -> None:
        if mode == self._mode:
            return
        focused = self.focused_clip
        self._mode = mode
        self.scroll_to(y=0, animate=False)
        self.set_clips(self._clips, focus_id=focused.id if focused else None)

    def focus_clip(self, clip_id: str) -> None:
        for position, index in enumerate(self._order):
            if self._clips[index].id == clip_id:
                self._set_cursor(position)
                return

    def on_mount(self) -> None:
        self._update_window()

    def on_resize(self, event: events.Resize) -> None:
        self._update_window()
        self._reveal_cursor()
        self.refresh()

    def watch_scroll_y(self, old_value: float, new_value: float) -> None:
        super().watch_scroll_y(old_value, new_value)
        self._update_window()

    def on_click(self, event: events.Click) -> None:
        position = self._order_position_at(event.x, event.y)
        if position is None:
            return
        self._set_cursor(position)
        clip = self.focused_clip
        if clip is not None:
            self.post_message(self.Clicked(clip, toggle=event.ctrl))

    def action_cursor_left(self) -> None:
        self._set_cursor(self._cursor - 1)

    def action_cursor_right(self) -> None:
        self._set_cursor(self._cursor + 1)

    def action_cursor_up(self) -> None:
        self._set_cursor(self._cursor - self._columns)

    def action_cursor_down(self) -> None:
        self._set_cursor(self._cursor + self._columns)

    def action_page_up(self) -> None:
        self._set_cursor(self._cursor - self._page_step())

    def action_page_down(self) -> None:
        self._set_cursor(self._cursor + self._page_step())

    def action_first(self) -> None:
        self._set_cursor(0)

    def action_last(self) -> None:
        self._set_cursor(len(self._order) - 1)

    def render_line(self, y: int) -> Strip:
        width = self.scrollable_content_region.width
        if not self._clips:
            if y == 0:
                message = Text("No clips match.", style=self.get_component_rich_style("clip-grid--empty"))
                return Strip(message.render(self.app.console)).adjust_cell_length(width)
            return Strip.blank(width)
        offset = int(self.scroll_offset.y) + y
        if self._mode == ViewMode.GRID:
            return self._render_grid_line(offset, width)
        return self._render_timeline_line(offset, width)

    def _render_grid_line(self, offset: int, width: int) -> Strip:
        row = offset // CARD_HEIGHT
        if row >= self._grid.row_count:
            return Strip.blank(width)
        return self._render_card_row(list(self._grid.row_items(row)), offset % CARD_HEIGHT, width)

    def _render_timeline_line(self, offset: int, width: int) -> Strip:
        timeline = self._timeline
        if timeline is None or offset >= timeline.total_size:
            return Strip.blank(width)
        virtualizer = timeline.virtualizer
        group_index = virtualizer.index_at(offset)
        group = timeline.groups[group_index]
        local = offset - virtualizer.offset_of(group_index)
        if local == 0:
            header = Text(
                f"{fmt_day_label(group.key)}  ({group.size})",
                style=self.get_component_rich_style("clip-grid--header"),
            )
            header.truncate(width, overflow="ellipsis")
            return Strip(header.render(self.app.console)).adjust_cell_length(width)
        if local < HEADER_HEIGHT:
            return Strip.blank(width)
        local -= HEADER_HEIGHT
        start = (local // CARD_HEIGHT) * self._columns
        indices = list(group.indices[start : start + self._columns])
        if not indices:
            return Strip.blank(width)
        return self._render_card_row(indices, local % CARD_HEIGHT, width)

    def _render_card_row(self, indices: list[int], line: int, width: int) -> Strip:
        card_width = self._card_width(width)
        cursor_index = self._order[self._cursor] if self._order else None
        segments: list[Segment] = []
        for position, index in enumerate(indices):
            if position:
                segments.append(Segment(" " * CARD_GAP))
            if line >= CARD_LINES:
                segments.append(Segment(" " * card_width))
                continue
            text = self._card(index)[line].copy()
            text.style = self._card_style(index, cursor_index)
            text.truncate(card_width, overflow="ellipsis", pad=True)
            segments.extend(text.render(self.app.console))
        return Strip(segments).adjust_cell_length(width)

    def _card_style(self, index: int, cursor_index: int | None) -> Style:
        if index == cursor_index and self.has_focus:
            return self.get_component_rich_style("clip-grid--cursor")
        if self._clips[index].id in self._selected:
            return self.get_component_rich_style("clip-grid--selected")
        if index == cursor_index:
            return self.get_component_rich_style("clip-grid--cursor", partial=True)
        return self.get_component_rich_style("clip-grid--card")

    def _card(self, index: int) -> tuple[Text, Text, Text]:
        cached = self._cards.get(index)
        if cached is None:
            cached = format_card_lines(self._clips[index], self._tag_names)
            self._cards[index] = cached
        return cached

    def _card_width(self, width: int) -> int:
        return max(1, (width - CARD_GAP * (self._columns - 1)) // self._columns)

    def _rebuild_layout(self) -> None:
        self._cards.clear()
        if self._mode == ViewMode.GRID:
            self._timeline = None
            self._grid = GridLayout(len(self._clips), self._columns, CARD_HEIGHT, self._overscan)
            self._order = list(range(len(self._clips)))
            return
        self._timeline = TimelineLayout(
            self._clips,
            columns_estimate=TIMELINE_COLUMNS_ESTIMATE,
            header_height=HEADER_HEIGHT,
            row_height=CARD_HEIGHT,
            overscan=TIMELINE_OVERSCAN,
        )
        self._order = self._timeline.display_order()

    def _update_window(self) -> None:
        region = self.scrollable_content_region
        width = region.width
        height = max(1, region.height)
        columns = grid_columns(width, self._min_card_width, CARD_GAP) if width > 0 else 1
        scroll_y = int(self.scroll_offset.y)
        if self._mode == ViewMode.GRID or self._timeline is None:
            self._columns = columns
            self._grid.reflow(columns)
            window = self._grid.window(scroll_y, height)
            total = self._grid.total_size
            visible = self._grid.item_range(window)
        else:
            timeline = self._timeline
            if columns != self._columns:
                self._columns = columns
                timeline.reset_measurements()
            window = timeline.window(scroll_y, height)
            for _ in range(4):
                moved = False
                for group_index in window.indices():
                    moved |= timeline.measure_group(group_index, self._group_height(group_index))
                if not moved:
                    break
                window = timeline.window(scroll_y, height)
            total = timeline.total_size
            visible = [
                index
                for group_index in window.indices()
                for index in timeline.groups[group_index].indices
            ]
        self._window = window
        keep = set(visible)
        self._cards = {index: card for index, card in self._cards.items() if index in keep}
        self.virtual_size = Size(width, total)

    def _group_height(self, group_index: int) -> int:
        assert self._timeline is not None
        members = self._timeline.groups[group_index].size
        return HEADER_HEIGHT + math.ceil(members / self._columns) * CARD_HEIGHT

    def _set_cursor(self, position: int) -> None:
        if not self._order:
            return
        position = max(0, min(position, len(self._order) - 1))
        if position == self._cursor:
            return
        self._cursor = position
        self._reveal_cursor()
        self.refresh()
        self.post_message(self.Highlighted(self.focused_clip))

    def _cursor_top(self) -> int | None:
        if not self._order:
            return None
        index = self._order[self._cursor]
        if self._mode == ViewMode.GRID or self._timeline is None:
            return self._grid.virtualizer.offset_of(self._grid.row_of(index))
        timeline = self._timeline
        group_index = timeline.group_of(index)
        if group_index is None:
            return None
        position = timeline.groups[group_index].indices.index(index)
        row = position // self._columns
        top = timeline.virtualizer.offset_of(group_index)
        if row == 0:
            return top
        return top + HEADER_HEIGHT + row * CARD_HEIGHT

    def _reveal_cursor(self) -> None:
        top = self._cursor_top()
        if top is None:
            return
        height = self.scrollable_content_region.height
        scroll_y = int(self.scroll_offset.y)
        bottom = top + CARD_HEIGHT
        if self._mode == ViewMode.TIMELINE and self._timeline is not None:
            index = self._order[self._cursor]
            group_index = self._timeline.group_of(index)
            if group_index is not None and top == self._timeline.virtualizer.offset_of(group_index):
                bottom += HEADER_HEIGHT
        if top < scroll_y:
            self.scroll_to(y=top, animate=False)
        elif bottom > scroll_y + height:
            self.scroll_to(y=max(0, bottom - height), animate=False)

    def _page_step(self) -> int:
        rows = max(1, self.scrollable_content_region.height // CARD_HEIGHT)
        return rows * self._columns

    def _order_position_at(self, x: int, y: int) -> int | None:
        width = self.scrollable_content_region.width
        card_width = self._card_width(width)
        column = x // (card_width + CARD_GAP)
        if column >= self._columns:
            return None
        offset = int(self.scroll_offset.y) + y
        index: int | None = None
        if self._mode == ViewMode.GRID or self._timeline is None:
            row = offset // CARD_HEIGHT
            items = self._grid.row_items(row) if row < self._grid.row_count else range(0)
            if column < len(items):
                index = items[column]
        else:
            timeline = self._timeline
            if offset >= timeline.total_size:
                return None
            group_index = timeline.virtualizer.index_at(offset)
            local = offset - timeline.virtualizer.offset_of(group_index) - HEADER_HEIGHT
            if local < 0:
                return None
            members = timeline.groups[group_index].indices
            position = (local // CARD_HEIGHT) * self._columns + column
            if position < len(members):
                index = members[position]
        if index is None:
            return None
        return self._order.index(index)
