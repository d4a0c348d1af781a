from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Awaitable

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.theme import Theme
from textual.widgets import Input, Label, ListItem, ListView, ProgressBar, Static
from textual_image.widget import Image as PreviewImage

from .backend import BackendError, HttpBackend
from .config import AppConfig, load_config, save_config
from .formatting import fmt_date, fmt_duration, fmt_size, fmt_waveform
from .log import configure_logging, parse_log_level
from .models import (
    BackendEvent,
    Clip,
    LibraryChanged,
    ScanPhase,
    ScanProgress,
    SortConfig,
    SortDirection,
    SortField,
    ThumbReady,
    ViewMode,
)
from .mutations import MutationCoordinator, MutationResult
from .paths import config_path, log_path
from .pipeline import Scope, ScopeKind, library_counts
from .rules import MalformedRulePolicy
from .search import SearchIndexClient
from .selection import SelectionState
from .store import LibraryStore
from .ui.clip_view import ClipGridView
from .ui.screens import (
    ConfirmScreen,
    DateRangeScreen,
    HelpScreen,
    PromptScreen,
    SmartFolderDraft,
    SmartFolderScreen,
    TranscodeKind,
    TranscodeRequest,
    TranscodeScreen,
    WatchDirsScreen,
)

logger = logging.getLogger(__name__)

PREVIEW_DELAY = 0.12
EVENT_RETRY_SECONDS = 5.0
WAVEFORM_WIDTH = 40
SORT_CYCLE = [SortField.RECORDED_AT, SortField.FILENAME, SortField.FILE_SIZE, SortField.DURATION]
SORT_LABELS = {
    SortField.RECORDED_AT: "date",
    SortField.FILENAME: "name",
    SortField.FILE_SIZE: "size",
    SortField.DURATION: "duration",
}
TIP_TEXT = "Tip: press ? for help (and / to search)"
HELP_TEXT = """Keyboard shortcuts
q  quit
?  help
/  focus search (enter or esc returns to clips)
m  toggle semantic search
R  rescan library

Browsing
arrow keys / pgup / pgdn / home / end  move between clips
v  toggle grid / timeline
o  cycle sort field (date, name, size, duration)
r  reverse sort direction
d  filter by recorded date range
#  filter by tags (names, comma separated)
f  cycle starred filter (any, starred, unstarred)
g  cycle source folder filter
x  clear filters

Selection
space  toggle selection of current clip
ctrl+a  select all shown clips
escape  clear selection
(ctrl+click toggles, click focuses)

Editing (selection, or current clip when nothing is selected)
s  star / unstar current clip
S  star selection (unstars when all are starred)
t  add tag (prefix with - to remove)
i  edit description
X  delete clips
a  add to collection
A  remove from current collection

Scopes
c  new collection
n  new smart folder
E  edit current smart folder
K  delete current collection or smart folder

Tools (need ffmpeg)
T  trim
G  export GIF
C  compress
e  show in file browser
w  watched folders
"""

THEME = Theme(
    name="clipshelf-night",
    primary="#7aa2f7",
    secondary="#7dcfff",
    accent="#bb9af7",
    warning="#e0af68",
    error="#f7768e",
    success="#9ece6a",
    foreground="#c0caf5",
    background="#1a1b26",
    surface="#1f2335",
    panel="#24283b",
    boost="#2f334d",
    variables={
        "block-cursor-background": "#7aa2f7",
        "block-cursor-foreground": "#1a1b26",
        "footer-key-foreground": "#7aa2f7",
        "input-selection-background": "#7aa2f7 30%",
    },
)


class ScopeItem(ListItem):
    def __init__(self, scope: Scope, label: str) -> None:
        self._text_label = Label(label)
        super().__init__(self._text_label)
        self.scope = scope

    def set_label(self, label: str) -> None:
        self._text_label.update(label)


class ScopeHeader(ListItem):
    def __init__(self, label: str) -> None:
        super().__init__(Label(label), classes="scope-header")


class ClipshelfApp(App):
    BINDINGS = [
        ("q", "quit", "Quit"),
        ("?", "help", "Help"),
        ("/", "search", "Search"),
        ("m", "toggle_semantic", "Semantic"),
        ("R", "rescan", "Rescan"),
        ("v", "toggle_view", "View"),
        ("o", "cycle_sort", "Sort"),
        ("r", "reverse_sort", "Reverse"),
        ("d", "date_filter", "Dates"),
        ("#", "tag_filter", "Tag Filter"),
        ("f", "cycle_starred", "Starred Filter"),
        ("g", "cycle_source", "Source Filter"),
        ("x", "clear_filters", "Clear Filters"),
        ("space", "toggle_select", "Select"),
        ("ctrl+a", "select_all", "Select All"),
        ("escape", "clear_selection", "Clear Selection"),
        ("s", "toggle_star", "Star"),
        ("S", "bulk_star", "Star Selection"),
        ("t", "tag", "Tag"),
        ("i", "edit_description", "Description"),
        ("X", "delete_clips", "Delete"),
        ("a", "add_to_collection", "Add to Collection"),
        ("A", "remove_from_collection", "Remove from Collection"),
        ("c", "new_collection", "New Collection"),
        ("n", "new_smart_folder", "New Smart Folder"),
        ("E", "edit_smart_folder", "Edit Smart Folder"),
        ("K", "delete_scope", "Delete Scope"),
        ("T", "trim", "Trim"),
        ("G", "export_gif", "GIF"),
        ("C", "compress", "Compress"),
        ("e", "open_in_explorer", "Show in Folder"),
        ("w", "watch_dirs", "Watched Folders"),
    ]

    CSS = """
    Screen {
        background: $background;
        color: $text;
    }

    #root {
        height: 100%;
    }

    #main {
        height: 1fr;
        padding: 1 1;
    }

    #sidebar, #center, #detail {
        padding: 0 1;
        background: $surface;
    }

    #sidebar {
        width: 24;
        border: round $secondary;
    }

    #center {
        width: 1fr;
        border: round $primary;
        background: $panel;
    }

    #detail {
        width: 36;
        border: round $accent;
    }

    #scopes {
        height: 1fr;
        background: $surface;
    }

    .scope-header {
        color: $text-muted;
        text-style: bold;
    }

    #search_input {
        margin-bottom: 1;
    }

    #filter_status {
        color: $text-muted;
        height: 1;
    }

    #clips {
        height: 1fr;
    }

    #scan_progress {
        height: 1;
    }

    #thumb_image {
        height: 12;
        width: 100%;
    }

    #thumb_fallback {
        height: 12;
        color: $text-muted;
    }

    #status_bar {
        height: 1;
        padding: 0 1;
        color: $text-muted;
    }

    .hidden {
        display: none;
    }
    """

    def __init__(self, config: AppConfig | None = None, *, backend: HttpBackend | None = None) -> None:
        super().__init__()
        self.register_theme(THEME)
        self.theme = THEME.name
        self.config = config or AppConfig()
        self.backend = backend or HttpBackend(self.config.effective_backend_url())
        sort = SortConfig(
            field=SortField(self.config.sort_field or SortField.RECORDED_AT.value),
            direction=SortDirection(self.config.sort_dir or SortDirection.DESC.value),
        )
        self.store = LibraryStore(
            sort=sort,
            malformed_rules=MalformedRulePolicy(self.config.effective_malformed_rules()),
        )
        self.selection = SelectionState()
        self.mutations = MutationCoordinator(self.store, self.backend)
        self.search = SearchIndexClient(
            self.backend.semantic_search,
            delay=self.config.effective_debounce(),
            limit=self.config.effective_search_limit(),
        )
        self.view_mode = ViewMode(self.config.view_mode or ViewMode.GRID.value)
        self.ffmpeg_available: bool | None = None
        self._render_scheduled = False
        self._sidebar_signature: tuple[object, ...] | None = None
        self._all_item: ScopeItem | None = None
        self._starred_item: ScopeItem | None = None
        self._tag_signature: tuple[object, ...] | None = None
        self._preview_timer = None
        self._pending_preview: Clip | None = None
        self._waveforms: dict[str, list[float]] = {}
        self._waveform_loading: set[str] = set()
        self._clip_view: ClipGridView | None = None
        self._scopes: ListView | None = None
        self._search_input: Input | None = None
        self._filter_status: Static | None = None
        self._status_bar: Static | None = None
        self._scan_progress: ProgressBar | None = None
        self._thumb_image: PreviewImage | None = None
        self._thumb_fallback: Static | None = None
        self._detail_text: Static | None = None
        self._status_message = TIP_TEXT

    def compose(self) -> ComposeResult:
        with Vertical(id="root"):
            with Horizontal(id="main"):
                with Vertical(id="sidebar"):
                    yield Label("Library")
                    yield ListView(id="scopes")
                with Vertical(id="center"):
                    yield Input(placeholder="Search filename, description, tags", id="search_input")
                    yield Static("", id="filter_status")
                    yield ProgressBar(id="scan_progress", classes="hidden", show_eta=False)
                    yield ClipGridView(
                        id="clips",
                        mode=self.view_mode,
                        min_card_width=self.config.effective_min_card_width(),
                        overscan=self.config.effective_overscan(),
                    )
                with Vertical(id="detail"):
                    yield PreviewImage(None, id="thumb_image")
                    yield Static("No thumbnail", id="thumb_fallback", classes="hidden")
                    yield Static("Select a clip to preview.", id="detail_text")
            yield Static(TIP_TEXT, id="status_bar")

    def on_mount(self) -> None:
        self._clip_view = self.query_one("#clips", ClipGridView)
        self._scopes = self.query_one("#scopes", ListView)
        self._search_input = self.query_one("#search_input", Input)
        self._filter_status = self.query_one("#filter_status", Static)
        self._status_bar = self.query_one("#status_bar", Static)
        self._scan_progress = self.query_one("#scan_progress", ProgressBar)
        self._thumb_image = self.query_one("#thumb_image", PreviewImage)
        self._thumb_fallback = self.query_one("#thumb_fallback", Static)
        self._detail_text = self.query_one("#detail_text", Static)
        self.store.subscribe(self._on_store_changed)
        self.search.subscribe(self._on_search_changed)
        self._render_sidebar()
        self._clip_view.focus()
        self.run_worker(self._initial_load(), group="load", exclusive=True)
        self.run_worker(self._watch_events(), group="events", exclusive=True)

    async def on_unmount(self) -> None:
        self.search.cancel()
        await self.backend.aclose()

    # Loading and backend events

    async def _initial_load(self) -> None:
        self._set_status("Loading library...")
        if await self.store.refresh(self.backend):
            self._set_status(TIP_TEXT)
        else:
            self._set_status(f"Backend unavailable at {self.config.effective_backend_url()}")
        await self._check_ffmpeg()

    async def _check_ffmpeg(self) -> None:
        try:
            self.ffmpeg_available = await self.backend.check_ffmpeg()
        except BackendError as exc:
            logger.warning("ffmpeg check failed: %s", exc)
            return
        if not self.ffmpeg_available:
            self.notify(
                "ffmpeg was not found. Trim, GIF export and compression are disabled.",
                title="ffmpeg missing",
                severity="warning",
                timeout=10,
            )

    async def _watch_events(self) -> None:
        while True:
            try:
                async for event in self.backend.events():
                    self._apply_event(event)
            except BackendError as exc:
                logger.warning("Event stream dropped: %s", exc)
            await asyncio.sleep(EVENT_RETRY_SECONDS)

    def _apply_event(self, event: BackendEvent) -> None:
        if isinstance(event, ScanProgress):
            self._show_scan_progress(event)
        elif isinstance(event, ThumbReady):
            self.store.set_thumb(event.clip_id, event.path)
        elif isinstance(event, LibraryChanged):
            self.run_worker(self._refresh_library(), group="refresh", exclusive=True)

    async def _refresh_library(self) -> None:
        if not await self.store.refresh(self.backend):
            self._set_status("Refresh failed; showing previous library.")
            return
        if self.store.scope.kind == ScopeKind.COLLECTION and self.store.scope.target_id:
            await self.store.load_collection(self.backend, self.store.scope.target_id)

    def _show_scan_progress(self, progress: ScanProgress) -> None:
        self.store.set_scan_progress(None if progress.phase == ScanPhase.COMPLETE else progress)
        if self._scan_progress is None:
            return
        if progress.phase == ScanPhase.COMPLETE:
            self._scan_progress.add_class("hidden")
            return
        self._scan_progress.remove_class("hidden")
        self._scan_progress.update(total=max(1, progress.total), progress=progress.done)

    # Rendering

    def _on_store_changed(self) -> None:
        if self._render_scheduled:
            return
        self._render_scheduled = True
        self.call_later(self._render_results)

    def _render_results(self) -> None:
        self._render_scheduled = False
        if self._clip_view is None:
            return
        self.selection.prune(clip.id for clip in self.store.clips)
        tag_signature = self.store.tags
        if tag_signature != self._tag_signature:
            self._tag_signature = tag_signature
            self._clip_view.set_tag_names({tag.id: tag.name for tag in self.store.tags})
        results = self.store.derive()
        focused = self._clip_view.focused_clip
        self._clip_view.set_clips(results, focus_id=focused.id if focused else None)
        self._clip_view.set_selected(self.selection.ids)
        self._render_sidebar()
        self._update_filter_status(len(results))

    def _render_sidebar(self) -> None:
        if self._scopes is None:
            return
        total, starred = library_counts(self.store.clips)
        all_label = f"All clips ({total})"
        starred_label = f"★ Starred ({starred})"
        signature = (self.store.collections, self.store.smart_folders)
        if signature == self._sidebar_signature:
            if self._all_item is not None and self._starred_item is not None:
                self._all_item.set_label(all_label)
                self._starred_item.set_label(starred_label)
            return
        self._sidebar_signature = signature
        self._all_item = ScopeItem(Scope.everything(), all_label)
        self._starred_item = ScopeItem(Scope.starred(), starred_label)
        items: list[ListItem] = [self._all_item, self._starred_item, ScopeHeader("Collections")]
        for collection in self.store.collections:
            items.append(
                ScopeItem(Scope.collection(collection.id), f"{collection.name} ({collection.clip_count})")
            )
        items.append(ScopeHeader("Smart folders"))
        for folder in self.store.smart_folders:
            items.append(ScopeItem(Scope.smart_folder(folder.id), f"⚡ {folder.name}"))
        self._scopes.clear()
        self._scopes.extend(items)

    def _update_filter_status(self, shown: int) -> None:
        if self._filter_status is None:
            return
        store = self.store
        parts = [f"{shown}/{len(store.clips)} clips", f"scope: {self._scope_label()}"]
        direction = "↑" if store.sort.direction == SortDirection.ASC else "↓"
        parts.append(f"sort: {SORT_LABELS[store.sort.field]} {direction}")
        parts.append(f"view: {self.view_mode.value}")
        clip_filter = store.clip_filter
        if clip_filter.date_from is not None or clip_filter.date_to is not None:
            parts.append("dates")
        if clip_filter.tags:
            names = [store.tag(tag_id).name for tag_id in clip_filter.tags if store.tag(tag_id)]
            parts.append("tags: " + ",".join(sorted(names)))
        if clip_filter.starred is not None:
            parts.append("starred" if clip_filter.starred else "unstarred")
        if clip_filter.dir_source != "all":
            parts.append(f"source: {clip_filter.dir_source}")
        if store.semantic_mode:
            parts.append("semantic (searching...)" if self.search.loading else "semantic")
        if len(self.selection):
            parts.append(f"{len(self.selection)} selected")
        if store.scan_progress is not None:
            progress = store.scan_progress
            parts.append(f"{progress.phase.value} {progress.done}/{progress.total}")
        self._filter_status.update(" · ".join(parts))

    def _scope_label(self) -> str:
        scope = self.store.scope
        if scope.kind == ScopeKind.STARRED:
            return "starred"
        if scope.kind == ScopeKind.COLLECTION:
            collection = self.store.collection(scope.target_id)
            return collection.name if collection else "collection"
        if scope.kind == ScopeKind.SMART_FOLDER:
            folder = self.store.smart_folder(scope.target_id)
            return folder.name if folder else "smart folder"
        return "all"

    def _set_status(self, message: str) -> None:
        self._status_message = message
        if self._status_bar is not None:
            self._status_bar.update(message)

    # Preview

    def on_clip_grid_view_highlighted(self, event: ClipGridView.Highlighted) -> None:
        self.selection.focus(event.clip.id if event.clip else None)
        if event.clip is None:
            self._set_preview_message("No clips match.")
            return
        self._schedule_preview(event.clip)

    def on_clip_grid_view_clicked(self, event: ClipGridView.Clicked) -> None:
        if event.toggle:
            self.selection.toggle(event.clip.id)
        else:
            self.selection.clear()
        self._sync_selection()

    def _schedule_preview(self, clip: Clip) -> None:
        self._pending_preview = clip
        if self._preview_timer is not None:
            self._preview_timer.stop()
        self._preview_timer = self.set_timer(PREVIEW_DELAY, self._apply_pending_preview)

    def _apply_pending_preview(self) -> None:
        clip = self._pending_preview
        self._pending_preview = None
        if clip is None:
            return
        self._set_preview(clip)

    def _set_preview(self, clip: Clip) -> None:
        current = self.store.clip(clip.id) or clip
        self._refresh_thumbnail(current)
        self._set_preview_message(self._format_preview(current))
        self._ensure_waveform(current)

    def _set_preview_message(self, message: str | Text) -> None:
        if self._detail_text is not None:
            self._detail_text.update(message)

    def _format_preview(self, clip: Clip) -> Text:
        text = Text()
        text.append(clip.filename, style="bold")
        if clip.starred:
            text.append("  ★", style="yellow")
        text.append(f"\n{clip.path}\n\n", style="dim")
        text.append(f"Recorded  {fmt_date(clip.recorded_at)}\n")
        text.append(f"Duration  {fmt_duration(clip.duration_secs) or '--'}\n")
        text.append(f"Size      {fmt_size(clip.file_size)}\n")
        if clip.width and clip.height:
            text.append(f"Frame     {clip.width}x{clip.height}\n")
        text.append(f"Source    {clip.dir_source}\n")
        names = [tag.name for tag in self.store.tags if tag.id in clip.tags]
        if names:
            text.append("Tags      ")
            text.append(" ".join(f"#{name}" for name in names), style="cyan")
            text.append("\n")
        peaks = self._waveforms.get(clip.id)
        if peaks:
            text.append("\n")
            text.append(fmt_waveform(peaks, WAVEFORM_WIDTH), style="green")
            text.append("\n")
        if clip.description:
            text.append(f"\n{clip.description}\n")
        return text

    def _refresh_thumbnail(self, clip: Clip) -> None:
        if self._thumb_image is None or self._thumb_fallback is None:
            return
        path = Path(clip.thumb_path) if clip.thumb_path else None
        if path is None or not path.is_file():
            self._show_thumbnail_message("Thumbnail: pending" if path else "No thumbnail")
            return
        try:
            self._thumb_image.image = path
        except (OSError, ValueError) as exc:
            logger.debug("Thumbnail %s failed to load: %s", path, exc)
            self._show_thumbnail_message("Thumbnail: unreadable")
            return
        self._thumb_image.remove_class("hidden")
        self._thumb_fallback.add_class("hidden")

    def _show_thumbnail_message(self, message: str) -> None:
        if self._thumb_fallback is None or self._thumb_image is None:
            return
        self._thumb_fallback.update(message)
        self._thumb_fallback.remove_class("hidden")
        self._thumb_image.add_class("hidden")

    def _ensure_waveform(self, clip: Clip) -> None:
        if clip.id in self._waveforms or clip.id in self._waveform_loading:
            return
        self._waveform_loading.add(clip.id)
        self.run_worker(self._load_waveform(clip), group="waveform")

    async def _load_waveform(self, clip: Clip) -> None:
        try:
            peaks = await self.backend.get_waveform(clip.id, clip.path)
        except BackendError as exc:
            logger.warning("Waveform for %s failed: %s", clip.id, exc)
            peaks = []
        finally:
            self._waveform_loading.discard(clip.id)
        self._waveforms[clip.id] = peaks
        focused = self._focused_clip()
        if peaks and focused is not None and focused.id == clip.id:
            self._set_preview(focused)

    # Search

    def action_search(self) -> None:
        if self._search_input is not None:
            self._search_input.focus()

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id != "search_input":
            return
        self.store.set_filter(search=event.value)
        if self.store.semantic_mode:
            self.search.submit(event.value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "search_input" and self._clip_view is not None:
            self._clip_view.focus()

    def action_toggle_semantic(self) -> None:
        enabled = not self.store.semantic_mode
        self.store.set_semantic_mode(enabled)
        self.search.submit(self.store.clip_filter.search if enabled else "")
        self._set_status("Semantic search on" if enabled else "Semantic search off")

    def _on_search_changed(self) -> None:
        if self.store.semantic_mode:
            self.store.set_semantic_results(self.search.results)
        else:
            self._update_filter_status(len(self.store.derive()))

    # Scopes

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        item = event.item
        if not isinstance(item, ScopeItem):
            return
        self.store.set_scope(item.scope)
        if item.scope.kind == ScopeKind.COLLECTION and item.scope.target_id:
            self.run_worker(
                self.store.load_collection(self.backend, item.scope.target_id),
                group="collection",
                exclusive=True,
            )

    def action_new_collection(self) -> None:
        self.push_screen(PromptScreen("New collection", placeholder="Collection name"), self._handle_new_collection)

    def _handle_new_collection(self, name: str | None) -> None:
        if name:
            self.run_worker(self._create_collection(name), group="scope")

    async def _create_collection(self, name: str) -> None:
        try:
            collection = await self.backend.create_collection(name, "#6366f1")
        except BackendError as exc:
            self._report_failure("Create collection", str(exc))
            return
        targets = self._target_ids()
        if targets:
            await self._add_to_collection(collection.id, targets)
        await self.store.refresh(self.backend)
        self._set_status(f"Created collection {collection.name}")

    def action_add_to_collection(self) -> None:
        if not self._target_ids():
            self._set_status("No clip to add.")
            return
        names = ", ".join(collection.name for collection in self.store.collections) or "none yet"
        self.push_screen(
            PromptScreen("Add to collection", placeholder="Collection name", hint=f"Collections: {names}"),
            self._handle_add_to_collection,
        )

    def _handle_add_to_collection(self, name: str | None) -> None:
        if not name:
            return
        folded = name.casefold()
        collection = next(
            (item for item in self.store.collections if item.name.casefold() == folded), None
        )
        if collection is None:
            self._set_status(f"No collection named {name}")
            return
        self.run_worker(self._add_and_refresh(collection.id, self._target_ids()), group="scope")

    async def _add_and_refresh(self, collection_id: str, clip_ids: list[str]) -> None:
        if await self._add_to_collection(collection_id, clip_ids):
            await self._refresh_library()

    async def _add_to_collection(self, collection_id: str, clip_ids: list[str]) -> bool:
        try:
            await self.backend.add_to_collection(collection_id, clip_ids)
        except BackendError as exc:
            self._report_failure("Add to collection", str(exc))
            return False
        return True

    def action_remove_from_collection(self) -> None:
        scope = self.store.scope
        if scope.kind != ScopeKind.COLLECTION or not scope.target_id:
            self._set_status("Open a collection first.")
            return
        targets = self._target_ids()
        if targets:
            self.run_worker(self._remove_from_collection(scope.target_id, targets), group="scope")

    async def _remove_from_collection(self, collection_id: str, clip_ids: list[str]) -> None:
        try:
            await self.backend.remove_from_collection(collection_id, clip_ids)
        except BackendError as exc:
            self._report_failure("Remove from collection", str(exc))
            return
        await self._refresh_library()

    def action_new_smart_folder(self) -> None:
        self.push_screen(
            SmartFolderScreen(tag_names_by_id=self._tag_names()),
            self._handle_new_smart_folder,
        )

    def _handle_new_smart_folder(self, draft: SmartFolderDraft | None) -> None:
        if draft is not None:
            self.run_worker(self._create_smart_folder(draft), group="scope")

    async def _create_smart_folder(self, draft: SmartFolderDraft) -> None:
        try:
            folder = await self.backend.create_smart_folder(draft.name, "#06b6d4", draft.rules)
        except BackendError as exc:
            self._report_failure("Create smart folder", str(exc))
            return
        await self.store.refresh(self.backend)
        self.store.set_scope(Scope.smart_folder(folder.id))

    def action_edit_smart_folder(self) -> None:
        scope = self.store.scope
        folder = self.store.smart_folder(scope.target_id) if scope.kind == ScopeKind.SMART_FOLDER else None
        if folder is None:
            self._set_status("Open a smart folder first.")
            return
        self.push_screen(
            SmartFolderScreen(name=folder.name, rules=folder.rules, tag_names_by_id=self._tag_names()),
            lambda draft: self._handle_edit_smart_folder(folder.id, folder.color, draft),
        )

    def _handle_edit_smart_folder(
        self, folder_id: str, color: str, draft: SmartFolderDraft | None
    ) -> None:
        if draft is not None:
            self.run_worker(self._update_smart_folder(folder_id, color, draft), group="scope")

    async def _update_smart_folder(self, folder_id: str, color: str, draft: SmartFolderDraft) -> None:
        try:
            await self.backend.update_smart_folder(folder_id, draft.name, color, draft.rules)
        except BackendError as exc:
            self._report_failure("Update smart folder", str(exc))
            return
        await self.store.refresh(self.backend)

    def action_delete_scope(self) -> None:
        scope = self.store.scope
        if scope.kind not in (ScopeKind.COLLECTION, ScopeKind.SMART_FOLDER) or not scope.target_id:
            self._set_status("Open a collection or smart folder first.")
            return
        self.push_screen(
            ConfirmScreen(f"Delete {self._scope_label()}? Clips are kept."),
            lambda confirmed: self._handle_delete_scope(scope, confirmed),
        )

    def _handle_delete_scope(self, scope: Scope, confirmed: bool) -> None:
        if confirmed:
            self.run_worker(self._delete_scope(scope), group="scope")

    async def _delete_scope(self, scope: Scope) -> None:
        assert scope.target_id is not None
        try:
            if scope.kind == ScopeKind.COLLECTION:
                await self.backend.delete_collection(scope.target_id)
            else:
                await self.backend.delete_smart_folder(scope.target_id)
        except BackendError as exc:
            self._report_failure("Delete", str(exc))
            return
        self.store.set_scope(Scope.everything())
        await self.store.refresh(self.backend)

    # Filters and sort

    def action_toggle_view(self) -> None:
        self.view_mode = ViewMode.TIMELINE if self.view_mode == ViewMode.GRID else ViewMode.GRID
        if self._clip_view is not None:
            self._clip_view.set_mode(self.view_mode)
        self._update_filter_status(len(self.store.derive()))
        self._save_preferences()

    def action_cycle_sort(self) -> None:
        current = SORT_CYCLE.index(self.store.sort.field)
        field = SORT_CYCLE[(current + 1) % len(SORT_CYCLE)]
        self.store.set_sort(SortConfig(field=field, direction=self.store.sort.direction))
        self._save_preferences()

    def action_reverse_sort(self) -> None:
        direction = SortDirection.ASC if self.store.sort.direction == SortDirection.DESC else SortDirection.DESC
        self.store.set_sort(SortConfig(field=self.store.sort.field, direction=direction))
        self._save_preferences()

    def _save_preferences(self) -> None:
        # Only view and sort are written back; CLI overrides stay out of the file.
        stored, error = load_config()
        if error:
            logger.warning(error)
            return
        stored.view_mode = self.view_mode.value
        stored.sort_field = self.store.sort.field.value
        stored.sort_dir = self.store.sort.direction.value
        error = save_config(stored)
        if error:
            logger.warning(error)

    def action_date_filter(self) -> None:
        clip_filter = self.store.clip_filter
        self.push_screen(DateRangeScreen(clip_filter.date_from, clip_filter.date_to), self._handle_date_filter)

    def _handle_date_filter(self, result: tuple[float | None, float | None] | None) -> None:
        if result is not None:
            self.store.set_filter(date_from=result[0], date_to=result[1])

    def action_tag_filter(self) -> None:
        current = ", ".join(
            sorted(tag.name for tag in self.store.tags if tag.id in self.store.clip_filter.tags)
        )
        names = ", ".join(tag.name for tag in self.store.tags) or "none"
        self.push_screen(
            PromptScreen(
                "Only clips with all of these tags",
                value=current,
                placeholder="tag, tag",
                hint=f"Tags: {names}",
                allow_empty=True,
                submit_label="Apply",
            ),
            self._handle_tag_filter,
        )

    def _handle_tag_filter(self, value: str | None) -> None:
        if value is None:
            return
        tag_ids: set[str] = set()
        unknown: list[str] = []
        for name in (part.strip() for part in value.split(",")):
            if not name:
                continue
            tag = self.store.tag_by_name(name)
            if tag is None:
                unknown.append(name)
            else:
                tag_ids.add(tag.id)
        if unknown:
            self._set_status(f"Unknown tags ignored: {', '.join(unknown)}")
        self.store.set_filter(tags=frozenset(tag_ids))

    def action_cycle_starred(self) -> None:
        order: list[bool | None] = [None, True, False]
        current = order.index(self.store.clip_filter.starred)
        self.store.set_filter(starred=order[(current + 1) % len(order)])

    def action_cycle_source(self) -> None:
        sources = ["all", *self.store.dir_sources()]
        current = self.store.clip_filter.dir_source
        position = sources.index(current) if current in sources else 0
        self.store.set_filter(dir_source=sources[(position + 1) % len(sources)])

    def action_clear_filters(self) -> None:
        self.store.clear_filters()

    # Selection

    def action_toggle_select(self) -> None:
        clip = self._focused_clip()
        if clip is None:
            return
        self.selection.toggle(clip.id)
        self._sync_selection()

    def action_select_all(self) -> None:
        self.selection.select_all(clip.id for clip in self.store.derive())
        self._sync_selection()

    def action_clear_selection(self) -> None:
        if self._search_input is not None and self._search_input.has_focus:
            if self._clip_view is not None:
                self._clip_view.focus()
            return
        self.selection.clear()
        self._sync_selection()

    def _sync_selection(self) -> None:
        if self._clip_view is not None:
            self._clip_view.set_selected(self.selection.ids)
        self._update_filter_status(len(self.store.derive()))

    def _focused_clip(self) -> Clip | None:
        return self.store.clip(self.selection.focused)

    def _target_ids(self) -> list[str]:
        if len(self.selection):
            shown = [clip.id for clip in self.store.derive() if clip.id in self.selection]
            hidden = sorted(self.selection.ids.difference(shown))
            return shown + hidden
        clip = self._focused_clip()
        return [clip.id] if clip else []

    def _tag_names(self) -> dict[str, str]:
        return {tag.id: tag.name for tag in self.store.tags}

    # Mutations

    def _mutate(self, label: str, operation: Awaitable[MutationResult]) -> None:
        self.run_worker(self._run_mutation(label, operation), group="mutation")

    async def _run_mutation(self, label: str, operation: Awaitable[MutationResult]) -> None:
        result = await operation
        if not result.ok:
            self._report_failure(label, result.error or "unknown error")

    def _report_failure(self, label: str, error: str) -> None:
        self._set_status(f"{label} failed: {error}")
        self.notify(f"{label} failed: {error}", severity="error")

    def action_toggle_star(self) -> None:
        clip = self._focused_clip()
        if clip is not None:
            self._mutate("Star", self.mutations.toggle_star(clip.id))

    def action_bulk_star(self) -> None:
        targets = self._target_ids()
        if not targets:
            return
        starred = not all(
            clip.starred for clip in (self.store.clip(clip_id) for clip_id in targets) if clip
        )
        self._mutate("Star", self.mutations.bulk_star(targets, starred))

    def action_tag(self) -> None:
        targets = self._target_ids()
        if not targets:
            return
        names = ", ".join(tag.name for tag in self.store.tags) or "none yet"
        self.push_screen(
            PromptScreen(
                f"Tag {len(targets)} clip(s)",
                placeholder="tag name (-name removes)",
                hint=f"Tags: {names}",
            ),
            lambda value: self._handle_tag(targets, value),
        )

    def _handle_tag(self, targets: list[str], value: str | None) -> None:
        if not value:
            return
        if value.startswith("-"):
            tag = self.store.tag_by_name(value[1:])
            if tag is None:
                self._set_status(f"No tag named {value[1:].strip()}")
                return
            if len(targets) == 1:
                self._mutate("Remove tag", self.mutations.remove_tag(targets[0], tag.id))
            else:
                self._mutate("Remove tag", self.mutations.bulk_remove_tag(targets, tag.id))
            return
        self._mutate("Tag", self.mutations.create_tag_and_add(targets, value))

    def action_edit_description(self) -> None:
        clip = self._focused_clip()
        if clip is None:
            return
        self.push_screen(
            PromptScreen("Description", value=clip.description, allow_empty=True, submit_label="Save"),
            lambda value: self._handle_description(clip.id, value),
        )

    def _handle_description(self, clip_id: str, value: str | None) -> None:
        if value is not None:
            self._mutate("Description", self.mutations.update_description(clip_id, value))

    def action_delete_clips(self) -> None:
        targets = self._target_ids()
        if not targets:
            return
        self.push_screen(
            ConfirmScreen(f"Delete {len(targets)} clip(s) from disk?"),
            lambda confirmed: self._handle_delete(targets, confirmed),
        )

    def _handle_delete(self, targets: list[str], confirmed: bool) -> None:
        if confirmed:
            self._mutate("Delete", self.mutations.delete_clips(targets))

    # Tools

    def action_trim(self) -> None:
        self._open_transcode(TranscodeKind.TRIM)

    def action_export_gif(self) -> None:
        self._open_transcode(TranscodeKind.GIF)

    def action_compress(self) -> None:
        self._open_transcode(TranscodeKind.COMPRESS)

    def _open_transcode(self, kind: TranscodeKind) -> None:
        if self.ffmpeg_available is False:
            self._set_status("ffmpeg is not installed; this action is unavailable.")
            return
        clip = self._focused_clip()
        if clip is None:
            return
        self.push_screen(
            TranscodeScreen(kind, path=clip.path, duration=clip.duration_secs),
            lambda request: self._handle_transcode(clip, request),
        )

    def _handle_transcode(self, clip: Clip, request: TranscodeRequest | None) -> None:
        if request is not None:
            self.run_worker(self._transcode(clip, request), group="transcode")

    async def _transcode(self, clip: Clip, request: TranscodeRequest) -> None:
        self._set_status(f"{request.kind.value.capitalize()} running: {clip.filename}")
        try:
            if request.kind == TranscodeKind.TRIM:
                await self.backend.trim_clip(
                    clip.path, request.output_path, request.start, request.end, request.precise
                )
            elif request.kind == TranscodeKind.GIF:
                await self.backend.export_gif(
                    clip.path, request.output_path, request.start, request.end, request.width, request.fps
                )
            else:
                await self.backend.compress_clip(
                    clip.path, request.output_path, request.quality, request.max_width
                )
        except BackendError as exc:
            self._report_failure(request.kind.value.capitalize(), str(exc))
            return
        self._set_status(f"Saved {request.output_path}")
        self.notify(f"Saved {request.output_path}", title=request.kind.value.capitalize())

    def action_open_in_explorer(self) -> None:
        clip = self._focused_clip()
        if clip is not None:
            self.run_worker(self._open_in_explorer(clip.path), group="explorer")

    async def _open_in_explorer(self, path: str) -> None:
        try:
            await self.backend.open_in_explorer(path)
        except BackendError as exc:
            self._report_failure("Open", str(exc))

    def action_watch_dirs(self) -> None:
        self.run_worker(self._edit_watch_dirs(), group="settings", exclusive=True)

    async def _edit_watch_dirs(self) -> None:
        try:
            dirs = await self.backend.get_settings()
        except BackendError as exc:
            self._report_failure("Load settings", str(exc))
            return
        self.push_screen(WatchDirsScreen(dirs), self._handle_watch_dirs)

    def _handle_watch_dirs(self, dirs: list[str] | None) -> None:
        if dirs is not None:
            self.run_worker(self._save_watch_dirs(dirs), group="settings", exclusive=True)

    async def _save_watch_dirs(self, dirs: list[str]) -> None:
        try:
            await self.backend.set_watch_dirs(dirs)
        except BackendError as exc:
            self._report_failure("Save settings", str(exc))
            return
        await self._rescan()

    def action_rescan(self) -> None:
        self.run_worker(self._rescan(), group="scan", exclusive=True)

    async def _rescan(self) -> None:
        self._set_status("Scanning...")
        try:
            await self.backend.scan_clips()
        except BackendError as exc:
            self._report_failure("Scan", str(exc))
            return
        await self._refresh_library()
        try:
            await self.backend.gen_all_thumbs()
        except BackendError as exc:
            logger.warning("Thumbnail generation failed: %s", exc)
        self._set_status(TIP_TEXT)

    def action_help(self) -> None:
        self.push_screen(HelpScreen(HELP_TEXT))


def _cli_help_text() -> str:
    return f"""clipshelf - terminal browser for a video clip library

Usage:
  clipshelf [--backend-url URL] [--view grid|timeline] [--log-level LEVEL]

Options:
  --backend-url URL   library backend (default from config, else http://127.0.0.1:7341)
  --view MODE         start in grid or timeline view
  --log-level LEVEL   debug, info, warning or error
  -h, --help, -help   show this help

Config:
  {config_path()}

Log:
  {log_path()}

Press ? inside the app for keyboard shortcuts.
"""


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="clipshelf", add_help=False)
    parser.add_argument("-h", "--help", "-help", action="store_true", dest="help")
    parser.add_argument("--backend-url")
    parser.add_argument("--view", choices=sorted(mode.value for mode in ViewMode))
    parser.add_argument("--log-level", choices=["debug", "info", "warning", "error"])
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)
    if args.help:
        print(_cli_help_text())
        return
    config, error = load_config()
    if args.backend_url:
        config.backend_url = args.backend_url
    if args.view:
        config.view_mode = args.view
    if args.log_level:
        config.log_level = args.log_level
    try:
        level = parse_log_level(config.log_level)
    except ValueError as exc:
        parser.error(str(exc))
    configure_logging(level)
    if error:
        logger.warning(error)
    ClipshelfApp(config).run()
