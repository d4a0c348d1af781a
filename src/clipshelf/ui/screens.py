from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from textual import events
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Static, TextArea

from ..formatting import format_date_input, format_seconds, parse_date, parse_time_token
from ..rule_text import format_rule_text, parse_rule_text
from ..rules import format_rules, parse_rules

_DIALOG_CSS = """
{name} {{
    align: center middle;
    background: $surface 80%;
}}

{name} > Vertical {{
    width: 70%;
    max-width: 90;
    height: auto;
    max-height: 90%;
    padding: 1 2;
    border: heavy $accent;
    background: $panel;
}}

{name} .dialog-error {{
    color: $error;
    height: 1;
}}

{name} .dialog-hint {{
    color: $text-muted;
    height: auto;
}}
"""


def _dialog_css(name: str) -> str:
    return _DIALOG_CSS.format(name=name)


class HelpScreen(ModalScreen[None]):
    BINDINGS = [("escape", "close", "Close"), ("?", "close", "Close")]

    CSS = """
    HelpScreen {
        align: center middle;
        background: $surface 80%;
    }

    #help_dialog {
        width: 70%;
        max-width: 80;
        height: 80%;
        max-height: 90%;
        padding: 1 2;
        border: heavy $accent;
        background: $panel;
    }

    #help_scroll {
        height: 1fr;
    }
    """

    def __init__(self, help_text: str) -> None:
        super().__init__()
        self._help_text = help_text

    def compose(self) -> ComposeResult:
        with Vertical(id="help_dialog"):
            with VerticalScroll(id="help_scroll"):
                yield Static(self._help_text, id="help_text", markup=False)
            yield Button("Close", id="help_close")

    def on_mount(self) -> None:
        self.query_one("#help_scroll", VerticalScroll).focus()

    def action_close(self) -> None:
        self.dismiss(None)

    def on_key(self, event: events.Key) -> None:
        if event.key in {"up", "down", "pageup", "pagedown", "tab", "shift+tab"}:
            return
        if event.key == "escape" or event.character == "?":
            self.action_close()
        event.stop()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "help_close":
            self.dismiss(None)


class PromptScreen(ModalScreen[str | None]):
    """Single-line text prompt; empty input is refused unless ``allow_empty``."""

    BINDINGS = [("escape", "cancel", "Cancel")]

    CSS = _dialog_css("PromptScreen")

    def __init__(
        self,
        title: str,
        *,
        value: str = "",
        placeholder: str = "",
        hint: str = "",
        submit_label: str = "OK",
        allow_empty: bool = False,
    ) -> None:
        super().__init__()
        self._title = title
        self._value = value
        self._placeholder = placeholder
        self._hint = hint
        self._submit_label = submit_label
        self._allow_empty = allow_empty

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label(self._title)
            yield Input(value=self._value, placeholder=self._placeholder, id="prompt_input")
            yield Label("", id="prompt_error", classes="dialog-error")
            if self._hint:
                yield Static(self._hint, classes="dialog-hint", markup=False)
            with Horizontal():
                yield Button(self._submit_label, id="prompt_submit")
                yield Button("Cancel", id="prompt_cancel")

    def on_mount(self) -> None:
        self.query_one("#prompt_input", Input).focus()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "prompt_cancel":
            self.dismiss(None)
        elif event.button.id == "prompt_submit":
            self._submit()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "prompt_input":
            self._submit()

    def _submit(self) -> None:
        value = self.query_one("#prompt_input", Input).value.strip()
        if not value and not self._allow_empty:
            self.query_one("#prompt_error", Label).update("Please enter a value.")
            return
        self.dismiss(value)


class ConfirmScreen(ModalScreen[bool]):
    BINDINGS = [("escape", "cancel", "Cancel")]

    CSS = _dialog_css("ConfirmScreen")

    def __init__(self, message: str, *, confirm_label: str = "Delete") -> None:
        super().__init__()
        self._message = message
        self._confirm_label = confirm_label

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label(self._message)
            with Horizontal():
                yield Button(self._confirm_label, id="confirm_ok", variant="error")
                yield Button("Cancel", id="confirm_cancel")

    def on_mount(self) -> None:
        self.query_one("#confirm_cancel", Button).focus()

    def action_cancel(self) -> None:
        self.dismiss(False)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "confirm_ok")


class DateRangeScreen(ModalScreen[tuple[float | None, float | None] | None]):
    BINDINGS = [("escape", "cancel", "Cancel")]

    CSS = _dialog_css("DateRangeScreen")

    def __init__(self, date_from: float | None, date_to: float | None) -> None:
        super().__init__()
        self._date_from = date_from
        self._date_to = date_to

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label("Recorded between (inclusive, UTC)")
            yield Label("From")
            yield Input(
                value=format_date_input(self._date_from),
                placeholder="YYYY-MM-DD (blank for no lower bound)",
                id="date_from",
            )
            yield Label("To")
            yield Input(
                value=format_date_input(self._date_to),
                placeholder="YYYY-MM-DD (blank for no upper bound)",
                id="date_to",
            )
            yield Label("", id="date_error", classes="dialog-error")
            with Horizontal():
                yield Button("Apply", id="date_apply")
                yield Button("Clear", id="date_clear")
                yield Button("Cancel", id="date_cancel")

    def on_mount(self) -> None:
        self.query_one("#date_from", Input).focus()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "date_cancel":
            self.dismiss(None)
        elif event.button.id == "date_clear":
            self.dismiss((None, None))
        elif event.button.id == "date_apply":
            self._submit()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._submit()

    def _submit(self) -> None:
        error_label = self.query_one("#date_error", Label)
        try:
            date_from, date_to = parse_date_range(
                self.query_one("#date_from", Input).value,
                self.query_one("#date_to", Input).value,
            )
        except ValueError as exc:
            error_label.update(str(exc))
            return
        self.dismiss((date_from, date_to))


def parse_date_range(start: str, end: str) -> tuple[float | None, float | None]:
    date_from = parse_date(start) if start.strip() else None
    date_to = parse_date(end, end_of_day=True) if end.strip() else None
    if date_from is not None and date_to is not None and date_to < date_from:
        raise ValueError("End date is before start date.")
    return date_from, date_to


@dataclass(frozen=True)
class SmartFolderDraft:
    name: str
    rules: str


RULE_HINT = (
    "One rule per line, all must match:\n"
    "  starred is true\n"
    "  filename contains replay\n"
    "  dirSource equals captures\n"
    "  fileSize between 1000000 50000000\n"
    "  durationSecs gt 30\n"
    "  recordedAt after 2024-01-01\n"
    "  tag has highlight"
)


def rule_text_for_editor(
    rules: str, tag_names_by_id: Mapping[str, str] | None = None
) -> tuple[str, str | None]:
    """Editor text for stored rules, plus an error when they cannot be read.

    Unreadable rules are shown as stored so saving cannot silently drop them.
    """
    try:
        return format_rule_text(parse_rules(rules), tag_names_by_id=tag_names_by_id or {}), None
    except ValueError as exc:
        return rules, f"Stored rules could not be read ({exc}). Rewrite them before saving."


class SmartFolderScreen(ModalScreen[SmartFolderDraft | None]):
    BINDINGS = [("escape", "cancel", "Cancel"), ("ctrl+s", "save", "Save")]

    CSS = (
        _dialog_css("SmartFolderScreen")
        + """
    #folder_rules {
        height: 10;
    }
    """
    )

    def __init__(
        self,
        *,
        name: str = "",
        rules: str = "[]",
        tag_names_by_id: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__()
        self._name = name
        self._tag_names_by_id = dict(tag_names_by_id or {})
        self._tag_ids_by_name = {name: tag_id for tag_id, name in self._tag_names_by_id.items()}
        self._rule_text, self._load_error = rule_text_for_editor(rules, self._tag_names_by_id)

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label("Smart folder")
            yield Input(value=self._name, placeholder="Folder name", id="folder_name")
            yield TextArea(self._rule_text, id="folder_rules", soft_wrap=False)
            yield Label("", id="folder_error", classes="dialog-error")
            yield Static(RULE_HINT, classes="dialog-hint", markup=False)
            with Horizontal():
                yield Button("Save", id="folder_save")
                yield Button("Cancel", id="folder_cancel")

    def on_mount(self) -> None:
        if self._load_error:
            self.query_one("#folder_error", Label).update(self._load_error)
        self.query_one("#folder_name", Input).focus()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def action_save(self) -> None:
        self._submit()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "folder_cancel":
            self.dismiss(None)
        elif event.button.id == "folder_save":
            self._submit()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "folder_name":
            self.query_one("#folder_rules", TextArea).focus()

    def _submit(self) -> None:
        error_label = self.query_one("#folder_error", Label)
        name = self.query_one("#folder_name", Input).value.strip()
        if not name:
            error_label.update("Please enter a folder name.")
            return
        text = self.query_one("#folder_rules", TextArea).text
        try:
            rules = parse_rule_text(text, tag_ids_by_name=self._tag_ids_by_name)
        except ValueError as exc:
            error_label.update(str(exc))
            return
        self.dismiss(SmartFolderDraft(name=name, rules=format_rules(rules)))


class TranscodeKind(Enum):
    TRIM = "trim"
    GIF = "gif"
    COMPRESS = "compress"


COMPRESS_QUALITIES = ("high", "medium", "low")


@dataclass(frozen=True)
class TranscodeRequest:
    kind: TranscodeKind
    output_path: str
    start: float = 0.0
    end: float = 0.0
    precise: bool = False
    width: int = 480
    fps: int = 15
    quality: str = "medium"
    max_width: int | None = None


def default_output_path(path: str, kind: TranscodeKind) -> str:
    stem, dot, _suffix = path.rpartition(".")
    if not dot:
        stem = path
    if kind == TranscodeKind.GIF:
        return f"{stem}.gif"
    if kind == TranscodeKind.COMPRESS:
        return f"{stem}_compressed.mp4"
    return f"{stem}_trim.mp4"


def parse_transcode_request(
    kind: TranscodeKind,
    *,
    output_path: str,
    start: str = "",
    end: str = "",
    duration: float | None = None,
    option: str = "",
) -> TranscodeRequest:
    """Validate dialog fields. ``option`` is GIF ``width@fps``, compress ``quality[/max_width]``
    or ``precise`` for trims."""
    output_path = output_path.strip()
    if not output_path:
        raise ValueError("Output path is required.")
    option = option.strip().lower()
    if kind == TranscodeKind.COMPRESS:
        quality, _, width_text = option.partition("/")
        quality = quality or "medium"
        if quality not in COMPRESS_QUALITIES:
            raise ValueError(f"Quality must be one of: {', '.join(COMPRESS_QUALITIES)}")
        max_width = _positive_int(width_text, "Max width") if width_text else None
        return TranscodeRequest(kind, output_path, quality=quality, max_width=max_width)

    start_sec = parse_time_token(start) if start.strip() else 0.0
    if end.strip():
        end_sec = parse_time_token(end)
    elif duration:
        end_sec = duration
    else:
        raise ValueError("End time is required.")
    if end_sec <= start_sec:
        raise ValueError("End must be after start.")
    if duration and end_sec > duration + 0.001:
        raise ValueError(f"End is past the clip length ({format_seconds(duration)}s).")
    if kind == TranscodeKind.GIF:
        width_text, _, fps_text = option.partition("@")
        width = _positive_int(width_text, "Width") if width_text else 480
        fps = _positive_int(fps_text, "FPS") if fps_text else 15
        return TranscodeRequest(kind, output_path, start=start_sec, end=end_sec, width=width, fps=fps)
    return TranscodeRequest(
        kind, output_path, start=start_sec, end=end_sec, precise=option == "precise"
    )


def _positive_int(value: str, label: str) -> int:
    try:
        number = int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{label} must be a whole number.") from exc
    if number <= 0:
        raise ValueError(f"{label} must be positive.")
    return number


_OPTION_HINTS = {
    TranscodeKind.TRIM: ("Mode", "blank for fast keyframe cut, 'precise' to re-encode"),
    TranscodeKind.GIF: ("Size", "width@fps, e.g. 480@15"),
    TranscodeKind.COMPRESS: ("Quality", "high, medium or low; optional /max_width"),
}


class TranscodeScreen(ModalScreen[TranscodeRequest | None]):
    BINDINGS = [("escape", "cancel", "Cancel")]

    CSS = _dialog_css("TranscodeScreen")

    def __init__(self, kind: TranscodeKind, *, path: str, duration: float | None) -> None:
        super().__init__()
        self._kind = kind
        self._path = path
        self._duration = duration

    def compose(self) -> ComposeResult:
        option_label, option_hint = _OPTION_HINTS[self._kind]
        with Vertical():
            yield Label(f"{self._kind.value.capitalize()}: {self._path}")
            if self._kind != TranscodeKind.COMPRESS:
                end_hint = format_seconds(self._duration) if self._duration else "required"
                yield Label("Start / end")
                with Horizontal():
                    yield Input(placeholder="0  (90, 1:30, 1m30s)", id="transcode_start")
                    yield Input(placeholder=f"end ({end_hint})", id="transcode_end")
            yield Label(option_label)
            yield Input(placeholder=option_hint, id="transcode_option")
            yield Label("Output")
            yield Input(value=default_output_path(self._path, self._kind), id="transcode_output")
            yield Label("", id="transcode_error", classes="dialog-error")
            with Horizontal():
                yield Button("Run", id="transcode_run")
                yield Button("Cancel", id="transcode_cancel")

    def on_mount(self) -> None:
        self.query(Input).first().focus()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "transcode_cancel":
            self.dismiss(None)
        elif event.button.id == "transcode_run":
            self._submit()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._submit()

    def _submit(self) -> None:
        values = {widget.id: widget.value for widget in self.query(Input)}
        try:
            request = parse_transcode_request(
                self._kind,
                output_path=values.get("transcode_output", ""),
                start=values.get("transcode_start", ""),
                end=values.get("transcode_end", ""),
                duration=self._duration,
                option=values.get("transcode_option", ""),
            )
        except ValueError as exc:
            self.query_one("#transcode_error", Label).update(str(exc))
            return
        self.dismiss(request)


class WatchDirsScreen(ModalScreen[list[str] | None]):
    BINDINGS = [("escape", "cancel", "Cancel"), ("ctrl+s", "save", "Save")]

    CSS = (
        _dialog_css("WatchDirsScreen")
        + """
    #watch_dirs {
        height: 8;
    }
    """
    )

    def __init__(self, dirs: list[str]) -> None:
        super().__init__()
        self._dirs = dirs

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label("Watched folders (one per line)")
            yield TextArea("\n".join(self._dirs), id="watch_dirs", soft_wrap=False)
            with Horizontal():
                yield Button("Save", id="watch_save")
                yield Button("Cancel", id="watch_cancel")

    def on_mount(self) -> None:
        self.query_one("#watch_dirs", TextArea).focus()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def action_save(self) -> None:
        self.dismiss(split_dirs(self.query_one("#watch_dirs", TextArea).text))

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "watch_cancel":
            self.dismiss(None)
        elif event.button.id == "watch_save":
            self.action_save()


def split_dirs(text: str) -> list[str]:
    dirs: list[str] = []
    for line in text.splitlines():
        value = line.strip()
        if value and value not in dirs:
            dirs.append(value)
    return dirs
