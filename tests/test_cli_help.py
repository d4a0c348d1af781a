from __future__ import annotations

import sys

from clipshelf.app import _cli_help_text, main
from clipshelf.paths import config_path


def test_cli_help_text_includes_config_path() -> None:
    text = _cli_help_text()
    assert "--backend-url" in text
    assert str(config_path()) in text


def test_main_help_flag_prints_help(capsys, monkeypatch) -> None:
    monkeypatch.setattr(sys, "argv", ["clipshelf", "-help"])
    main()
    captured = capsys.readouterr()
    assert "clipshelf" in captured.out
