# tests/unit/test_main.py — v3
"""Tests for main.py — CLI entry point."""

from __future__ import annotations

from pathlib import Path

import pytest

from songsmith.api.models import SongResult
from songsmith.config import settings as settings_module
from songsmith.config.settings import Settings
from songsmith.core.errors import ClassifiedError, ErrorKind
from songsmith.core.models import FormatterOutput, OutputMessage
from songsmith.main import _build_parser, main
from songsmith.pipeline.progress import RunStatus


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------


class TestBuildParser:
    def test_version_flag(self):
        with pytest.raises(SystemExit) as exc_info:
            _build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_generate_defaults(self):
        args = _build_parser().parse_args(["generate", "A monsoon song"])
        assert args.command == "generate"
        assert args.request == "A monsoon song"
        assert args.language == "Telugu"
        assert args.mood is None
        assert args.attach == []
        assert args.json is False

    def test_generate_options(self):
        args = _build_parser().parse_args([
            "generate", "x", "--language", "Tamil", "--secondary", "English",
            "--mood", "Joyful", "--attach", "a.png", "--attach", "b.mp3",
        ])
        assert args.secondary == "English"
        assert args.mood == "Joyful"
        assert args.attach == [Path("a.png"), Path("b.mp3")]

    def test_chat_options(self):
        args = _build_parser().parse_args(["chat", "Hello studio", "--attach", "a.png"])
        assert args.command == "chat"
        assert args.message == "Hello studio"
        assert args.attach == [Path("a.png")]

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Command tests
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_settings(monkeypatch):
    monkeypatch.setattr(
        settings_module, "load_settings", lambda **kw: Settings(_env_file=None, **kw),
    )


class FakeStudio:
    """Stands in for SongStudio; returns a canned result."""

    result = SongResult(
        run_id="run-1",
        status=RunStatus.DONE,
        lyrics="Title: Monsoon Letter",
        formatter=FormatterOutput(style_prompt="Telugu melody", formatted_lyrics="[Chorus]"),
    )

    def __init__(self, settings=None, **kwargs):
        self.requests = []

    async def generate(self, request, on_event=None):
        self.requests.append(request)
        return self.result

    async def chat(self, text, history=(), **context):
        if "quota" in text:
            raise ClassifiedError(ErrorKind.QUOTA, "429 quota exhausted")
        return OutputMessage(id="m-1", content=f"Echo: {text}", sender_agent="CHAT")


class TestStagesCommand:
    def test_lists_plan(self, capsys):
        assert main(["stages"]) == 0
        out = capsys.readouterr().out
        assert "Stage plan:" in out
        assert "draft" in out
        assert "mandatory, streaming" in out
        assert "Orchestrator: Finalizing" in out


class TestGenerateCommand:
    def test_invalid_request(self, isolated_settings, capsys):
        assert main(["generate", "hi"]) == 1
        assert "Invalid request" in capsys.readouterr().err

    def test_unsupported_attachment(self, isolated_settings, tmp_path):
        notes = tmp_path / "notes.txt"
        notes.write_text("not media")
        assert main(["generate", "A monsoon song", "--attach", str(notes)]) == 1

    def test_prints_lyrics(self, isolated_settings, monkeypatch, capsys):
        from songsmith.api import facade

        monkeypatch.setattr(facade, "SongStudio", FakeStudio)
        assert main(["generate", "A monsoon song", "--mood", "Joyful"]) == 0
        out = capsys.readouterr().out
        assert "Title: Monsoon Letter" in out
        assert "Suno style: Telugu melody" in out

    def test_json_output(self, isolated_settings, monkeypatch, capsys):
        from songsmith.api import facade

        monkeypatch.setattr(facade, "SongStudio", FakeStudio)
        assert main(["generate", "A monsoon song", "--json"]) == 0
        assert '"run_id": "run-1"' in capsys.readouterr().out


class TestChatCommand:
    def test_prints_reply(self, isolated_settings, monkeypatch, capsys):
        from songsmith.api import facade

        monkeypatch.setattr(facade, "SongStudio", FakeStudio)
        assert main(["chat", "Hello studio"]) == 0
        assert "Echo: Hello studio" in capsys.readouterr().out

    def test_failure_reported(self, isolated_settings, monkeypatch, capsys):
        from songsmith.api import facade

        monkeypatch.setattr(facade, "SongStudio", FakeStudio)
        assert main(["chat", "Out of quota again"]) == 1
        assert capsys.readouterr().err.strip()

    def test_invalid_message(self, isolated_settings, capsys):
        assert main(["chat", "hi"]) == 1
        assert "Invalid message" in capsys.readouterr().err
