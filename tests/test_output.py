"""Tests for the output system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet and verbose modes
- Markdown, record, and table rendering per format
- Global instance management
"""

from __future__ import annotations

import json

import pytest

from mdscribe import output as output_module
from mdscribe.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def non_tty(monkeypatch):
    monkeypatch.setattr("mdscribe.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    monkeypatch.setattr("mdscribe.output._is_tty", lambda: True)


@pytest.fixture()
def plain():
    return OutputManager(format=OutputFormat.PLAIN, no_color=True)


# ------------------------------------------------------------------ #
# Format resolution
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.RICH

    def test_auto_with_no_color_is_plain(self, tty):
        assert OutputManager(format=OutputFormat.AUTO, no_color=True).format == OutputFormat.PLAIN

    def test_explicit_format_kept(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color()

    def test_term_dumb(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color()

    def test_default_allows_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert not _should_disable_color()

    def test_manager_picks_up_env(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        assert OutputManager().no_color


# ------------------------------------------------------------------ #
# Stream discipline
# ------------------------------------------------------------------ #


class TestStreams:
    def test_markdown_goes_to_stdout(self, plain, capsys):
        plain.print_markdown("# Title\n\nBody")
        captured = capsys.readouterr()
        assert captured.out == "# Title\n\nBody\n"
        assert captured.err == ""

    def test_diagnostics_go_to_stderr(self, plain, capsys):
        plain.info("working")
        plain.success("done")
        plain.warning("careful")
        plain.error("broken")
        plain.suggest("try this")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err.splitlines() == [
            "working",
            "done",
            "Warning: careful",
            "Error: broken",
            "→ try this",
        ]

    def test_progress_hidden_off_tty(self, plain, non_tty, capsys):
        plain.progress("Formatting...")
        assert capsys.readouterr().err == ""

    def test_progress_shown_on_tty(self, plain, tty, capsys):
        plain.progress("Formatting...")
        assert "Formatting..." in capsys.readouterr().err


class TestQuietVerbose:
    def test_quiet_suppresses_info_but_not_errors(self, capsys):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.info("hidden")
        mgr.success("hidden")
        mgr.suggest("hidden")
        mgr.warning("shown")
        mgr.error("shown")
        err = capsys.readouterr().err
        assert "hidden" not in err
        assert err.count("shown") == 2

    def test_quiet_keeps_results(self, capsys):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.print_markdown("result")
        assert capsys.readouterr().out == "result\n"

    def test_debug_only_when_verbose(self, capsys):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).debug("nope")
        OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True).debug("yes")
        err = capsys.readouterr().err
        assert "nope" not in err
        assert "[debug] yes" in err


# ------------------------------------------------------------------ #
# Result rendering
# ------------------------------------------------------------------ #


class TestMarkdown:
    def test_json_wraps_markdown(self, capsys):
        OutputManager(format=OutputFormat.JSON).print_markdown("# Café")
        assert json.loads(capsys.readouterr().out) == {"markdown": "# Café"}

    def test_rich_renders(self, capsys):
        OutputManager(format=OutputFormat.RICH).print_markdown("# Heading\n\nSome text")
        out = capsys.readouterr().out
        assert "Heading" in out
        assert "Some text" in out


class TestRecord:
    def test_plain_is_tab_separated(self, plain, capsys):
        plain.print_record({"provider": "openai", "endpoint": None, "nested": {"a": 1}})
        assert capsys.readouterr().out.splitlines() == [
            "provider\topenai",
            "endpoint\t",
            'nested\t{"a": 1}',
        ]

    def test_json(self, capsys):
        OutputManager(format=OutputFormat.JSON).print_record({"a": 1, "b": [1, 2]})
        assert json.loads(capsys.readouterr().out) == {"a": 1, "b": [1, 2]}


class TestTable:
    HEADERS = ["Name", "Type"]
    ROWS = [["work", "openai"], ["lab", "custom"]]

    def test_plain(self, plain, capsys):
        plain.print_table(self.HEADERS, self.ROWS)
        assert capsys.readouterr().out.splitlines() == [
            "Name\tType",
            "work\topenai",
            "lab\tcustom",
        ]

    def test_json(self, capsys):
        OutputManager(format=OutputFormat.JSON).print_table(self.HEADERS, self.ROWS)
        assert json.loads(capsys.readouterr().out) == [
            {"Name": "work", "Type": "openai"},
            {"Name": "lab", "Type": "custom"},
        ]

    def test_rich(self, capsys):
        OutputManager(format=OutputFormat.RICH).print_table(self.HEADERS, self.ROWS, title="Providers")
        out = capsys.readouterr().out
        assert "Providers" in out
        assert "work" in out


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_lazy_default(self):
        reset_output()
        first = get_output()
        assert get_output() is first

    def test_set_and_reset(self):
        mgr = OutputManager(format=OutputFormat.PLAIN)
        set_output(mgr)
        assert get_output() is mgr
        reset_output()
        assert get_output() is not mgr

    def test_module_helpers_delegate(self, capsys):
        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True))
        output_module.print_markdown("body")
        output_module.error("bad")
        captured = capsys.readouterr()
        assert captured.out == "body\n"
        assert captured.err == "Error: bad\n"
