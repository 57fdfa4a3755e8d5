"""Tests for the folio CLI.

Tests cover:
- Main app options (--help, --version)
- plugin list
- plugin resolve
- plugin check
- plugin render
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from folio import __version__
from folio.cli import app


# ===========================================================================
# Fixtures
# ===========================================================================


@pytest.fixture
def runner() -> CliRunner:
    """Create a CliRunner for testing."""
    return CliRunner()


@pytest.fixture
def book(tmp_path: Path) -> Path:
    """A book directory with one local plugin and a plugin document."""
    base = tmp_path / "book"
    (base / "plugins").mkdir(parents=True)
    (base / "plugins" / "shout.py").write_text(
        "css = '.shout { font-weight: bold; }'\n"
        "\n"
        "def plugin(pipeline, options):\n"
        "    def rule(state, silent):\n"
        "        if not state.src.startswith('!!', state.pos):\n"
        "            return False\n"
        "        if not silent:\n"
        "            state.push('shout', 'strong')\n"
        "        state.pos += 2\n"
        "        return True\n"
        "    pipeline.inline.before('emphasis', 'shout', rule)\n"
        "    pipeline.renderer.set_rule('shout', lambda tokens, idx: '<strong>!</strong>')\n"
    )
    return base


def _write_config(path: Path, plugins: list) -> Path:
    path.write_text(json.dumps({"plugins": plugins}))
    return path


# ===========================================================================
# Main app
# ===========================================================================


class TestMainApp:
    """Tests for the top-level application."""

    def test_help(self, runner):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "plugin" in result.output

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_plugin_help(self, runner):
        result = runner.invoke(app, ["plugin", "--help"])
        assert result.exit_code == 0
        for command in ("list", "resolve", "check", "render"):
            assert command in result.output


# ===========================================================================
# plugin list
# ===========================================================================


class TestPluginList:
    """Tests for `folio plugin list`."""

    def test_simple(self, runner):
        result = runner.invoke(app, ["plugin", "list", "--format", "simple"])
        assert result.exit_code == 0
        assert result.output.split() == ["dimm_city", "ttrpg"]

    def test_json(self, runner):
        result = runner.invoke(app, ["plugin", "list", "--format", "json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [plugin["name"] for plugin in data["plugins"]] == ["dimm_city", "ttrpg"]

    def test_table(self, runner):
        result = runner.invoke(app, ["plugin", "list"])
        assert result.exit_code == 0
        assert "ttrpg" in result.output
        assert "Total: 2 plugins" in result.output


# ===========================================================================
# plugin resolve
# ===========================================================================


class TestPluginResolve:
    """Tests for `folio plugin resolve`."""

    def test_simple_output_is_ordered(self, runner, book):
        config = _write_config(book / "book.json", [
            "ttrpg",
            {"path": "plugins/shout.py", "priority": 300},
            {"name": "dimm_city", "enabled": False},
        ])
        result = runner.invoke(app, [
            "plugin", "resolve", str(config),
            "--base-dir", str(book),
            "--format", "simple",
        ])
        assert result.exit_code == 0
        assert result.output.splitlines()[:2] == ["300 plugins/shout.py", "100 ttrpg"]

    def test_json_output(self, runner, book):
        config = _write_config(book / "book.json", ["ttrpg"])
        result = runner.invoke(app, [
            "plugin", "resolve", str(config),
            "--base-dir", str(book),
            "--format", "json",
        ])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["plugins"][0]["provenance"] == "builtin"
        assert data["failures"] == []

    def test_css_out(self, runner, book, tmp_path):
        config = _write_config(book / "book.json", [
            {"path": "plugins/shout.py", "priority": 300},
            "ttrpg",
        ])
        css_path = tmp_path / "out.css"
        result = runner.invoke(app, [
            "plugin", "resolve", str(config),
            "--base-dir", str(book),
            "--css-out", str(css_path),
        ])
        assert result.exit_code == 0
        css = css_path.read_text()
        assert css.startswith(".shout { font-weight: bold; }")
        assert ".stat-block" in css

    def test_lenient_reports_skipped(self, runner, book):
        config = _write_config(book / "book.json", ["ttrpg", "../escape.py"])
        result = runner.invoke(app, [
            "plugin", "resolve", str(config),
            "--base-dir", str(book),
            "--format", "simple",
        ])
        assert result.exit_code == 0
        assert "100 ttrpg" in result.output
        assert "Skipped ../escape.py" in result.output

    def test_strict_fails(self, runner, book):
        config = _write_config(book / "book.json", ["ttrpg", "../escape.py"])
        result = runner.invoke(app, [
            "plugin", "resolve", str(config),
            "--base-dir", str(book),
            "--strict",
        ])
        assert result.exit_code == 1
        assert "Security violation" in result.output

    def test_missing_config(self, runner, tmp_path):
        result = runner.invoke(app, ["plugin", "resolve", str(tmp_path / "nope.json")])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_invalid_config(self, runner, tmp_path):
        config = tmp_path / "bad.json"
        config.write_text('{"plugins": 5}')
        result = runner.invoke(app, ["plugin", "resolve", str(config)])
        assert result.exit_code == 1
        assert "Expected a list" in result.output


# ===========================================================================
# plugin check
# ===========================================================================


class TestPluginCheck:
    """Tests for `folio plugin check`."""

    def test_inside(self, runner, book):
        result = runner.invoke(app, ["plugin", "check", "plugins/shout.py", "--base-dir", str(book)])
        assert result.exit_code == 0
        assert "Success" in result.output

    def test_inside_missing_file_warns(self, runner, book):
        result = runner.invoke(app, ["plugin", "check", "plugins/none.py", "--base-dir", str(book)])
        assert result.exit_code == 0
        assert "No file exists" in result.output

    def test_traversal(self, runner, book):
        result = runner.invoke(app, ["plugin", "check", "../../etc/passwd", "--base-dir", str(book)])
        assert result.exit_code == 1
        assert "outside allowed directory" in result.output


# ===========================================================================
# plugin render
# ===========================================================================


class TestPluginRender:
    """Tests for `folio plugin render`."""

    def test_without_plugins(self, runner):
        result = runner.invoke(app, ["plugin", "render", "plain *text*"])
        assert result.exit_code == 0
        assert result.output.strip() == "plain <em>text</em>"

    def test_builtin(self, runner):
        result = runner.invoke(app, ["plugin", "render", "Roll 2d6 vs CR:4", "-p", "ttrpg"])
        assert result.exit_code == 0
        assert 'data-dice="2d6"' in result.output
        assert "cr-medium" in result.output

    def test_local_plugin(self, runner, book):
        result = runner.invoke(app, [
            "plugin", "render", "hey!!",
            "--plugin", "plugins/shout.py",
            "--base-dir", str(book),
        ])
        assert result.exit_code == 0
        assert "hey<strong>!</strong>" in result.output

    def test_strict_unknown_plugin(self, runner):
        result = runner.invoke(app, [
            "plugin", "render", "x",
            "-p", "folio-not-installed",
            "--strict",
        ])
        assert result.exit_code == 1
        assert "pip install" in result.output


# ===========================================================================
# Output helpers
# ===========================================================================


class TestOutputHelpers:
    """Tests for folio.cli.output."""

    def test_error_goes_to_stderr(self, capsys):
        from folio.cli.output import print_error

        print_error("bad [path]", details="Boundary: /srv/book")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "Error: bad [path]" in captured.err
        assert "Boundary: /srv/book" in captured.err

    def test_plain_json(self, capsys):
        from folio.cli.output import print_json

        print_json({"plugins": ["ttrpg"]}, highlight=False)
        assert json.loads(capsys.readouterr().out) == {"plugins": ["ttrpg"]}
