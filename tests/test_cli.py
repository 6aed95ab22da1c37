"""
Tests for md2pdf/cli.py
"""
import json

import pytest

from md2pdf import cli
from md2pdf.config import SAMPLE_CONFIG
from md2pdf.converter import MarkdownToPDFConverter

from conftest import FAST_DIAGRAM_TIMING, FakeLauncher


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Isolated home and working directory."""
    home = tmp_path / "home"
    home.mkdir()
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(work)
    return work


@pytest.fixture
def fake_launcher(monkeypatch):
    launcher = FakeLauncher()

    def factory(config, console=None, progress=True):
        return MarkdownToPDFConverter(config, launcher=launcher, console=console, progress=False)

    monkeypatch.setattr(cli, "MarkdownToPDFConverter", factory)
    return launcher


def test_list_themes(workdir, capsys):
    assert cli.main(["--list-themes"]) == 0

    out = capsys.readouterr().out
    assert "Available themes:" in out
    assert out.index("academic") < out.index("corporate") < out.index("github")


def test_init_config_writes_once(workdir, capsys):
    assert cli.main(["--init-config"]) == 0
    config_file = workdir / "md2pdf.config.json"
    assert json.loads(config_file.read_text(encoding="utf-8")) == SAMPLE_CONFIG

    config_file.write_text('{"theme": {"name": "academic"}}', encoding="utf-8")
    assert cli.main(["--init-config"]) == 1
    assert "already exists" in capsys.readouterr().err
    assert json.loads(config_file.read_text(encoding="utf-8")) == {"theme": {"name": "academic"}}


def test_no_input(workdir, capsys):
    assert cli.main([]) == 1
    assert "No input file specified" in capsys.readouterr().err


def test_missing_input(workdir, capsys):
    assert cli.main(["-i", "nope.md"]) == 1
    assert "Input file not found" in capsys.readouterr().err


def test_single_file_conversion(workdir, fake_launcher):
    (workdir / "md2pdf.config.json").write_text(json.dumps(FAST_DIAGRAM_TIMING), encoding="utf-8")
    (workdir / "guide.md").write_text("# Guide\n\n```mermaid\ngraph LR\n  A-->B\n```\n", encoding="utf-8")

    code = cli.main(["-i", "guide.md", "--page-numbers", "--author", "Ada", "--no-progress"])

    assert code == 0
    assert (workdir / "guide.pdf").exists()
    html = fake_launcher.html[0]
    assert '<div class="footer-left">Ada</div>' in html
    assert fake_launcher.sessions[0].slots["footer-right"] == "Page 1 of 1"


def test_batch_exit_code_reflects_failures(workdir, fake_launcher, monkeypatch):
    (workdir / "md2pdf.config.json").write_text(json.dumps(FAST_DIAGRAM_TIMING), encoding="utf-8")
    docs = workdir / "docs"
    docs.mkdir()
    (docs / "one.md").write_text("# One\n", encoding="utf-8")
    (docs / "two.md").write_text("# Two\n", encoding="utf-8")

    assert cli.main(["-b", "docs/*.md", "--no-progress"]) == 0
    assert (docs / "one.pdf").exists()
    assert (docs / "two.pdf").exists()
    assert fake_launcher.max_open == 1

    # A file that cannot be decoded fails on its own; the rest still converts
    (docs / "bad.md").write_bytes(b"\xff\xfe\xfa")
    assert cli.main(["-b", "docs/*.md", "--no-progress"]) == 1


def test_batch_without_matches(workdir, capsys):
    assert cli.main(["-b", "*.md"]) == 1
    assert "No files found matching pattern" in capsys.readouterr().err
