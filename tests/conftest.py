import asyncio
import json
import re
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import pytest

from md2pdf.config import ConfigResolver, deep_merge
from md2pdf.console import Console
from md2pdf.diagrams import (
    ALL_DIAGRAMS_SETTLED_SCRIPT,
    DIAGRAM_STATES_SCRIPT,
    ENFORCE_SVG_COLORS_SCRIPT,
    MARK_DIAGRAM_ERROR_SCRIPT,
    RENDER_DIAGRAM_SCRIPT,
)
from md2pdf.errors import RenderTimeoutError
from md2pdf.pagination import APPLY_PAGE_TOKENS_SCRIPT, MEASURE_CONTENT_SCRIPT
from md2pdf.themes import ThemeRegistry

FIXED_NOW = datetime(2026, 10, 19, 14, 30, 0)

# Zero delays and a short timeout so coordinator tests run instantly
FAST_DIAGRAM_TIMING = {
    "mermaid": {
        "settleDelayMs": 0,
        "initialWaitMs": 0,
        "pollIntervalMs": 10,
        "renderTimeoutMs": 50,
    }
}

_DIAGRAM_RE = re.compile(r'<div class="mermaid" data-diagram-index="(\d+)">(.*?)</div>', re.DOTALL)
_SLOT_RE = re.compile(r'<div class="((?:header|footer)-(?:left|center|right))">(.*?)</div>', re.DOTALL)


class FakeSession:
    """In-memory stand-in for a browser page.

    Diagram sources containing ``fail_marker`` fail to render with a syntax
    error. Indices in ``stuck`` never leave the unrendered state, which
    makes the settle wait time out. Indices in ``prerendered`` were already
    rendered by the page's own bootstrap.
    """

    def __init__(self, sources=None, fail_marker="INVALID", stuck=(), prerendered=(), heights=(1123,),
                 slots=None, pdf_error=None, pdf_delay=0.0):
        self.diagrams = {
            index: {"index": index, "source": source, "rendered": None, "error": None}
            for index, source in enumerate(sources or [])
        }
        for index in prerendered:
            self.diagrams[index]["rendered"] = "true"
        self.fail_marker = fail_marker
        self.stuck = set(stuck)
        self.heights = list(heights)
        self.slots = dict(slots or {})
        self.pdf_error = pdf_error
        self.pdf_delay = pdf_delay
        self.render_calls = []
        self.styles = []
        self.media = []
        self.pdf_calls = []
        self.wait_calls = []

    @classmethod
    def from_html(cls, html, **kwargs):
        sources = [source for _, source in sorted(_DIAGRAM_RE.findall(html), key=lambda m: int(m[0]))]
        slots = dict(_SLOT_RE.findall(html))
        return cls(sources=sources, slots=slots, **kwargs)

    def _settled(self):
        return all(d["rendered"] for d in self.diagrams.values())

    def _render(self, arg):
        self.render_calls.append(dict(arg))
        diagram = self.diagrams[arg["index"]]
        if diagram["rendered"]:
            return {"rendered": diagram["rendered"], "error": diagram["error"]}
        if arg["index"] in self.stuck:
            return {"rendered": None, "error": None}
        if self.fail_marker in arg["source"]:
            diagram["rendered"] = "error"
            diagram["error"] = "Parse error on line 1"
        else:
            diagram["rendered"] = "true"
        return {"rendered": diagram["rendered"], "error": diagram["error"]}

    async def evaluate(self, script, arg=None):
        await asyncio.sleep(0)
        if script == DIAGRAM_STATES_SCRIPT:
            return [
                {"index": d["index"], "rendered": d["rendered"], "error": d["error"]}
                for d in self.diagrams.values()
            ]
        if script == RENDER_DIAGRAM_SCRIPT:
            return self._render(arg)
        if script == MARK_DIAGRAM_ERROR_SCRIPT:
            diagram = self.diagrams[arg["index"]]
            if diagram["rendered"]:
                return False
            diagram["rendered"] = "error"
            diagram["error"] = arg["message"]
            return True
        if script == ALL_DIAGRAMS_SETTLED_SCRIPT:
            return self._settled()
        if script == ENFORCE_SVG_COLORS_SCRIPT:
            return sum(1 for d in self.diagrams.values() if d["rendered"] == "true")
        if script == MEASURE_CONTENT_SCRIPT:
            return list(self.heights)
        if script == APPLY_PAGE_TOKENS_SCRIPT:
            replaced = 0
            for slot, text in self.slots.items():
                new_text = text
                for token, value in arg.items():
                    new_text = new_text.replace(token, value)
                if new_text != text:
                    self.slots[slot] = new_text
                    replaced += 1
            return replaced
        raise AssertionError(f"Unexpected script: {script[:40]}")

    async def wait_for(self, script, timeout_ms, poll_ms):
        self.wait_calls.append((timeout_ms, poll_ms))
        if not await self.evaluate(script):
            raise RenderTimeoutError(timeout_ms)

    async def add_style(self, css):
        self.styles.append(css)

    async def emulate_media(self, media):
        self.media.append(media)

    async def to_pdf(self, path, options):
        self.pdf_calls.append((Path(path), dict(options)))
        if self.pdf_delay:
            await asyncio.sleep(self.pdf_delay)
        if self.pdf_error is not None:
            raise self.pdf_error
        Path(path).write_bytes(b"%PDF-1.4 fake\n")


class FakeLauncher:
    """Creates a :class:`FakeSession` from the assembled HTML."""

    def __init__(self, **session_kwargs):
        self.session_kwargs = session_kwargs
        self.sessions = []
        self.html = []
        self.open_count = 0
        self.max_open = 0
        self.closed = 0

    @asynccontextmanager
    async def open_session(self, html):
        self.html.append(html)
        session = FakeSession.from_html(html, **self.session_kwargs)
        self.sessions.append(session)
        self.open_count += 1
        self.max_open = max(self.max_open, self.open_count)
        try:
            yield session
        finally:
            self.open_count -= 1
            self.closed += 1


@pytest.fixture
def console():
    return Console(debug=True)


@pytest.fixture
def themes(console):
    return ThemeRegistry.from_directory(console=console)


@pytest.fixture
def resolver(tmp_path, themes, console):
    """Resolver that only sees the shipped defaults unless a test writes config files."""
    return ConfigResolver(
        themes,
        user_config_path=tmp_path / "home" / ".md2pdf" / "config.json",
        project_config_path=tmp_path / "project" / "md2pdf.config.json",
        console=console,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def config(resolver):
    return deep_merge(resolver.resolve({}), FAST_DIAGRAM_TIMING)


@pytest.fixture
def write_json(tmp_path):
    def _write(path, data):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
        return path

    return _write
