"""Markdown to HTML using markdown-it-py, with a hook for fenced code blocks.

Diagram blocks (``mermaid`` fences by default) are emitted as containers that
carry the raw diagram source so the in-page diagram engine can read it; every
other code block is HTML-escaped.
"""

import html
import re
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional

from markdown_it import MarkdownIt
from mdit_py_plugins.anchors import anchors_plugin

from .diagrams import DiagramBlock

CodeBlockHook = Callable[[str, str], str]

PAGE_BREAK_HTML = '<div class="page-break"></div>'
PAGE_BREAK_FENCE = "page-break"

# <!-- page-break --> and <page-break>
_PAGE_BREAK_RE = re.compile(r'<!--\s*page-break\s*-->|<page-break>', re.IGNORECASE)


class Heading(NamedTuple):
    level: int
    text: str
    anchor: str


class ParsedDocument(NamedTuple):
    html: str
    headings: List[Heading]


def escape_code_block(code: str, language: str) -> str:
    class_attr = f' class="language-{html.escape(language)}"' if language else ""
    return f"<pre><code{class_attr}>{html.escape(code)}</code></pre>\n"


class DiagramBlockCollector:
    """Code-block hook that turns diagram fences into containers.

    One :class:`DiagramBlock` is recorded per diagram, indexed in source
    order; the index is also written to the container so the page element
    and the block can be matched later.
    """

    def __init__(self, language: str = "mermaid"):
        self.language = language
        self.blocks: List[DiagramBlock] = []

    def __call__(self, code: str, language: str) -> str:
        if language != self.language:
            return escape_code_block(code, language)
        block = DiagramBlock(index=len(self.blocks), source=code)
        self.blocks.append(block)
        return f'<div class="mermaid" data-diagram-index="{block.index}">{code}</div>\n'


def _create_parser(on_code_block: CodeBlockHook) -> MarkdownIt:
    md = MarkdownIt("commonmark", {"breaks": True, "html": True}).enable(["table", "strikethrough"])
    md.use(anchors_plugin, min_level=1, max_level=6)

    def render_fence(self, tokens, idx, options, env):
        token = tokens[idx]
        language = token.info.strip().split()[0] if token.info.strip() else ""
        if language.lower() == PAGE_BREAK_FENCE and not token.content.strip():
            return PAGE_BREAK_HTML + "\n"
        return on_code_block(token.content.rstrip("\n"), language)

    def render_code_block(self, tokens, idx, options, env):
        return on_code_block(tokens[idx].content.rstrip("\n"), "")

    def render_html(self, tokens, idx, options, env):
        return process_page_breaks(tokens[idx].content)

    md.add_render_rule("fence", render_fence)
    md.add_render_rule("code_block", render_code_block)
    md.add_render_rule("html_block", render_html)
    md.add_render_rule("html_inline", render_html)
    return md


def parse_document(text: str, on_code_block: CodeBlockHook = escape_code_block) -> ParsedDocument:
    """Render ``text`` to HTML and collect its headings for the table of contents."""
    md = _create_parser(on_code_block)
    env: dict = {}
    tokens = md.parse(text, env)

    headings = []
    for i, token in enumerate(tokens):
        if token.type == "heading_open" and i + 1 < len(tokens):
            headings.append(Heading(
                level=int(token.tag[1]),
                text=tokens[i + 1].content,
                anchor=str(token.attrGet("id") or ""),
            ))

    return ParsedDocument(md.renderer.render(tokens, md.options, env), headings)


def parse_markdown(text: str, on_code_block: CodeBlockHook = escape_code_block) -> str:
    return parse_document(text, on_code_block).html


def process_page_breaks(fragment: str) -> str:
    """Turn page break markers in a raw HTML fragment into page-break divs.

    Only applied to HTML the parser passes through, so markers quoted in
    code blocks or code spans are left alone.
    """
    return _PAGE_BREAK_RE.sub(PAGE_BREAK_HTML, fragment)


def extract_title(content: str, md_file: Optional[Path] = None) -> str:
    """Extract the document title from markdown content.

    Preference order:
    1) First ATX H1 heading starting with '# '
    2) Setext H1 style (line followed by '===')
    3) Humanized filename stem
    """
    lines = content.splitlines()
    for line in lines:
        stripped = line.strip()
        if stripped.startswith('# '):
            heading_text = stripped[2:].strip()
            if heading_text:
                return heading_text

    for i in range(len(lines) - 1):
        current_line = lines[i].strip()
        if current_line and re.fullmatch(r"=+", lines[i + 1].strip()):
            return current_line

    if md_file is None:
        return ""
    stem = md_file.stem.replace('_', ' ').replace('-', ' ').strip()
    return stem.title() if stem else md_file.stem


def build_toc(headings: List[Heading], title: str, max_depth: int = 3) -> str:
    """Nested list of links to every heading down to ``max_depth``."""
    entries = [h for h in headings if h.level <= max_depth and h.anchor]
    if not entries:
        return ""

    parts = [f'<nav class="toc">\n<h2>{html.escape(title)}</h2>\n']
    base_level = min(h.level for h in entries)
    depth = 0
    for heading in entries:
        level = heading.level - base_level + 1
        if level > depth:
            parts.append("<ul>\n" * (level - depth))
        elif level < depth:
            parts.append("</li>\n</ul>\n" * (depth - level) + "</li>\n")
        elif depth:
            parts.append("</li>\n")
        depth = level
        parts.append(f'<li><a href="#{html.escape(heading.anchor)}">{html.escape(heading.text)}</a>')
    parts.append("</li>\n</ul>\n" * depth)
    parts.append("</nav>\n")
    return "".join(parts)


def build_cover_page(title: str, author: str = "", date: str = "") -> str:
    parts = ['<section class="cover-page">\n', f"<h1>{html.escape(title)}</h1>\n"]
    if author:
        parts.append(f'<p class="cover-author">{html.escape(author)}</p>\n')
    if date:
        parts.append(f'<p class="cover-date">{html.escape(date)}</p>\n')
    parts.append("</section>\n")
    return "".join(parts)
