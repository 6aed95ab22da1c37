"""Compile the resolved theme and page settings into CSS and header/footer markup."""

import re
from typing import Dict, NamedTuple

_CAMEL_RE = re.compile(r"([A-Z])")

BANDS = ("header", "footer")
SLOTS = ("left", "center", "right")


class CompiledTheme(NamedTuple):
    stylesheet: str
    header_html: str
    footer_html: str


def css_property_name(name: str) -> str:
    """Convert a camelCase property name to its hyphenated CSS form."""
    return _CAMEL_RE.sub(r"-\1", name).lower()


class ThemeCompiler:
    """Turns a resolved config into a stylesheet for one continuous page.

    The output depends on nothing but the config, so compiling the same
    config twice gives byte-identical text.
    """

    def __init__(self, config: dict):
        self.config = config

    def compile(self) -> CompiledTheme:
        return CompiledTheme(
            stylesheet=self.generate_css() + self.generate_header_footer_css(),
            header_html=self.generate_band_html("header"),
            footer_html=self.generate_band_html("footer"),
        )

    def generate_css(self) -> str:
        page = self.config["page"]
        margins = page["margins"]
        theme = self.config["theme"]
        colors = theme["colors"]
        font = theme["font"]
        spacing = theme.get("spacing") or {}
        code = self.config["code"]
        mermaid = self.config["mermaid"]

        return f"""
    @page {{
      size: {page['width']} {page['height']};
      margin: 0;
    }}

    * {{
      page-break-inside: auto !important;
      page-break-after: auto !important;
      page-break-before: auto !important;
      break-inside: auto !important;
      break-after: auto !important;
      break-before: auto !important;
    }}

    body {{
      width: {page['width']};
      margin: 0;
      padding: {margins['top']} {margins['right']} {margins['bottom']} {margins['left']};
      font-family: {font['family']};
      font-size: {font['size']};
      line-height: {font['lineHeight']};
      color: {colors['text']};
      background: {colors['background']};
      box-sizing: border-box;
      overflow: visible;
      min-height: 100vh;
    }}

    /* Headings */
    h1, h2, h3, h4, h5, h6 {{
      color: {colors['primary']};
      margin: {spacing.get('headingMargin') or '1.5em 0 0.5em 0'};
      font-weight: 600;
    }}
{self.generate_heading_styles(theme.get('headings') or {})}
    p {{
      margin: {spacing.get('paragraphMargin') or '0.8em 0'};
    }}

    ul, ol {{
      margin: {spacing.get('listMargin') or '0.8em 0'};
      padding-left: 2em;
    }}

    li {{
      margin: 0.3em 0;
    }}

    a {{
      color: {colors['secondary']};
      text-decoration: none;
    }}

    blockquote {{
      border-left: 4px solid {colors.get('blockquoteBorder') or colors['secondary']};
      margin: 1em 0;
      padding: 0.5em 1em;
      background: {colors['code']};
      color: {colors.get('blockquote') or colors['text']};
      font-style: italic;
    }}

    table {{
      border-collapse: collapse;
      width: 100%;
      margin: 1em 0;
    }}

    th, td {{
      border: 1px solid {colors['border']};
      padding: 8px 12px;
      text-align: left;
    }}

    th {{
      background-color: {colors['code']};
      font-weight: 600;
    }}

    /* Code blocks */
    pre {{
      background: {colors['code']};
      border: 1px solid {colors['border']};
      border-radius: 6px;
      padding: 1em;
      overflow-x: auto;
      font-family: {code['fontFamily']};
      font-size: {code['fontSize']};
      line-height: 1.4;
      margin: 1em 0;
    }}

    code {{
      background: {colors['code']};
      padding: 0.2em 0.4em;
      border-radius: 3px;
      font-family: {code['fontFamily']};
      font-size: {code['fontSize']};
      color: {colors.get('codeText') or colors['text']};
    }}

    pre code {{
      background: none;
      padding: 0;
      border-radius: 0;
    }}

    /* Mermaid diagrams */
    .mermaid {{
      text-align: center;
      margin: 2em 0;
      min-height: 100px;
      background-color: {mermaid['backgroundColor']};
      padding: 1.5em;
      border: 1px solid {colors['border']};
      border-radius: 8px;
    }}

    .mermaid svg {{
      max-width: 100%;
      height: auto;
      background-color: {mermaid['backgroundColor']} !important;
    }}

    .mermaid svg text {{
      fill: #000000 !important;
      font-weight: 500 !important;
      font-family: {mermaid['fontFamily']} !important;
      font-size: {mermaid['fontSize']} !important;
    }}

    .mermaid svg [fill]:not([fill="none"]):not([fill="transparent"]) {{
      fill-opacity: 1 !important;
    }}

    .diagram-error {{
      color: #d63031;
      border: 1px solid #ff6b6b;
      border-radius: 4px;
      padding: 10px;
      background-color: #fff5f5;
      text-align: left;
    }}

    /* Utility classes */
    .text-center {{ text-align: center; }}
    .text-right {{ text-align: right; }}
    .page-break {{ page-break-before: always !important; break-before: page !important; }}

    strong {{ font-weight: 600; }}
    em {{ font-style: italic; }}

    hr {{
      border: none;
      border-top: 2px solid {colors['border']};
      margin: 2em 0;
    }}

    /* Table of Contents */
    .toc {{
      margin: 2em 0;
      padding: 1em;
      border: 1px solid {colors['border']};
      border-radius: 8px;
      background: {colors['code']};
    }}

    .toc h2 {{
      margin-top: 0;
      color: {colors['primary']};
      border-bottom: 2px solid {colors['secondary']};
      padding-bottom: 0.5em;
    }}

    .toc ul {{
      list-style: none;
      padding-left: 0;
    }}

    .toc ul ul {{
      padding-left: 1.5em;
    }}

    .toc a {{
      color: {colors['text']};
    }}

    /* Cover page */
    .cover-page {{
      text-align: center;
      padding: 6em 0 4em 0;
      margin-bottom: 3em;
      border-bottom: 2px solid {colors['border']};
    }}

    .cover-page h1 {{
      font-size: 2.6em;
      border: none;
    }}

    .cover-page .cover-author,
    .cover-page .cover-date {{
      color: {colors.get('blockquote') or colors['text']};
      font-size: 1.2em;
    }}
"""

    def generate_heading_styles(self, headings: Dict[str, dict]) -> str:
        styles = ""
        for tag, style in headings.items():
            if not isinstance(style, dict):
                continue
            declarations = "\n".join(
                f"      {css_property_name(prop)}: {value};" for prop, value in style.items()
            )
            styles += f"\n    {tag} {{\n{declarations}\n    }}\n"
        return styles

    def generate_header_footer_css(self) -> str:
        header = self.config["header"]
        footer = self.config["footer"]
        if not header.get("enabled") and not footer.get("enabled"):
            return ""

        css = ""
        for band, edge, offset in (("header", "top", "margin-top"), ("footer", "bottom", "margin-bottom")):
            settings = self.config[band]
            if not settings.get("enabled"):
                continue
            border_edge = "bottom" if band == "header" else "top"
            css += f"""
    .{band} {{
      position: fixed;
      {edge}: 0;
      left: 0;
      right: 0;
      height: {settings['margin']};
      background: {self.config['theme']['colors']['background']};
      border-{border_edge}: 1px solid {self.config['theme']['colors']['border']};
      display: flex;
      align-items: center;
      padding: 0 {self.config['page']['margins']['left']};
      font-size: {settings['fontSize']};
      font-family: {self.config['theme']['font']['family']};
      z-index: 1000;
    }}

    .{band}-left {{ flex: 1; text-align: left; }}
    .{band}-center {{ flex: 1; text-align: center; }}
    .{band}-right {{ flex: 1; text-align: right; }}

    body {{ {offset}: {settings['margin']}; }}
"""
        return css

    def generate_band_html(self, band: str) -> str:
        settings = self.config[band]
        if not settings.get("enabled"):
            return ""
        content = settings.get("content") or {}
        slots = "\n".join(
            f'  <div class="{band}-{slot}">{content.get(slot) or ""}</div>' for slot in SLOTS
        )
        return f'<div class="{band}">\n{slots}\n</div>\n'
