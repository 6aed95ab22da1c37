"""Assemble the HTML page loaded into the browser session."""

import html
import json

from .stylesheet import CompiledTheme

# Injected once the content has loaded so colors survive print emulation
PRINT_COLOR_CSS = """
* {
  -webkit-print-color-adjust: exact !important;
  color-adjust: exact !important;
  print-color-adjust: exact !important;
}
.mermaid {
  background: transparent !important;
  padding: 5px !important;
}
.mermaid svg {
  background: transparent !important;
}
"""

# Renders every diagram once the DOM is ready. Blocks that fail are marked
# with data-rendered="error"; blocks this pass never reaches stay unmarked
# and are picked up by the coordinator's sweep.
_BOOTSTRAP_SCRIPT = """
    mermaid.initialize(%(config)s);

    async function renderMermaidDiagrams() {
      const elements = document.querySelectorAll('.mermaid');
      for (let i = 0; i < elements.length; i++) {
        const element = elements[i];
        if (element.hasAttribute('data-rendered')) {
          continue;
        }
        const graphDefinition = element.textContent.trim();
        if (!graphDefinition) {
          continue;
        }
        try {
          const { svg } = await mermaid.render(`mermaid-${i}`, graphDefinition);
          element.innerHTML = svg;
          element.setAttribute('data-rendered', 'true');
        } catch (error) {
          const message = error && error.message ? error.message : String(error);
          const box = document.createElement('div');
          box.className = 'diagram-error';
          box.textContent = 'Diagram Error: ' + message;
          element.replaceChildren(box);
          element.setAttribute('data-error', message);
          element.setAttribute('data-rendered', 'error');
        }
      }
    }

    document.addEventListener('DOMContentLoaded', async function() {
      if (typeof mermaid === 'undefined') {
        return;
      }
      await renderMermaidDiagrams();
      window.mermaidRenderingComplete = true;
    });
"""


def _script_json(value) -> str:
    return json.dumps(value, sort_keys=True).replace("</", "<\\/")


def build_html(body_html: str, compiled: CompiledTheme, config: dict, title: str = "") -> str:
    """Wrap rendered markdown in a full page with styles, bands and the Mermaid bootstrap."""
    mermaid = config["mermaid"]
    mermaid_config = dict(mermaid.get("config") or {})
    # The bootstrap and the coordinator drive rendering themselves
    mermaid_config["startOnLoad"] = False
    document = config.get("document") or {}
    bootstrap = _BOOTSTRAP_SCRIPT % {"config": _script_json(mermaid_config)}

    meta = ""
    if document.get("author"):
        meta += f'  <meta name="author" content="{html.escape(str(document["author"]))}">\n'
    if document.get("subject"):
        meta += f'  <meta name="description" content="{html.escape(str(document["subject"]))}">\n'
    if document.get("keywords"):
        keywords = ", ".join(str(k) for k in document["keywords"])
        meta += f'  <meta name="keywords" content="{html.escape(keywords)}">\n'

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
{meta}  <title>{html.escape(title or 'Markdown to PDF')}</title>
  <script src="{html.escape(mermaid['scriptUrl'])}"></script>
  <style>
{compiled.stylesheet}
  </style>
</head>
<body>
{compiled.header_html}{compiled.footer_html}  <div class="main-content">
{body_html}
  </div>
  <script>
{bootstrap}
  </script>
</body>
</html>
"""
