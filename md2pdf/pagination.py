"""Measure the rendered document and size the single continuous PDF page."""

import math
import re
from typing import NamedTuple, Optional

from .config import PAGE_NUMBER_TOKEN, TOTAL_PAGES_TOKEN
from .console import Console

MM_PER_PX = 0.264583  # at 96 DPI
PX_PER_UNIT = {
    'px': 1.0,
    'mm': 1 / MM_PER_PX,
    'cm': 10 / MM_PER_PX,
    'in': 96.0,
    'pt': 96 / 72,
}
DEFAULT_REFERENCE_HEIGHT = "297mm"  # A4

_LENGTH_RE = re.compile(r'^(\d+(?:\.\d+)?)\s*(cm|in|mm|pt|px)?$')

MEASURE_CONTENT_SCRIPT = """() => {
  return [
    document.body.scrollHeight,
    document.body.offsetHeight,
    document.documentElement.clientHeight,
    document.documentElement.scrollHeight,
    document.documentElement.offsetHeight,
  ];
}"""

APPLY_PAGE_TOKENS_SCRIPT = """(replacements) => {
  const slots = document.querySelectorAll(
    '.header-left, .header-center, .header-right, .footer-left, .footer-center, .footer-right'
  );
  let replaced = 0;
  slots.forEach(slot => {
    const walker = document.createTreeWalker(slot, NodeFilter.SHOW_TEXT);
    let node;
    while ((node = walker.nextNode())) {
      let text = node.nodeValue;
      for (const [token, value] of Object.entries(replacements)) {
        text = text.split(token).join(value);
      }
      if (text !== node.nodeValue) {
        node.nodeValue = text;
        replaced++;
      }
    }
  });
  return replaced;
}"""


class DocumentGeometry(NamedTuple):
    content_height_px: int
    total_pages: int
    height_mm: int


def length_to_px(value: str) -> float:
    """Convert a CSS length such as ``297mm`` or ``11in`` to pixels at 96 DPI.

    A bare number is taken as pixels.
    """
    match = _LENGTH_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"Invalid length: '{value}'. Use format like '297mm', '11in', '1123px'.")
    number, unit = match.groups()
    return float(number) * PX_PER_UNIT[unit or 'px']


class PaginationEngine:
    """Computes the document geometry and finalizes the header/footer text."""

    def __init__(self, config: dict, console: Optional[Console] = None):
        self.config = config
        self.console = console or Console()
        self.page_pixel_height = self._reference_page_height()

    def _reference_page_height(self) -> int:
        reference = self.config["page"].get("referenceHeight") or DEFAULT_REFERENCE_HEIGHT
        try:
            pixels = round(length_to_px(reference))
        except ValueError as e:
            self.console.warning(f"{e} Falling back to {DEFAULT_REFERENCE_HEIGHT}.")
            pixels = round(length_to_px(DEFAULT_REFERENCE_HEIGHT))
        if pixels <= 0:
            self.console.warning(f"Page reference height must be positive, falling back to {DEFAULT_REFERENCE_HEIGHT}.")
            pixels = round(length_to_px(DEFAULT_REFERENCE_HEIGHT))
        return pixels

    @property
    def bands_enabled(self) -> bool:
        return bool(self.config["header"].get("enabled") or self.config["footer"].get("enabled"))

    def geometry_for_height(self, content_height_px: float) -> DocumentGeometry:
        height = int(math.ceil(content_height_px))
        return DocumentGeometry(
            content_height_px=height,
            total_pages=max(1, math.ceil(height / self.page_pixel_height)),
            height_mm=max(1, math.ceil(height * MM_PER_PX)),
        )

    async def compute_geometry(self, session) -> DocumentGeometry:
        measurements = await session.evaluate(MEASURE_CONTENT_SCRIPT)
        geometry = self.geometry_for_height(max(measurements or [0]))
        self.console.info(
            f"Content height: {geometry.content_height_px}px = {geometry.height_mm}mm "
            f"(≈{geometry.total_pages} pages)"
        )
        return geometry

    async def apply_page_tokens(self, session, geometry: DocumentGeometry) -> int:
        """Replace the page placeholders in header and footer text.

        There is one continuous page, so the page number is always 1.
        """
        if not self.bands_enabled:
            return 0
        replaced = await session.evaluate(APPLY_PAGE_TOKENS_SCRIPT, {
            PAGE_NUMBER_TOKEN: "1",
            TOTAL_PAGES_TOKEN: str(geometry.total_pages),
        })
        self.console.debug(f"Replaced page tokens in {replaced} header/footer text node(s)")
        return replaced

    def pdf_options(self, geometry: DocumentGeometry) -> dict:
        page = self.config["page"]
        output = self.config["output"]
        height = page.get("height") or "auto"
        return {
            "width": page["width"],
            "height": f"{geometry.height_mm}mm" if height == "auto" else height,
            "margin": dict(page["margins"]),
            "print_background": bool(output.get("printBackground", True)),
            "prefer_css_page_size": bool(output.get("preferCSSPageSize", False)),
            "display_header_footer": bool(output.get("displayHeaderFooter")) and self.bands_enabled,
            "omit_background": bool(output.get("omitBackground", False)),
            "timeout": int(output.get("timeout", 30000)),
        }
