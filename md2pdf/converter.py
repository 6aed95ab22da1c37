"""Markdown to infinite-scroll PDF conversion.

A conversion runs as one linear asyncio pipeline:

    read markdown -> HTML + diagram blocks -> themed page -> browser session
    -> diagram rendering -> measurement -> page tokens -> PDF

Batch and watch modes run conversions strictly one after another, so at most
one browser is alive at any time and no two conversions write the same
output file concurrently.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from tqdm import tqdm

from .console import Console
from .diagrams import DiagramRenderCoordinator, DiagramReport
from .document import PRINT_COLOR_CSS, build_html
from .errors import ArtifactGenerationError
from .markdown import (
    DiagramBlockCollector,
    build_cover_page,
    build_toc,
    extract_title,
    parse_document,
)
from .pagination import DocumentGeometry, PaginationEngine
from .session import BrowserLauncher
from .stylesheet import ThemeCompiler


@dataclass
class ConversionResult:
    input_path: Path
    output_path: Path
    status: str = "converted"
    error: Optional[str] = None
    geometry: Optional[DocumentGeometry] = None
    diagrams: Optional[DiagramReport] = None

    @property
    def ok(self) -> bool:
        return self.status == "converted"


def default_output_path(input_path: Path, output_dir: Optional[Path] = None) -> Path:
    input_path = Path(input_path)
    directory = Path(output_dir) if output_dir else input_path.parent
    return directory / f"{input_path.stem}.pdf"


class MarkdownToPDFConverter:
    """Converts markdown files to single-page, infinite-scroll PDFs.

    Args:
        config: Resolved configuration (see :class:`md2pdf.config.ConfigResolver`)
        launcher: Object whose ``open_session(html)`` is an async context
            manager yielding a document session. Defaults to a headless
            Chromium :class:`BrowserLauncher`.
        console: Output sink for progress and diagnostics
        progress: Show a tqdm progress bar per conversion
    """

    def __init__(self, config: dict, launcher=None, console: Optional[Console] = None, progress: bool = True):
        self.config = config
        self.console = console or Console()
        self.launcher = launcher or BrowserLauncher(self.console)
        self.progress = progress

    def _document_title(self, content: str, md_file: Path) -> str:
        return (self.config.get("document") or {}).get("title") or extract_title(content, md_file)

    def _front_matter(self, title: str, headings) -> str:
        """Cover page and table of contents, when enabled."""
        html = ""
        cover = self.config.get("coverPage") or {}
        if cover.get("enabled"):
            document = self.config.get("document") or {}
            date = datetime.now().strftime("%Y-%m-%d") if cover.get("showDate", True) else ""
            html += build_cover_page(title, document.get("author") or "", date)
        toc = self.config.get("toc") or {}
        if toc.get("enabled"):
            html += build_toc(headings, toc.get("title") or "Table of Contents", int(toc.get("maxDepth") or 3))
        return html

    async def convert(self, input_path: Path, output_path: Optional[Path] = None) -> ConversionResult:
        """Convert one markdown file. Fatal errors propagate to the caller."""
        input_path = Path(input_path)
        output_path = Path(output_path) if output_path else default_output_path(input_path)
        filename = input_path.name
        self.console.info(f"Converting {filename} to PDF...")

        with tqdm(total=6, desc=f"  {filename}", unit="step", leave=False, disable=not self.progress) as pbar:
            # Step 1: Read markdown content
            pbar.set_description(f"  {filename} - Reading")
            content = input_path.read_text(encoding="utf-8")
            pbar.update(1)

            # Step 2: Convert to HTML, collecting diagram blocks
            pbar.set_description(f"  {filename} - HTML")
            collector = DiagramBlockCollector(self.config["mermaid"].get("language") or "mermaid")
            parsed = parse_document(content, collector)
            self.console.debug(f"Generated HTML contains {len(collector.blocks)} mermaid blocks")
            title = self._document_title(content, input_path)
            body = self._front_matter(title, parsed.headings) + parsed.html
            html = build_html(body, ThemeCompiler(self.config).compile(), self.config, title)
            pbar.update(1)

            pagination = PaginationEngine(self.config, self.console)
            pbar.set_description(f"  {filename} - Browser")
            async with self.launcher.open_session(html) as session:
                await session.add_style(PRINT_COLOR_CSS)
                pbar.update(1)

                # Step 4: Diagrams
                pbar.set_description(f"  {filename} - Diagrams")
                coordinator = DiagramRenderCoordinator(session, self.config, self.console)
                report = await coordinator.run(collector.blocks)
                pbar.update(1)

                # Step 5: Measure and finalize header/footer
                pbar.set_description(f"  {filename} - Layout")
                geometry = await pagination.compute_geometry(session)
                await pagination.apply_page_tokens(session, geometry)
                pbar.update(1)

                # Step 6: Write the PDF
                pbar.set_description(f"  {filename} - PDF")
                await self._write_pdf(session, output_path, pagination.pdf_options(geometry))
                pbar.update(1)

        self.console.success(f"PDF generated successfully: {output_path.resolve()}")
        return ConversionResult(input_path, output_path, geometry=geometry, diagrams=report)

    async def _write_pdf(self, session, output_path: Path, options: dict) -> None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        timeout_ms = options["timeout"]
        try:
            await asyncio.wait_for(session.to_pdf(output_path, options), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise ArtifactGenerationError(output_path, f"PDF generation timed out after {timeout_ms}ms") from e
        except Exception as e:
            raise ArtifactGenerationError(output_path, str(e)) from e

    def convert_file(self, input_path: Path, output_path: Optional[Path] = None) -> ConversionResult:
        """Run :meth:`convert` on a fresh event loop."""
        return asyncio.run(self.convert(input_path, output_path))

    def _convert_safely(self, input_path: Path, output_path: Optional[Path]) -> ConversionResult:
        output_path = Path(output_path) if output_path else default_output_path(input_path)
        try:
            return self.convert_file(input_path, output_path)
        except Exception as e:
            self.console.error(f"Error converting {Path(input_path).name}: {e}")
            return ConversionResult(Path(input_path), output_path, status="failed", error=str(e))

    def convert_batch(self, md_files: Iterable[Path], output_dir: Optional[Path] = None) -> List[ConversionResult]:
        """Convert files one after another.

        A file that fails is reported and skipped; the remaining files are
        still converted. Callers decide the exit status from the results.
        """
        md_files = [Path(f) for f in md_files]
        self.console.info(f"Found {len(md_files)} files to process: {[f.name for f in md_files]}")

        results = []
        for md_file in tqdm(md_files, desc="Converting files", unit="file", disable=not self.progress):
            results.append(self._convert_safely(md_file, default_output_path(md_file, output_dir)))

        failed = [r for r in results if not r.ok]
        converted = len(results) - len(failed)
        self.console.success(f"Batch conversion complete: {converted} files converted, {len(failed)} files failed ({len(results)} total)")
        for result in failed:
            self.console.error(f"Failed: {result.input_path} ({result.error})")
        return results

    def watch(self, input_path: Path, output_path: Optional[Path] = None, interval: float = 1.0,
              max_runs: Optional[int] = None) -> int:
        """Regenerate the PDF whenever ``input_path`` changes.

        Changes are detected by polling the modification time. Each rebuild
        runs to completion before the next poll, so rebuilds never overlap.
        Returns the number of rebuilds performed.
        """
        input_path = Path(input_path)
        self.console.info(f"Watching {input_path} for changes... (Press Ctrl+C to stop)")
        last_mtime = input_path.stat().st_mtime
        runs = 0
        try:
            while max_runs is None or runs < max_runs:
                time.sleep(interval)
                try:
                    mtime = input_path.stat().st_mtime
                except FileNotFoundError:
                    continue
                if mtime == last_mtime:
                    continue
                last_mtime = mtime
                self.console.info("File changed, regenerating PDF...")
                self._convert_safely(input_path, output_path)
                runs += 1
        except KeyboardInterrupt:
            self.console.info("Stopping watch mode...")
        return runs
