"""Command line interface for md2pdf."""

import argparse
import glob
import sys
import traceback
from pathlib import Path
from typing import List, Optional

from colorama import Fore, Style

from . import __version__
from .config import PROJECT_CONFIG_NAME, ConfigResolver, create_sample_config
from .console import Console
from .converter import MarkdownToPDFConverter
from .errors import ArtifactGenerationError, Md2PdfError
from .themes import ThemeRegistry


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="md2pdf",
        description="Convert Markdown (with Mermaid) to A4-wide, single-page, infinite-scroll PDF",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-i", "--input", help="Input markdown file")
    parser.add_argument("-o", "--output", help="Output PDF file (default: <input name>.pdf)")
    parser.add_argument("-c", "--config", help="Config file path")
    parser.add_argument("-t", "--theme", help="Theme name (see --list-themes)")
    parser.add_argument("-w", "--watch", action="store_true", help="Watch mode - regenerate PDF when markdown file changes")
    parser.add_argument("-b", "--batch", metavar="PATTERN", help="Batch process multiple files using glob pattern; each PDF is written next to its source")
    parser.add_argument("--title", help="Document title")
    parser.add_argument("--author", help="Document author")
    parser.add_argument("--page-numbers", action="store_true", help="Enable page numbers")
    parser.add_argument("--toc", action="store_true", help="Generate table of contents")
    parser.add_argument("--cover-page", action="store_true", help="Generate cover page")
    parser.add_argument("--init-config", action="store_true", help=f"Create sample config file ({PROJECT_CONFIG_NAME}) in current directory")
    parser.add_argument("--list-themes", action="store_true", help="List available themes")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging for detailed output")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bars")
    return parser


def list_themes(themes: ThemeRegistry) -> None:
    print(f"{Fore.BLUE}Available themes:{Style.RESET_ALL}")
    for name in themes.names():
        print(f"{Fore.GREEN}  • {name}{Style.RESET_ALL}")


def _report_failure(console: Console, error: Exception) -> None:
    console.error(f"Error generating PDF: {error}")
    # Unexpected failures and PDF write failures keep their stack trace
    if isinstance(error, ArtifactGenerationError) or not isinstance(error, Md2PdfError):
        console.error(traceback.format_exc())


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    console = Console(debug=args.debug)
    themes = ThemeRegistry.from_directory(console=console)

    # Side-effect-only commands bypass the conversion pipeline
    if args.list_themes:
        list_themes(themes)
        return 0

    if args.init_config:
        config_path = Path.cwd() / PROJECT_CONFIG_NAME
        if not create_sample_config(config_path, console):
            return 1
        console.success(f"Sample config created: {config_path}")
        return 0

    try:
        config = ConfigResolver(themes, console=console).resolve(vars(args))
    except Md2PdfError as e:
        console.error(str(e))
        return 1

    if config["footer"].get("enabled"):
        content = config["footer"].get("content") or {}
        console.debug(f"Footer: \"{content.get('left', '')}\" | \"{content.get('right', '')}\"")

    converter = MarkdownToPDFConverter(config, console=console, progress=not args.no_progress)

    if args.batch:
        files = sorted(glob.glob(args.batch, recursive=True))
        if not files:
            console.error(f"No files found matching pattern: {args.batch}")
            return 1
        results = converter.convert_batch(files)
        return 0 if all(r.ok for r in results) else 1

    if not args.input:
        console.warning("No input file specified. Use --help for usage information.")
        return 1

    input_path = Path(args.input)
    if not input_path.is_file():
        console.error(f"Input file not found - {input_path}")
        return 1

    output_path = Path(args.output) if args.output else Path(f"{input_path.stem}.pdf")
    try:
        converter.convert_file(input_path, output_path)
    except KeyboardInterrupt:
        console.warning("Interrupted")
        return 130
    except Exception as e:
        _report_failure(console, e)
        if not args.watch:
            return 1

    if args.watch:
        converter.watch(input_path, output_path)
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
