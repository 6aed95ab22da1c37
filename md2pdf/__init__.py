"""Convert Markdown with Mermaid diagrams into single-page, infinite-scroll PDFs.

MIT License - Copyright (c) 2025 Markdown to PDF Converter
"""

__version__ = "1.0.0"
