"""Exception hierarchy for md2pdf.

Recoverable conditions (a broken user config file, an unknown theme, a single
diagram that fails to render) are reported as warnings and never raised.
Everything below is fatal for the conversion that raised it.
"""


class Md2PdfError(Exception):
    """Base exception for all md2pdf errors."""
    pass


class ConfigurationError(Md2PdfError):
    """Raised when the default configuration is missing or unreadable."""
    pass


class BrowserLaunchError(Md2PdfError):
    """Raised when no usable Chromium browser could be started."""

    REMEDIATION = (
        "Install Chrome, Edge, or Chromium",
        "Run: python -m playwright install chromium (to get bundled Chromium)",
        "Check: https://playwright.dev/python/docs/browsers",
    )

    def __init__(self, message: str):
        self.reason = message
        steps = "\n".join(f"{i}. {step}" for i, step in enumerate(self.REMEDIATION, 1))
        super().__init__(f"Failed to launch browser: {message}\n\nTroubleshooting:\n{steps}")


class RenderTimeoutError(Md2PdfError):
    """Raised by a document session when a wait condition is not met in time."""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Condition not met within {timeout_ms}ms")


class ArtifactGenerationError(Md2PdfError):
    """Raised when writing the final PDF fails or times out."""

    def __init__(self, output_path, message: str):
        self.output_path = output_path
        super().__init__(f"Failed to generate {output_path}: {message}")
