"""Detection of browsers installed on the host system."""

import sys
from pathlib import Path
from typing import Dict, List, Optional

BROWSER_PATHS: Dict[str, List[str]] = {
    "darwin": [
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge",
        "/Applications/Chromium.app/Contents/MacOS/Chromium",
        "/Applications/Brave Browser.app/Contents/MacOS/Brave Browser",
    ],
    "win32": [
        "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
        "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
        "C:\\Program Files\\Microsoft\\Edge\\Application\\msedge.exe",
        "C:\\Program Files (x86)\\Microsoft\\Edge\\Application\\msedge.exe",
    ],
    "linux": [
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/usr/bin/microsoft-edge",
    ],
}


def find_available_browser(platform: Optional[str] = None) -> Optional[Path]:
    """Return the first Chromium-based browser found on this machine, if any."""
    platform = platform or sys.platform
    paths = BROWSER_PATHS.get(platform, BROWSER_PATHS["linux"])
    for browser_path in paths:
        candidate = Path(browser_path)
        if candidate.exists():
            return candidate
    return None
