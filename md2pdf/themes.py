"""Theme descriptors loaded from a directory of JSON files."""

import json
from pathlib import Path
from typing import Dict, List, Optional

from .console import Console

DEFAULT_THEMES_DIR = Path(__file__).resolve().parent / "data" / "themes"


class ThemeRegistry:
    """Name-keyed collection of theme descriptors.

    Files are read in sorted filename order, so ``names()`` is stable across
    platforms. A file that is not valid JSON or has no ``name`` is skipped
    with a warning; a later file with the same name replaces the earlier one.
    """

    def __init__(self, themes: Optional[Dict[str, dict]] = None):
        self._themes: Dict[str, dict] = dict(themes or {})

    @classmethod
    def from_directory(cls, themes_dir: Path = DEFAULT_THEMES_DIR, console: Optional[Console] = None) -> "ThemeRegistry":
        console = console or Console()
        registry = cls()
        themes_dir = Path(themes_dir)
        if not themes_dir.is_dir():
            console.debug(f"Themes directory not found: {themes_dir}")
            return registry

        for theme_file in sorted(themes_dir.glob("*.json")):
            try:
                theme = json.loads(theme_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                console.warning(f"Could not load theme from {theme_file}: {e}")
                continue
            if not isinstance(theme, dict) or not isinstance(theme.get("name"), str):
                console.warning(f"Theme file {theme_file} has no 'name' field, skipping")
                continue
            registry.register(theme)
            console.debug(f"Loaded theme '{theme['name']}' from {theme_file.name}")
        return registry

    def register(self, theme: dict) -> None:
        self._themes[theme["name"]] = theme

    def get(self, name: str) -> Optional[dict]:
        return self._themes.get(name)

    def names(self) -> List[str]:
        """Theme names in load order."""
        return list(self._themes)

    def __contains__(self, name: str) -> bool:
        return name in self._themes

    def __len__(self) -> int:
        return len(self._themes)
