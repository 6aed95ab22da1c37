"""Layered configuration for md2pdf.

Sources are merged with increasing precedence:

1. Default config shipped with the package (``data/default.json``, required)
2. User config file (``~/.md2pdf/config.json``)
3. Project config file (``md2pdf.config.json`` in the current directory)
4. Config file given with ``--config``
5. Theme descriptor selected by ``--theme`` or ``theme.name``
6. Individual command line flags (highest priority)

After merging, ``{{name}}`` tokens inside string values are substituted from
a :class:`TemplateVariableContext`.
"""

import copy
import json
import re
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from .console import Console
from .errors import ConfigurationError
from .themes import ThemeRegistry

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "data" / "default.json"
PROJECT_CONFIG_NAME = "md2pdf.config.json"

PAGE_NUMBER_TOKEN = "{{pageNumber}}"
TOTAL_PAGES_TOKEN = "{{totalPages}}"

_TOKEN_RE = re.compile(r"\{\{([^}]+)\}\}")

SAMPLE_CONFIG = {
    "theme": {
        "name": "github"
    },
    "document": {
        "title": "My Document",
        "author": "Your Name"
    },
    "footer": {
        "enabled": True,
        "content": {
            "left": "{{document.author}}",
            "center": "",
            "right": f"Page {PAGE_NUMBER_TOKEN} of {TOTAL_PAGES_TOKEN}"
        }
    },
    "toc": {
        "enabled": True,
        "title": "Table of Contents",
        "maxDepth": 3
    }
}


def default_user_config_path() -> Path:
    return Path.home() / ".md2pdf" / "config.json"


def default_project_config_path() -> Path:
    return Path.cwd() / PROJECT_CONFIG_NAME


def deep_merge(base: Any, override: Any) -> Any:
    """Merge ``override`` into ``base`` and return a new tree.

    Two mappings are combined key by key, recursively. Any other pair,
    lists included, is resolved by taking a copy of ``override`` as a whole.
    Neither argument is modified.
    """
    if isinstance(base, dict) and isinstance(override, dict):
        result = copy.deepcopy(base)
        for key, value in override.items():
            if key in result:
                result[key] = deep_merge(result[key], value)
            else:
                result[key] = copy.deepcopy(value)
        return result
    return copy.deepcopy(override)


class TemplateVariableContext(Mapping):
    """Read-only variables available to ``{{var.path}}`` tokens.

    ``pageNumber`` and ``totalPages`` map to their own token text: they are
    only known once the document has been laid out, and are replaced later
    by the pagination step.
    """

    def __init__(self, document: Optional[dict] = None, now: Optional[datetime] = None):
        now = now or datetime.now()
        self._variables = MappingProxyType({
            "date": now.strftime("%Y-%m-%d"),
            "datetime": now.strftime("%Y-%m-%d %H:%M:%S"),
            "year": now.year,
            "pageNumber": PAGE_NUMBER_TOKEN,
            "totalPages": TOTAL_PAGES_TOKEN,
            "document": MappingProxyType(copy.deepcopy(document or {})),
        })

    def __getitem__(self, key: str) -> Any:
        return self._variables[key]

    def __iter__(self):
        return iter(self._variables)

    def __len__(self) -> int:
        return len(self._variables)

    def lookup(self, path: str) -> Optional[str]:
        """Resolve a dotted path to its string form, or None if it has none."""
        value: Any = self
        for key in path.strip().split("."):
            if not isinstance(value, Mapping) or key not in value:
                return None
            value = value[key]
        if value is None or isinstance(value, (Mapping, list)):
            return None
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)


def substitute(text: str, context: TemplateVariableContext) -> str:
    """Replace every resolvable ``{{token}}`` in ``text``; keep the rest verbatim."""
    def _replace(match):
        value = context.lookup(match.group(1))
        return match.group(0) if value is None else value

    return _TOKEN_RE.sub(_replace, text)


def resolve_variables(tree: Any, context: TemplateVariableContext) -> Any:
    """Return a copy of ``tree`` with tokens substituted in string leaves only."""
    if isinstance(tree, str):
        return substitute(tree, context)
    if isinstance(tree, dict):
        return {key: resolve_variables(value, context) for key, value in tree.items()}
    if isinstance(tree, list):
        return [resolve_variables(item, context) for item in tree]
    return tree


def cli_to_config(cli_options: Mapping[str, Any]) -> dict:
    """Map individual command line options onto the config structure."""
    config: Dict[str, Any] = {}

    if cli_options.get("input"):
        config["inputPath"] = str(cli_options["input"])
    if cli_options.get("output"):
        config["outputPath"] = str(cli_options["output"])
    if cli_options.get("title"):
        config.setdefault("document", {})["title"] = cli_options["title"]
    if cli_options.get("author"):
        config.setdefault("document", {})["author"] = cli_options["author"]
    if cli_options.get("page_numbers"):
        config["footer"] = {"enabled": True}
    if cli_options.get("toc"):
        config["toc"] = {"enabled": True}
    if cli_options.get("cover_page"):
        config["coverPage"] = {"enabled": True}

    return config


class ConfigResolver:
    """Resolves the configuration for one invocation.

    Nothing is cached between calls to :meth:`resolve`; every call re-reads
    the config files.
    """

    def __init__(
        self,
        themes: ThemeRegistry,
        defaults_path: Path = DEFAULT_CONFIG_PATH,
        user_config_path: Optional[Path] = None,
        project_config_path: Optional[Path] = None,
        console: Optional[Console] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.themes = themes
        self.defaults_path = Path(defaults_path)
        self.user_config_path = user_config_path if user_config_path is not None else default_user_config_path()
        self.project_config_path = project_config_path if project_config_path is not None else default_project_config_path()
        self.console = console or Console()
        self.clock = clock

    def load_defaults(self) -> dict:
        try:
            defaults = json.loads(self.defaults_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Could not load default configuration from {self.defaults_path}: {e}") from e
        if not isinstance(defaults, dict):
            raise ConfigurationError(f"Default configuration {self.defaults_path} must be a JSON object")
        return defaults

    def load_source(self, path: Optional[Path]) -> Optional[dict]:
        """Load an optional config file. Broken files are reported and ignored."""
        if path is None:
            return None
        path = Path(path)
        if not path.exists():
            return None
        try:
            source = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self.console.warning(f"Could not load config from {path}: {e}")
            return None
        if not isinstance(source, dict):
            self.console.warning(f"Could not load config from {path}: expected a JSON object")
            return None
        self.console.debug(f"Loaded config from {path}")
        return source

    def resolve(self, cli_options: Optional[Mapping[str, Any]] = None) -> dict:
        cli_options = cli_options or {}
        defaults = self.load_defaults()
        config = defaults

        explicit_path = cli_options.get("config")
        if explicit_path and not Path(explicit_path).exists():
            self.console.warning(f"Config file not found: {explicit_path}")

        for path in (self.user_config_path, self.project_config_path, explicit_path):
            source = self.load_source(path)
            if source is not None:
                config = deep_merge(config, source)

        if not isinstance(config.get("theme"), dict):
            self.console.warning(
                f"Ignoring theme setting {config.get('theme')!r}: expected an object like "
                '{"name": "github"}. Using default theme.'
            )
            config["theme"] = copy.deepcopy(defaults["theme"])

        config = self.apply_theme(config, cli_options.get("theme"))
        config = deep_merge(config, cli_to_config(cli_options))

        context = TemplateVariableContext(config.get("document"), now=self.clock())
        return resolve_variables(config, context)

    def apply_theme(self, config: dict, theme_name: Optional[str] = None) -> dict:
        theme_section = config.get("theme")
        if not theme_name and isinstance(theme_section, dict):
            theme_name = theme_section.get("name")
        if not theme_name or not isinstance(theme_name, str):
            return config

        theme = self.themes.get(theme_name)
        if theme is None:
            self.console.warning(f"Theme '{theme_name}' not found. Using default theme.")
            return config

        self.console.debug(f"Applying theme '{theme_name}'")
        return deep_merge(config, {"theme": theme})


def create_sample_config(path: Path, console: Optional[Console] = None) -> bool:
    """Write a minimal sample config. An existing file is never overwritten."""
    console = console or Console()
    path = Path(path)
    if path.exists():
        console.error(f"Config file already exists: {path}")
        return False
    try:
        path.write_text(json.dumps(SAMPLE_CONFIG, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        console.error(f"Error creating sample config: {e}")
        return False
    return True
