"""
Viewer configuration.
Simple, clean configuration for the extractor, the bridge and the display.
"""
from dataclasses import dataclass, field, asdict
from typing import List, Optional
import json
import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_CODES = [
    "G10",
    "G28",
    "G30",
    "G53",
    "G90",
    "M00",
    "M01",
    "M02",
    "M30",
]

# Used by the rendering surface when a message carries no settings at all.
FALLBACK_EXCLUDE_CODES = ["G10", "G30", "G53", "G90"]

THEMES = ("dark", "light")


@dataclass
class ViewerConfig:
    """Configuration for one viewer session."""
    exclude_codes: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_CODES))

    # Extraction
    max_movements: Optional[int] = 1_000_000
    arc_divisions: int = 64

    # Bridge
    bridge_capacity: int = 128
    bridge_host: str = "127.0.0.1"

    # Display
    theme: str = "dark"

    # Diagnostics
    verbose: bool = False
    lexer_debug: bool = False

    def get_excluded_codes(self) -> List[str]:
        """The exclude list, falling back to the defaults when it is empty."""
        return list(self.exclude_codes) or list(DEFAULT_EXCLUDE_CODES)


def _env_flag(name: str) -> Optional[bool]:
    raw = os.environ.get(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in ("true", "1"):
        return True
    if value in ("false", "0"):
        return False
    return None


class ConfigManager:
    """Builds, loads and saves viewer configurations."""

    @staticmethod
    def default() -> ViewerConfig:
        """Default configuration with environment overrides applied."""
        return ConfigManager.apply_environment(ViewerConfig())

    @staticmethod
    def apply_environment(config: ViewerConfig) -> ViewerConfig:
        """Apply NCVIEWER_VERBOSE_LOG and NCVIEWER_LEXER_DEBUG.

        Lexer debugging follows the verbose flag unless set explicitly.
        """
        verbose = _env_flag("NCVIEWER_VERBOSE_LOG")
        if verbose is not None:
            config.verbose = verbose
        lexer_debug = _env_flag("NCVIEWER_LEXER_DEBUG")
        if lexer_debug is None:
            config.lexer_debug = config.lexer_debug or config.verbose
        else:
            config.lexer_debug = lexer_debug
        return config

    @staticmethod
    def save_config(config: ViewerConfig, filepath: str):
        """Save configuration to JSON file."""
        with open(filepath, 'w') as f:
            json.dump(asdict(config), f, indent=2)

    @staticmethod
    def load_config(filepath: str) -> ViewerConfig:
        """Load configuration from JSON file, falling back to defaults on error."""
        try:
            with open(filepath, 'r') as f:
                data = json.load(f)
            known = {k: v for k, v in data.items() if k in ViewerConfig.__dataclass_fields__}
            config = ViewerConfig(**known)
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("Could not read config %s (%s); using defaults", filepath, exc)
            return ConfigManager.default()

        if config.theme not in THEMES:
            logger.warning("Unknown theme %r; using dark", config.theme)
            config.theme = "dark"
        return ConfigManager.apply_environment(config)

    @staticmethod
    def settings_payload(config: ViewerConfig) -> dict:
        """The settings object sent to the rendering surface."""
        return {"excludeCodes": config.get_excluded_codes()}
